"""
Centralized JSON Parsing Utilities for Model Responses
=====================================================

Analysis responses are free text that is *asked* to contain a JSON attribute
tree but may omit it, truncate it, wrap it in markdown fences or surround it
with prose. This module recovers what it can and reports the result as a
tagged ParseOutcome so callers never branch on ``None``.

Key Features:
- Markdown code block detection and extraction
- JSON repair for common formatting issues
- Multiple fallback strategies for finding JSON
- String-aware balanced-brace scanning for the first ``{...}`` span

Usage:
    from swapstudio.core.json_parser import extract_attribute_tree, Structured

    outcome = extract_attribute_tree(raw_model_text)
    if isinstance(outcome, Structured):
        attributes = outcome.attributes
"""

import json
import re
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


class JSONExtractionError(Exception):
    """Custom exception for JSON extraction failures."""
    pass


@dataclass(frozen=True)
class Structured:
    """An attribute tree was recovered."""

    attributes: Dict[str, Any]


@dataclass(frozen=True)
class Unstructured:
    """No usable attribute tree; ``reason`` says why."""

    reason: str


ParseOutcome = Union[Structured, Unstructured]


class RobustJSONParser:
    """
    Centralized, robust JSON parser for model responses.

    Handles various model output behaviors including:
    - Markdown code blocks (```json...``` and ```...```)
    - Explanatory text before/after JSON
    - Common JSON formatting issues
    - Partial JSON responses followed by commentary
    """

    def __init__(self, debug_mode: bool = False):
        """
        Initialize the JSON parser.

        Args:
            debug_mode: Enable detailed logging for debugging
        """
        self.debug_mode = debug_mode

    def extract_and_parse(self, raw_response: str) -> Dict[str, Any]:
        """
        Extract and parse a JSON object from a model response.

        Args:
            raw_response: Raw text response from the model

        Returns:
            Parsed JSON object as dictionary

        Raises:
            JSONExtractionError: If no JSON object can be extracted
        """
        json_str = self.extract_json_string(raw_response)
        if not json_str:
            preview = raw_response[:200] if isinstance(raw_response, str) else repr(raw_response)
            raise JSONExtractionError(f"Could not extract JSON from response. Raw content preview: {preview}...")

        parsed = json.loads(json_str)
        if not isinstance(parsed, dict):
            raise JSONExtractionError(f"Extracted JSON is a {type(parsed).__name__}, expected an object")
        return parsed

    def extract_json_string(self, raw_text: str) -> Optional[str]:
        """
        Extract JSON string from a model response using multiple strategies.

        Args:
            raw_text: Raw text response from the model

        Returns:
            Extracted JSON string or None if not found
        """
        if not isinstance(raw_text, str) or not raw_text.strip():
            return None

        cleaned_text = self._preprocess_response(raw_text)

        # Strategy 1: Extract from markdown code blocks
        json_str = self._extract_from_markdown_blocks(cleaned_text)
        if json_str:
            return json_str

        # Strategy 2: Parse entire text directly
        json_str = self._extract_direct_json(cleaned_text)
        if json_str:
            return json_str

        # Strategy 3: Handle "Extra data" JSON parse errors
        json_str = self._extract_partial_json(cleaned_text)
        if json_str:
            return json_str

        # Strategy 4: First balanced {...} span anywhere in the text
        json_str = self.find_first_balanced_object(cleaned_text)
        if json_str:
            return json_str

        if self.debug_mode:
            logger.debug(f"All extraction strategies failed for text: {raw_text[:300]}...")

        return None

    def _preprocess_response(self, raw_text: str) -> str:
        """Remove common problematic prefixes and suffixes from model responses."""
        text = raw_text.strip()

        prefix_patterns = [
            r'^(Here\'s the|Here is the|Here\'s|Here is)\s*(analysis|response|answer|result|json|output)[:.]?\s*',
            r'^```json\s*',
        ]
        for pattern in prefix_patterns:
            text = re.sub(pattern, '', text, flags=re.IGNORECASE)

        suffix_patterns = [
            r'\s*```\s*$',
            r'\s*(Let me know if you need.*|I hope this helps.*|Feel free to ask.*|Is there anything else.*)$',
        ]
        for pattern in suffix_patterns:
            text = re.sub(pattern, '', text, flags=re.IGNORECASE)

        return text.strip()

    def _extract_from_markdown_blocks(self, text: str) -> Optional[str]:
        """Extract JSON from markdown code blocks."""
        match = re.search(r"```json\s*([\s\S]+?)\s*```", text, re.IGNORECASE)
        if match:
            json_str = match.group(1).strip()
            if self._is_valid_json(json_str):
                return json_str
            repaired = self._attempt_json_repair(json_str)
            if repaired:
                return repaired

        match = re.search(r"```\s*([\s\S]+?)\s*```", text)
        if match:
            potential_json = match.group(1).strip()
            if self._looks_like_json(potential_json) and self._is_valid_json(potential_json):
                return potential_json

        return None

    def _extract_direct_json(self, text: str) -> Optional[str]:
        """Try to parse the text directly as JSON, with repair attempt."""
        if not self._looks_like_json(text):
            return None
        if self._is_valid_json(text):
            return text
        return self._attempt_json_repair(text)

    def _extract_partial_json(self, text: str) -> Optional[str]:
        """Handle 'Extra data' JSON parse errors by extracting the valid prefix."""
        try:
            json.loads(text)
            return text
        except json.JSONDecodeError as e:
            if "Extra data" in str(e) and e.pos > 0:
                potential_json = text[:e.pos].strip()
                if self._is_valid_json(potential_json):
                    return potential_json
        return None

    def find_first_balanced_object(self, text: str) -> Optional[str]:
        """
        Return the first ``{...}`` span whose braces balance and which parses.

        Braces inside JSON strings are ignored. Spans that balance but do not
        parse are repaired if possible, otherwise the scan moves on to the next
        opening brace.
        """
        start = text.find('{')
        while start != -1:
            end = self._matching_brace(text, start)
            if end is None:
                # Unbalanced from here on, likely a truncated response
                return None
            candidate = text[start:end + 1]
            if self._is_valid_json(candidate):
                return candidate
            repaired = self._attempt_json_repair(candidate)
            if repaired:
                return repaired
            start = text.find('{', start + 1)
        return None

    @staticmethod
    def _matching_brace(text: str, start: int) -> Optional[int]:
        """Index of the brace closing the one at ``start``, or None."""
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == '\\':
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    return index
        return None

    def _looks_like_json(self, text: str) -> bool:
        """Quick heuristic to check if text looks like JSON."""
        text = text.strip()
        return ((text.startswith('{') and text.endswith('}')) or
                (text.startswith('[') and text.endswith(']')))

    def _is_valid_json(self, text: str) -> bool:
        """Check if text is valid JSON."""
        try:
            json.loads(text)
            return True
        except json.JSONDecodeError:
            return False

    def _attempt_json_repair(self, json_str: str) -> Optional[str]:
        """Attempt to repair common JSON formatting issues."""
        if not json_str:
            return None

        # Trailing commas
        repaired = re.sub(r',(\s*[}\]])', r'\1', json_str)
        if self._is_valid_json(repaired):
            return repaired

        # Single-quoted keys and values, only when no double quotes are present
        if '"' not in repaired:
            repaired = repaired.replace("'", '"')
            if self._is_valid_json(repaired):
                return repaired

        # Unquoted keys
        repaired = re.sub(r'([{,]\s*)([A-Za-z_][\w-]*)(\s*):', r'\1"\2"\3:', repaired)
        if self._is_valid_json(repaired):
            return repaired

        return None


_default_parser = RobustJSONParser(debug_mode=False)


def extract_attribute_tree(raw_text: str, parser: Optional[RobustJSONParser] = None) -> ParseOutcome:
    """
    Recover a non-empty JSON object from free text.

    Returns:
        Structured(attributes) when a non-empty object was recovered,
        Unstructured(reason) otherwise. Never raises.
    """
    parser = parser or _default_parser

    if not isinstance(raw_text, str) or not raw_text.strip():
        return Unstructured("empty response")

    try:
        attributes = parser.extract_and_parse(raw_text)
    except (JSONExtractionError, json.JSONDecodeError) as e:
        return Unstructured(str(e))

    if not attributes:
        return Unstructured("JSON object is empty")
    return Structured(attributes)


def extract_first_json_object(raw_text: str) -> ParseOutcome:
    """Scan the whole text for the first balanced ``{...}`` span only."""
    if not isinstance(raw_text, str) or not raw_text.strip():
        return Unstructured("empty response")

    json_str = _default_parser.find_first_balanced_object(raw_text)
    if not json_str:
        return Unstructured("no balanced JSON object found")

    parsed = json.loads(json_str)
    if not isinstance(parsed, dict) or not parsed:
        return Unstructured("JSON object is empty")
    return Structured(parsed)
