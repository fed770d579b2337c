"""
Tests for the centralized JSON parsing utilities.
===============================================

These tests ensure the RobustJSONParser and the ParseOutcome helpers recover
attribute trees from the free-text responses the analysis model produces.
"""

import pytest

from swapstudio.core.json_parser import (
    RobustJSONParser,
    JSONExtractionError,
    Structured,
    Unstructured,
    extract_attribute_tree,
    extract_first_json_object,
)


class TestJSONParser:
    """Test cases for the RobustJSONParser class."""

    def setup_method(self):
        """Set up test parser instance."""
        self.parser = RobustJSONParser(debug_mode=False)
        self.debug_parser = RobustJSONParser(debug_mode=True)

    def test_markdown_json_block_extraction(self):
        """Test extraction from ```json...``` blocks."""
        test_cases = [
            ('```json\n{"garment_type": "jacket"}\n```', {"garment_type": "jacket"}),
            ('Here is the result:\n```json\n{"colors": {"primary": "red"}}\n```\nLet me know if you need anything else!',
             {"colors": {"primary": "red"}}),
            ('```JSON\n{"materials": ["wool", "silk"]}\n```', {"materials": ["wool", "silk"]}),
            ('```\n{"data": true}\n```', {"data": True}),
        ]

        for raw, expected in test_cases:
            assert self.parser.extract_and_parse(raw) == expected

    def test_direct_json_parsing(self):
        result = self.parser.extract_and_parse('{"garment_to_replace": {"type": "blazer"}}')
        assert result == {"garment_to_replace": {"type": "blazer"}}

    def test_extra_data_after_json(self):
        """Valid JSON followed by trailing commentary."""
        raw = '{"garment_type": "dress"}\n\nNote: the hem is partially hidden.'
        assert self.parser.extract_and_parse(raw) == {"garment_type": "dress"}

    def test_json_surrounded_by_prose(self):
        raw = 'The analysis follows. {"garment_type": "shirt", "colors": {"primary": "white"}} Hope that helps.'
        assert self.parser.extract_and_parse(raw) == {"garment_type": "shirt", "colors": {"primary": "white"}}

    def test_braces_inside_strings_are_ignored(self):
        raw = 'Result: {"graphics": "logo reads {BRAND}", "garment_type": "hoodie"} done'
        assert self.parser.extract_and_parse(raw) == {"graphics": "logo reads {BRAND}", "garment_type": "hoodie"}

    def test_skips_unparseable_span_and_finds_next_object(self):
        raw = 'Pose {left arm raised} and then {"garment_type": "coat"}'
        assert self.parser.extract_and_parse(raw) == {"garment_type": "coat"}

    def test_json_repair_trailing_commas(self):
        raw = '```json\n{"garment_type": "jacket", "colors": {"primary": "red",},}\n```'
        assert self.parser.extract_and_parse(raw) == {"garment_type": "jacket", "colors": {"primary": "red"}}

    def test_json_repair_single_quotes(self):
        assert self.parser.extract_and_parse("{'garment_type': 'skirt'}") == {"garment_type": "skirt"}

    def test_truncated_json_raises(self):
        with pytest.raises(JSONExtractionError):
            self.parser.extract_and_parse('PERSON_JSON: {"body_pose": {"position": "standing"')

    def test_array_is_rejected(self):
        with pytest.raises(JSONExtractionError):
            self.parser.extract_and_parse('["not", "an", "object"]')

    def test_empty_input(self):
        assert self.parser.extract_json_string("") is None
        assert self.debug_parser.extract_json_string("   ") is None
        assert self.parser.extract_json_string(None) is None


class TestParseOutcome:
    """Tagged outcome helpers never raise."""

    def test_structured_outcome(self):
        outcome = extract_attribute_tree('```json\n{"garment_type": "jacket"}\n```')
        assert isinstance(outcome, Structured)
        assert outcome.attributes == {"garment_type": "jacket"}

    @pytest.mark.parametrize("raw", ["", "   ", "no json here at all", '{"unterminated": ', "{}"])
    def test_unstructured_outcome(self, raw):
        outcome = extract_attribute_tree(raw)
        assert isinstance(outcome, Unstructured)
        assert outcome.reason

    def test_first_json_object_scan(self):
        raw = 'PERSON_DESCRIPTION: standing.\nSome notes {"garment_to_replace": {"type": "shirt"}} trailing {"x": 1}'
        outcome = extract_first_json_object(raw)
        assert isinstance(outcome, Structured)
        assert outcome.attributes == {"garment_to_replace": {"type": "shirt"}}

    def test_first_json_object_scan_without_object(self):
        assert isinstance(extract_first_json_object("plain text"), Unstructured)
        assert isinstance(extract_first_json_object("empty {}"), Unstructured)
