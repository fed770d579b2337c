"""
Generation Gateway

Thin adapter over the google-genai client. Performs exactly one
``models.generate_content`` call per invocation and normalizes the response
into a GenerationResponse (first inline image part plus any text parts).
Retries and model fallback are the caller's concern.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from google.genai import types

from .constants import DEFAULT_OUTPUT_MIME_TYPE
from .errors import GenerationTransportError
from .image_codec import ImageAsset

logger = logging.getLogger(__name__)

_MEDIA_RESOLUTION_ENUM_NAMES = {
    "low": "MEDIA_RESOLUTION_LOW",
    "medium": "MEDIA_RESOLUTION_MEDIUM",
    "high": "MEDIA_RESOLUTION_HIGH",
}


@dataclass
class GenerationResponse:
    """Normalized model response."""

    image: Optional[ImageAsset] = None
    text_parts: List[str] = field(default_factory=list)
    model_id: Optional[str] = None
    finish_reason: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def has_image(self) -> bool:
        return self.image is not None


def _image_from_part(part: Any) -> Optional[ImageAsset]:
    """Return an ImageAsset if the part carries inline image bytes."""
    inline_data = getattr(part, "inline_data", None)
    if inline_data is None:
        return None

    data = getattr(inline_data, "data", None)
    if not data:
        return None

    mime_type = getattr(inline_data, "mime_type", None) or DEFAULT_OUTPUT_MIME_TYPE
    if isinstance(data, bytes):
        return ImageAsset(data=data, mime_type=mime_type)
    if isinstance(data, str):
        # Some transports hand back base64 text instead of raw bytes
        return ImageAsset(data=base64.b64decode(data), mime_type=mime_type)
    raise ValueError(f"Unexpected inline data type: {type(data)}")


def extract_generation_response(response: Any, model_id: Optional[str] = None) -> GenerationResponse:
    """
    Normalize a google-genai response.

    Scans the first candidate's parts in order and keeps the first inline image.
    Text parts are collected; a text part where an image was expected usually
    means the model explained itself instead of editing, so it is logged.
    """
    result = GenerationResponse(model_id=model_id)

    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None
        logger.warning(f"Response from {model_id} has no candidates (block reason: {block_reason})")
        result.finish_reason = str(block_reason) if block_reason else None
        return result

    candidate = candidates[0]
    finish_reason = getattr(candidate, "finish_reason", None)
    result.finish_reason = str(finish_reason) if finish_reason is not None else None

    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    logger.debug(f"Response from {model_id} has {len(parts)} parts")

    for part in parts:
        if result.image is None:
            image = _image_from_part(part)
            if image is not None:
                result.image = image
                logger.debug(f"Found image data ({len(image.data)} bytes, {image.mime_type})")
                continue

        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            result.text_parts.append(text)

    return result


class GenerationGateway:
    """Performs the network call to the generative model."""

    def __init__(self, client: Any):
        """
        Args:
            client: A ``google.genai.Client`` (or any object exposing
                ``models.generate_content`` with the same signature)
        """
        self.client = client

    def _build_contents(self, prompt_text: str, images: Sequence[ImageAsset]) -> List[Any]:
        contents: List[Any] = [prompt_text]
        for image in images:
            contents.append(types.Part.from_bytes(data=image.data, mime_type=image.mime_type))
        return contents

    def _build_config(
        self,
        media_resolution: Optional[str],
        aspect_ratio: Optional[str],
        image_size: Optional[str],
        response_modalities: Optional[List[str]],
    ) -> Optional[Any]:
        config_args = {}
        if media_resolution:
            enum_name = _MEDIA_RESOLUTION_ENUM_NAMES.get(media_resolution.lower())
            if enum_name:
                config_args["media_resolution"] = getattr(types.MediaResolution, enum_name)
        if aspect_ratio or image_size:
            image_config_args = {}
            if aspect_ratio:
                image_config_args["aspect_ratio"] = aspect_ratio
            if image_size:
                image_config_args["image_size"] = image_size
            config_args["image_config"] = types.ImageConfig(**image_config_args)
        if response_modalities:
            config_args["response_modalities"] = response_modalities

        return types.GenerateContentConfig(**config_args) if config_args else None

    async def generate(
        self,
        prompt_text: str,
        images: Sequence[ImageAsset],
        model_id: str,
        *,
        media_resolution: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
        image_size: Optional[str] = None,
        response_modalities: Optional[List[str]] = None,
        expect_image: bool = True,
    ) -> GenerationResponse:
        """
        Send one multimodal request.

        Args:
            prompt_text: Text part placed before the images
            images: Images attached in order
            model_id: Model identifier for this attempt
            media_resolution: Optional input media resolution hint
            aspect_ratio: Optional output aspect ratio (image models)
            image_size: Optional output size, e.g. "1K" (image models)
            response_modalities: Optional, e.g. ["IMAGE", "TEXT"]
            expect_image: False for analysis calls, where text is the answer

        Returns:
            GenerationResponse with the first image part (if any) and all text parts

        Raises:
            GenerationTransportError: the client call raised
        """
        contents = self._build_contents(prompt_text, images)
        config = self._build_config(media_resolution, aspect_ratio, image_size, response_modalities)

        logger.info(f"--- Calling Gemini ({model_id}) with 1 text + {len(images)} image part(s) ---")
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=model_id,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error(f"❌ Gemini call to {model_id} failed: {e}")
            raise GenerationTransportError(str(e) or type(e).__name__, model_id=model_id) from e

        result = extract_generation_response(response, model_id=model_id)
        if expect_image and not result.has_image:
            for text in result.text_parts:
                logger.warning(f"⚠️ Response part from {model_id} is text, not image: {text[:100]}...")
        return result
