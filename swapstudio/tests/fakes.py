"""
Shared test doubles: a recording generation gateway and small real images.
"""

import io
import base64
from dataclasses import dataclass, field
from typing import Any, List, Optional

from PIL import Image

from swapstudio.core.client_config import GenerationSettings
from swapstudio.core.generation_gateway import GenerationResponse
from swapstudio.core.image_codec import ImageAsset


PERSON_RESPONSE = """PERSON_DESCRIPTION: A woman standing in a studio wearing a navy blazer, left hand on hip.

PERSON_JSON: {
  "body_pose": {"position": "standing", "left_elbow": "bent 90 degrees"},
  "garment_to_replace": {"type": "jacket", "color": "navy"}
}"""

PRODUCT_RESPONSE = """PRODUCT_DESCRIPTION: A red bomber jacket with ribbed cuffs.

PRODUCT_JSON: {"garment_type": "jacket", "colors": {"primary": "red"}}"""

TEST_SETTINGS = GenerationSettings(
    api_key="test-key",
    analysis_model_id="analysis-model",
    primary_model_id="primary-image-model",
    fallback_model_id="fallback-image-model",
    media_resolution="high",
)


@dataclass
class GatewayCall:
    prompt_text: str
    images: List[ImageAsset]
    model_id: str
    options: dict = field(default_factory=dict)
    expect_image: bool = True


class RecordingGateway:
    """
    Stands in for GenerationGateway and records every call.

    Analysis calls (``expect_image=False``) answer from ``analysis_responses``
    in order, or with a well-formed person/product response by default.
    Image calls answer from ``generation_results`` in order. Any item that is
    an exception is raised instead of returned; a plain string becomes a
    text-only response.
    """

    def __init__(self, generation_results: Optional[List[Any]] = None, analysis_responses: Optional[List[Any]] = None):
        self.generation_results = list(generation_results or [])
        self.analysis_responses = list(analysis_responses or [])
        self.calls: List[GatewayCall] = []

    async def generate(self, prompt_text, images, model_id, *, expect_image=True, **options):
        self.calls.append(GatewayCall(prompt_text, list(images), model_id, options, expect_image))

        if not expect_image:
            if self.analysis_responses:
                item = self.analysis_responses.pop(0)
            else:
                item = PERSON_RESPONSE if "PERSON_JSON" in prompt_text else PRODUCT_RESPONSE
        else:
            item = self.generation_results.pop(0) if self.generation_results else image_response(model_id)

        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return GenerationResponse(text_parts=[item], model_id=model_id)
        return item

    @property
    def analysis_calls(self) -> List[GatewayCall]:
        return [call for call in self.calls if not call.expect_image]

    @property
    def generation_calls(self) -> List[GatewayCall]:
        return [call for call in self.calls if call.expect_image]


def image_response(model_id: str = "primary-image-model", data: bytes = b"generated-png") -> GenerationResponse:
    return GenerationResponse(image=ImageAsset(data=data, mime_type="image/png"), model_id=model_id)


def make_asset(label: str = "image") -> ImageAsset:
    """Opaque asset for tests that never decode the bytes."""
    return ImageAsset(data=label.encode("utf-8"), mime_type="image/jpeg")


def make_image_bytes(width: int = 64, height: int = 48, mode: str = "RGB", fmt: str = "PNG") -> bytes:
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30) if mode == "RGB" else 128
    image = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_image_base64(width: int = 64, height: int = 48) -> str:
    return base64.b64encode(make_image_bytes(width, height)).decode("utf-8")
