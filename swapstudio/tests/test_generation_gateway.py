"""
Tests for the Gemini generation gateway and response normalization.

Response parts are built with SimpleNamespace rather than Mock: a Mock part
would report an ``inline_data`` attribute on every part.
"""

import base64
import logging
from types import SimpleNamespace

import pytest
from unittest.mock import Mock
from google.genai import types

from swapstudio.core.errors import GenerationTransportError
from swapstudio.core.generation_gateway import GenerationGateway, extract_generation_response
from swapstudio.tests.fakes import make_asset


def _text_part(text):
    return SimpleNamespace(text=text, inline_data=None)


def _image_part(data, mime_type="image/png"):
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime_type))


def _response(*parts, finish_reason="STOP"):
    candidate = SimpleNamespace(content=SimpleNamespace(parts=list(parts)), finish_reason=finish_reason)
    return SimpleNamespace(candidates=[candidate], prompt_feedback=None)


class TestExtractGenerationResponse:

    def test_first_image_part_wins(self):
        response = _response(_text_part("Here you go"), _image_part(b"first"), _image_part(b"second", "image/jpeg"))

        result = extract_generation_response(response, model_id="m1")

        assert result.has_image
        assert result.image.data == b"first"
        assert result.image.mime_type == "image/png"
        assert result.text_parts == ["Here you go"]
        assert result.model_id == "m1"
        assert result.finish_reason == "STOP"

    def test_text_only_response(self):
        result = extract_generation_response(_response(_text_part("I cannot edit "), _text_part("this image.")))
        assert not result.has_image
        assert result.text == "I cannot edit this image."

    def test_base64_string_data_is_decoded(self):
        encoded = base64.b64encode(b"pixels").decode("utf-8")
        result = extract_generation_response(_response(_image_part(encoded)))
        assert result.image.data == b"pixels"

    def test_missing_mime_type_defaults_to_png(self):
        result = extract_generation_response(_response(_image_part(b"pixels", mime_type=None)))
        assert result.image.mime_type == "image/png"

    def test_no_candidates(self):
        response = SimpleNamespace(candidates=[], prompt_feedback=SimpleNamespace(block_reason="SAFETY"))
        result = extract_generation_response(response, model_id="m1")
        assert not result.has_image
        assert result.finish_reason == "SAFETY"

    def test_candidate_without_content(self):
        response = SimpleNamespace(candidates=[SimpleNamespace(content=None, finish_reason=None)])
        result = extract_generation_response(response)
        assert not result.has_image
        assert result.text_parts == []


class TestGenerationGateway:

    def setup_method(self):
        self.client = Mock()
        self.gateway = GenerationGateway(self.client)

    @pytest.mark.asyncio
    async def test_generate_sends_prompt_then_images(self):
        self.client.models.generate_content.return_value = _response(_image_part(b"out"))
        person, product = make_asset("person"), make_asset("product")

        result = await self.gateway.generate("swap it", [person, product], "image-model", media_resolution="high")

        assert result.image.data == b"out"
        kwargs = self.client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "image-model"
        contents = kwargs["contents"]
        assert contents[0] == "swap it"
        assert len(contents) == 3
        assert all(isinstance(part, types.Part) for part in contents[1:])
        assert contents[1].inline_data.data == b"person"
        assert contents[2].inline_data.data == b"product"
        assert kwargs["config"].media_resolution == types.MediaResolution.MEDIA_RESOLUTION_HIGH

    @pytest.mark.asyncio
    async def test_image_config_hints(self):
        self.client.models.generate_content.return_value = _response(_image_part(b"out"))

        await self.gateway.generate("a scene", [], "image-model", aspect_ratio="3:4", image_size="1K")

        config = self.client.models.generate_content.call_args.kwargs["config"]
        assert config.image_config.aspect_ratio == "3:4"
        assert config.image_config.image_size == "1K"

    @pytest.mark.asyncio
    async def test_no_options_sends_no_config(self):
        self.client.models.generate_content.return_value = _response(_text_part("description"))

        result = await self.gateway.generate("describe", [make_asset()], "analysis-model", expect_image=False)

        assert self.client.models.generate_content.call_args.kwargs["config"] is None
        assert result.text == "description"

    @pytest.mark.asyncio
    async def test_client_error_becomes_transport_error(self):
        self.client.models.generate_content.side_effect = RuntimeError("503 UNAVAILABLE")

        with pytest.raises(GenerationTransportError) as exc_info:
            await self.gateway.generate("swap it", [], "image-model")

        assert exc_info.value.model_id == "image-model"
        assert "503 UNAVAILABLE" in str(exc_info.value)
        assert exc_info.value.kind == "GenerationTransportFailure"

    @pytest.mark.asyncio
    async def test_text_part_where_image_expected_is_logged(self, caplog):
        self.client.models.generate_content.return_value = _response(_text_part("I would rather describe it."))

        with caplog.at_level(logging.WARNING, logger="swapstudio.core.generation_gateway"):
            result = await self.gateway.generate("swap it", [], "image-model")

        assert not result.has_image
        assert "is text, not image" in caplog.text
