"""
Integration tests for the HTTP endpoints.

Executors are built around a RecordingGateway and swapped in through
app.dependency_overrides; the lifespan (and therefore the real Gemini
client) is never started.
"""

import base64
import threading

import pytest
from fastapi.testclient import TestClient
from unittest.mock import Mock, patch
from PIL import Image

from swapstudio.api.main import app
from swapstudio.api.routers import decode_images
from swapstudio.api.dependencies import (
    get_client_config,
    get_swap_executor,
    get_scene_executor,
    get_object_executor,
    get_pose_executor,
)
from swapstudio.core.errors import GenerationTransportError
from swapstudio.core.image_codec import ImageAsset
from swapstudio.pipeline.executor import PipelineExecutor
from swapstudio.tests.fakes import (
    TEST_SETTINGS,
    RecordingGateway,
    image_response,
    make_image_base64,
    make_image_bytes,
)


class TestSwapAPI:

    def setup_method(self):
        self.gateway = RecordingGateway([image_response(data=b"swapped-png")])
        self.executor = PipelineExecutor("swap", TEST_SETTINGS, self.gateway)
        app.dependency_overrides[get_swap_executor] = lambda: self.executor
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def test_swap_success(self):
        response = self.client.post("/api/swap", json={
            "sceneImage": make_image_base64(),
            "objectImages": ["data:image/png;base64," + make_image_base64(), make_image_base64()],
            "instruction": "swap the jacket",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["imageUrl"] == "data:image/png;base64," + base64.b64encode(b"swapped-png").decode("utf-8")

        metadata = data["metadata"]
        assert metadata["garmentCount"] == 2
        assert metadata["instruction"] == "swap the jacket"
        assert [p["index"] for p in metadata["products"]] == [1, 2]
        assert metadata["products"][0]["json"]["garment_type"] == "jacket"
        assert metadata["personJSON"]["garment_to_replace"]["type"] == "jacket"
        assert metadata["personDescription"].startswith("A woman standing")

        # Uploads are re-encoded as bounded JPEG before reaching the model
        assert all(image.mime_type == "image/jpeg" for image in self.gateway.generation_calls[0].images)

    @pytest.mark.parametrize("body", [
        {"objectImages": ["abc"]},
        {"sceneImage": "abc"},
        {"sceneImage": "abc", "objectImages": []},
        {},
    ])
    def test_missing_images(self, body):
        response = self.client.post("/api/swap", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Missing input images", "kind": "InvalidRequest"}
        assert self.gateway.calls == []

    def test_undecodable_upload(self):
        response = self.client.post("/api/swap", json={
            "sceneImage": base64.b64encode(b"not an image").decode("utf-8"),
            "objectImages": [make_image_base64()],
        })

        assert response.status_code == 400
        assert response.json()["kind"] == "AssetUnavailable"
        assert self.gateway.calls == []

    def test_oversized_pixel_upload(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        response = self.client.post("/api/swap", json={
            "sceneImage": make_image_base64(100, 100),
            "objectImages": [make_image_base64()],
        })

        assert response.status_code == 400
        assert response.json()["kind"] == "AssetUnavailable"
        assert self.gateway.calls == []

    def test_unsupported_upload_format(self):
        response = self.client.post("/api/swap", json={
            "sceneImage": base64.b64encode(make_image_bytes(32, 32, fmt="TIFF")).decode("utf-8"),
            "objectImages": [make_image_base64()],
        })

        assert response.status_code == 400
        assert response.json()["kind"] == "AssetUnavailable"

    def test_invalid_body_type(self):
        response = self.client.post("/api/swap", json={"sceneImage": "abc", "objectImages": "not-a-list"})

        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidRequest"

    def test_generation_unavailable(self):
        self.gateway.generation_results = [
            GenerationTransportError("500 INTERNAL", model_id="primary-image-model"),
            GenerationTransportError("503 UNAVAILABLE", model_id="fallback-image-model"),
        ]

        response = self.client.post("/api/swap", json={
            "sceneImage": make_image_base64(),
            "objectImages": [make_image_base64()],
        })

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Failed to process swap"
        assert data["kind"] == "GenerationUnavailable"
        assert data["details"] == "API call failed: 500 INTERNAL. Fallback also failed: 503 UNAVAILABLE"

    def test_no_image_produced(self):
        self.gateway.generation_results = ["I can only describe images."]

        response = self.client.post("/api/swap", json={
            "sceneImage": make_image_base64(),
            "objectImages": [make_image_base64()],
        })

        assert response.status_code == 500
        assert response.json()["kind"] == "NoImageProduced"
        assert len(self.gateway.generation_calls) == 1

    def test_gateway_not_configured(self):
        app.dependency_overrides[get_swap_executor] = lambda: PipelineExecutor("swap", TEST_SETTINGS, None)

        response = self.client.post("/api/swap", json={
            "sceneImage": make_image_base64(),
            "objectImages": [make_image_base64()],
        })

        assert response.status_code == 503
        assert response.json()["kind"] == "GatewayNotConfigured"


class TestGenerateAPI:

    def setup_method(self):
        self.gateway = RecordingGateway(analysis_responses=["A sunlit loft with brick walls."])
        app.dependency_overrides[get_scene_executor] = lambda: PipelineExecutor("scene", TEST_SETTINGS, self.gateway)
        app.dependency_overrides[get_object_executor] = lambda: PipelineExecutor("object", TEST_SETTINGS, self.gateway)
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def test_generate_object(self):
        response = self.client.post("/api/generate", json={
            "type": "object",
            "params": {"prompt": "Suede chelsea boots", "type": "shoes"},
        })

        assert response.status_code == 200
        assert response.json()["imageUrl"].startswith("data:image/png;base64,")
        call = self.gateway.generation_calls[0]
        assert "Item Type: shoes" in call.prompt_text
        assert call.options["aspect_ratio"] == "1:1"

    def test_generate_scene_with_uploaded_location(self):
        response = self.client.post("/api/generate", json={
            "type": "scene",
            "params": {
                "prompt": "Editorial shoot",
                "gender": "female",
                "aspectRatio": "3:4",
                "modelConfig": {"source": "generate", "prompt": "Red hair, freckles"},
                "locationConfig": {"source": "upload", "image": make_image_base64()},
            },
        })

        assert response.status_code == 200
        assert len(self.gateway.analysis_calls) == 1
        call = self.gateway.generation_calls[0]
        assert "Description: Red hair, freckles" in call.prompt_text
        assert "Reference: A sunlit loft with brick walls." in call.prompt_text
        assert len(call.images) == 1

    def test_generate_scene_with_library_url(self):
        fetched = image_response().image
        with patch("swapstudio.api.routers.fetch_and_encode", return_value=fetched) as mock_fetch:
            response = self.client.post("/api/generate", json={
                "type": "scene",
                "params": {
                    "prompt": "Runway",
                    "modelConfig": {"source": "library", "imageUrl": "https://example.com/models/1.png"},
                },
            })

        assert response.status_code == 200
        mock_fetch.assert_called_once_with("https://example.com/models/1.png")
        assert self.gateway.generation_calls[0].images == [fetched]

    def test_invalid_object_params(self):
        response = self.client.post("/api/generate", json={
            "type": "object",
            "params": {"prompt": "Hat", "type": "spaceship"},
        })

        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidRequest"
        assert self.gateway.calls == []

    @pytest.mark.parametrize("params", [
        {"prompt": "Studio", "aspectRatio": "5:4"},
        {"prompt": "Studio", "gender": "robot"},
        {"prompt": "Studio", "modelConfig": {"source": "camera"}},
    ])
    def test_invalid_scene_params(self, params):
        response = self.client.post("/api/generate", json={"type": "scene", "params": params})

        assert response.status_code == 400
        assert response.json()["kind"] == "InvalidRequest"
        assert self.gateway.calls == []

    def test_invalid_type(self):
        response = self.client.post("/api/generate", json={"type": "video", "params": {}})
        assert response.status_code == 400

    def test_generation_failure(self):
        self.gateway.generation_results = [GenerationTransportError("down", model_id="primary-image-model")]

        response = self.client.post("/api/generate", json={"type": "object", "params": {"prompt": "Belt", "type": "accessory"}})

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to generate image"
        assert len(self.gateway.generation_calls) == 1


class TestPoseAPI:

    def setup_method(self):
        self.gateway = RecordingGateway()
        app.dependency_overrides[get_pose_executor] = lambda: PipelineExecutor("pose", TEST_SETTINGS, self.gateway)
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def test_pose_with_garment_reference(self):
        response = self.client.post("/api/pose", json={
            "sceneImage": make_image_base64(),
            "objectImages": [make_image_base64()],
        })

        assert response.status_code == 200
        call = self.gateway.generation_calls[0]
        assert "GARMENT SWAP" in call.prompt_text
        assert len(call.images) == 2

    def test_pose_missing_image(self):
        response = self.client.post("/api/pose", json={"instruction": "sit down"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing input image"


class TestServiceEndpoints:

    def setup_method(self):
        self.client = TestClient(app)

    def teardown_method(self):
        app.dependency_overrides.clear()

    def test_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "swapstudio-api"
        assert data["gateway_ready"] is False

    def test_health_reports_configured_gateway(self):
        app.dependency_overrides[get_client_config] = lambda: Mock(gateway=RecordingGateway())

        response = self.client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "swapstudio-api",
            "version": "1.0.0",
            "gateway_ready": True,
        }

    def test_root(self):
        response = self.client.get("/")
        assert response.status_code == 200
        assert response.json()["api"] == "/api"


class TestUploadDecoding:

    @pytest.mark.asyncio
    async def test_uploads_encode_off_the_event_loop_in_order(self):
        loop_thread = threading.get_ident()
        encode_threads = []

        def recording_encode(payload, max_dimension):
            encode_threads.append(threading.get_ident())
            return ImageAsset(data=payload.encode("utf-8"))

        with patch("swapstudio.core.image_codec.encode_base64_image", side_effect=recording_encode):
            images = await decode_images(["first", "second", "third"])

        assert [image.data for image in images] == [b"first", b"second", b"third"]
        assert len(encode_threads) == 3
        assert loop_thread not in encode_threads

    @pytest.mark.asyncio
    async def test_no_payloads(self):
        assert await decode_images(None) == []
