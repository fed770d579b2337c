"""
HTTP routes for swap, generation and pose.

Each route decodes and bounds its input images, fills a PipelineContext and
hands it to the executor for its mode. The executor's RunOutcome is mapped to
the response: the image as a data URL, or an error body with the status code
of the failure kind.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from swapstudio.api.schemas import (
    SwapRequest,
    PoseRequest,
    GenerateRequest,
    SwapResponse,
    SwapMetadata,
    ImageResponse,
    ErrorResponse,
)
from swapstudio.api.dependencies import (
    get_swap_executor,
    get_scene_executor,
    get_object_executor,
    get_pose_executor,
)
from swapstudio.core.errors import InvalidRequestError
from swapstudio.core.image_codec import ImageAsset, encode_upload, fetch_and_encode
from swapstudio.models import AssetGenerationConfig, SceneGenerationParams, ObjectGenerationParams
from swapstudio.pipeline.context import PipelineContext, EditFailure
from swapstudio.pipeline.executor import PipelineExecutor

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api", tags=["Generation"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def failure_response(failure: EditFailure, server_error_label: str) -> JSONResponse:
    """
    Map a failed run to its JSON error body.

    Client errors carry the failure message as ``error``; server errors carry a
    fixed label with the failure message in ``details``.
    """
    if failure.status_code < 500:
        body = ErrorResponse(error=failure.message, details=failure.details, kind=failure.kind)
    else:
        details = failure.message if not failure.details else f"{failure.message} ({failure.details})"
        body = ErrorResponse(error=server_error_label, details=details, kind=failure.kind)
    return JSONResponse(status_code=failure.status_code, content=body.model_dump(exclude_none=True))


async def decode_images(payloads: Optional[List[str]]) -> List[ImageAsset]:
    """Decode and bound each base64 payload, preserving order."""
    return list(await asyncio.gather(*(encode_upload(payload) for payload in payloads or [])))


async def resolve_reference(config: AssetGenerationConfig) -> Optional[ImageAsset]:
    """Reference image of an uploaded or library sub-asset, if one was supplied."""
    if not config.has_reference:
        return None
    if config.image:
        return await encode_upload(config.image)
    return await fetch_and_encode(config.imageUrl)


@api_router.post("/swap", response_model=SwapResponse, responses=ERROR_RESPONSES)
async def swap_garments(
    request: SwapRequest,
    executor: PipelineExecutor = Depends(get_swap_executor),
):
    """Swap the garment(s) from the object images onto the person in the scene image."""
    if not request.sceneImage or not request.objectImages:
        raise InvalidRequestError("Missing input images")

    logger.info(f"🔄 Starting garment swap ({executor.mode}) with {len(request.objectImages)} product image(s)")

    ctx = PipelineContext(
        person_image=await encode_upload(request.sceneImage),
        product_images=await decode_images(request.objectImages),
        instruction=request.instruction,
    )
    outcome = await executor.run_async(ctx)

    if isinstance(outcome, EditFailure):
        return failure_response(outcome, "Failed to process swap")

    logger.info("✅ Swap complete!")
    return SwapResponse(
        imageUrl=outcome.image.to_data_url(),
        metadata=SwapMetadata(**outcome.audit.to_metadata()),
    )


@api_router.post("/generate", response_model=ImageResponse, responses=ERROR_RESPONSES)
async def generate_asset(
    request: GenerateRequest,
    scene_executor: PipelineExecutor = Depends(get_scene_executor),
    object_executor: PipelineExecutor = Depends(get_object_executor),
):
    """Generate a fashion scene or a product shot from text (and optional scene references)."""
    try:
        if request.type == "scene":
            scene_params = SceneGenerationParams.model_validate(request.params)
            object_params = None
        else:
            scene_params = None
            object_params = ObjectGenerationParams.model_validate(request.params)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid {request.type} parameters", details=str(e))

    ctx = PipelineContext(scene_params=scene_params, object_params=object_params)
    if scene_params is not None:
        references: Dict[str, ImageAsset] = {}
        for kind, config in (("model", scene_params.modelConfig), ("location", scene_params.locationConfig)):
            image = await resolve_reference(config)
            if image is not None:
                references[kind] = image
        ctx.reference_images = references
        executor = scene_executor
    else:
        executor = object_executor

    logger.info(f"🎨 Generating {request.type} image")
    outcome = await executor.run_async(ctx)

    if isinstance(outcome, EditFailure):
        return failure_response(outcome, "Failed to generate image")

    return ImageResponse(imageUrl=outcome.image.to_data_url())


@api_router.post("/pose", response_model=ImageResponse, responses=ERROR_RESPONSES)
async def regenerate_pose(
    request: PoseRequest,
    executor: PipelineExecutor = Depends(get_pose_executor),
):
    """Re-pose the model in the scene image, optionally dressing it in the referenced garments."""
    if not request.sceneImage:
        raise InvalidRequestError("Missing input image")

    ctx = PipelineContext(
        person_image=await encode_upload(request.sceneImage),
        product_images=await decode_images(request.objectImages),
        instruction=request.instruction,
    )
    outcome = await executor.run_async(ctx)

    if isinstance(outcome, EditFailure):
        return failure_response(outcome, "Failed to generate pose")

    return ImageResponse(imageUrl=outcome.image.to_data_url())
