"""
Stage: Image Generation

Sends the final prompt and its images to the image model and stores the
first inline image of the response.

Attempt policy:
- swap modes get one retry on the fallback model, and only when the primary
  call fails at the transport level
- a response without an image is NOT retried; it fails the run as
  NoImageProduced
- scene, object and pose generation are single-attempt
"""

import logging
from typing import List

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from ..core.constants import FALLBACK_ENABLED_MODES
from ..core.errors import (
    GenerationTransportError,
    GenerationUnavailableError,
    NoImageProducedError,
)
from ..core.generation_gateway import GenerationResponse
from ..pipeline.context import PipelineContext

logger = logging.getLogger(__name__)


def attempt_model_ids(ctx: PipelineContext) -> List[str]:
    """Model identifiers to try, in order."""
    settings = ctx.settings
    model_ids = [settings.primary_model_id]
    if ctx.mode in FALLBACK_ENABLED_MODES and settings.fallback_model_id:
        model_ids.append(settings.fallback_model_id)
    return model_ids


async def generate_with_fallback(ctx: PipelineContext, model_ids: List[str]) -> GenerationResponse:
    """
    Call the image model, moving to the next model id after a transport failure.

    Raises:
        GenerationUnavailableError: every attempt failed at the transport level,
            with each attempt's message included
    """
    errors: List[GenerationTransportError] = []
    media_resolution = ctx.settings.media_resolution if ctx.generation_images else None

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(len(model_ids)),
            retry=retry_if_exception_type(GenerationTransportError),
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                model_id = model_ids[attempt_number - 1]
                if attempt_number > 1:
                    ctx.log(f"  Trying fallback model: {model_id}")
                else:
                    ctx.log(f"  Calling Gemini API with model: {model_id}")
                ctx.log(f"  Parts count: {len(ctx.generation_images) + 1} (1 text + {len(ctx.generation_images)} images)")
                ctx.generation_attempts.append(model_id)

                try:
                    response = await ctx.gateway.generate(
                        ctx.final_prompt,
                        ctx.generation_images,
                        model_id,
                        media_resolution=media_resolution,
                        **ctx.generation_options,
                    )
                except GenerationTransportError as e:
                    errors.append(e)
                    ctx.log(f"  ❌ API call failed ({model_id}): {e}", logging.ERROR)
                    raise

                ctx.log(f"  ✅ API call successful ({model_id})")
                return response
    except GenerationTransportError:
        if len(errors) > 1:
            message = f"API call failed: {errors[0]}. Fallback also failed: {errors[1]}"
        else:
            message = f"API call failed: {errors[0]}"
        raise GenerationUnavailableError(message)


async def run(ctx: PipelineContext) -> None:
    """Generate the output image for the current run."""
    ctx.log("🎨 Generating image...")

    response = await generate_with_fallback(ctx, attempt_model_ids(ctx))

    if not response.has_image:
        details = response.text[:200] if response.text else None
        raise NoImageProducedError(
            "No image generated in response. Check API model and response structure.",
            details=details,
        )

    ctx.generated_image = response.image
    ctx.generation_model_id = response.model_id or ctx.generation_attempts[-1]
    ctx.log(f"  ✅ Found image data ({len(response.image.data)} bytes, {response.image.mime_type})")
