"""
Stage: Reference Analysis

Scene generation may be given a reference image for the model and/or the
location. Each reference is described once (narrative only, no attribute
tree) so the description can be folded into the scene prompt next to the
image itself. A failed description is logged and skipped.
"""

import logging

from ..core.errors import GenerationTransportError
from ..pipeline.context import PipelineContext

logger = logging.getLogger(__name__)

REFERENCE_PROMPTS = {
    "model": (
        "Describe the person in this reference image for a fashion photographer who must cast the same model. "
        "Cover gender presentation, approximate age, build, skin tone, hair (color, length, style), facial features "
        "and any distinctive characteristics. Do not describe the clothing. Answer in 2-4 sentences of plain text."
    ),
    "location": (
        "Describe the location in this reference image for a fashion photographer who must shoot in the same place. "
        "Cover the setting, architecture or landscape, colors, materials, time of day and lighting mood. "
        "Ignore any people. Answer in 2-4 sentences of plain text."
    ),
}


async def run(ctx: PipelineContext) -> None:
    """Describe each supplied reference image (model first, then location)."""
    if not ctx.reference_images:
        ctx.log("No reference images supplied, skipping reference analysis")
        return

    settings = ctx.settings
    for kind in ("model", "location"):
        image = ctx.reference_images.get(kind)
        if image is None:
            continue

        ctx.log(f"🔍 Describing {kind} reference image...")
        try:
            response = await ctx.gateway.generate(
                REFERENCE_PROMPTS[kind],
                [image],
                settings.analysis_model_id,
                media_resolution=settings.media_resolution,
                expect_image=False,
            )
        except GenerationTransportError as e:
            ctx.log(f"⚠️ {kind.capitalize()} reference analysis failed, using the image alone: {e}", logging.WARNING)
            continue

        description = response.text.strip()
        if description:
            ctx.reference_descriptions[kind] = description
            ctx.log(f"✅ {kind.capitalize()} reference described: {description[:80]}...")
        else:
            ctx.log(f"⚠️ {kind.capitalize()} reference analysis returned no text", logging.WARNING)
