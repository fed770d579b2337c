"""
Stage: Prompt Synthesis

Builds the final generation prompt for the run's mode and decides which
images accompany it. The builders are pure string functions: identical
inputs always produce identical text.

- swap: structured garment replacement directive built from the person and
  product analyses (source-of-truth precedence, per-product sections, a fixed
  do-not-alter list and a closing verification checklist)
- swap_direct: single-pass editor prompt, no analysis
- scene / object: generation templates
- pose: re-pose templates, with or without garment reference images
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from ..core.constants import (
    SCENE_IMAGE_ASPECT_RATIO,
    OBJECT_IMAGE_ASPECT_RATIO,
    GENERATED_IMAGE_SIZE,
)
from ..models import (
    PersonAnalysis,
    ProductAnalysis,
    SceneGenerationParams,
    ObjectGenerationParams,
)
from ..pipeline.context import PipelineContext

DEFAULT_DIRECT_SWAP_TASK = "Swap the clothing onto the model."
DEFAULT_POSE_INSTRUCTION_WITH_GARMENTS = "Generate a new, dynamic fashion pose for the model."
DEFAULT_POSE_INSTRUCTION = "Generate a new, dynamic fashion pose for the model in the image."

# Pose and identity invariants the swap must keep, in the order they are listed
DO_NOT_ALTER = [
    "Body orientation and overall body position",
    "Every joint angle: shoulders, elbows and wrists on both arms",
    "Every joint angle: hips, knees and ankles on both legs",
    "Torso lean and torso angle",
    "Head tilt and head rotation",
    "Face, facial expression, gaze and identity",
    "Hair",
    "Hands and finger positions",
    "Props and accessories",
    "Background",
    "Lighting",
    "Camera angle, distance and framing",
]


def format_attributes(attributes: Dict[str, Any]) -> str:
    """Serialize an attribute tree as readable, stable JSON."""
    return json.dumps(attributes, indent=2, ensure_ascii=False)


def has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def _product_section(product: ProductAnalysis) -> str:
    n = product.index
    return (
        f"PRODUCT IMAGE {n}:\n\n"
        f"This image is the visual source of truth for target product {n}. Copy it exactly as shown in the "
        f"product photo. Use it to match colors, materials, silhouette, and artwork.\n\n"
        f"PRODUCT {n} DESCRIPTION:\n\n"
        f"{product.narrative_description}\n\n"
        f"PRODUCT {n} PARAMETERS JSON:\n\n"
        f"Use this JSON only as a guide to interpret product image {n}. If there is any conflict, follow the image.\n\n"
        f"{format_attributes(product.attributes)}\n\n"
    )


def build_swap_prompt(
    person: PersonAnalysis,
    products: Sequence[ProductAnalysis],
    instruction: Optional[str] = None,
) -> str:
    """
    Build the structured garment replacement directive.

    Args:
        person: Analysis of the person image
        products: One analysis per product image, in input order
        instruction: Optional free text, appended verbatim when non-blank

    Returns:
        The complete prompt. Wording is singular for one product and plural
        for several.
    """
    count = len(products)
    plural = count > 1

    garment = "garments" if plural else "garment"
    Garment = garment.capitalize()
    product_image = "product images" if plural else "product image"
    is_are = "are" if plural else "is"
    it_they = "they" if plural else "it"
    shows = "show" if plural else "shows"
    controls = "control" if plural else "controls"
    blends = "blend" if plural else "blends"

    if plural:
        replacement = (
            f"Replace the garments described in PERSON_JSON with the {count} garments from the product images. "
            f"Remove the original garments and replace them with the target garments. "
            f"Each product image corresponds to a specific garment to be swapped, in the order the images are given."
        )
    else:
        replacement = (
            "Replace the garment described in PERSON_JSON with the garment in the product image. "
            "Remove the original garment and replace it with the target garment."
        )

    sections: List[str] = []

    sections.append(
        "ROLE:\n\n"
        "You are a photorealistic garment replacement engine. You take:\n\n"
        "1. A person image with an existing outfit\n\n"
        f"2. {product_image.capitalize()} that {shows} the target {garment}\n\n"
        f"and you replace the original {garment} on the person with the target {garment}.\n\n"
    )

    sections.append(
        "REFERENCES AND STRUCTURE:\n\n"
        "PERSON IMAGE:\n\n"
        "This image is the visual source of truth for the person, pose, camera angle, lighting, background, "
        f"props, and all non garment elements. Nothing in this image should change except the {garment} "
        f"that {is_are} marked for replacement.\n\n"
        "PERSON DESCRIPTION:\n\n"
        f"{person.narrative_description}\n\n"
        "PERSON PARAMETERS JSON:\n\n"
        "Use this JSON only as a guide to interpret the person image. If there is any conflict, follow the image.\n\n"
        f"{format_attributes(person.attributes)}\n\n"
    )

    for product in products:
        sections.append(_product_section(product))

    if has_text(instruction):
        sections.append(f"CUSTOM INSTRUCTIONS:\n\n{instruction}\n\n")

    sections.append(
        "GENERAL EXPECTATIONS:\n\n"
        "Output a single photorealistic image. The result should look like the person originally wore the "
        f"target {garment} during the shoot.\n\n"
    )

    sections.append(
        "INSTRUCTIONS FOR THE MODEL:\n\n"
        "1) Garment replacement only\n\n"
        f"{replacement}\n\n"
        "2) Image priority order\n\n"
        "1. Person image controls pose, body, lighting, face, hair, props, scene.\n\n"
        f"2. {product_image.capitalize()} {controls} design, colors, textures, graphics.\n\n"
        "3. JSON guides interpretation but never overrides visuals.\n\n"
        "3) Preserve all non garment elements\n\n"
        "Do not change the person's face, hands, hair, accessories, background, lighting, surface, or camera angle.\n\n"
        f"4) Copy the target {garment} accurately\n\n"
        f"Reproduce the {garment} from the {product_image} exactly, including:\n\n"
        "- silhouette\n\n"
        "- materials\n\n"
        "- colors\n\n"
        "- all graphics, artwork, patches, and illustrations in the same shapes and positions\n\n"
        f"Do not design new {garment}. Do not modify graphics. Do not simplify or restyle elements.\n\n"
        f"5) Fit {garment} to pose\n\n"
        "Match folds, compression, sleeve bending, and draping based on the body pose described in PERSON_JSON "
        "and visible in the person image.\n\n"
        "6) Lighting consistency\n\n"
        f"Apply the lighting of the person image to the new {garment} so {it_they} {blends} naturally.\n\n"
        "7) Interaction and realism\n\n"
        f"{Garment} should layer naturally with hair, arms, and body.\n\n"
        "No clipping or floating.\n\n"
        "Add realistic contact shadows.\n\n"
    )

    do_not_alter = "\n".join(f"- {item}" for item in DO_NOT_ALTER)
    sections.append(
        "DO NOT ALTER:\n\n"
        "The following must be identical to the person image. Use the values in PERSON PARAMETERS JSON as "
        "concrete anchors, and the person image wherever they disagree.\n\n"
        f"{do_not_alter}\n\n"
    )

    matches = "match" if plural else "matches"
    sections.append(
        "FINAL VERIFICATION:\n\n"
        "Before returning the image, confirm:\n\n"
        "- The pose is unchanged: same body orientation, same joint angles, same head tilt and rotation.\n"
        "- The identity is unchanged: same face, hair, skin tone and body shape.\n"
        f"- The only difference from the person image is the replaced {garment}.\n"
        f"- The new {garment} {matches} the {product_image} in colors, materials and graphics.\n\n"
    )

    sections.append(
        "OUTPUT SUMMARY:\n\n"
        f"Create a final image where the person is wearing the {garment} from the {product_image}. "
        "Everything else remains unchanged."
    )

    return "".join(sections)


def build_direct_swap_prompt(instruction: Optional[str] = None) -> str:
    """Single-pass swap prompt used when no analysis is run."""
    task = instruction if has_text(instruction) else DEFAULT_DIRECT_SWAP_TASK
    return (
        "You are an expert fashion editor and photo retoucher.\n\n"
        f"Task: {task}\n\n"
        "Inputs:\n"
        "1. The first image is the 'Model/Scene'.\n"
        "2. The subsequent images are the 'Garments/Objects'.\n\n"
        "Goal:\n"
        "Generate a photorealistic result where the model in the first image is wearing the garments from the "
        "subsequent images.\n"
        "- Maintain the model's exact face, identity, pose, and the background environment.\n"
        "- Adjust the fit, lighting, and texture of the garments to match the scene perfectly.\n"
        "- Ensure high quality and realism."
    )


def build_scene_prompt(
    params: SceneGenerationParams,
    model_reference: Optional[str] = None,
    location_reference: Optional[str] = None,
    attached: Sequence[str] = (),
) -> str:
    """
    Scene generation template.

    Args:
        params: Scene parameters from the request
        model_reference: Description of the model reference image, if analyzed
        location_reference: Description of the location reference image, if analyzed
        attached: Kinds of the reference images attached, in attachment order
    """
    lines = [
        "Generate a photorealistic fashion scene.",
        f"Aspect Ratio: {params.aspectRatio}.",
        "",
        f"Scene Description: {params.prompt}",
        "",
        "Model Details:",
        f"Gender: {params.gender or 'Not specified'}",
        f"Description: {params.modelConfig.prompt or 'A professional fashion model'}",
    ]
    if model_reference:
        lines.append(f"Reference: {model_reference}")
    if "model" in attached:
        lines.append("Cast the same person as in the attached model reference image.")

    lines += [
        "",
        "Location Details:",
        f"Description: {params.locationConfig.prompt or 'A studio background'}",
    ]
    if location_reference:
        lines.append(f"Reference: {location_reference}")
    if "location" in attached:
        lines.append("Shoot in the same place as the attached location reference image.")

    if attached:
        order = ", ".join(f"{i}. {kind} reference" for i, kind in enumerate(attached, 1))
        lines += ["", f"Attached reference images, in order: {order}."]

    lines += ["", "Lighting: Professional fashion photography lighting, high detail, 4k."]
    return "\n".join(lines)


def build_object_prompt(params: ObjectGenerationParams) -> str:
    """Product shot template."""
    return (
        "Generate a high-quality product shot of a fashion item.\n"
        f"Item Type: {params.type}\n"
        f"Description: {params.prompt}\n"
        "Style: Isolated on a neutral background, professional product photography."
    )


def build_pose_prompt(instruction: Optional[str] = None, has_garment_references: bool = False) -> str:
    """Re-pose template; the garment-reference variant also swaps in the referenced garments."""
    if has_garment_references:
        task = instruction if has_text(instruction) else DEFAULT_POSE_INSTRUCTION_WITH_GARMENTS
        return (
            "You are an expert fashion photographer and editor.\n\n"
            "TASK: NEW POSE GENERATION & GARMENT SWAP\n"
            f"{task}\n\n"
            "INPUTS:\n"
            "1. FIRST IMAGE (Scene/Model): Contains the target model (identity, face, body type) and the background location.\n"
            "2. SUBSEQUENT IMAGE(S) (Garment): Contains the garment(s) the model should be wearing.\n\n"
            "REQUIREMENTS:\n"
            "1. IDENTITY: Preserve the EXACT facial features, hair, skin tone, and body type of the model from the First Image.\n"
            "2. GARMENT: The model must be wearing the garment(s) shown in the Subsequent Image(s). "
            "The garment details (texture, logo, pattern) must be preserved.\n"
            "3. LOCATION: The background/environment must match the First Image (same lighting vibe, same setting).\n"
            "4. POSE: IGNORE the pose in the First Image. Generate a COMPLETELY NEW, professional fashion pose.\n"
            "   - The pose should be natural and photorealistic.\n"
            "   - The garment should drape naturally in the new pose.\n\n"
            "OUTPUT:\n"
            "A photorealistic image of the SAME model, in the SAME location, wearing the SAME garment, but in a NEW pose.\n"
            "High quality, 4k, fashion photography style."
        )

    task = instruction if has_text(instruction) else DEFAULT_POSE_INSTRUCTION
    return (
        "You are an expert fashion photographer and editor.\n\n"
        "TASK: NEW POSE GENERATION (RE-POSE)\n"
        f"{task}\n\n"
        "INPUTS:\n"
        "1. INPUT IMAGE: Contains the model wearing the correct garment in a specific location.\n\n"
        "REQUIREMENTS:\n"
        "1. IDENTITY: Preserve the EXACT facial features, hair, skin tone, and body type of the model.\n"
        "2. GARMENT: Preserve the EXACT garment the model is currently wearing (style, texture, color, logo, pattern).\n"
        "3. LOCATION: The background/environment must match the original image (same lighting vibe, same setting).\n"
        "4. POSE: IGNORE the current pose. Generate a COMPLETELY NEW, professional fashion pose.\n"
        "   - The pose should be natural and photorealistic.\n"
        "   - The garment should drape naturally in the new pose.\n\n"
        "OUTPUT:\n"
        "A photorealistic image of the SAME model, in the SAME location, wearing the SAME garment, but in a NEW pose.\n"
        "High quality, 4k, fashion photography style."
    )


def _synthesize_swap(ctx: PipelineContext) -> None:
    ctx.final_prompt = build_swap_prompt(ctx.person_analysis, ctx.product_analyses, ctx.instruction)
    ctx.generation_images = [ctx.person_image, *ctx.product_images]


def _synthesize_swap_direct(ctx: PipelineContext) -> None:
    ctx.final_prompt = build_direct_swap_prompt(ctx.instruction)
    ctx.generation_images = [ctx.person_image, *ctx.product_images]


def _synthesize_scene(ctx: PipelineContext) -> None:
    attached = [kind for kind in ("model", "location") if kind in ctx.reference_images]
    ctx.final_prompt = build_scene_prompt(
        ctx.scene_params,
        model_reference=ctx.reference_descriptions.get("model"),
        location_reference=ctx.reference_descriptions.get("location"),
        attached=attached,
    )
    ctx.generation_images = [ctx.reference_images[kind] for kind in attached]
    ctx.generation_options = {"aspect_ratio": SCENE_IMAGE_ASPECT_RATIO, "image_size": GENERATED_IMAGE_SIZE}


def _synthesize_object(ctx: PipelineContext) -> None:
    ctx.final_prompt = build_object_prompt(ctx.object_params)
    ctx.generation_images = []
    ctx.generation_options = {"aspect_ratio": OBJECT_IMAGE_ASPECT_RATIO, "image_size": GENERATED_IMAGE_SIZE}


def _synthesize_pose(ctx: PipelineContext) -> None:
    ctx.final_prompt = build_pose_prompt(ctx.instruction, has_garment_references=bool(ctx.product_images))
    ctx.generation_images = [ctx.person_image, *ctx.product_images]


MODE_SYNTHESIZERS = {
    "swap": _synthesize_swap,
    "swap_direct": _synthesize_swap_direct,
    "scene": _synthesize_scene,
    "object": _synthesize_object,
    "pose": _synthesize_pose,
}


async def run(ctx: PipelineContext) -> None:
    """Build the final prompt and the ordered image list for the run's mode."""
    synthesize = MODE_SYNTHESIZERS.get(ctx.mode)
    if synthesize is None:
        raise ValueError(f"No prompt template for mode '{ctx.mode}'")

    ctx.log("📝 Creating prompt...")
    synthesize(ctx)
    ctx.log(f"✅ Prompt ready ({len(ctx.final_prompt)} chars, {len(ctx.generation_images)} image(s) attached)")
    if ctx.has_instruction:
        ctx.log(f"📝 Custom instruction provided: \"{ctx.instruction[:50]}...\"")
