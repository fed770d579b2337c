"""
Stage: Image Analysis

Describes the person image and every product image with the analysis model.

The model is asked for two labeled sections, ``<ROLE>_DESCRIPTION:`` and
``<ROLE>_JSON:``. Responses are tolerated when the JSON section is missing,
malformed, truncated or surrounded by prose; when no attribute tree can be
recovered the role's minimal fallback record is used and the run continues.
Analysis never fails the pipeline.
"""

import re
import logging
from typing import Optional, Tuple

from ..core.errors import GenerationTransportError
from ..core.image_codec import ImageAsset
from ..core.json_parser import (
    ParseOutcome,
    Structured,
    Unstructured,
    extract_attribute_tree,
    extract_first_json_object,
)
from ..models import AnalysisRecord, AnalysisRole, PersonAnalysis, ProductAnalysis
from ..pipeline.context import PipelineContext

logger = logging.getLogger(__name__)

PERSON_ANALYSIS_PROMPT = """Analyze this person image in detail. You are extracting structured information for a garment replacement system.

Pose fidelity is the most important thing to capture: the edited image must keep the exact same pose, so describe every joint explicitly.

Provide:
1. A detailed natural language description of the person, pose, scene, lighting, and current garment.
2. A structured JSON object with the following structure:

{
  "body_pose": {
    "position": "description of overall body position",
    "body_orientation": "which way the body faces relative to the camera",
    "torso_angle": "torso angle description",
    "torso_lean": "forward/backward/sideways lean of the torso",
    "support": "what supports the body",
    "head_position": "head position",
    "head_tilt": "head tilt angle",
    "head_rotation": "head rotation relative to the torso",
    "left_shoulder": "left shoulder position (raised, dropped, rotated)",
    "left_elbow": "left elbow angle",
    "left_wrist": "left wrist angle",
    "right_shoulder": "right shoulder position (raised, dropped, rotated)",
    "right_elbow": "right elbow angle",
    "right_wrist": "right wrist angle",
    "left_hand": "left hand position and interaction",
    "right_hand": "right hand position and interaction",
    "left_hip": "left hip angle",
    "left_knee": "left knee angle",
    "left_ankle": "left ankle angle and foot placement",
    "right_hip": "right hip angle",
    "right_knee": "right knee angle",
    "right_ankle": "right ankle angle and foot placement"
  },
  "facial_details": {
    "expression": "facial expression",
    "gaze_direction": "where they're looking",
    "demographics": "demographic description",
    "features": "hair, makeup, visible features"
  },
  "props_and_accessories": [
    {
      "item": "item name",
      "position": "where it is",
      "interaction": "how person interacts with it"
    }
  ],
  "garment_to_replace": {
    "type": "garment type (e.g., blazer, shirt, jacket)",
    "color": "color",
    "style": "style description",
    "buttons": "button details if applicable",
    "fit": "fit description",
    "state": "how it's worn (open, closed, etc)"
  },
  "lighting": {
    "type": "lighting type",
    "temperature": "warm/cool",
    "direction": "light direction",
    "quality": "light quality",
    "shadows": "shadow description"
  },
  "camera": {
    "angle": "camera angle",
    "distance": "shot distance",
    "framing": "what's in frame",
    "perspective": "perspective description"
  },
  "background": {
    "type": "background type",
    "color": "background color",
    "gradient": "gradient if any"
  },
  "surface": {
    "type": "surface type if visible",
    "color": "surface color",
    "texture": "surface texture"
  },
  "composition": {
    "style": "photography style"
  }
}

Format your response as:
PERSON_DESCRIPTION: [natural language description]

PERSON_JSON: [JSON object]"""

PRODUCT_ANALYSIS_PROMPT = """Analyze this product/garment image in detail. You are extracting structured information for a garment replacement system.

Provide:
1. A detailed natural language description of the garment, including all visible details, colors, materials, graphics, and construction.
2. A structured JSON object with the following structure:

{
  "garment_type": "type of garment",
  "colors": {
    "primary": "primary color",
    "sleeves": "sleeve color if different",
    "trim": "trim color if applicable"
  },
  "materials": {
    "body": "main material",
    "sleeves": "sleeve material if different",
    "trim": "trim material"
  },
  "construction": {
    "closure": "how it closes (buttons, zipper, etc)",
    "collar": "collar type",
    "cuffs": "cuff type",
    "hem": "hem type",
    "pockets": "pocket details"
  },
  "graphics": "description of any graphics, patches, artwork, illustrations. Note: The model will copy graphics from the actual image, so describe what's visible but emphasize that exact graphics should be copied from the image."
}

Format your response as:
PRODUCT_DESCRIPTION: [natural language description]

PRODUCT_JSON: [JSON object]"""

ANALYSIS_PROMPTS = {
    "person": PERSON_ANALYSIS_PROMPT,
    "product": PRODUCT_ANALYSIS_PROMPT,
}


def _label_pattern(role: AnalysisRole, section: str) -> "re.Pattern[str]":
    # Matches PERSON_JSON:, **PERSON_JSON:**, **PERSON_JSON**: in any case
    return re.compile(rf"\**\s*{role.upper()}_{section}\s*\**\s*:\s*\**", re.IGNORECASE)


def split_labeled_sections(raw_text: str, role: AnalysisRole) -> Tuple[str, Optional[str]]:
    """
    Split a response into its narrative description and its JSON section.

    Returns:
        (description, json_section). ``json_section`` is None when the JSON
        label is absent. The description defaults to the text before the JSON
        label, or to the whole response when neither label is present.
    """
    text = raw_text or ""
    desc_match = _label_pattern(role, "DESCRIPTION").search(text)
    json_match = _label_pattern(role, "JSON").search(text)

    if desc_match:
        end = json_match.start() if json_match and json_match.start() >= desc_match.end() else len(text)
        description = text[desc_match.end():end]
    elif json_match:
        description = text[:json_match.start()]
    else:
        description = text

    json_section = text[json_match.end():] if json_match else None
    return description.strip(), json_section


def parse_analysis_response(raw_text: str, role: AnalysisRole) -> Tuple[str, ParseOutcome]:
    """
    Recover the description and attribute tree from an analysis response.

    The labeled JSON section is tried first; if it is missing or unparseable
    the whole response is scanned for the first balanced ``{...}`` object.
    """
    description, json_section = split_labeled_sections(raw_text, role)

    if json_section is not None and json_section.strip():
        outcome = extract_attribute_tree(json_section)
    else:
        outcome = Unstructured(f"{role.upper()}_JSON section missing")

    if isinstance(outcome, Unstructured):
        scanned = extract_first_json_object(raw_text)
        if isinstance(scanned, Structured):
            logger.debug(f"Recovered {role} JSON by scanning the full response ({outcome.reason})")
            outcome = scanned

    return description, outcome


def build_analysis_record(
    raw_text: str,
    role: AnalysisRole,
    index: Optional[int] = None,
    failure_reason: Optional[str] = None,
) -> AnalysisRecord:
    """Turn a raw analysis response into a record, substituting the fallback tree when needed."""
    description, outcome = parse_analysis_response(raw_text, role)

    if isinstance(outcome, Structured):
        attributes = outcome.attributes
        reason = None
    else:
        attributes = {}
        reason = failure_reason or outcome.reason
        preview = (raw_text or "")[:200].replace("\n", " ")
        logger.warning(
            f"⚠️ Could not extract {role.upper()}_JSON, using fallback structure ({reason}). "
            f"Raw response preview: {preview!r}"
        )

    if role == "person":
        return PersonAnalysis(narrative_description=description, attributes=attributes, degradation_reason=reason)
    return ProductAnalysis(index=index or 1, narrative_description=description, attributes=attributes, degradation_reason=reason)


async def analyze_image(
    gateway,
    image: ImageAsset,
    role: AnalysisRole,
    model_id: str,
    media_resolution: Optional[str] = None,
    index: Optional[int] = None,
) -> AnalysisRecord:
    """
    Analyze one image with the role-specific prompt.

    Exactly one model call, no retry. A transport failure is absorbed and
    yields the fallback record, so this never raises for model problems.
    """
    failure_reason = None
    try:
        response = await gateway.generate(
            ANALYSIS_PROMPTS[role],
            [image],
            model_id,
            media_resolution=media_resolution,
            expect_image=False,
        )
        raw_text = response.text
    except GenerationTransportError as e:
        logger.warning(f"⚠️ {role.capitalize()} analysis call to {model_id} failed: {e}")
        raw_text = ""
        failure_reason = f"analysis call failed: {e}"

    return build_analysis_record(raw_text, role, index=index, failure_reason=failure_reason)


async def run(ctx: PipelineContext) -> None:
    """Analyze the person image, then each product image in input order."""
    settings = ctx.settings
    total = len(ctx.product_images)

    ctx.log("📸 Analyzing person image...")
    ctx.person_analysis = await analyze_image(
        ctx.gateway,
        ctx.person_image,
        "person",
        settings.analysis_model_id,
        media_resolution=settings.media_resolution,
    )
    ctx.log(f"✅ Person image analyzed: {ctx.person_analysis.narrative_description[:100]}...")
    ctx.log(f"Person JSON keys: {list(ctx.person_analysis.attributes.keys())}")
    if ctx.person_analysis.degraded:
        ctx.log(f"⚠️ Person analysis degraded: {ctx.person_analysis.degradation_reason}", logging.WARNING)

    ctx.log(f"📦 Analyzing {total} product image(s)...")
    ctx.product_analyses = []
    for index, product_image in enumerate(ctx.product_images, 1):
        ctx.log(f"  Analyzing product image {index}/{total}...")
        analysis = await analyze_image(
            ctx.gateway,
            product_image,
            "product",
            settings.analysis_model_id,
            media_resolution=settings.media_resolution,
            index=index,
        )
        ctx.product_analyses.append(analysis)
        ctx.log(f"  ✅ Product {index} analyzed: {analysis.narrative_description[:60]}...")
        if analysis.degraded:
            ctx.log(f"  ⚠️ Product {index} analysis degraded: {analysis.degradation_reason}", logging.WARNING)

    ctx.log("✅ All product images analyzed")
