"""
Constants for the SwapStudio service.
=====================================

🎯 CENTRALIZED CONFIGURATION - Single Source of Truth
-----------------------------------------------------
This file is the ONLY place to define:
- Model identifiers (analysis, primary image model, fallback image model)
- Image transport limits (max dimension, JPEG quality, upload size)
- Prompt variant selection and per-mode generation hints
- HTTP surface defaults (CORS origins)

⚠️  DO NOT duplicate these constants in other files!
   Other modules should import from here to maintain consistency.

Design Pattern:
- ClientConfig reads these defaults and applies environment overrides
- The resulting GenerationSettings are injected into the PipelineExecutor
- Stages read settings from the context, never from the environment
"""

from typing import Dict, List, Tuple

# --- Model Definitions ---
# Vision analysis (person / product / reference descriptions)
ANALYSIS_MODEL_ID = "gemini-3-pro-preview"

# Image editing / generation
IMAGE_MODEL_ID = "gemini-3-pro-image-preview"
FALLBACK_IMAGE_MODEL_ID = "gemini-2.5-flash-image"

# Media resolution hint sent with multimodal requests ("low", "medium", "high")
DEFAULT_MEDIA_RESOLUTION = "high"
MEDIA_RESOLUTION_CHOICES = ["low", "medium", "high"]

# --- Prompt Variants ---
# "structured": analyze person + products, then synthesize the full directive
# "direct": single-pass swap prompt, no analysis stage
SWAP_PROMPT_VARIANT = "structured"
SWAP_PROMPT_VARIANTS: Dict[str, str] = {
    "structured": "swap",
    "direct": "swap_direct",
}

# Pipeline modes that get one retry on the fallback image model
FALLBACK_ENABLED_MODES = ["swap", "swap_direct"]

# --- Image Transport ---
MAX_IMAGE_DIMENSION = 1024  # long edge, pixels
IMAGE_JPEG_QUALITY = 85
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB, matches the upload widget limit
ALLOWED_IMAGE_FORMATS = ("JPEG", "PNG", "WEBP", "GIF", "BMP")
DEFAULT_OUTPUT_MIME_TYPE = "image/png"

# --- Network ---
URL_FETCH_TIMEOUT_SECONDS = 15
REQUEST_TIMEOUT_SECONDS = 180  # transport-level only, never inside orchestration

# --- Generation Hints ---
SCENE_IMAGE_ASPECT_RATIO = "3:4"
OBJECT_IMAGE_ASPECT_RATIO = "1:1"
GENERATED_IMAGE_SIZE = "1K"

# --- Generation Parameter Choices ---
# Tuples so the request models can build Literal types from them
GARMENT_CATEGORIES: Tuple[str, ...] = ("top", "bottom", "dress", "outerwear", "accessory", "shoes")
GENDER_CHOICES: Tuple[str, ...] = ("female", "male", "non-binary")
ASPECT_RATIO_CHOICES: Tuple[str, ...] = ("1:1", "3:4", "9:16", "16:9")
ASSET_SOURCES: Tuple[str, ...] = ("generate", "upload", "library")

# --- Analysis Fallback Records ---
# Substituted when no attribute tree can be recovered from an analysis response
PERSON_FALLBACK_ATTRIBUTES = {"garment_to_replace": {"type": "unknown"}}
PRODUCT_FALLBACK_ATTRIBUTES = {"garment_type": "unknown"}

# --- HTTP Surface ---
CORS_ALLOWED_ORIGINS: List[str] = [
    "http://localhost:3000",  # Next.js development server
    "http://127.0.0.1:3000",
    "http://localhost:5173",  # Vite development server
    "http://127.0.0.1:5173",
]
