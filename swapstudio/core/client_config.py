"""
Client Configuration Module

Handles API key loading, model configuration overrides and Gemini client setup.
The result is an explicit GenerationSettings struct plus one GenerationGateway,
both constructed once at startup and injected into the pipeline executors.
"""

import os
import logging
from dataclasses import dataclass, replace
from typing import Dict, Any, Optional

from dotenv import load_dotenv
from google import genai
from google.genai import types

from .constants import (
    ANALYSIS_MODEL_ID,
    IMAGE_MODEL_ID,
    FALLBACK_IMAGE_MODEL_ID,
    DEFAULT_MEDIA_RESOLUTION,
    MEDIA_RESOLUTION_CHOICES,
    SWAP_PROMPT_VARIANT,
    SWAP_PROMPT_VARIANTS,
    REQUEST_TIMEOUT_SECONDS,
)
from .generation_gateway import GenerationGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationSettings:
    """Model identifiers and request options shared by every pipeline run."""

    api_key: Optional[str] = None
    analysis_model_id: str = ANALYSIS_MODEL_ID
    primary_model_id: str = IMAGE_MODEL_ID
    fallback_model_id: str = FALLBACK_IMAGE_MODEL_ID
    media_resolution: str = DEFAULT_MEDIA_RESOLUTION
    prompt_variant: str = SWAP_PROMPT_VARIANT
    request_timeout_seconds: int = REQUEST_TIMEOUT_SECONDS

    @property
    def swap_mode(self) -> str:
        """Pipeline mode used by the swap endpoint for the configured prompt variant."""
        return SWAP_PROMPT_VARIANTS.get(self.prompt_variant, SWAP_PROMPT_VARIANTS[SWAP_PROMPT_VARIANT])

    def summary(self) -> Dict[str, Any]:
        """Settings without the API key, safe for logs and health checks."""
        return {
            "analysis_model_id": self.analysis_model_id,
            "primary_model_id": self.primary_model_id,
            "fallback_model_id": self.fallback_model_id,
            "media_resolution": self.media_resolution,
            "prompt_variant": self.prompt_variant,
            "request_timeout_seconds": self.request_timeout_seconds,
        }


class ClientConfig:
    """Manages API key loading and Gemini client configuration."""

    # Environment variable -> GenerationSettings field
    ENV_OVERRIDES = {
        "ANALYSIS_MODEL_ID": "analysis_model_id",
        "IMAGE_MODEL_ID": "primary_model_id",
        "FALLBACK_IMAGE_MODEL_ID": "fallback_model_id",
        "MEDIA_RESOLUTION": "media_resolution",
        "SWAP_PROMPT_VARIANT": "prompt_variant",
        "REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
    }

    def __init__(self, env_path: Optional[str] = None):
        """Initialize client configuration."""
        self.env_path = env_path or ".env"
        self.settings = GenerationSettings()
        self.gateway: Optional[GenerationGateway] = None

        self._load_environment()
        self._configure_gateway()

    def _load_environment(self) -> None:
        """Load the API key from the environment file and apply model configuration overrides."""
        logger.info(f"🔧 Loading environment from: {self.env_path}")

        if os.path.exists(self.env_path):
            load_dotenv(dotenv_path=self.env_path)
            logger.info(f"✅ Loaded .env file from: {self.env_path}")
        else:
            logger.warning(f"⚠️ .env file not found at {self.env_path}, using process environment only")

        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
        logger.info(f"  GEMINI_API_KEY: {'✅ Available' if api_key else '❌ Missing'}")

        overrides = self._collect_overrides()
        self.settings = replace(self.settings, api_key=api_key, **overrides)

    def _collect_overrides(self) -> Dict[str, Any]:
        """Read environment overrides for the model configuration."""
        overrides: Dict[str, Any] = {}

        for env_var, field_name in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if not env_value:
                continue

            if field_name == "request_timeout_seconds":
                try:
                    overrides[field_name] = int(env_value)
                except ValueError:
                    logger.warning(f"⚠️ Ignoring non-integer {env_var}={env_value!r}")
                    continue
            elif field_name == "media_resolution" and env_value.lower() not in MEDIA_RESOLUTION_CHOICES:
                logger.warning(f"⚠️ Ignoring unknown {env_var}={env_value!r} (expected one of {MEDIA_RESOLUTION_CHOICES})")
                continue
            elif field_name == "prompt_variant" and env_value not in SWAP_PROMPT_VARIANTS:
                logger.warning(f"⚠️ Ignoring unknown {env_var}={env_value!r} (expected one of {list(SWAP_PROMPT_VARIANTS)})")
                continue
            else:
                overrides[field_name] = env_value.lower() if field_name == "media_resolution" else env_value

            logger.info(f"🔧 Model config override: {field_name} = {overrides[field_name]}")

        if not overrides:
            logger.info("📋 Using default model configuration from constants.py (no environment overrides found)")

        return overrides

    def _configure_gateway(self) -> None:
        """Build the Gemini client and wrap it in a GenerationGateway."""
        if not self.settings.api_key:
            logger.warning("⚠️ Gemini API key not found. Generation gateway not configured.")
            return

        try:
            client = genai.Client(
                api_key=self.settings.api_key,
                http_options=types.HttpOptions(timeout=self.settings.request_timeout_seconds * 1000),
            )
            self.gateway = GenerationGateway(client)
            logger.info(
                f"✅ Gemini gateway configured. Image model: {self.settings.primary_model_id} "
                f"(fallback: {self.settings.fallback_model_id}), analysis model: {self.settings.analysis_model_id}"
            )
        except Exception as e:
            logger.error(f"❌ Error initializing Gemini client: {e}")
            self.gateway = None

    def get_client_summary(self) -> Dict[str, Any]:
        """Summary of configuration status for health reporting."""
        return {
            "gateway_ready": self.gateway is not None,
            **self.settings.summary(),
        }
