"""
Pipeline Executor - Orchestrates running pipeline stages in order.

One executor per pipeline mode (swap, swap_direct, scene, object, pose).
Settings and the generation gateway are injected at construction and handed to
every stage through the context. A run resolves to exactly one RunOutcome:
an EditResult carrying the image, or an EditFailure carrying a typed error.
"""

import time
import yaml
import importlib
import logging
from pathlib import Path
from typing import Dict, List, Optional

from .context import PipelineContext, EditResult, EditFailure, RunOutcome
from ..core.client_config import GenerationSettings
from ..core.generation_gateway import GenerationGateway
from ..core.errors import (
    SwapStudioError,
    InvalidRequestError,
    GatewayNotConfiguredError,
    NoImageProducedError,
)

logger = logging.getLogger("executor")

STAGES_PACKAGE = "swapstudio.stages"

# Used when configs/stage_order.yml cannot be read
FALLBACK_STAGE_ORDER: Dict[str, List[str]] = {
    "swap": ["image_analysis", "prompt_synthesis", "image_generation"],
    "swap_direct": ["prompt_synthesis", "image_generation"],
    "scene": ["reference_analysis", "prompt_synthesis", "image_generation"],
    "object": ["prompt_synthesis", "image_generation"],
    "pose": ["prompt_synthesis", "image_generation"],
}


class PipelineExecutor:
    """Executes pipeline stages in configurable order."""

    def __init__(
        self,
        mode: str,
        settings: GenerationSettings,
        gateway: Optional[GenerationGateway],
        stages_config_path: Optional[str] = None,
    ):
        """Initialize executor with stage configuration and the injected gateway."""
        if mode not in FALLBACK_STAGE_ORDER:
            raise ValueError(f"Unknown pipeline mode: {mode}")

        self.mode = mode
        self.settings = settings
        self.gateway = gateway

        if stages_config_path is None:
            self.config_path = Path(__file__).parent.parent / "configs" / "stage_order.yml"
        else:
            self.config_path = Path(stages_config_path)

        self.stages = self._load_stage_config()
        logger.info(f"🔧 Pipeline executor initialized for {mode} mode with {len(self.stages)} stages: {self.stages}")

    def _load_stage_config(self) -> List[str]:
        """Load stage execution order from YAML config based on mode."""
        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"⚠️ Could not load stage config from {self.config_path}: {e}")
            return list(FALLBACK_STAGE_ORDER[self.mode])

        stages = config.get(self.mode)
        if not stages:
            logger.warning(f"⚠️ No stages listed for mode '{self.mode}' in {self.config_path}, using built-in order")
            return list(FALLBACK_STAGE_ORDER[self.mode])
        return list(stages)

    def validate_request(self, ctx: PipelineContext) -> None:
        """
        Reject a request whose required inputs are missing.

        Runs before the first stage so an invalid request never reaches the
        analysis or generation model.
        """
        if self.mode in ("swap", "swap_direct"):
            if ctx.person_image is None or not ctx.product_images:
                raise InvalidRequestError("Missing input images")
        elif self.mode == "pose":
            if ctx.person_image is None:
                raise InvalidRequestError("Missing input image")
        elif self.mode == "scene":
            if ctx.scene_params is None:
                raise InvalidRequestError("Missing scene parameters")
        elif self.mode == "object":
            if ctx.object_params is None:
                raise InvalidRequestError("Missing object parameters")

    async def run_async(self, ctx: PipelineContext) -> RunOutcome:
        """Execute all stages in order; the first stage error halts the run."""
        ctx.mode = self.mode
        ctx.settings = self.settings
        ctx.gateway = self.gateway

        overall_start_time = time.time()
        logger.info(f"Starting {self.mode} pipeline run {ctx.run_id} with {len(self.stages)} stages : {self.stages}")

        try:
            self.validate_request(ctx)
            if self.gateway is None:
                raise GatewayNotConfiguredError("Generation service is not configured (missing GEMINI_API_KEY)")

            for stage_order, stage_name in enumerate(self.stages, 1):
                await self._run_stage(ctx, stage_order, stage_name)

            if ctx.generated_image is None:
                raise NoImageProducedError("Pipeline finished without producing an image")

        except SwapStudioError as e:
            return self._failure(ctx, e, overall_start_time)
        except Exception as e:
            logger.exception(f"❌ Unexpected error in {self.mode} pipeline run {ctx.run_id}: {e}")
            return self._failure(ctx, SwapStudioError(str(e) or type(e).__name__), overall_start_time)

        overall_duration = time.time() - overall_start_time
        ctx.log(f"✅ {self.mode.capitalize()} pipeline completed in {overall_duration:.2f}s")
        return EditResult(image=ctx.generated_image, audit=ctx.build_audit())

    async def _run_stage(self, ctx: PipelineContext, stage_order: int, stage_name: str) -> None:
        stage_start_time = time.time()
        logger.info(f"--- Stage {stage_order}: {stage_name} ---")

        stage_module = importlib.import_module(f"{STAGES_PACKAGE}.{stage_name}")
        try:
            await stage_module.run(ctx)
        except Exception as e:
            stage_duration = time.time() - stage_start_time
            logger.error(f"ERROR in stage {stage_name}: {e}")
            logger.info(f"Stage {stage_name} failed after {stage_duration:.2f}s")
            raise

        stage_duration = time.time() - stage_start_time
        logger.info(f"Stage {stage_name} completed in {stage_duration:.2f}s")

    def _failure(self, ctx: PipelineContext, error: SwapStudioError, start_time: float) -> EditFailure:
        duration = time.time() - start_time
        audit = ctx.build_audit()
        ctx.log(f"❌ {self.mode.capitalize()} pipeline failed after {duration:.2f}s: {error.kind}: {error.message}", logging.ERROR)

        # Keep whatever analysis was produced so failed generations can be diagnosed
        if audit.person_analysis is not None or audit.product_analyses:
            metadata = audit.to_metadata()
            logger.error(
                f"Analysis records for failed run {ctx.run_id}: "
                f"person={metadata['personDescription']!r:.200} "
                f"personJSON={metadata['personJSON']} "
                f"products={[(p['index'], p['json']) for p in metadata['products']]} "
                f"attempts={audit.generation_attempts}"
            )

        return EditFailure(
            kind=error.kind,
            message=error.message,
            status_code=error.status_code,
            details=error.details,
            audit=audit,
        )
