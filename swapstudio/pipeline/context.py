"""
Pipeline context for maintaining state across stages, and the outcome types
a pipeline run resolves to.
"""

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..core.image_codec import ImageAsset
from ..models import (
    PersonAnalysis,
    ProductAnalysis,
    SceneGenerationParams,
    ObjectGenerationParams,
    SwapAudit,
)

logger = logging.getLogger("pipeline")


@dataclass
class PipelineContext:
    """
    Context object that carries one request through every stage.
    Request-scoped: nothing here outlives a single executor run.
    """

    # Pipeline settings
    run_id: str = field(default_factory=lambda: datetime.datetime.now().strftime("%Y%m%d_%H%M%S_%f"))
    mode: str = "swap"

    # User inputs
    person_image: Optional[ImageAsset] = None  # scene image for swap and pose
    product_images: List[ImageAsset] = field(default_factory=list)
    instruction: Optional[str] = None
    scene_params: Optional[SceneGenerationParams] = None
    object_params: Optional[ObjectGenerationParams] = None
    reference_images: Dict[str, ImageAsset] = field(default_factory=dict)  # "model" / "location"

    # Processing results
    person_analysis: Optional[PersonAnalysis] = None
    product_analyses: List[ProductAnalysis] = field(default_factory=list)
    reference_descriptions: Dict[str, str] = field(default_factory=dict)
    final_prompt: Optional[str] = None
    generation_images: List[ImageAsset] = field(default_factory=list)
    generation_options: Dict[str, Any] = field(default_factory=dict)
    generation_attempts: List[str] = field(default_factory=list)
    generated_image: Optional[ImageAsset] = None
    generation_model_id: Optional[str] = None

    # Logs
    logs: List[str] = field(default_factory=list)

    # Injected by the executor
    settings: Optional[Any] = None
    gateway: Optional[Any] = None

    def log(self, message: str, level: int = logging.INFO) -> None:
        """Add a log message with timestamp and forward it to the pipeline logger."""
        timestamp = datetime.datetime.now().strftime("%H:%M:%S.%f")[:-3]
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, f"[{self.run_id}] {message}")

    @property
    def garment_count(self) -> int:
        return len(self.product_images)

    @property
    def has_instruction(self) -> bool:
        return bool(self.instruction and self.instruction.strip())

    def build_audit(self) -> SwapAudit:
        """Snapshot of the analysis trail for the response and for error logs."""
        return SwapAudit(
            person_analysis=self.person_analysis,
            product_analyses=list(self.product_analyses),
            instruction=self.instruction,
            garment_count=self.garment_count,
            prompt_variant="direct" if self.mode == "swap_direct" else "structured",
            model_id=self.generation_model_id,
            generation_attempts=list(self.generation_attempts),
        )


@dataclass(frozen=True)
class EditResult:
    """Successful run: one output image plus the audit trail."""

    image: ImageAsset
    audit: SwapAudit

    succeeded = True


@dataclass(frozen=True)
class EditFailure:
    """Failed run: a typed error kind, message and the HTTP status it maps to."""

    kind: str
    message: str
    status_code: int
    details: Optional[str] = None
    audit: Optional[SwapAudit] = None

    succeeded = False


RunOutcome = Union[EditResult, EditFailure]
