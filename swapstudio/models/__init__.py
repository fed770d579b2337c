"""
Pydantic models for the swap and generation pipelines.

Analysis records are request-scoped: created by the image analysis stage,
read by prompt synthesis and echoed back in the swap metadata.
"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.constants import (
    PERSON_FALLBACK_ATTRIBUTES,
    PRODUCT_FALLBACK_ATTRIBUTES,
    GARMENT_CATEGORIES,
    GENDER_CHOICES,
    ASPECT_RATIO_CHOICES,
    ASSET_SOURCES,
)

AnalysisRole = Literal["person", "product"]
GarmentCategory = Literal[GARMENT_CATEGORIES]
Gender = Literal[GENDER_CHOICES]
AspectRatio = Literal[ASPECT_RATIO_CHOICES]
AssetSource = Literal[ASSET_SOURCES]


# --- Analysis Records ---
class AnalysisRecord(BaseModel):
    """Result of analyzing one image: a narrative plus a best-effort attribute tree."""
    role: AnalysisRole
    narrative_description: str = Field("", description="Free-text summary of the image as returned by the analysis model.")
    attributes: Dict[str, Any] = Field(..., description="Nested mapping of descriptive categories (pose, garment, lighting, camera, ...) to values. Schema-suggested, never schema-enforced.")
    degraded: bool = Field(False, description="True when no attribute tree could be recovered and the role's minimal fallback was substituted.")
    degradation_reason: Optional[str] = None

    @model_validator(mode="after")
    def _attributes_never_empty(self) -> "AnalysisRecord":
        if not self.attributes:
            fallback = PERSON_FALLBACK_ATTRIBUTES if self.role == "person" else PRODUCT_FALLBACK_ATTRIBUTES
            self.attributes = {key: (dict(value) if isinstance(value, dict) else value) for key, value in fallback.items()}
            self.degraded = True
        return self


class PersonAnalysis(AnalysisRecord):
    """Analysis of the scene/person image. Always describes the garment being replaced."""
    role: Literal["person"] = "person"

    @model_validator(mode="after")
    def _ensure_garment_to_replace(self) -> "PersonAnalysis":
        garment = self.attributes.get("garment_to_replace")
        if not garment:
            self.attributes["garment_to_replace"] = {"type": "unknown"}
        return self

    @property
    def garment_to_replace(self) -> Any:
        return self.attributes["garment_to_replace"]


class ProductAnalysis(AnalysisRecord):
    """Analysis of one product/garment image; ``index`` is its 1-based position in the request."""
    role: Literal["product"] = "product"
    index: int = Field(..., ge=1, description="1-based position; determines the PRODUCT IMAGE n label.")

    @property
    def garment_type(self) -> Any:
        return self.attributes.get("garment_type", "unknown")


# --- Generation Parameters (wire format of /api/generate) ---
class AssetGenerationConfig(BaseModel):
    """How the model or location sub-asset of a scene is sourced."""
    model_config = ConfigDict(extra="ignore")

    source: AssetSource = "generate"
    prompt: Optional[str] = None
    image: Optional[str] = Field(None, description="Base64 reference image (upload).")
    imageUrl: Optional[str] = Field(None, description="URL of a library item or previously generated image.")
    libraryId: Optional[str] = None

    @property
    def has_reference(self) -> bool:
        return self.source in ("upload", "library") and bool(self.image or self.imageUrl)


class SceneGenerationParams(BaseModel):
    """Parameters for a generated fashion scene."""
    model_config = ConfigDict(extra="ignore")

    prompt: str = ""
    gender: Optional[Gender] = None
    aspectRatio: AspectRatio = "3:4"
    modelConfig: AssetGenerationConfig = Field(default_factory=AssetGenerationConfig)
    locationConfig: AssetGenerationConfig = Field(default_factory=AssetGenerationConfig)


class ObjectGenerationParams(BaseModel):
    """Parameters for a generated product shot."""
    model_config = ConfigDict(extra="ignore")

    prompt: str = ""
    type: GarmentCategory = "top"


# --- Swap Audit ---
class SwapAudit(BaseModel):
    """Everything the swap pipeline decided along the way, returned with the image."""
    person_analysis: Optional[PersonAnalysis] = None
    product_analyses: List[ProductAnalysis] = Field(default_factory=list)
    instruction: Optional[str] = None
    garment_count: int = 0
    prompt_variant: str = "structured"
    model_id: Optional[str] = None
    generation_attempts: List[str] = Field(default_factory=list)

    def to_metadata(self) -> Dict[str, Any]:
        """Shape of the ``metadata`` object in the /api/swap response."""
        person = self.person_analysis
        return {
            "personDescription": person.narrative_description if person else None,
            "personJSON": person.attributes if person else None,
            "products": [
                {"index": product.index, "description": product.narrative_description, "json": product.attributes}
                for product in self.product_analyses
            ],
            "instruction": self.instruction or None,
            "garmentCount": self.garment_count,
        }
