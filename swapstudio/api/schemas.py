from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field


class SwapRequest(BaseModel):
    """Request model for a garment swap. Presence of the images is checked by the router so it can answer 400."""
    model_config = ConfigDict(extra="ignore")

    sceneImage: Optional[str] = Field(None, description="Base64 person/scene image, optionally with a data URL prefix")
    objectImages: Optional[List[str]] = Field(None, description="Base64 product images, in the order they should be labeled")
    instruction: Optional[str] = Field(None, description="Free-text instruction appended verbatim to the prompt")


class PoseRequest(BaseModel):
    """Request model for pose regeneration"""
    model_config = ConfigDict(extra="ignore")

    sceneImage: Optional[str] = Field(None, description="Base64 image of the model to re-pose")
    objectImages: Optional[List[str]] = Field(None, description="Optional base64 garment reference images")
    instruction: Optional[str] = None


class GenerateRequest(BaseModel):
    """Request model for scene or object generation"""
    type: Literal["scene", "object"]
    params: Dict[str, Any] = Field(default_factory=dict)


class ProductMetadata(BaseModel):
    index: int
    description: str
    json_: Dict[str, Any] = Field(alias="json")

    model_config = ConfigDict(populate_by_name=True)


class SwapMetadata(BaseModel):
    """Analysis trail returned with a swap result"""
    personDescription: Optional[str] = None
    personJSON: Optional[Dict[str, Any]] = None
    products: List[ProductMetadata] = Field(default_factory=list)
    instruction: Optional[str] = None
    garmentCount: int


class SwapResponse(BaseModel):
    imageUrl: str = Field(description="data:<mime>;base64,<data>")
    metadata: Optional[SwapMetadata] = None


class ImageResponse(BaseModel):
    imageUrl: str = Field(description="data:<mime>;base64,<data>")


class ErrorResponse(BaseModel):
    """Error body for every failed request"""
    error: str
    details: Optional[str] = None
    kind: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    gateway_ready: bool
