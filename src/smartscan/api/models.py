"""
API Models - Request and Response schemas
Using Pydantic for automatic validation and documentation
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ─── Scan Models ──────────────────────────────────────────────────────────────

class DetectResponse(BaseModel):
    """Document boundary detection on an uploaded photo."""
    status: str            = Field("success", description="Response status")
    filename: str          = Field(...,        description="Processed filename")
    found: bool            = Field(...,        description="True if a document was detected")
    corners: List[List[float]] = Field(...,    description="TL, TR, BR, BL corners in source pixels")
    confidence: float      = Field(...,        description="Detection confidence", ge=0, le=1)
    method: Optional[str]  = Field(None,       description="Strategy that found the document")
    reason: Optional[str]  = Field(None,       description="Why nothing was found")
    width: int             = Field(...,        description="Source image width")
    height: int            = Field(...,        description="Source image height")
    processing_time_ms: int = Field(...,       description="Processing time in milliseconds")


class ScanResponse(BaseModel):
    """Flattened, enhanced document image."""
    status: str            = Field("success", description="Response status")
    filename: str          = Field(...,        description="Processed filename")
    image_base64: str      = Field(...,        description="Result image, base64 encoded PNG")
    width: int             = Field(...,        description="Result width")
    height: int            = Field(...,        description="Result height")
    corners: List[List[float]] = Field(...,    description="Corners used for cropping")
    confidence: float      = Field(...,        description="Detection confidence (1.0 for manual corners)", ge=0, le=1)
    cropped: bool          = Field(...,        description="Perspective correction applied")
    enhanced: bool         = Field(...,        description="Enhancement applied")
    enhancement_status: Optional[str] = Field(None, description="'success' or 'degraded'")
    enhancement_reason: Optional[str] = Field(None, description="Why enhancement was degraded")
    warnings: List[str]    = Field(default_factory=list)
    processing_time_ms: int = Field(...,       description="Processing time in milliseconds")


# ─── Document Models ──────────────────────────────────────────────────────────

class ClassifyRequest(BaseModel):
    """Classify already recognized text."""
    text: str = Field(..., description="Document text (e.g. from OCR)")

    class Config:
        json_schema_extra = {
            "example": {"text": "Telekom Deutschland GmbH\nRechnung vom 15.03.2024\nBetrag: 49,99 €"}
        }


class KeywordHitModel(BaseModel):
    category: str
    count: int
    matches: List[str] = Field(default_factory=list)


class ExtractedDataModel(BaseModel):
    dates: List[str]    = Field(default_factory=list, description="Raw date strings")
    amounts: List[str]  = Field(default_factory=list, description="Raw currency amounts")
    keywords: List[KeywordHitModel] = Field(default_factory=list)
    sender: Optional[str] = None


class ClassificationModel(BaseModel):
    category: str         = Field(..., description="Category id")
    category_label: str   = Field(..., description="Human-readable category")
    confidence: float     = Field(..., description="Classification confidence", ge=0, le=1)
    method: str           = Field(..., description="'keyword' or 'ml'")
    name: Optional[str]   = Field(None, description="Suggested document name")
    date: Optional[str]   = Field(None, description="Best document date (YYYY-MM-DD)")
    amount: Optional[str] = Field(None, description="First amount found")
    sender: Optional[str] = Field(None, description="Detected sender")
    reason: Optional[str] = Field(None, description="Why ML refinement did not run")


class AlternativeModel(BaseModel):
    category: str
    score: float


class ExportTargetModel(BaseModel):
    folder: str
    filename: str
    path: str


class AnalysisResponse(BaseModel):
    """Full document analysis."""
    status: str                  = Field("success", description="Response status")
    filename: Optional[str]      = Field(None, description="Processed filename")
    text: str                    = Field("",   description="Recognized text")
    ocr_confidence: Optional[float] = Field(None, description="Average OCR confidence")
    classification: ClassificationModel
    alternatives: List[AlternativeModel] = Field(default_factory=list)
    data: ExtractedDataModel
    export: ExportTargetModel
    scan: Optional[Dict]         = Field(None, description="Detection / crop / enhancement info")
    warnings: List[str]          = Field(default_factory=list)
    timings: Dict[str, int]      = Field(default_factory=dict)
    processing_time_ms: int      = Field(..., description="Processing time in milliseconds")


class CategoryModel(BaseModel):
    id: str
    label: str
    folder: str
    document_name: str
    amount_bonus: bool


class CategoriesResponse(BaseModel):
    fallback: str
    categories: List[CategoryModel]


# ─── Health & Error Models ────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    """Health check response."""
    status: str  = Field("healthy",       description="Health status")
    service: str = Field("smartscan-api", description="Service name")
    version: str = Field(...,             description="API version")

