"""
Pydantic models for overlay API request/response.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class OverlayOptions(BaseModel):
    """Per-invocation settings bundle. Unset fields fall back to configuration."""

    ocr_service: Optional[Literal["tesseract", "google_vision", "rapid"]] = Field(
        default=None,
        description="OCR engine to use"
    )
    translation_service: Optional[Literal["deepl", "google", "gemini"]] = Field(
        default=None,
        description="Translation service to use"
    )
    source_language: Optional[str] = Field(default=None, description="Source language code, or AUTO")
    target_language: Optional[str] = Field(default=None, description="Target language code")
    google_api_key: Optional[str] = Field(default=None, description="Overrides GOOGLE_API_KEY")
    deepl_api_key: Optional[str] = Field(default=None, description="Overrides DEEPL_API_KEY")
    gemini_api_key: Optional[str] = Field(default=None, description="Overrides GEMINI_API_KEY")
    return_base64: bool = Field(default=True, description="Return image as base64 string")


class OverlayUrlRequest(BaseModel):
    """Request model for URL-based overlay."""

    image_url: str = Field(..., description="URL of the image to process")
    options: OverlayOptions = Field(default_factory=OverlayOptions)


class DetectionData(BaseModel):
    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    class_index: int
    class_name: str
    background_color: List[int]
    text: str = ""
    translated_text: str = ""
    font_size: float = 0.0
    rendered_font_size: Optional[int] = None
    lines: List[str] = Field(default_factory=list)


class OverlayResultData(BaseModel):
    """Data returned from an overlay invocation."""

    status: Literal["processed", "error"] = Field(description="Processing status")
    reason: str = Field(default="", description="Status reason/description")
    regions: int = Field(default=0, description="Number of text regions resolved")
    time_ms: int = Field(default=0, description="Processing time in milliseconds")
    ocr_service: str = Field(default="", description="OCR engine used")
    translation_service: str = Field(default="", description="Translation service used")
    detections: List[DetectionData] = Field(default_factory=list)
    output_image_base64: Optional[str] = Field(
        default=None,
        description="Composited PNG as base64 string (if return_base64=true)"
    )
    output_filename: Optional[str] = Field(default=None, description="Output filename")


class OverlayResponse(BaseModel):
    """Standard API response for overlay endpoints."""

    success: bool = Field(description="Whether the request was successful")
    data: Optional[OverlayResultData] = Field(default=None)
    error: Optional[str] = Field(default=None, description="Error message if success=false")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="ok")
    version: str = Field(default="0.1.0")
