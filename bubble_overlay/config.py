"""
Configuration management using pydantic-settings.
Loads from environment variables and .env file.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional
import logging

logger = logging.getLogger(__name__)

LANGUAGE_CODES = {
    "AUTO", "AR", "BG", "CS", "DA", "DE", "EL", "EN", "ES", "ET", "FI", "FR",
    "HU", "ID", "IT", "JA", "KO", "LT", "LV", "NB", "NL", "PL", "PT", "RO",
    "RU", "SK", "SL", "SV", "TR", "UK", "ZH",
}


class OverlayConfig(BaseSettings):
    """
    Overlay pipeline settings.

    These settings can be overridden with environment variables.
    """
    PROJECT_NAME: str = "Bubble Overlay API"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # CORS settings (comma-separated string)
    BACKEND_CORS_ORIGINS: str = "*"

    # Detector
    DETECTOR_MODEL_PATH: str = "models/comic_text_bubble_detector.onnx"
    DETECTOR_INPUT_SIZE: int = 640
    BUBBLE_CONFIDENCE: float = 0.5
    NMS_IOU_THRESHOLD: float = 0.5
    BLACK_WHITE_THRESHOLD: int = 30

    # OCR
    DEFAULT_OCR_SERVICE: str = "tesseract"
    OCR_SCALE_X: float = 4.0
    OCR_SCALE_Y: float = 3.0
    LINE_CONFIDENCE_MIN: float = 60.0
    TESSERACT_CMD: Optional[str] = None

    # Translation
    DEFAULT_TRANSLATION_SERVICE: str = "deepl"
    SOURCE_LANGUAGE: str = "AUTO"
    TARGET_LANGUAGE: str = "EN"
    GOOGLE_API_KEY: Optional[str] = None
    DEEPL_API_KEY: Optional[str] = None
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash-001"
    HTTP_TIMEOUT: float = 30.0

    # Rendering
    FONT_PATH: Optional[str] = None
    MIN_FONT_PX: int = 6
    LINE_HEIGHT_FACTOR: float = 1.2
    OUTLINE_WIDTH: int = 2

    # Service
    MAX_CONCURRENT_INVOCATIONS: int = 1
    OUTPUT_DIR: str = "output"

    @field_validator("SOURCE_LANGUAGE", "TARGET_LANGUAGE", mode="before")
    @classmethod
    def validate_language(cls, v: Optional[str]) -> str:
        """
        Normalize language codes to upper case.
        """
        code = (v or "").strip().upper()
        if code not in LANGUAGE_CODES:
            logger.warning(f"Unknown language code {v!r}; passing it through unchanged.")
        return code

    class Config:
        case_sensitive = True
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Allow extra fields in .env


class Settings(OverlayConfig):
    """
    Combined application settings.
    """
    pass


# Create settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
