"""
Overlay API endpoints.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from bubble_overlay.models.overlay import (
    HealthResponse,
    OverlayOptions,
    OverlayResponse,
    OverlayResultData,
    OverlayUrlRequest,
)
from bubble_overlay.services.overlay_service import OverlayService, get_overlay_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _error_response(e: Exception) -> OverlayResponse:
    return OverlayResponse(
        success=False,
        error=str(e),
        data=OverlayResultData(status="error", reason=str(e)),
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.
    """
    return HealthResponse(status="ok", version="0.1.0")


@router.post(
    "/api/v1/overlay",
    response_model=OverlayResponse,
    tags=["Overlay"],
    summary="Overlay translated text (multipart upload)",
    description="Upload a comic page and get it back with speech bubbles re-lettered in the target language."
)
async def overlay_image(
    file: Annotated[UploadFile, File(description="Image file to process")],
    ocr_service: Annotated[Optional[str], Form()] = None,
    translation_service: Annotated[Optional[str], Form()] = None,
    source_language: Annotated[Optional[str], Form()] = None,
    target_language: Annotated[Optional[str], Form()] = None,
    google_api_key: Annotated[Optional[str], Form()] = None,
    deepl_api_key: Annotated[Optional[str], Form()] = None,
    gemini_api_key: Annotated[Optional[str], Form()] = None,
    return_base64: Annotated[bool, Form()] = True,
    service: OverlayService = Depends(get_overlay_service),
) -> OverlayResponse:
    """
    Detect bubbles, read and translate their text, and composite the
    translation back onto the image.

    Returns the composited PNG as base64 (if return_base64=true) and the
    ordered detection metadata.
    """
    if file.content_type and not file.content_type.startswith("image/"):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {file.content_type}. Expected image/*"
        )

    try:
        options = OverlayOptions(
            ocr_service=ocr_service,  # type: ignore
            translation_service=translation_service,  # type: ignore
            source_language=source_language,
            target_language=target_language,
            google_api_key=google_api_key,
            deepl_api_key=deepl_api_key,
            gemini_api_key=gemini_api_key,
            return_base64=return_base64,
        )
        image_bytes = await file.read()
        result = await service.process_image(image_bytes, options, filename=file.filename)
        return OverlayResponse(success=True, data=result)
    except Exception as e:
        logger.error(f"Overlay failed for {file.filename}: {e}")
        return _error_response(e)


@router.post(
    "/api/v1/overlay/url",
    response_model=OverlayResponse,
    tags=["Overlay"],
    summary="Overlay translated text on an image URL",
)
async def overlay_image_from_url(
    request: OverlayUrlRequest,
    service: OverlayService = Depends(get_overlay_service),
) -> OverlayResponse:
    """
    Downloads the image from the provided URL and processes it.
    """
    try:
        result = await service.process_url(request.image_url, request.options)
        return OverlayResponse(success=True, data=result)
    except Exception as e:
        logger.error(f"Overlay failed for {request.image_url}: {e}")
        return _error_response(e)
