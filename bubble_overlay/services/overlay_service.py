"""
Overlay service used by the HTTP API.

Holds the lazily created backends (detector, OCR engines, translators, fonts)
and admits invocations one at a time, first come first served.
"""

import asyncio
import logging
import os
import time
import uuid
from typing import Dict, Optional, Tuple

import httpx
import numpy as np

from bubble_overlay.config import Settings, get_settings
from bubble_overlay.models.overlay import DetectionData, OverlayOptions, OverlayResultData
from bubble_overlay.services.detector import BaseDetector, OnnxDetector
from bubble_overlay.services.layout import FontManager
from bubble_overlay.services.ocr import BaseOCR, build_ocr
from bubble_overlay.services.pipeline import OverlayPipeline
from bubble_overlay.services.translation import BaseTranslator, build_translator
from bubble_overlay.utils.image_utils import decode_image, encode_png_base64

logger = logging.getLogger(__name__)

DOWNLOAD_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
}


class OverlayService:
    """
    Runs the overlay pipeline for uploaded or downloaded images.

    Inference and page OCR run concurrently in worker threads; the rest of
    the pipeline runs in one thread after both finish.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        detector: Optional[BaseDetector] = None,
        ocr: Optional[BaseOCR] = None,
        translator: Optional[BaseTranslator] = None,
        font_manager: Optional[FontManager] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._detector = detector
        self._ocr_override = ocr
        self._translator_override = translator
        self._font_manager = font_manager

        self._ocr_cache: Dict[Tuple[str, str, Optional[str]], BaseOCR] = {}
        self._translator_cache: Dict[Tuple[str, Optional[str]], BaseTranslator] = {}
        self._semaphore: Optional[asyncio.Semaphore] = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(max(1, self._settings.MAX_CONCURRENT_INVOCATIONS))
        return self._semaphore

    def _get_detector(self) -> BaseDetector:
        if self._detector is None:
            self._detector = OnnxDetector(
                self._settings.DETECTOR_MODEL_PATH,
                input_size=self._settings.DETECTOR_INPUT_SIZE,
            )
        return self._detector

    def _get_font_manager(self) -> FontManager:
        if self._font_manager is None:
            s = self._settings
            self._font_manager = FontManager([s.FONT_PATH] if s.FONT_PATH else [], s.MIN_FONT_PX)
        return self._font_manager

    def _get_ocr(self, service: str, source_language: str, api_key: Optional[str]) -> BaseOCR:
        """Get or create OCR backend."""
        if self._ocr_override is not None:
            return self._ocr_override
        key = (service, source_language, api_key)
        if key not in self._ocr_cache:
            logger.info(f"Creating OCR backend: {service} ({source_language})")
            self._ocr_cache[key] = build_ocr(
                service,
                source_language=source_language,
                google_api_key=api_key,
                tesseract_cmd=self._settings.TESSERACT_CMD,
                timeout=self._settings.HTTP_TIMEOUT,
            )
        return self._ocr_cache[key]

    def _get_translator(self, service: str, options: OverlayOptions) -> BaseTranslator:
        """Get or create translator."""
        if self._translator_override is not None:
            return self._translator_override
        s = self._settings
        google_key = options.google_api_key or s.GOOGLE_API_KEY
        deepl_key = options.deepl_api_key or s.DEEPL_API_KEY
        gemini_key = options.gemini_api_key or s.GEMINI_API_KEY
        api_key = {"deepl": deepl_key, "gemini": gemini_key}.get(service, google_key)
        key = (service, api_key)
        if key not in self._translator_cache:
            self._translator_cache[key] = build_translator(
                service,
                google_api_key=google_key,
                deepl_api_key=deepl_key,
                gemini_api_key=gemini_key,
                gemini_model=s.GEMINI_MODEL,
                timeout=s.HTTP_TIMEOUT,
            )
        return self._translator_cache[key]

    def build_pipeline(self, options: OverlayOptions) -> OverlayPipeline:
        s = self._settings
        source = (options.source_language or s.SOURCE_LANGUAGE).upper()
        target = (options.target_language or s.TARGET_LANGUAGE).upper()
        ocr_service = options.ocr_service or s.DEFAULT_OCR_SERVICE
        translation_service = options.translation_service or s.DEFAULT_TRANSLATION_SERVICE

        return OverlayPipeline(
            detector=self._get_detector(),
            ocr=self._get_ocr(ocr_service, source, options.google_api_key or s.GOOGLE_API_KEY),
            translator=self._get_translator(translation_service, options),
            font_manager=self._get_font_manager(),
            settings=s,
            source_language=source,
            target_language=target,
        )

    def _prepare(self, image_bytes: bytes, options: OverlayOptions) -> Tuple[np.ndarray, OverlayPipeline]:
        return decode_image(image_bytes), self.build_pipeline(options)

    async def process_image(
        self,
        image_bytes: bytes,
        options: OverlayOptions,
        filename: Optional[str] = None,
    ) -> OverlayResultData:
        """
        Run one invocation. InferenceFailure and ImageDecodeError propagate;
        OCR and translation problems only degrade single regions.
        """
        async with self._get_semaphore():
            t0 = time.time()
            image, pipeline = await asyncio.to_thread(self._prepare, image_bytes, options)

            # Both threads must finish before the slot is released
            raws, page_blocks = await asyncio.gather(
                asyncio.to_thread(pipeline.detect, image),
                asyncio.to_thread(pipeline.recognize_page, image),
                return_exceptions=True,
            )
            if isinstance(raws, BaseException):
                raise raws
            if isinstance(page_blocks, BaseException):
                raise page_blocks
            result = await asyncio.to_thread(pipeline.run_stages, image, raws, page_blocks)

            data = OverlayResultData(
                status="processed",
                reason=f"{len(result.detections)} regions",
                regions=len(result.detections),
                time_ms=int((time.time() - t0) * 1000),
                ocr_service=pipeline.ocr.name(),
                translation_service=pipeline.orchestrator.translator.name(),
                detections=[DetectionData(**d) for d in result.metadata()],
            )
            if options.return_base64:
                data.output_image_base64 = encode_png_base64(result.image)
            stem = os.path.splitext(os.path.basename(filename))[0] if filename else f"image_{uuid.uuid4().hex[:8]}"
            data.output_filename = f"{stem}.translated.png"
            logger.info(f"Processed {filename or 'upload'}: {data.regions} regions in {data.time_ms}ms")
            return data

    async def process_url(self, image_url: str, options: OverlayOptions) -> OverlayResultData:
        """
        Download image from URL and run the overlay.
        """
        async with httpx.AsyncClient(timeout=self._settings.HTTP_TIMEOUT, follow_redirects=True) as client:
            response = await client.get(image_url, headers=DOWNLOAD_HEADERS)
            response.raise_for_status()
            image_bytes = response.content

        filename = image_url.split("/")[-1].split("?")[0]
        if not filename or "." not in filename:
            filename = None
        return await self.process_image(image_bytes, options, filename)


_service: Optional[OverlayService] = None


def get_overlay_service() -> OverlayService:
    """Get singleton OverlayService instance."""
    global _service
    if _service is None:
        _service = OverlayService()
    return _service
