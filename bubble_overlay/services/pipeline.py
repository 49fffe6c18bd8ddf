"""
End-to-end overlay pipeline for one image:

detector + OCR -> region resolver -> translation -> layout -> compositor
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from bubble_overlay.config import Settings, get_settings
from bubble_overlay.errors import InferenceFailure
from bubble_overlay.models.detection import Detection, OCRBlock, RawDetection
from bubble_overlay.services.compositor import composite_detection
from bubble_overlay.services.detector import BaseDetector
from bubble_overlay.services.layout import FontManager, fit_text
from bubble_overlay.services.ocr import BaseOCR
from bubble_overlay.services.region_resolver import RegionResolver
from bubble_overlay.services.translation import BaseTranslator, TranslationOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    image: np.ndarray
    detections: List[Detection] = field(default_factory=list)
    elapsed_ms: int = 0

    def metadata(self) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self.detections]


class OverlayPipeline:
    def __init__(
        self,
        detector: BaseDetector,
        ocr: BaseOCR,
        translator: BaseTranslator,
        font_manager: Optional[FontManager] = None,
        settings: Optional[Settings] = None,
        source_language: Optional[str] = None,
        target_language: Optional[str] = None,
    ) -> None:
        self.settings = settings or get_settings()
        s = self.settings
        self.detector = detector
        self.ocr = ocr
        self.font_manager = font_manager or FontManager([s.FONT_PATH] if s.FONT_PATH else [], s.MIN_FONT_PX)
        self.resolver = RegionResolver(
            ocr,
            confidence_threshold=s.BUBBLE_CONFIDENCE,
            iou_threshold=s.NMS_IOU_THRESHOLD,
            black_white_threshold=s.BLACK_WHITE_THRESHOLD,
            scale_x=s.OCR_SCALE_X,
            scale_y=s.OCR_SCALE_Y,
            line_confidence_min=s.LINE_CONFIDENCE_MIN,
        )
        self.orchestrator = TranslationOrchestrator(
            translator,
            source_language or s.SOURCE_LANGUAGE,
            target_language or s.TARGET_LANGUAGE,
        )

    def detect(self, image: np.ndarray) -> List[RawDetection]:
        try:
            return self.detector.detect(image)
        except InferenceFailure:
            raise
        except Exception as e:
            raise InferenceFailure(f"Detector {self.detector.name()} failed: {e}") from e

    def recognize_page(self, image: np.ndarray) -> Optional[List[OCRBlock]]:
        """Full-page OCR for block-strategy backends; None for crop backends."""
        if self.ocr.strategy != "blocks":
            return None
        try:
            blocks = self.ocr.recognize_page(image)
        except Exception as e:
            logger.warning(f"Page OCR with {self.ocr.name()} failed, regions will have no text: {e}")
            return []
        logger.info(f"Page OCR found {len(blocks)} blocks")
        return blocks

    def run(self, image: np.ndarray) -> PipelineResult:
        raws = self.detect(image)
        page_blocks = self.recognize_page(image)
        return self.run_stages(image, raws, page_blocks)

    def run_stages(
        self,
        image: np.ndarray,
        raws: Sequence[RawDetection],
        page_blocks: Optional[Sequence[OCRBlock]] = None,
    ) -> PipelineResult:
        t0 = time.time()
        s = self.settings

        detections = self.resolver.resolve(image, raws, page_blocks)
        self.orchestrator.translate_all(detections)

        surface = image.copy()
        for det in detections:
            if det.translated_text:
                det.layout = fit_text(
                    det.translated_text,
                    det.box,
                    det.font_size or None,
                    self.font_manager.measure,
                    min_size=s.MIN_FONT_PX,
                    line_height_factor=s.LINE_HEIGHT_FACTOR,
                )
            composite_detection(surface, det, self.font_manager, s.OUTLINE_WIDTH)

        elapsed_ms = int((time.time() - t0) * 1000)
        logger.info(f"Composited {len(detections)} regions in {elapsed_ms}ms")
        return PipelineResult(image=surface, detections=detections, elapsed_ms=elapsed_ms)
