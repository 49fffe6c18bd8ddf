"""
Region resolver: raw detector slots + OCR output -> ordered Detections with text.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Set

import cv2
import numpy as np

from bubble_overlay.models.detection import (
    CLASS_BUBBLE,
    CLASS_TEXT_FREE,
    Detection,
    OCRBlock,
    RawDetection,
    WordBox,
)
from bubble_overlay.services.ocr import BaseOCR
from bubble_overlay.utils.geometry import (
    clamp,
    decode_box,
    non_max_suppression,
    overlap_area,
    point_in_box,
    quad_bounds,
    quad_center,
    sample_background_color,
)

logger = logging.getLogger(__name__)


def build_detections(
    raws: Sequence[RawDetection],
    img_w: int,
    img_h: int,
    confidence_threshold: float = 0.5,
    iou_threshold: float = 0.5,
) -> List[Detection]:
    """Filter text-bearing, confident slots, decode to pixels and suppress duplicates."""
    candidates: List[Detection] = []
    for raw in raws:
        if raw.confidence < confidence_threshold or raw.class_index == CLASS_BUBBLE:
            continue
        x1, y1, x2, y2 = decode_box(*raw.box, img_w, img_h)
        if x2 <= x1 or y2 <= y1:
            continue
        candidates.append(Detection(
            x1=x1, y1=y1, x2=x2, y2=y2,
            confidence=raw.confidence,
            class_index=raw.class_index,
        ))
    return non_max_suppression(candidates, iou_threshold)


def _claimed_by_later(index: int, detections: Sequence[Detection], block: OCRBlock) -> bool:
    """True when a later detection also contains the block centroid and overlaps the block more."""
    cx, cy = quad_center(block.quad)
    bounds = quad_bounds(block.quad)
    mine = overlap_area(detections[index].box, bounds)
    for other in detections[index + 1:]:
        if point_in_box(cx, cy, other.box) and overlap_area(other.box, bounds) > mine:
            return True
    return False


def claim_blocks(
    index: int,
    detections: Sequence[Detection],
    blocks: Sequence[OCRBlock],
    assigned: Set[int],
) -> List[OCRBlock]:
    """
    Claim the unassigned blocks whose centroid lies inside detections[index].

    `assigned` holds block indices already claimed during this resolve call
    and is updated in place. A block whose centroid also falls in a later,
    more-overlapping detection is left for that detection. Claimed blocks are
    returned top to bottom.
    """
    box = detections[index].box
    claimed: List[OCRBlock] = []
    for bi, block in enumerate(blocks):
        if bi in assigned:
            continue
        cx, cy = quad_center(block.quad)
        if not point_in_box(cx, cy, box):
            continue
        if _claimed_by_later(index, detections, block):
            continue
        assigned.add(bi)
        claimed.append(block)
    claimed.sort(key=lambda b: quad_center(b.quad)[1])
    return claimed


def apply_blocks(detection: Detection, blocks: Sequence[OCRBlock]) -> None:
    detection.text = " ".join(b.text for b in blocks)
    detection.word_boxes = [w for b in blocks for w in b.word_boxes]
    detection.font_size = sum(b.font_size for b in blocks) / len(blocks) if blocks else 0.0


class RegionResolver:
    def __init__(
        self,
        ocr: BaseOCR,
        confidence_threshold: float = 0.5,
        iou_threshold: float = 0.5,
        black_white_threshold: int = 30,
        scale_x: float = 4.0,
        scale_y: float = 3.0,
        line_confidence_min: float = 60.0,
    ) -> None:
        self.ocr = ocr
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = iou_threshold
        self.black_white_threshold = black_white_threshold
        self.scale_x = scale_x
        self.scale_y = scale_y
        self.line_confidence_min = line_confidence_min

    def resolve(
        self,
        image: np.ndarray,
        raws: Sequence[RawDetection],
        page_blocks: Optional[Sequence[OCRBlock]] = None,
    ) -> List[Detection]:
        h, w = image.shape[:2]
        detections = build_detections(raws, w, h, self.confidence_threshold, self.iou_threshold)
        logger.info(f"Resolved {len(detections)} text regions from {len(raws)} detector slots")

        blocks = list(page_blocks or [])
        assigned: Set[int] = set()

        for i, det in enumerate(detections):
            det.background_color = sample_background_color(
                image, det.x1, det.y1, det.width, det.height, self.black_white_threshold
            )
            if self.ocr.strategy == "blocks":
                apply_blocks(det, claim_blocks(i, detections, blocks, assigned))
            else:
                try:
                    self._recognize_crop(image, det)
                except Exception as e:
                    logger.warning(f"OCR failed for region {i} ({det.class_name}): {e}")
                    det.text, det.word_boxes, det.font_size = "", [], 0.0
            if det.text:
                logger.debug(f"Region {i} text: {det.text!r}")

        if blocks:
            dropped = len(blocks) - len(assigned)
            if dropped:
                logger.debug(f"{dropped} OCR blocks fell outside every region")
        return detections

    def _recognize_crop(self, image: np.ndarray, det: Detection) -> None:
        img_h, img_w = image.shape[:2]
        x0 = int(clamp(math.floor(det.x1), 0, img_w))
        y0 = int(clamp(math.floor(det.y1), 0, img_h))
        x1 = int(clamp(math.ceil(det.x2), 0, img_w))
        y1 = int(clamp(math.ceil(det.y2), 0, img_h))
        if x1 <= x0 or y1 <= y0:
            return

        crop = image[y0:y1, x0:x1]
        out_w = max(1, int(round((x1 - x0) * self.scale_x)))
        out_h = max(1, int(round((y1 - y0) * self.scale_y)))
        scaled = cv2.resize(crop, (out_w, out_h), interpolation=cv2.INTER_CUBIC)
        fx = out_w / (x1 - x0)
        fy = out_h / (y1 - y0)

        region = self.ocr.recognize_region(scaled, det.class_index, det.background_color)

        det.text = region.text.replace("\n", " ").strip()
        det.word_boxes = [
            WordBox(
                text=wb.text,
                quad=tuple((x0 + px / fx, y0 + py / fy) for px, py in wb.quad),  # type: ignore[arg-type]
                confidence=wb.confidence,
            )
            for wb in region.word_boxes
        ]

        # Free text is measured on every line; bubbles only on confident ones.
        heights = [
            lh for lh, lc in zip(region.line_heights, region.line_confidences)
            if det.class_index == CLASS_TEXT_FREE or lc > self.line_confidence_min
        ]
        det.font_size = (sum(heights) / len(heights)) / fy if heights else 0.0
