"""
Box geometry helpers: decoding, overlap, suppression and color sampling.
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy as np

from bubble_overlay.models.detection import Detection, Quad, RGB

Box = Tuple[float, float, float, float]  # x1, y1, x2, y2


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def decode_box(cx: float, cy: float, w: float, h: float, img_w: int, img_h: int) -> Box:
    """Normalized center-form (cx, cy, w, h) to pixel corner-form (x1, y1, x2, y2)."""
    pcx = cx * img_w
    pcy = cy * img_h
    pw = w * img_w
    ph = h * img_h
    return (pcx - pw / 2, pcy - ph / 2, pcx + pw / 2, pcy + ph / 2)


def box_area(b: Box) -> float:
    return max(0.0, b[2] - b[0]) * max(0.0, b[3] - b[1])


def overlap_area(a: Box, b: Box) -> float:
    x0 = max(a[0], b[0]); y0 = max(a[1], b[1])
    x1 = min(a[2], b[2]); y1 = min(a[3], b[3])
    return max(0.0, x1 - x0) * max(0.0, y1 - y0)


def iou(a: Box, b: Box) -> float:
    inter = overlap_area(a, b)
    if inter <= 0:
        return 0.0
    union = box_area(a) + box_area(b) - inter
    if union <= 0:
        return 0.0
    return inter / union


def non_max_suppression(detections: Sequence[Detection], iou_threshold: float) -> List[Detection]:
    """
    Keep the most confident detection of every overlapping cluster.

    sorted() is stable, so equal confidences keep their input order. A
    candidate is dropped when its IoU with a kept box reaches the threshold.
    """
    remaining = sorted(detections, key=lambda d: d.confidence, reverse=True)
    kept: List[Detection] = []
    while remaining:
        best = remaining.pop(0)
        kept.append(best)
        remaining = [d for d in remaining if iou(best.box, d.box) < iou_threshold]
    return kept


def quad_center(quad: Quad) -> Tuple[float, float]:
    """Midpoint of the top-left and bottom-right corners."""
    (x0, y0), _, (x2, y2), _ = quad
    return ((x0 + x2) / 2, (y0 + y2) / 2)


def quad_bounds(quad: Quad) -> Box:
    xs = [p[0] for p in quad]
    ys = [p[1] for p in quad]
    return (min(xs), min(ys), max(xs), max(ys))


def point_in_box(x: float, y: float, box: Box) -> bool:
    return box[0] <= x <= box[2] and box[1] <= y <= box[3]


def rect_quad(x0: float, y0: float, x1: float, y1: float) -> Quad:
    return ((x0, y0), (x1, y0), (x1, y1), (x0, y1))


def sample_background_color(
    image: np.ndarray,
    x: float,
    y: float,
    w: float,
    h: float,
    threshold: int = 30,
) -> RGB:
    """
    Estimate a region's background from its four edge midpoints.

    Points are inset by 2.5% of the shorter side so glyphs in the middle and
    antialiasing on the border both stay out of the estimate. The average is
    snapped to pure black or white when every channel is within threshold.
    """
    img_h, img_w = image.shape[:2]
    offset = min(w, h) * 0.025
    points = [
        (x + w / 2, y + offset),
        (x + w / 2, y + h - offset),
        (x + offset, y + h / 2),
        (x + w - offset, y + h / 2),
    ]

    total = [0, 0, 0]
    for px, py in points:
        col = int(clamp(math.floor(px), 0, img_w - 1))
        row = int(clamp(math.floor(py), 0, img_h - 1))
        pixel = image[row, col]
        for c in range(3):
            total[c] += int(pixel[c])

    avg = tuple(round_half_up(t / len(points)) for t in total)

    if all(c <= threshold for c in avg):
        return (0, 0, 0)
    if all(c >= 255 - threshold for c in avg):
        return (255, 255, 255)
    return avg  # type: ignore[return-value]
