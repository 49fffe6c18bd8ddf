"""
Compositor: paints erased word boxes, the soft background patch and the
outlined translated text onto a shared RGB surface.

Per detection the order is fixed: word erase, gradient patch, text.
"""

import logging
import math
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw

from bubble_overlay.models.detection import Detection, Quad, TextLayout
from bubble_overlay.services.layout import FontManager
from bubble_overlay.utils.geometry import clamp, quad_bounds

logger = logging.getLogger(__name__)

WORD_PAD_RATIO = 0.10
GRADIENT_SOLID_RATIO = 0.8
TEXT_FILL = (0, 0, 0, 255)
TEXT_OUTLINE = (255, 255, 255, 255)


def pad_word_quad(quad: Quad, box: Tuple[float, float, float, float]) -> np.ndarray:
    """Grow each corner outward by 10% of the word's own size, clamped to the box."""
    bx0, by0, bx1, by1 = box
    x0, y0, x1, y1 = quad_bounds(quad)
    px = (x1 - x0) * WORD_PAD_RATIO
    py = (y1 - y0) * WORD_PAD_RATIO
    (tlx, tly), (trx, try_), (brx, bry), (blx, bly) = quad
    pts = [
        (tlx - px, tly - py),
        (trx + px, try_ - py),
        (brx + px, bry + py),
        (blx - px, bly + py),
    ]
    return np.array(
        [[round(clamp(x, bx0, bx1)), round(clamp(y, by0, by1))] for x, y in pts],
        dtype=np.int32,
    )


def erase_words(surface: np.ndarray, det: Detection) -> None:
    color = tuple(int(c) for c in det.background_color)
    for wb in det.word_boxes:
        cv2.fillPoly(surface, [pad_word_quad(wb.quad, det.box)], color)


def _pixel_window(det: Detection, img_w: int, img_h: int) -> Tuple[int, int, int, int]:
    x0 = int(clamp(math.floor(det.x1), 0, img_w))
    y0 = int(clamp(math.floor(det.y1), 0, img_h))
    x1 = int(clamp(math.ceil(det.x2), 0, img_w))
    y1 = int(clamp(math.ceil(det.y2), 0, img_h))
    return x0, y0, x1, y1


def gradient_alpha(det: Detection, x0: int, y0: int, x1: int, y1: int) -> np.ndarray:
    """
    Alpha for the pixel window [x0:x1, y0:y1]: 1 inside 80% of the box's
    half-diagonal, falling linearly to 0 at the half-diagonal.
    """
    cx = (det.x1 + det.x2) / 2
    cy = (det.y1 + det.y2) / 2
    radius = math.hypot(det.width, det.height) / 2
    ys, xs = np.mgrid[y0:y1, x0:x1].astype(np.float32)
    dist = np.hypot(xs + 0.5 - cx, ys + 0.5 - cy)
    inner = GRADIENT_SOLID_RATIO * radius
    alpha = (radius - dist) / max(1e-6, radius - inner)
    return np.clip(alpha, 0.0, 1.0)


def paint_gradient(surface: np.ndarray, det: Detection) -> None:
    img_h, img_w = surface.shape[:2]
    x0, y0, x1, y1 = _pixel_window(det, img_w, img_h)
    if x1 <= x0 or y1 <= y0:
        return
    alpha = gradient_alpha(det, x0, y0, x1, y1)[:, :, None]
    color = np.array(det.background_color, dtype=np.float32)
    roi = surface[y0:y1, x0:x1].astype(np.float32)
    out = roi * (1.0 - alpha) + color * alpha
    surface[y0:y1, x0:x1] = np.clip(np.round(out), 0, 255).astype(np.uint8)


def overlay_patch(surface: np.ndarray, patch_rgba: np.ndarray, x0: int, y0: int) -> None:
    """Alpha-blend an RGBA patch whose top-left sits at (x0, y0), clipped to the surface."""
    H, W = surface.shape[:2]
    ph, pw = patch_rgba.shape[:2]
    sx0, sy0 = max(0, x0), max(0, y0)
    sx1, sy1 = min(W, x0 + pw), min(H, y0 + ph)
    if sx1 <= sx0 or sy1 <= sy0:
        return
    patch = patch_rgba[sy0 - y0:sy1 - y0, sx0 - x0:sx1 - x0]
    alpha = patch[:, :, 3:4].astype(np.float32) / 255.0
    roi = surface[sy0:sy1, sx0:sx1].astype(np.float32)
    out = roi * (1.0 - alpha) + patch[:, :, :3].astype(np.float32) * alpha
    surface[sy0:sy1, sx0:sx1] = np.clip(np.round(out), 0, 255).astype(np.uint8)


def render_text(
    surface: np.ndarray,
    det: Detection,
    layout: TextLayout,
    fm: FontManager,
    outline_width: int = 2,
) -> None:
    if not layout.lines:
        return
    font = fm.get(layout.font_size)
    widest = max(fm.measure(line, layout.font_size) for line in layout.lines)
    margin = outline_width + 2

    # Patch covers the box and any overflow from a degraded layout.
    px0 = int(math.floor(min(det.x1, layout.origin_x - widest / 2))) - margin
    py0 = int(math.floor(min(det.y1, layout.origin_y))) - margin
    px1 = int(math.ceil(max(det.x2, layout.origin_x + widest / 2))) + margin
    py1 = int(math.ceil(max(det.y2, layout.origin_y + layout.total_height))) + margin

    patch = Image.new("RGBA", (px1 - px0, py1 - py0), (0, 0, 0, 0))
    draw = ImageDraw.Draw(patch)
    pad_top = (layout.line_height - layout.font_size) / 2
    for i, line in enumerate(layout.lines):
        draw.text(
            (layout.origin_x - px0, layout.origin_y + i * layout.line_height + pad_top - py0),
            line,
            font=font,
            fill=TEXT_FILL,
            anchor="ma",
            stroke_width=outline_width,
            stroke_fill=TEXT_OUTLINE,
        )
    overlay_patch(surface, np.asarray(patch), px0, py0)


def composite_detection(
    surface: np.ndarray,
    det: Detection,
    fm: Optional[FontManager],
    outline_width: int = 2,
) -> None:
    erase_words(surface, det)
    if not det.translated_text:
        return
    paint_gradient(surface, det)
    if det.layout is not None and fm is not None:
        render_text(surface, det, det.layout, fm, outline_width)
