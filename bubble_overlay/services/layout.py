"""
Text layout: font lookup, greedy word wrap and the font-size search that
fits translated text into a detection box.
"""

from __future__ import annotations

import logging
import math
import os
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from PIL import ImageFont

from bubble_overlay.models.detection import TextLayout

logger = logging.getLogger(__name__)

MeasureFn = Callable[[str, int], float]

MIN_FONT_PX = 6
LINE_HEIGHT_FACTOR = 1.2


def discover_default_fonts() -> List[str]:
    # Bold italic first: comic lettering convention.
    candidates = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-BoldOblique.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-BoldItalic.ttf",
        "/usr/share/fonts/truetype/liberation2/LiberationSans-BoldItalic.ttf",
        "/System/Library/Fonts/Supplemental/Comic Sans MS Bold.ttf",
        "/System/Library/Fonts/Supplemental/Arial Bold Italic.ttf",
        "/Library/Fonts/Arial Bold Italic.ttf",
        "C:/Windows/Fonts/comicbd.ttf",
        "C:/Windows/Fonts/arialbi.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    ]
    return [p for p in candidates if os.path.exists(p)]


class FontManager:
    def __init__(self, font_paths: Optional[Sequence[str]] = None, min_size: int = MIN_FONT_PX) -> None:
        self.font_paths = [p for p in (font_paths or []) if p and os.path.exists(p)]
        if not self.font_paths:
            self.font_paths = discover_default_fonts()
        if not self.font_paths:
            logger.warning("No bold-italic system font found, using Pillow's default font")
        self.min_size = int(min_size)
        self._cache: Dict[int, ImageFont.ImageFont] = {}

    def get(self, size: int):
        size = int(max(self.min_size, size))
        if size in self._cache:
            return self._cache[size]
        font = None
        for fp in self.font_paths:
            try:
                font = ImageFont.truetype(fp, size=size)
                break
            except OSError as e:
                logger.debug(f"Font {fp} unusable at size {size}: {e}")
        if font is None:
            font = ImageFont.load_default(size=size)
        self._cache[size] = font
        return font

    def measure(self, text: str, size: int) -> float:
        """Advance width of `text` at `size` px."""
        if not text:
            return 0.0
        return float(self.get(size).getlength(text))


def wrap_lines(text: str, max_w: float, size: int, measure: MeasureFn) -> Tuple[List[str], bool]:
    """
    Greedy left-to-right wrap at one font size.

    Returns (lines, feasible). The size is infeasible when any single word is
    wider than max_w; such a word still gets a line of its own so the result
    can be used as a degraded fallback.
    """
    lines: List[str] = []
    cur = ""
    feasible = True
    for word in text.split():
        if measure(word, size) > max_w:
            feasible = False
        trial = f"{cur} {word}" if cur else word
        if not cur or measure(trial, size) <= max_w:
            cur = trial
        else:
            lines.append(cur)
            cur = word
    if cur:
        lines.append(cur)
    return lines, feasible


def starting_size(estimate: Optional[float], box_h: float, min_size: int, line_height_factor: float) -> int:
    if estimate is None or estimate < min_size:
        return max(min_size, int(math.floor(box_h / line_height_factor)))
    return int(math.floor(estimate))


def fit_text(
    text: str,
    box: Tuple[float, float, float, float],
    start_size: Optional[float],
    measure: MeasureFn,
    min_size: int = MIN_FONT_PX,
    line_height_factor: float = LINE_HEIGHT_FACTOR,
) -> TextLayout:
    """
    Largest integer font size, counting down from the OCR estimate, at which
    `text` wraps inside the box width and its stacked lines fit the box height.
    Falls back to the floor size with success=False.
    """
    x1, y1, x2, y2 = box
    box_w = x2 - x1
    box_h = y2 - y1

    size = starting_size(start_size, box_h, min_size, line_height_factor)
    while True:
        lines, feasible = wrap_lines(text, box_w, size, measure)
        line_height = size * line_height_factor
        if feasible and len(lines) * line_height <= box_h:
            success = True
            break
        if size <= min_size:
            success = False
            break
        size -= 1

    total = len(lines) * line_height
    layout = TextLayout(
        font_size=size,
        lines=lines,
        line_height=line_height,
        success=success,
        origin_x=(x1 + x2) / 2,
        origin_y=y1 + (box_h - total) / 2,
    )
    if not success:
        logger.debug(f"Text does not fit {box_w:.0f}x{box_h:.0f} box, using {size}px: {text!r}")
    return layout
