"""
Core data structures shared by the overlay pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

Point = Tuple[float, float]
Quad = Tuple[Point, Point, Point, Point]  # TL, TR, BR, BL
RGB = Tuple[int, int, int]

CLASS_BUBBLE = 0
CLASS_TEXT_BUBBLE = 1
CLASS_TEXT_FREE = 2

ID2LABEL = {
    CLASS_BUBBLE: "bubble",
    CLASS_TEXT_BUBBLE: "text_bubble",
    CLASS_TEXT_FREE: "text_free",
}


@dataclass(frozen=True)
class RawDetection:
    class_index: int
    confidence: float
    box: Tuple[float, float, float, float]  # cx, cy, w, h normalized


@dataclass(frozen=True)
class WordBox:
    text: str
    quad: Quad
    confidence: Optional[float] = None


@dataclass
class OCRBlock:
    text: str
    quad: Quad
    font_size: float = 0.0
    word_boxes: List[WordBox] = field(default_factory=list)


@dataclass
class TextLayout:
    font_size: int
    lines: List[str]
    line_height: float
    success: bool
    origin_x: float = 0.0  # horizontal center of every line
    origin_y: float = 0.0  # top of the text block

    @property
    def total_height(self) -> float:
        return len(self.lines) * self.line_height


@dataclass
class Detection:
    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    class_index: int

    background_color: RGB = (255, 255, 255)
    text: str = ""
    translated_text: str = ""
    font_size: float = 0.0
    word_boxes: List[WordBox] = field(default_factory=list)

    layout: Optional[TextLayout] = None

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def box(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)

    @property
    def class_name(self) -> str:
        return ID2LABEL.get(self.class_index, str(self.class_index))

    def to_dict(self) -> Dict[str, Any]:
        """Metadata returned to callers alongside the composite image."""
        return {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "confidence": self.confidence,
            "class_index": self.class_index,
            "class_name": self.class_name,
            "background_color": list(self.background_color),
            "text": self.text,
            "translated_text": self.translated_text,
            "font_size": self.font_size,
            "rendered_font_size": self.layout.font_size if self.layout else None,
            "lines": list(self.layout.lines) if self.layout else [],
        }


@dataclass
class RegionText:
    """OCR output for one cropped region, in crop pixel coordinates."""
    text: str = ""
    word_boxes: List[WordBox] = field(default_factory=list)
    line_heights: List[float] = field(default_factory=list)
    line_confidences: List[float] = field(default_factory=list)
