"""
Shared fixtures: in-process stand-ins for the detector, OCR engine and
translation service, so tests need neither model files nor network.
"""

from typing import List, Optional, Sequence

import numpy as np
import pytest

from bubble_overlay.config import Settings
from bubble_overlay.models.detection import OCRBlock, RawDetection, RegionText, WordBox
from bubble_overlay.services.detector import BaseDetector
from bubble_overlay.services.layout import FontManager
from bubble_overlay.services.ocr import BaseOCR
from bubble_overlay.services.translation import BaseTranslator
from bubble_overlay.utils.geometry import rect_quad


class StubDetector(BaseDetector):
    def __init__(self, raws: Sequence[RawDetection]) -> None:
        self.raws = list(raws)
        self.calls = 0

    def name(self) -> str:
        return "stub"

    def detect(self, rgb: np.ndarray) -> List[RawDetection]:
        self.calls += 1
        return list(self.raws)


class StubBlockOCR(BaseOCR):
    strategy = "blocks"

    def __init__(self, blocks: Sequence[OCRBlock]) -> None:
        self.blocks = list(blocks)

    def name(self) -> str:
        return "stub_blocks"

    def recognize_page(self, rgb: np.ndarray) -> List[OCRBlock]:
        return list(self.blocks)


class StubCropOCR(BaseOCR):
    strategy = "crop"

    def __init__(self, region: Optional[RegionText] = None, error: Optional[Exception] = None) -> None:
        self.region = region or RegionText()
        self.error = error
        self.crops: List[np.ndarray] = []

    def name(self) -> str:
        return "stub_crop"

    def recognize_region(self, crop_rgb, class_index, background_color) -> RegionText:
        self.crops.append(crop_rgb)
        if self.error is not None:
            raise self.error
        return self.region


class StubTranslator(BaseTranslator):
    """Lower-cases known phrases; records every call."""

    def __init__(self, table=None, fail_on: Sequence[str] = ()) -> None:
        super().__init__(api_key="stub-key")
        self.table = dict(table or {})
        self.fail_on = set(fail_on)
        self.calls: List[tuple] = []

    def name(self) -> str:
        return "stub"

    def _translate(self, text, context, source, target):
        self.calls.append((text, context, source, target))
        if text in self.fail_on:
            from bubble_overlay.errors import TranslationFailure
            raise TranslationFailure(f"cannot translate {text!r}")
        return self.table.get(text, text.lower())


def char_measure(text: str, size: int) -> float:
    """Deterministic width: every character is 0.6em wide."""
    return len(text) * size * 0.6


def hello_block(x0: float = 200, y0: float = 220) -> OCRBlock:
    hello = WordBox("HELLO", rect_quad(x0, y0, x0 + 50, y0 + 20), 95.0)
    world = WordBox("WORLD", rect_quad(x0 + 60, y0, x0 + 110, y0 + 20), 95.0)
    return OCRBlock(
        text="HELLO WORLD",
        quad=rect_quad(x0, y0, x0 + 110, y0 + 20),
        font_size=20.0,
        word_boxes=[hello, world],
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(SOURCE_LANGUAGE="AUTO", TARGET_LANGUAGE="ES", LOG_DIR=None)


@pytest.fixture
def font_manager() -> FontManager:
    return FontManager()


@pytest.fixture
def page() -> np.ndarray:
    """640x480 white page with dark 'glyphs' in the middle."""
    img = np.full((480, 640, 3), 255, dtype=np.uint8)
    img[222:238, 202:248] = 0
    img[222:238, 262:308] = 0
    return img


@pytest.fixture
def bubble_raw() -> RawDetection:
    return RawDetection(class_index=1, confidence=0.9, box=(0.5, 0.5, 0.4, 0.2))
