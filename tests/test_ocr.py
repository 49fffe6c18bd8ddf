"""OCR result parsing and preprocessing."""
from __future__ import annotations

import numpy as np
import pytest

from bubble_overlay.errors import OCRFailure
from bubble_overlay.models.detection import CLASS_TEXT_BUBBLE, CLASS_TEXT_FREE
from bubble_overlay.services.ocr import (
    GoogleVisionOCR,
    apply_edge_fade,
    build_ocr,
    clean_joined_text,
    parse_tesseract_data,
    parse_vision_response,
    preprocess_for_ocr,
)


def _tess(rows):
    keys = ["level", "block_num", "par_num", "line_num", "left", "top", "width", "height", "conf", "text"]
    return {k: [r[i] for r in rows] for i, k in enumerate(keys)}


TESS_ROWS = [
    (4, 1, 1, 1, 10, 10, 100, 30, -1, ""),
    (5, 1, 1, 1, 10, 10, 40, 30, 90, "HELLO"),
    (5, 1, 1, 1, 60, 10, 50, 30, 80, "THERE"),
    (4, 1, 1, 2, 10, 50, 80, 20, -1, ""),
    (5, 1, 1, 2, 10, 50, 80, 20, 40, "FRIEND"),
    (4, 2, 1, 1, 10, 90, 30, 10, -1, ""),
    (5, 2, 1, 1, 10, 90, 30, 10, 5, "~~"),
]


def test_parse_tesseract_lines_and_words() -> None:
    region = parse_tesseract_data(_tess(TESS_ROWS), CLASS_TEXT_BUBBLE)
    assert region.text == "HELLO THERE FRIEND ~~"
    assert region.line_heights == [30.0, 20.0, 10.0]
    assert region.line_confidences == [85.0, 40.0, 5.0]
    assert region.word_boxes[1].quad == ((60, 10), (110, 10), (110, 40), (60, 40))


def test_parse_tesseract_free_text_drops_weak_blocks() -> None:
    region = parse_tesseract_data(_tess(TESS_ROWS), CLASS_TEXT_FREE)
    assert region.text == "HELLO THERE FRIEND"
    assert len(region.line_heights) == 2


def test_clean_joined_text() -> None:
    assert clean_joined_text("WAIT , WHAT ?!") == "WAIT, WHAT?!"
    assert clean_joined_text("IM- POSSIBLE") == "IMPOSSIBLE"


def _vertices(x0, y0, x1, y1):
    return {"vertices": [{"x": x0, "y": y0}, {"x": x1, "y": y0}, {"x": x1, "y": y1}, {"x": x0, "y": y1}]}


def test_parse_vision_response_blocks() -> None:
    word = lambda t, x: {"symbols": [{"text": c} for c in t], "boundingBox": _vertices(x, 0, x + 10, 12)}
    data = {"responses": [{"fullTextAnnotation": {"pages": [{"blocks": [{
        "boundingBox": _vertices(0, 0, 60, 12),
        "paragraphs": [{"words": [word("HI", 0), word("THERE", 20), word("!", 40)]}],
    }]}]}}]}
    blocks = parse_vision_response(data)
    assert len(blocks) == 1
    assert blocks[0].text == "HI THERE!"
    assert blocks[0].font_size == 12.0
    assert [w.text for w in blocks[0].word_boxes] == ["HI", "THERE", "!"]


def test_parse_vision_response_empty_and_error() -> None:
    assert parse_vision_response({"responses": [{}]}) == []
    with pytest.raises(OCRFailure):
        parse_vision_response({"responses": [{"error": {"message": "bad key"}}]})


def test_google_vision_requires_key() -> None:
    with pytest.raises(OCRFailure):
        GoogleVisionOCR(None).recognize_page(np.zeros((4, 4, 3), dtype=np.uint8))


def test_edge_fade_keeps_center_and_fades_corners() -> None:
    crop = np.zeros((40, 40, 3), dtype=np.uint8)
    faded = apply_edge_fade(crop, (255, 255, 255))
    assert faded[20, 20].tolist() == [0, 0, 0]
    assert faded[0, 0].min() > 0


def test_preprocess_inverts_dark_bubbles() -> None:
    crop = np.zeros((60, 60, 3), dtype=np.uint8)
    crop[25:35, 10:50] = 255
    light = preprocess_for_ocr(crop, CLASS_TEXT_BUBBLE, (255, 255, 255))
    dark = preprocess_for_ocr(crop, CLASS_TEXT_BUBBLE, (0, 0, 0))
    assert light.ndim == 2
    assert light[30, 30] != dark[30, 30]


def test_build_ocr_rejects_unknown_backend() -> None:
    with pytest.raises(ValueError):
        build_ocr("abbyy")
