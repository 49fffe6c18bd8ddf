"""
OCR backends.

Two recognition strategies exist:

- "blocks": the whole page is recognized once and the resolver assigns the
  resulting blocks to detections (Google Cloud Vision, RapidOCR).
- "crop":   every detection is cropped, upscaled and recognized on its own
  (Tesseract).

Backends are constructed lazily by the service and reused across requests.
"""

from __future__ import annotations

import base64
import logging
import re
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

import cv2
import httpx
import numpy as np

from bubble_overlay.errors import OCRFailure
from bubble_overlay.models.detection import CLASS_TEXT_FREE, OCRBlock, RGB, Quad, RegionText, WordBox
from bubble_overlay.utils.geometry import quad_bounds, rect_quad
from bubble_overlay.utils.image_utils import encode_png

logger = logging.getLogger(__name__)

GOOGLE_VISION_URL = "https://vision.googleapis.com/v1/images:annotate"

# Translation language code -> Tesseract traineddata
TESSERACT_LANGUAGES = {
    "AUTO": "eng",
    "AR": "ara",
    "BG": "bul",
    "CS": "ces",
    "DA": "dan",
    "DE": "deu",
    "EL": "ell",
    "EN": "eng",
    "ES": "spa",
    "ET": "est",
    "FI": "fin",
    "FR": "fra",
    "HU": "hun",
    "ID": "ind",
    "IT": "ita",
    "JA": "jpn",
    "KO": "kor",
    "LT": "lit",
    "LV": "lav",
    "NB": "nor",
    "NL": "nld",
    "PL": "pol",
    "PT": "por",
    "RO": "ron",
    "RU": "rus",
    "SK": "slk",
    "SL": "slv",
    "SV": "swe",
    "TR": "tur",
    "UK": "ukr",
    "ZH": "chi_sim",
}

# Digits and symbols that show up as noise in lettering
TESSERACT_BLACKLIST = "*#$¥%£&©®<=>@[]^_{|}~0123456789¢€₹₩₽₺±×÷∞≈≠…•§¶°†‡‹›«»–—‒™℠µ←→↑↓↔↕☑☐☒★☆"
TESSERACT_PSM_SINGLE_BLOCK = 6
FREE_TEXT_MIN_BLOCK_CONFIDENCE = 10.0
DARK_BACKGROUND_MAX = 30


class BaseOCR:
    strategy = "crop"

    def name(self) -> str:
        raise NotImplementedError
    def recognize_page(self, rgb: np.ndarray) -> List[OCRBlock]:
        raise NotImplementedError
    def recognize_region(self, crop_rgb: np.ndarray, class_index: int, background_color: RGB) -> RegionText:
        raise NotImplementedError


# -----------------------------
# Tesseract (region crop)
# -----------------------------
def apply_edge_fade(rgb: np.ndarray, color: RGB) -> np.ndarray:
    """
    Blend the crop towards `color` near its border with a radial gradient:
    untouched inside 80% of 0.6 * max(w, h), fully `color` at the outer radius.
    Keeps bubble outlines and neighboring art out of the OCR input.
    """
    h, w = rgb.shape[:2]
    radius = 1.2 * max(w, h) / 2
    if radius <= 0:
        return rgb.copy()
    ys, xs = np.mgrid[0:h, 0:w].astype(np.float32)
    dist = np.sqrt((xs + 0.5 - w / 2) ** 2 + (ys + 0.5 - h / 2) ** 2) / radius
    alpha = np.clip((dist - 0.8) / 0.2, 0.0, 1.0)[..., None]
    bg = np.array(color, dtype=np.float32).reshape(1, 1, 3)
    out = rgb.astype(np.float32) * (1.0 - alpha) + bg * alpha
    return np.clip(np.round(out), 0, 255).astype(np.uint8)


def preprocess_for_ocr(crop_rgb: np.ndarray, class_index: int, background_color: RGB) -> np.ndarray:
    """Edge fade, grayscale, blur (free text), invert (dark bubbles), Otsu binarize."""
    faded = apply_edge_fade(crop_rgb, background_color)
    gray = cv2.cvtColor(faded, cv2.COLOR_RGB2GRAY)
    if class_index == CLASS_TEXT_FREE:
        gray = cv2.GaussianBlur(gray, (11, 11), 0)
    if all(c < DARK_BACKGROUND_MAX for c in background_color):
        gray = cv2.bitwise_not(gray)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return binary


def _to_float(v: Any, default: float = -1.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def parse_tesseract_data(data: Dict[str, List[Any]], class_index: int) -> RegionText:
    """
    Convert pytesseract.image_to_data(..., output_type=DICT) into RegionText.

    Line confidence is the mean of its word confidences; free-text regions
    drop whole blocks whose mean word confidence is below 10.
    """
    n = len(data.get("text", []))
    lines: "OrderedDict[Tuple[int,int,int], Dict[str, Any]]" = OrderedDict()
    block_confs: Dict[int, List[float]] = {}

    for i in range(n):
        level = int(data["level"][i])
        key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
        if level == 4:
            lines.setdefault(key, {"height": 0.0, "words": []})["height"] = float(data["height"][i])
        elif level == 5:
            text = str(data["text"][i] or "").strip()
            if not text:
                continue
            conf = _to_float(data["conf"][i])
            x, y = float(data["left"][i]), float(data["top"][i])
            w, h = float(data["width"][i]), float(data["height"][i])
            word = WordBox(text=text, quad=rect_quad(x, y, x + w, y + h), confidence=conf)
            entry = lines.setdefault(key, {"height": h, "words": []})
            entry["words"].append(word)
            block_confs.setdefault(key[0], []).append(conf)

    if class_index == CLASS_TEXT_FREE:
        weak = {
            b for b, confs in block_confs.items()
            if sum(confs) / len(confs) < FREE_TEXT_MIN_BLOCK_CONFIDENCE
        }
    else:
        weak = set()

    out = RegionText()
    texts: List[str] = []
    for key, entry in lines.items():
        words: List[WordBox] = entry["words"]
        if not words or key[0] in weak:
            continue
        texts.append(" ".join(w.text for w in words))
        out.word_boxes.extend(words)
        out.line_heights.append(float(entry["height"]))
        out.line_confidences.append(sum(w.confidence or 0.0 for w in words) / len(words))

    out.text = " ".join(texts)
    return out


class TesseractOCR(BaseOCR):
    strategy = "crop"

    def __init__(self, source_language: str = "AUTO", tesseract_cmd: Optional[str] = None) -> None:
        try:
            import pytesseract  # type: ignore
        except Exception as e:
            raise RuntimeError("pytesseract not installed. pip install pytesseract") from e
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self._pt = pytesseract
        self.lang = TESSERACT_LANGUAGES.get((source_language or "AUTO").upper(), "eng")
        self.config = (
            f"--psm {TESSERACT_PSM_SINGLE_BLOCK} "
            f"-c preserve_interword_spaces=1 "
            f"-c tessedit_char_blacklist={TESSERACT_BLACKLIST}"
        )

    def name(self) -> str:
        return "tesseract"

    def recognize_region(self, crop_rgb: np.ndarray, class_index: int, background_color: RGB) -> RegionText:
        if crop_rgb.size == 0:
            return RegionText()
        processed = preprocess_for_ocr(crop_rgb, class_index, background_color)
        try:
            data = self._pt.image_to_data(
                processed, lang=self.lang, config=self.config, output_type=self._pt.Output.DICT
            )
        except Exception as e:
            raise OCRFailure(f"Tesseract failed: {e}") from e
        return parse_tesseract_data(data, class_index)


# -----------------------------
# Google Cloud Vision (page blocks)
# -----------------------------
def _vertices_to_quad(vertices: List[Dict[str, Any]]) -> Quad:
    pts = [(float(v.get("x", 0)), float(v.get("y", 0))) for v in (vertices or [])[:4]]
    while len(pts) < 4:
        pts.append(pts[-1] if pts else (0.0, 0.0))
    return (pts[0], pts[1], pts[2], pts[3])


def clean_joined_text(text: str) -> str:
    """Drop spaces before punctuation and rejoin hyphenated line breaks."""
    text = re.sub(r"\s+([.,!?])", r"\1", text)
    return re.sub(r"-\s", "", text)


def parse_vision_response(data: Dict[str, Any]) -> List[OCRBlock]:
    responses = data.get("responses") or []
    if responses and "error" in responses[0]:
        raise OCRFailure(f"Google Cloud Vision error: {responses[0]['error']}")
    if not responses or not responses[0].get("fullTextAnnotation"):
        logger.info("No text detected by Google Cloud Vision")
        return []

    pages = responses[0]["fullTextAnnotation"].get("pages") or []
    if not pages:
        return []

    blocks: List[OCRBlock] = []
    for block in pages[0].get("blocks", []):
        words: List[WordBox] = []
        for paragraph in block.get("paragraphs", []):
            for word in paragraph.get("words", []):
                text = "".join(s.get("text", "") for s in word.get("symbols", []))
                quad = _vertices_to_quad(word.get("boundingBox", {}).get("vertices", []))
                words.append(WordBox(text=text, quad=quad, confidence=None))

        heights = [abs(w.quad[3][1] - w.quad[0][1]) for w in words]
        font_size = sum(heights) / len(heights) if heights else 0.0
        blocks.append(OCRBlock(
            text=clean_joined_text(" ".join(w.text for w in words)),
            quad=_vertices_to_quad(block.get("boundingBox", {}).get("vertices", [])),
            font_size=font_size,
            word_boxes=words,
        ))
    return blocks


class GoogleVisionOCR(BaseOCR):
    strategy = "blocks"

    def __init__(self, api_key: Optional[str], source_language: str = "AUTO", timeout: float = 30.0) -> None:
        self.api_key = api_key
        lang = (source_language or "AUTO").upper()
        self.language_hint = None if lang == "AUTO" else lang.lower()
        self.timeout = timeout

    def name(self) -> str:
        return "google_vision"

    def recognize_page(self, rgb: np.ndarray) -> List[OCRBlock]:
        if not self.api_key:
            raise OCRFailure("Google Cloud Vision API key is missing")

        request: Dict[str, Any] = {
            "image": {"content": base64.b64encode(encode_png(rgb)).decode("utf-8")},
            "features": [{"type": "TEXT_DETECTION"}],
        }
        if self.language_hint:
            request["imageContext"] = {"languageHints": [self.language_hint]}

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    GOOGLE_VISION_URL,
                    params={"key": self.api_key},
                    json={"requests": [request]},
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise OCRFailure(f"Google Cloud Vision API error: HTTP {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise OCRFailure(f"Google Cloud Vision request failed: {e}") from e

        blocks = parse_vision_response(data)
        logger.info(f"Google Cloud Vision returned {len(blocks)} blocks")
        return blocks


# -----------------------------
# RapidOCR (page blocks)
# -----------------------------
class RapidOCRBackend(BaseOCR):
    """One block per recognized line; the line box doubles as its word box."""
    strategy = "blocks"

    def __init__(self) -> None:
        try:
            from rapidocr_onnxruntime import RapidOCR  # type: ignore
        except Exception as e:
            raise RuntimeError("rapidocr-onnxruntime not installed. pip install rapidocr-onnxruntime") from e
        self._ocr = RapidOCR()

    def name(self) -> str:
        return "rapid"

    def recognize_page(self, rgb: np.ndarray) -> List[OCRBlock]:
        try:
            res, _ = self._ocr(rgb)
        except Exception as e:
            raise OCRFailure(f"RapidOCR failed: {e}") from e
        blocks: List[OCRBlock] = []
        if not res:
            return blocks
        for item in res:
            if len(item) < 3:
                continue
            box = np.array(item[0], dtype=np.float32)
            if box.shape != (4, 2):
                continue
            text = str(item[1]) if item[1] is not None else ""
            score = float(item[2]) * 100.0 if item[2] is not None else 0.0
            quad: Quad = tuple((float(px), float(py)) for px, py in box)  # type: ignore[assignment]
            _, y0, _, y1 = quad_bounds(quad)
            blocks.append(OCRBlock(
                text=text,
                quad=quad,
                font_size=y1 - y0,
                word_boxes=[WordBox(text=text, quad=quad, confidence=score)],
            ))
        return blocks


def build_ocr(
    backend: str,
    source_language: str = "AUTO",
    google_api_key: Optional[str] = None,
    tesseract_cmd: Optional[str] = None,
    timeout: float = 30.0,
) -> BaseOCR:
    backend = (backend or "tesseract").lower()
    if backend == "tesseract":
        return TesseractOCR(source_language=source_language, tesseract_cmd=tesseract_cmd)
    if backend in ("google_vision", "googlecloudvision"):
        return GoogleVisionOCR(api_key=google_api_key, source_language=source_language, timeout=timeout)
    if backend == "rapid":
        return RapidOCRBackend()
    raise ValueError(f"Unknown OCR backend: {backend}")
