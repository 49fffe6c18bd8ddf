"""
Speech-bubble detector adapter.

The detector is a DETR-style model exported to ONNX: one 1x3x640x640
ImageNet-normalized tensor in, per-query class logits and normalized
(cx, cy, w, h) boxes out. Classes: bubble / text_bubble / text_free.
"""

import logging
import os
import threading
from typing import Any, List, Optional

import cv2
import numpy as np

from bubble_overlay.errors import InferenceFailure
from bubble_overlay.models.detection import RawDetection

logger = logging.getLogger(__name__)

IMAGE_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGE_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


def preprocess_image(rgb: np.ndarray, size: int = 640) -> np.ndarray:
    """RGB uint8 (H, W, 3) -> float32 (1, 3, size, size)."""
    resized = cv2.resize(rgb, (size, size), interpolation=cv2.INTER_LINEAR)
    x = resized.astype(np.float32) / 255.0
    x = (x - IMAGE_MEAN) / IMAGE_STD
    return np.ascontiguousarray(x.transpose(2, 0, 1)[None, ...], dtype=np.float32)


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def decode_outputs(logits: Any, pred_boxes: Any) -> List[RawDetection]:
    """
    Turn raw engine outputs into one RawDetection per query slot.

    Class scores are the sigmoid of the logits; the detection's class is the
    argmax and its confidence the max score.
    """
    try:
        logits = np.asarray(logits, dtype=np.float32)
        pred_boxes = np.asarray(pred_boxes, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InferenceFailure(f"Malformed detector output: {e}") from e

    if logits.ndim == 3:
        logits = logits[0]
    if pred_boxes.ndim == 3:
        pred_boxes = pred_boxes[0]
    if logits.ndim != 2 or pred_boxes.ndim != 2 or pred_boxes.shape[1] != 4:
        raise InferenceFailure(
            f"Unexpected detector output shapes: logits={logits.shape}, pred_boxes={pred_boxes.shape}"
        )
    if logits.shape[0] != pred_boxes.shape[0]:
        raise InferenceFailure(
            f"Query count mismatch: {logits.shape[0]} logits vs {pred_boxes.shape[0]} boxes"
        )

    scores = _sigmoid(logits)
    raws: List[RawDetection] = []
    for q in range(scores.shape[0]):
        cls = int(np.argmax(scores[q]))
        cx, cy, w, h = (float(v) for v in pred_boxes[q])
        raws.append(RawDetection(class_index=cls, confidence=float(scores[q, cls]), box=(cx, cy, w, h)))
    return raws


class BaseDetector:
    def name(self) -> str:
        raise NotImplementedError
    def detect(self, rgb: np.ndarray) -> List[RawDetection]:
        raise NotImplementedError


class OnnxDetector(BaseDetector):
    """
    onnxruntime-backed detector. The session is created on first use and
    reused; onnxruntime sessions are safe to call from several threads.
    """
    def __init__(self, model_path: str, input_size: int = 640) -> None:
        self.model_path = model_path
        self.input_size = int(input_size)
        self._session: Optional[Any] = None
        self._lock = threading.Lock()

    def name(self) -> str:
        return "onnx"

    def _get_session(self) -> Any:
        with self._lock:
            if self._session is None:
                if not os.path.exists(self.model_path):
                    raise InferenceFailure(f"Detector model missing at {self.model_path}")
                try:
                    import onnxruntime as ort  # type: ignore
                except Exception as e:
                    raise InferenceFailure("onnxruntime not installed. pip install onnxruntime") from e
                logger.info(f"Loading detector model from: {self.model_path}")
                try:
                    self._session = ort.InferenceSession(self.model_path, providers=["CPUExecutionProvider"])
                except Exception as e:
                    raise InferenceFailure(f"Failed to load detector model: {e}") from e
                logger.info("Detector model loaded")
            return self._session

    def detect(self, rgb: np.ndarray) -> List[RawDetection]:
        session = self._get_session()
        tensor = preprocess_image(rgb, self.input_size)
        try:
            logits, pred_boxes = session.run(["logits", "pred_boxes"], {"pixel_values": tensor})
        except Exception as e:
            raise InferenceFailure(f"Detector inference failed: {e}") from e
        raws = decode_outputs(logits, pred_boxes)
        logger.debug(f"Detector returned {len(raws)} query slots")
        return raws
