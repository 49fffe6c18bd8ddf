"""
Image decoding/encoding helpers.
"""

import base64
import io
import logging

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from bubble_overlay.errors import ImageDecodeError

logger = logging.getLogger(__name__)


def decode_image(image_bytes: bytes) -> np.ndarray:
    """
    Decode encoded image bytes into an RGB uint8 array (H, W, 3).

    Transparent images are flattened onto white, like a browser canvas would
    show them.
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Failed to decode image: {e}") from e

    logger.debug(f"Image format: {img.format}, size: {img.size}, mode: {img.mode}")

    if img.mode in ("RGBA", "LA", "P"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        background.paste(img, mask=img.split()[-1])
        img = background
    elif img.mode != "RGB":
        img = img.convert("RGB")

    return np.array(img, dtype=np.uint8)


def encode_png(rgb: np.ndarray) -> bytes:
    bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
    ok, buf = cv2.imencode(".png", bgr)
    if not ok:
        raise RuntimeError("Failed to encode PNG")
    return buf.tobytes()


def encode_png_base64(rgb: np.ndarray) -> str:
    return base64.b64encode(encode_png(rgb)).decode("utf-8")


def read_image_file(path: str) -> np.ndarray:
    with open(path, "rb") as f:
        return decode_image(f.read())
