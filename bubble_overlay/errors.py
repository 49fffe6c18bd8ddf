"""
Error types raised by the overlay pipeline.

Only InferenceFailure and ImageDecodeError abort an invocation. OCR and
translation failures are raised by the backends and folded into defaults by
the stage that called them.
"""


class OverlayError(RuntimeError):
    """Base class for pipeline errors."""


class InferenceFailure(OverlayError):
    """Detection engine unavailable or returned malformed tensors."""


class OCRFailure(OverlayError):
    """OCR backend failed for a page or a single region."""


class TranslationFailure(OverlayError):
    """Translation service call failed or returned an unusable payload."""


class ImageDecodeError(OverlayError):
    """Input bytes could not be decoded as an image."""
