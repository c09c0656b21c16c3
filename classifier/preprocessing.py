"""
Image preprocessing: raw upload bytes → batch-ready model input.

Pipeline (order matters):
    1. Decode with Pillow and coerce to RGB (RGBA, grayscale, palette … → 3 channels)
    2. Resize to 224×224, bilinear, aspect ratio NOT preserved
    3. Scale to [0, 1] by dividing by 255
    4. Prepend a batch dimension → (1, 224, 224, 3) float32
"""

from __future__ import annotations

import io
from typing import Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError


# ── Constants ───────────────────────────────────────────────────────────────

INPUT_SIZE: Tuple[int, int] = (224, 224)      # (width, height) for PIL
NUM_CHANNELS: int = 3
TENSOR_SHAPE: Tuple[int, int, int, int] = (1, INPUT_SIZE[1], INPUT_SIZE[0], NUM_CHANNELS)


class ImagePreprocessor:
    """Turn encoded image bytes into a ``(1, 224, 224, 3)`` float32 array.

    Stateless: no caching, every call produces a fresh array owned by the
    caller.
    """

    def __init__(self, size: Tuple[int, int] = INPUT_SIZE) -> None:
        self.size = size

    def prepare(self, image_bytes: bytes) -> np.ndarray:
        """Decode, resize, normalise and batch one image.

        Raises
        ------
        DecodeError
            If *image_bytes* is empty or not an image Pillow can decode.
        """
        if not image_bytes:
            raise DecodeError("Empty image payload.")

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img.load()
                rgb = img.convert("RGB")
        except (UnidentifiedImageError, OSError, ValueError,
                Image.DecompressionBombError) as exc:
            raise DecodeError(f"Could not decode image: {exc}") from exc

        resized = rgb.resize(self.size, resample=Image.Resampling.BILINEAR)
        arr = np.asarray(resized, dtype=np.float32) / 255.0
        return np.expand_dims(arr, axis=0)


_default = ImagePreprocessor()


def prepare(image_bytes: bytes) -> np.ndarray:
    """Module-level shortcut for ``ImagePreprocessor().prepare``."""
    return _default.prepare(image_bytes)
