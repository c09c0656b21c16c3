"""Shared fixtures: synthetic images, corpora and small stand-in models."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
import pytest
import tensorflow as tf
from PIL import Image
from tensorflow.keras.layers import Dense, GlobalAveragePooling2D, Input

from classifier.spoilage import INPUT_SHAPE, SpoilageClassifier, compile_model


def image_bytes(
    size: Tuple[int, int] = (64, 48),
    mode: str = "RGB",
    color=None,
    fmt: str = "PNG",
) -> bytes:
    """Encode a solid-colour image of *size* (width, height) and *mode*."""
    if color is None:
        color = {"L": 128, "P": 5, "LA": (128, 255), "RGBA": (200, 100, 50, 128)}.get(
            mode, (200, 100, 50),
        )
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def write_images(folder: Path, names: Sequence[str], fmt: str = "PNG") -> None:
    folder.mkdir(parents=True, exist_ok=True)
    for name in names:
        (folder / name).write_bytes(image_bytes(fmt=fmt))


@pytest.fixture
def make_corpus(tmp_path: Path) -> Callable[..., Path]:
    """Build a ``safe/`` + ``spoiled/`` corpus with *n_safe* / *n_spoiled* PNGs."""

    def _make(n_safe: int, n_spoiled: int, root: Optional[Path] = None) -> Path:
        root = root or tmp_path / "corpus"
        write_images(root / "safe", [f"safe_{i:03d}.png" for i in range(n_safe)])
        write_images(root / "spoiled", [f"spoiled_{i:03d}.png" for i in range(n_spoiled)])
        return root

    return _make


def build_tiny_model() -> tf.keras.Model:
    """Same input/output contract as the real CNN, a few hundred weights."""
    model = tf.keras.Sequential(
        [
            Input(shape=INPUT_SHAPE),
            GlobalAveragePooling2D(),
            Dense(2, activation="softmax"),
        ],
        name="tiny_spoilage",
    )
    return compile_model(model)


@pytest.fixture
def tiny_classifier() -> SpoilageClassifier:
    return SpoilageClassifier(build_tiny_model())


class FixedModel:
    """Stand-in model returning fixed probabilities (or raising)."""

    def __init__(self, probs=(0.8, 0.2), error: Optional[Exception] = None, dtype=np.float32):
        self.probs = np.asarray([probs], dtype=dtype)
        self.error = error
        self.calls = 0

    def __call__(self, arr, training=False):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.probs

    def predict(self, images, batch_size=32, verbose=0):
        return np.repeat(self.probs, len(images), axis=0)


@pytest.fixture
def blank_tensor() -> np.ndarray:
    return np.zeros((1,) + INPUT_SHAPE, dtype=np.float32)
