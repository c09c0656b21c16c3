"""
Boundary the classification core exposes to the request layer.

classify_image        – bytes → ``{"verdict", "confidence"}`` (raises on failure).
conservative_default  – the explicit fallback callers use on ``InferenceError``.
train_from_directory  – blocking end-to-end training run.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from .model_loader import get_classifier
from .preprocessing import prepare
from .spoilage import UNCERTAIN_CONFIDENCE, ClassificationResult, Verdict

if TYPE_CHECKING:
    from training.config import TrainingConfig
    from training.train import TrainingReport


def classify_result(image_bytes: bytes) -> ClassificationResult:
    """Preprocess *image_bytes* and classify them with the live model.

    Raises
    ------
    DecodeError
        The bytes are not a decodable image.
    InferenceError
        The forward pass failed.
    """
    tensor = prepare(image_bytes)
    try:
        return get_classifier().classify(tensor)
    finally:
        del tensor


def classify_image(image_bytes: bytes) -> Dict[str, Any]:
    """JSON-ready form of ``classify_result``."""
    return classify_result(image_bytes).to_dict()


def conservative_default() -> ClassificationResult:
    """Verdict to report when inference fails: spoiled, confidence 0.5."""
    return ClassificationResult(Verdict.SPOILED, UNCERTAIN_CONFIDENCE)


def train_from_directory(
    path: Path | str,
    config: Optional["TrainingConfig"] = None,
) -> "TrainingReport":
    """Run a full training cycle on the corpus at *path*.

    Long-running; call it from a background job (see ``training.tasks``).

    Raises
    ------
    InsufficientDataError
        The corpus is too small after balancing.
    """
    from training.runner import run_training

    return run_training(path, config)
