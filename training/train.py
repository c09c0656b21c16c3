"""
Batch training of the spoilage CNN.

Conversion
    Every ``TrainingSample`` is preprocessed into one slot of a single
    preallocated ``(N, 224, 224, 3)`` float32 arena.  The per-sample tensor
    is dropped as soon as it is copied in, so peak memory is the arena plus
    one image.  The dataset is released once the arena is full, and only a
    copy of the holdout slice outlives the fit.  Every ``progress_every``
    samples the loop logs progress and yields the thread so inference
    callers are not starved.

Fitting
    ``model.fit(epochs=10, batch_size=32, validation_split=0.2)`` with
    Adam(1e-3) / categorical cross-entropy from ``compile_model``.  Keras
    withholds the *last* 20 % of the arrays, which is a random holdout
    because the dataset is already shuffled.

Atomicity
    The fit runs under the classifier's write lock.  If it raises, the
    pre-fit weights are restored before the lock is released, so inference
    never observes a half-trained model and nothing is persisted.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from tensorflow.keras.callbacks import LambdaCallback

from classifier.errors import TrainingError
from classifier.preprocessing import ImagePreprocessor, TENSOR_SHAPE
from classifier.spoilage import NUM_CLASSES, SpoilageClassifier, label_vector

from .config import TrainingConfig
from .data import TrainingDataset, TrainingSample

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Report
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class TrainingReport:
    """Outcome of one training run; ``to_dict`` is JSON-safe."""

    run_name: str
    num_samples: int
    num_safe: int
    num_spoiled: int
    num_train: int
    num_validation: int
    config: Dict[str, Any]
    history: Dict[str, List[float]] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)
    artifact_path: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def final_accuracy(self) -> Optional[float]:
        values = self.history.get("accuracy")
        return values[-1] if values else None

    @property
    def final_loss(self) -> Optional[float]:
        values = self.history.get("loss")
        return values[-1] if values else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_name": self.run_name,
            "num_samples": self.num_samples,
            "num_safe": self.num_safe,
            "num_spoiled": self.num_spoiled,
            "num_train": self.num_train,
            "num_validation": self.num_validation,
            "config": self.config,
            "history": self.history,
            "metrics": self.metrics,
            "artifact_path": self.artifact_path,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def split_point(num_samples: int, validation_split: float) -> int:
    """Index where Keras starts the validation slice for ``validation_split``."""
    return int(math.floor(num_samples * (1.0 - validation_split)))


# ═══════════════════════════════════════════════════════════════════════════
# Conversion
# ═══════════════════════════════════════════════════════════════════════════

def prepare_training_arrays(
    samples: Sequence[TrainingSample],
    preprocessor: Optional[ImagePreprocessor] = None,
    *,
    progress_every: int = 100,
) -> Tuple[np.ndarray, np.ndarray]:
    """Convert samples into ``(images, one_hot_labels)`` arrays.

    Returns
    -------
    (np.ndarray, np.ndarray)
        ``(N, 224, 224, 3)`` float32 images and ``(N, 2)`` float32 labels
        (``[1, 0]`` safe, ``[0, 1]`` spoiled).

    Raises
    ------
    DecodeError
        If any sample's bytes cannot be decoded; the run is aborted.
    """
    preprocessor = preprocessor or ImagePreprocessor()
    total = len(samples)

    images = np.empty((total,) + TENSOR_SHAPE[1:], dtype=np.float32)
    labels = np.empty((total, NUM_CLASSES), dtype=np.float32)

    logger.info("Processing %d images…", total)
    for i, sample in enumerate(samples):
        tensor = preprocessor.prepare(sample.raw_bytes)
        images[i] = tensor[0]
        labels[i] = label_vector(sample.label)
        del tensor

        if (i + 1) % progress_every == 0:
            logger.info("Processed %d/%d images", i + 1, total)
            time.sleep(0)

    logger.info("Processed all %d images", total)
    return images, labels


# ═══════════════════════════════════════════════════════════════════════════
# Trainer
# ═══════════════════════════════════════════════════════════════════════════

class Trainer:
    """Fit a ``SpoilageClassifier`` in place on a ``TrainingDataset``."""

    def __init__(
        self,
        config: Optional[TrainingConfig] = None,
        preprocessor: Optional[ImagePreprocessor] = None,
    ) -> None:
        self.config = config or TrainingConfig()
        self.preprocessor = preprocessor or ImagePreprocessor()
        # Holdout arrays from the last successful fit, for evaluation.
        self.validation_data: Optional[Tuple[np.ndarray, np.ndarray]] = None

    def _epoch_logger(self) -> LambdaCallback:
        epochs = self.config.epochs

        def on_epoch_end(epoch: int, logs: Optional[Dict[str, float]] = None) -> None:
            logs = logs or {}
            logger.info(
                "Epoch %d/%d: loss = %.4f, accuracy = %.4f",
                epoch + 1, epochs,
                float(logs.get("loss", float("nan"))),
                float(logs.get("accuracy", float("nan"))),
            )

        return LambdaCallback(on_epoch_end=on_epoch_end)

    def fit(
        self,
        dataset: TrainingDataset,
        classifier: SpoilageClassifier,
        *,
        run_name: Optional[str] = None,
    ) -> TrainingReport:
        """Train *classifier* on *dataset* and return a report.

        Raises
        ------
        TrainingError
            If conversion or fitting fails.  The classifier's weights are
            left exactly as they were before the call.
        """
        config = self.config
        stats = dataset.stats()
        run_name = run_name or datetime.now().strftime("run_%Y%m%d_%H%M%S")
        started_at = datetime.now(timezone.utc)

        try:
            images, labels = prepare_training_arrays(
                dataset.samples, self.preprocessor,
                progress_every=config.progress_every,
            )
        except Exception as exc:
            raise TrainingError(f"Could not prepare training data: {exc}") from exc

        # The arena holds everything fit needs; the raw bytes can go.
        dataset.release()

        total = len(images)
        split_at = split_point(total, config.validation_split)

        logger.info(
            "Training with %d samples (%d train / %d validation), %d epochs, batch %d",
            total, split_at, total - split_at,
            config.epochs, config.batch_size,
        )

        with classifier.exclusive():
            snapshot = classifier.model.get_weights()
            try:
                history = classifier.model.fit(
                    images,
                    labels,
                    epochs=config.epochs,
                    batch_size=config.batch_size,
                    validation_split=config.validation_split,
                    shuffle=True,
                    callbacks=[self._epoch_logger()],
                    verbose=0,
                )
            except Exception as exc:
                classifier.model.set_weights(snapshot)
                raise TrainingError(f"Model fit failed: {exc}") from exc
            finally:
                del snapshot
            classifier.trained = True

        # Copies, so the training part of the arena is freed with it.
        self.validation_data = (images[split_at:].copy(), labels[split_at:].copy())
        del images, labels

        report = TrainingReport(
            run_name=run_name,
            num_samples=stats.total,
            num_safe=stats.safe,
            num_spoiled=stats.spoiled,
            num_train=split_at,
            num_validation=total - split_at,
            config=config.to_dict(),
            history={
                key: [float(v) for v in values]
                for key, values in (history.history or {}).items()
            },
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Fit complete: loss=%s, accuracy=%s",
            report.final_loss, report.final_accuracy,
        )
        return report
