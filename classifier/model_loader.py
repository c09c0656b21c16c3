"""
Model artifact store: load once, serve forever, save atomically.

Artifact layout
---------------
::

    models/
    └── food-spoilage/
        └── v1/
            └── model.keras     ← zip: topology (config.json) + weights

Loading strategy
----------------
* First ``get()`` per store reads the artifact, checks it layer by layer
  against the spoilage CNN and recompiles (optimizer state is not trusted across serialisation).
* Missing / corrupt / incompatible artifact → ``ArtifactError`` is logged
  and a freshly initialised classifier is served instead.  The service
  must start without a trained model; predictions are just poor.
* ``save()`` writes a temp file beside the artifact and ``os.replace``s
  it, so readers only ever see a complete file.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

import tensorflow as tf
from django.conf import settings

from .errors import ArtifactError
from .spoilage import SpoilageClassifier, compile_model, topology_mismatch

logger = logging.getLogger(__name__)

# ── Constants ───────────────────────────────────────────────────────────────

ARTIFACT_VERSION: int = 1
MODELS_ROOT: Path = Path(settings.MODELS_ROOT)
MODEL_ARTIFACT_PATH: Path = (
    MODELS_ROOT / "food-spoilage" / f"v{ARTIFACT_VERSION}" / "model.keras"
)


class ModelStore:
    """Owns the single live ``SpoilageClassifier`` for one artifact path."""

    def __init__(self, artifact_path: Path | str = MODEL_ARTIFACT_PATH) -> None:
        self.artifact_path = Path(artifact_path)
        self._classifier: Optional[SpoilageClassifier] = None
        self._lock = threading.Lock()

    # ── Loading ─────────────────────────────────────────────────────────

    def _read_artifact(self) -> SpoilageClassifier:
        """Read and validate the artifact; every failure is an ``ArtifactError``."""
        if not self.artifact_path.is_file():
            raise ArtifactError(f"No model artifact at {self.artifact_path}")

        try:
            model = tf.keras.models.load_model(str(self.artifact_path), compile=False)
        except Exception as exc:
            raise ArtifactError(
                f"Could not read model artifact {self.artifact_path}: {exc}"
            ) from exc

        mismatch = topology_mismatch(model)
        if mismatch is not None:
            raise ArtifactError(
                f"Incompatible topology in {self.artifact_path}: {mismatch}"
            )

        return SpoilageClassifier(compile_model(model), trained=True)

    def load(self) -> SpoilageClassifier:
        """Return the persisted classifier, or an untrained one if that fails."""
        try:
            classifier = self._read_artifact()
        except ArtifactError:
            logger.warning(
                "Falling back to an untrained spoilage model", exc_info=True,
            )
            return SpoilageClassifier.untrained()

        logger.info("Loaded spoilage model from %s", self.artifact_path)
        return classifier

    def get(self) -> SpoilageClassifier:
        """Return the cached classifier, loading it on the first call only."""
        if self._classifier is None:
            with self._lock:
                if self._classifier is None:
                    self._classifier = self.load()
        return self._classifier

    def reset(self) -> None:
        """Forget the cached classifier; the next ``get()`` loads again."""
        with self._lock:
            self._classifier = None

    # ── Saving ──────────────────────────────────────────────────────────

    def save(self, classifier: SpoilageClassifier) -> Path:
        """Atomically persist *classifier* to the artifact path.

        The weights are read under the classifier's shared lock so a
        concurrent writer cannot change them mid-serialisation.
        """
        target = self.artifact_path
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=".model-", suffix=".keras",
        )
        os.close(fd)
        tmp_path = Path(tmp_name)

        try:
            with classifier.shared():
                classifier.model.save(str(tmp_path))
            os.replace(tmp_path, target)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.info("Saved spoilage model to %s", target)
        return target


# ── Process-wide default store ──────────────────────────────────────────────

_default_store: Optional[ModelStore] = None
_default_store_lock = threading.Lock()


def get_store() -> ModelStore:
    """Return the process-wide ``ModelStore`` for ``MODEL_ARTIFACT_PATH``."""
    global _default_store
    if _default_store is None:
        with _default_store_lock:
            if _default_store is None:
                _default_store = ModelStore()
    return _default_store


def get_classifier() -> SpoilageClassifier:
    """Shortcut for ``get_store().get()``."""
    return get_store().get()
