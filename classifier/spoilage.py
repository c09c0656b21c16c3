"""
Food-spoilage CNN and the conservative decision policy.

Architecture (fixed, not learned)::

    Input(224,224,3)
      → 4 × [Conv2D(f, 3×3, same, relu) → MaxPooling2D(2×2) → Dropout(0.25)]
            f = 32, 64, 128, 256
      → Flatten
      → Dense(512, relu) → Dropout(0.5)
      → Dense(256, relu) → Dropout(0.5)
      → Dense(2, softmax)              ← index 0 = P(safe), index 1 = P(spoiled)

The output ordering is shared by the trainer's one-hot labels and by
``decide``; never permute it.

Decision policy
---------------
A plain argmax is not acceptable for a food-safety gate.  ``decide`` maps
``(p_safe, p_spoiled)`` to a verdict in three tiers:

1. Gap below 0.20              → spoiled, confidence 0.5 (too close to call)
2. One class at or above 0.60  → that class, confidence = its probability
3. Otherwise                   → majority class, confidence = max probability
"""

from __future__ import annotations

import enum
import math
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import tensorflow as tf
from tensorflow.keras.layers import Conv2D, Dense, Dropout, Flatten, Input, MaxPooling2D
from tensorflow.keras.optimizers import Adam

from .errors import InferenceError
from .locking import ReadWriteLock
from .preprocessing import INPUT_SIZE, NUM_CHANNELS, TENSOR_SHAPE


# ── Topology & training constants ───────────────────────────────────────────

MODEL_NAME: str = "food_spoilage_cnn"
INPUT_SHAPE: Tuple[int, int, int] = (INPUT_SIZE[1], INPUT_SIZE[0], NUM_CHANNELS)
CONV_FILTERS: Tuple[int, ...] = (32, 64, 128, 256)
CONV_DROPOUT: float = 0.25
DENSE_UNITS: Tuple[int, ...] = (512, 256)
DENSE_DROPOUT: float = 0.5
NUM_CLASSES: int = 2
LEARNING_RATE: float = 0.001

# ── Decision policy constants ───────────────────────────────────────────────

UNCERTAINTY_MARGIN: float = 0.20     # minimum |p_safe − p_spoiled| to trust a call
CONFIDENT_THRESHOLD: float = 0.60    # single-class probability for a confident call
UNCERTAIN_CONFIDENCE: float = 0.5    # reported with the conservative default
_TOLERANCE: float = 1e-9


class Verdict(str, enum.Enum):
    """Binary safety verdict; also used as the training label."""

    SAFE = "safe"
    SPOILED = "spoiled"

    @property
    def position(self) -> int:
        """Position of this class in the model's softmax output."""
        return CLASS_ORDER.index(self)


Label = Verdict

CLASS_ORDER: Tuple[Verdict, Verdict] = (Verdict.SAFE, Verdict.SPOILED)


def label_vector(label: Verdict) -> List[float]:
    """One-hot target for *label*: ``[1, 0]`` safe, ``[0, 1]`` spoiled."""
    vec = [0.0] * NUM_CLASSES
    vec[label.position] = 1.0
    return vec


@dataclass(frozen=True)
class ClassificationResult:
    verdict: Verdict
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {"verdict": self.verdict.value, "confidence": float(self.confidence)}


# ═══════════════════════════════════════════════════════════════════════════
# Decision policy
# ═══════════════════════════════════════════════════════════════════════════

def _below(value: float, threshold: float) -> bool:
    return value < threshold and not math.isclose(value, threshold, abs_tol=_TOLERANCE)


def too_close_to_call(p_safe: float, p_spoiled: float) -> bool:
    """True when the gap is under ``UNCERTAINTY_MARGIN`` (float-tolerant)."""
    return _below(abs(p_safe - p_spoiled), UNCERTAINTY_MARGIN)


def decide(p_safe: float, p_spoiled: float) -> ClassificationResult:
    """Turn softmax probabilities into a verdict, erring towards "spoiled".

    Comparisons against the 0.20 / 0.60 boundaries tolerate float
    rounding, so ``(0.6, 0.4)`` lands on the confident-safe branch.

    Raises
    ------
    ValueError
        If either probability is not a finite number.
    """
    if not (math.isfinite(p_safe) and math.isfinite(p_spoiled)):
        raise ValueError(f"Non-finite probabilities: ({p_safe}, {p_spoiled})")

    if too_close_to_call(p_safe, p_spoiled):
        return ClassificationResult(Verdict.SPOILED, UNCERTAIN_CONFIDENCE)
    if not _below(p_safe, CONFIDENT_THRESHOLD):
        return ClassificationResult(Verdict.SAFE, p_safe)
    if not _below(p_spoiled, CONFIDENT_THRESHOLD):
        return ClassificationResult(Verdict.SPOILED, p_spoiled)

    verdict = Verdict.SAFE if p_safe > p_spoiled else Verdict.SPOILED
    return ClassificationResult(verdict, max(p_safe, p_spoiled))


# ═══════════════════════════════════════════════════════════════════════════
# Model building
# ═══════════════════════════════════════════════════════════════════════════

# Layer class name → constructor arguments, in order (Input excluded).
# ``build_model`` instantiates it; ``topology_mismatch`` checks loaded
# artifacts against it.
LayerPlan = List[Tuple[str, Dict[str, Any]]]

_LAYER_TYPES = {
    "Conv2D": Conv2D,
    "MaxPooling2D": MaxPooling2D,
    "Dropout": Dropout,
    "Flatten": Flatten,
    "Dense": Dense,
}


def layer_plan() -> LayerPlan:
    plan: LayerPlan = []
    for filters in CONV_FILTERS:
        plan += [
            ("Conv2D", {"filters": filters, "kernel_size": (3, 3),
                        "padding": "same", "activation": "relu"}),
            ("MaxPooling2D", {"pool_size": (2, 2)}),
            ("Dropout", {"rate": CONV_DROPOUT}),
        ]
    plan.append(("Flatten", {}))
    for units in DENSE_UNITS:
        plan += [
            ("Dense", {"units": units, "activation": "relu"}),
            ("Dropout", {"rate": DENSE_DROPOUT}),
        ]
    plan.append(("Dense", {"units": NUM_CLASSES, "activation": "softmax"}))
    return plan


def build_model() -> tf.keras.Model:
    """Build the (uncompiled) spoilage CNN with freshly initialised weights."""
    layers = [Input(shape=INPUT_SHAPE)]
    layers += [_LAYER_TYPES[kind](**kwargs) for kind, kwargs in layer_plan()]
    return tf.keras.Sequential(layers, name=MODEL_NAME)


def compile_model(model: tf.keras.Model) -> tf.keras.Model:
    """Attach the training configuration: Adam(1e-3), categorical cross-entropy."""
    model.compile(
        optimizer=Adam(learning_rate=LEARNING_RATE),
        loss="categorical_crossentropy",
        metrics=["accuracy"],
    )
    return model


def _config_value(value: Any) -> Any:
    """Normalise a ``get_config()`` entry for comparison with the plan."""
    if isinstance(value, list):
        return tuple(value)
    if isinstance(value, dict):
        # Activations may serialise as {"class_name": ..., "config": {"name": ...}}.
        return value.get("config", {}).get("name") or value.get("class_name")
    return value


def _same(expected: Any, actual: Any) -> bool:
    if isinstance(expected, float):
        return isinstance(actual, (int, float)) and math.isclose(expected, actual)
    return expected == actual


def topology_mismatch(model: tf.keras.Model) -> Optional[str]:
    """Describe how *model* differs from the spoilage CNN, or ``None``.

    Checks the input/output shapes and then every layer's class and its
    structural settings (filters, kernel size, padding, activation,
    units, pool size, dropout rate).
    """
    try:
        input_shape = tuple(model.input_shape)
        output_shape = tuple(model.output_shape)
    except (AttributeError, ValueError) as exc:
        return f"unreadable input/output shape ({exc})"
    if input_shape != (None,) + INPUT_SHAPE or output_shape != (None, NUM_CLASSES):
        return f"input={input_shape}, output={output_shape}"

    layers = [l for l in model.layers if type(l).__name__ != "InputLayer"]
    plan = layer_plan()
    if len(layers) != len(plan):
        return f"{len(layers)} layers, expected {len(plan)}"

    for i, (layer, (kind, expected)) in enumerate(zip(layers, plan)):
        actual_kind = type(layer).__name__
        if actual_kind != kind:
            return f"layer {i} is {actual_kind}, expected {kind}"
        config = layer.get_config()
        for key, value in expected.items():
            actual = _config_value(config.get(key))
            if not _same(value, actual):
                return f"layer {i} ({kind}) has {key}={actual!r}, expected {value!r}"
    return None


def has_expected_topology(model: tf.keras.Model) -> bool:
    """True if *model* is layer-for-layer the spoilage CNN."""
    return topology_mismatch(model) is None


# ═══════════════════════════════════════════════════════════════════════════
# Classifier
# ═══════════════════════════════════════════════════════════════════════════

class SpoilageClassifier:
    """A compiled spoilage model plus the lock that guards its weights.

    ``classify`` / ``predict_proba`` take the read side of the lock and
    never mutate the model, so they may run concurrently.  Anything that
    changes the weights must hold ``exclusive()``.
    """

    def __init__(self, model: tf.keras.Model, *, trained: bool = False) -> None:
        self.model = model
        self.trained = trained
        self.lock = ReadWriteLock()

    @classmethod
    def untrained(cls) -> "SpoilageClassifier":
        """Fresh, randomly initialised and compiled classifier."""
        return cls(compile_model(build_model()), trained=False)

    # ── Inference ──────────────────────────────────────────────────────

    def predict_proba(self, tensor: np.ndarray) -> Tuple[float, float]:
        """Return ``(p_safe, p_spoiled)`` for one preprocessed image.

        Raises
        ------
        InferenceError
            On a malformed tensor, a failing forward pass, or non-finite output.
        """
        try:
            arr = np.asarray(tensor, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise InferenceError(f"Input is not a numeric tensor: {exc}") from exc
        if arr.shape != TENSOR_SHAPE:
            raise InferenceError(
                f"Expected input tensor of shape {TENSOR_SHAPE}, got {arr.shape}."
            )

        with self.lock.read_locked():
            try:
                output = self.model(arr, training=False)
                probs = np.asarray(output, dtype=np.float64).reshape(-1)
            except Exception as exc:
                raise InferenceError(f"Forward pass failed: {exc}") from exc

        if probs.shape != (NUM_CLASSES,) or not np.all(np.isfinite(probs)):
            raise InferenceError(f"Invalid model output: {probs!r}")

        return float(probs[Verdict.SAFE.position]), float(probs[Verdict.SPOILED.position])

    def classify(self, tensor: np.ndarray) -> ClassificationResult:
        """Forward pass followed by the conservative decision policy."""
        p_safe, p_spoiled = self.predict_proba(tensor)
        return decide(p_safe, p_spoiled)

    # ── Lock helpers ──────────────────────────────────────────────────

    def exclusive(self) -> AbstractContextManager:
        """Hold the write lock: no inference runs while the weights change."""
        return self.lock.write_locked()

    def shared(self) -> AbstractContextManager:
        """Hold the read lock, e.g. while serialising the weights."""
        return self.lock.read_locked()

    # ── Introspection ─────────────────────────────────────────────────

    def summary(self) -> str:
        lines: list[str] = []
        self.model.summary(print_fn=lambda s, **_: lines.append(s))
        return "\n".join(lines)
