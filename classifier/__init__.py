"""
Food-spoilage classification core.

Modules
-------
errors.py         – Error taxonomy (DecodeError, InferenceError, …).
preprocessing.py  – Image bytes → (1, 224, 224, 3) float32 tensor.
spoilage.py       – CNN topology, decision policy, ``SpoilageClassifier``.
locking.py        – Readers-writer lock guarding the live weights.
model_loader.py   – ``ModelStore``: load once, save atomically.
analysis.py       – Confidence-banded narrative for a verdict.
services.py       – Boundary used by the request layer.
"""
