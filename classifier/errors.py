"""
Error taxonomy for the spoilage classification core.

Every failure the core can raise derives from ``SpoilageError`` so the
service layer can map each kind to a defined response:

DecodeError            – image bytes could not be decoded (ask for a new photo).
InferenceError         – forward pass failed (caller substitutes a default).
ArtifactError          – model file missing / corrupt (ModelStore recovers).
TrainingError          – training run failed (persisted model untouched).
InsufficientDataError  – training corpus too small after balancing.
"""


class SpoilageError(Exception):
    """Base class for all errors raised by the classification core."""


class DecodeError(SpoilageError):
    """The supplied bytes are not a decodable image."""


class InferenceError(SpoilageError):
    """The classifier forward pass failed."""


class ArtifactError(SpoilageError):
    """The persisted model artifact could not be read or is incompatible."""


class TrainingError(SpoilageError):
    """A training run failed before its result was persisted."""


class InsufficientDataError(TrainingError):
    """Too few samples remain after balancing to run a training pass."""
