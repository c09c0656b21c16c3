"""
Training corpus discovery and balancing.

Two on-disk layouts are supported, each expressed as a ``DatasetLayout``
(a class-folder root plus a label strategy mapping folder name → label)::

    dataset/                      dataset/
    ├── safe/      *.jpg …        └── Train/
    └── spoiled/   *.png …            ├── freshapples/    → safe
                                      ├── rottenbanana/   → spoiled
                                      └── whatever/       → safe

Balancing keeps the first ``n = min(#safe, #spoiled, 500)`` files of each
class (sorted listing order), then shuffles the ``2n`` survivors.  Image
bytes are only read for files that survive balancing.

Public API
----------
TrainingSample    – One immutable labelled image.
DatasetLayout     – Folder root + label strategy.
detect_layout     – Pick the layout a corpus directory uses.
TrainingDataset   – ``TrainingDataset.load(path)`` → balanced, shuffled corpus.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from classifier.errors import InsufficientDataError
from classifier.spoilage import Label

logger = logging.getLogger(__name__)

IMG_EXTS = frozenset({".jpg", ".jpeg", ".png"})

DEFAULT_MAX_PER_CLASS = 500
DEFAULT_MIN_SAMPLES = 10

LabelStrategy = Callable[[str], Optional[Label]]


# ═══════════════════════════════════════════════════════════════════════════
# Samples & label strategies
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TrainingSample:
    raw_bytes: bytes = field(repr=False)
    label: Label
    source_tag: str
    observed_at: datetime


def label_by_class_folder(folder_name: str) -> Optional[Label]:
    """``safe`` → SAFE, ``spoiled`` → SPOILED, anything else is ignored."""
    try:
        return Label(folder_name)
    except ValueError:
        return None


def label_by_rotten_prefix(folder_name: str) -> Optional[Label]:
    """Legacy convention: ``rotten*`` folders are spoiled, all others safe."""
    return Label.SPOILED if folder_name.startswith("rotten") else Label.SAFE


@dataclass(frozen=True)
class DatasetLayout:
    """Where the class folders live and how their names map to labels.

    ``required`` lists sub-paths of the corpus root that must all be
    directories for the layout to apply; ``class_root`` is the folder
    whose immediate subfolders are fed to ``label_for``.
    """

    name: str
    class_root: str
    required: Tuple[str, ...]
    label_for: LabelStrategy

    def matches(self, directory: Path) -> bool:
        return all((directory / part).is_dir() for part in self.required)

    def class_folders(self, directory: Path) -> List[Tuple[Path, Label]]:
        """Labelled class folders in sorted name order."""
        root = directory / self.class_root
        folders: List[Tuple[Path, Label]] = []
        for sub in sorted(root.iterdir(), key=lambda p: p.name):
            if not sub.is_dir():
                continue
            label = self.label_for(sub.name)
            if label is not None:
                folders.append((sub, label))
        return folders


SAFE_SPOILED_LAYOUT = DatasetLayout(
    name="safe_spoiled",
    class_root=".",
    required=("safe", "spoiled"),
    label_for=label_by_class_folder,
)

LEGACY_TRAIN_LAYOUT = DatasetLayout(
    name="legacy_train",
    class_root="Train",
    required=("Train",),
    label_for=label_by_rotten_prefix,
)

LAYOUTS: Tuple[DatasetLayout, ...] = (SAFE_SPOILED_LAYOUT, LEGACY_TRAIN_LAYOUT)


def detect_layout(
    directory: Path,
    layouts: Sequence[DatasetLayout] = LAYOUTS,
) -> Optional[DatasetLayout]:
    """Return the first layout whose required folders exist, else ``None``."""
    for layout in layouts:
        if layout.matches(directory):
            return layout
    return None


def _is_image(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in IMG_EXTS


def discover_files(
    directory: Path,
    layout: DatasetLayout,
) -> Dict[Label, List[Tuple[Path, str]]]:
    """Map each label to ``(file, source_tag)`` pairs in listing order."""
    found: Dict[Label, List[Tuple[Path, str]]] = {Label.SAFE: [], Label.SPOILED: []}
    for folder, label in layout.class_folders(directory):
        for img in sorted(folder.iterdir(), key=lambda p: p.name):
            if _is_image(img):
                found[label].append((img, f"{folder.name}/{img.name}"))
    return found


# ═══════════════════════════════════════════════════════════════════════════
# Dataset
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DatasetStats:
    total: int
    safe: int
    spoiled: int
    balance: float      # |safe − spoiled| / max(safe, spoiled)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "safe": self.safe,
            "spoiled": self.spoiled,
            "balance": self.balance,
        }


class TrainingDataset:
    """A balanced, shuffled, in-memory corpus of ``TrainingSample`` objects."""

    def __init__(
        self,
        samples: Sequence[TrainingSample],
        *,
        source: Optional[Path] = None,
        layout: Optional[str] = None,
        discovered: Optional[Dict[str, int]] = None,
    ) -> None:
        self._samples: Tuple[TrainingSample, ...] = tuple(samples)
        self.source = source
        self.layout = layout
        self.discovered = dict(discovered or {})

    @classmethod
    def load(
        cls,
        directory: Path | str,
        *,
        max_per_class: int = DEFAULT_MAX_PER_CLASS,
        min_samples: int = DEFAULT_MIN_SAMPLES,
        seed: Optional[int] = None,
        layouts: Sequence[DatasetLayout] = LAYOUTS,
    ) -> "TrainingDataset":
        """Discover, balance and shuffle the corpus under *directory*.

        Raises
        ------
        InsufficientDataError
            If fewer than *min_samples* samples remain after balancing.
        """
        directory = Path(directory)
        layout = detect_layout(directory, layouts) if directory.is_dir() else None

        if layout is None:
            logger.warning("No supported dataset layout found under %s", directory)
            found: Dict[Label, List[Tuple[Path, str]]] = {Label.SAFE: [], Label.SPOILED: []}
        else:
            found = discover_files(directory, layout)

        n_safe, n_spoiled = len(found[Label.SAFE]), len(found[Label.SPOILED])
        logger.info(
            "Dataset %s (%s layout): %d safe, %d spoiled",
            directory, layout.name if layout else "none", n_safe, n_spoiled,
        )

        per_class = min(n_safe, n_spoiled, max_per_class)
        total = 2 * per_class
        if total < min_samples:
            raise InsufficientDataError(
                f"Need at least {min_samples} balanced samples, found {total} "
                f"({n_safe} safe, {n_spoiled} spoiled) under {directory}."
            )

        samples: List[TrainingSample] = []
        for label in (Label.SAFE, Label.SPOILED):
            for path, tag in found[label][:per_class]:
                samples.append(TrainingSample(
                    raw_bytes=path.read_bytes(),
                    label=label,
                    source_tag=tag,
                    observed_at=datetime.now(timezone.utc),
                ))

        random.Random(seed).shuffle(samples)

        logger.info(
            "Balanced dataset: %d samples (%d safe, %d spoiled)",
            len(samples), per_class, per_class,
        )
        return cls(
            samples,
            source=directory,
            layout=layout.name if layout else None,
            discovered={Label.SAFE.value: n_safe, Label.SPOILED.value: n_spoiled},
        )

    # ── Container protocol ─────────────────────────────────────────────

    @property
    def samples(self) -> Tuple[TrainingSample, ...]:
        return self._samples

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[TrainingSample]:
        return iter(self._samples)

    def release(self) -> None:
        """Drop every sample so the raw image bytes can be reclaimed.

        Called once the samples have been converted to training arrays.
        ``stats`` and ``len`` report an empty corpus afterwards.
        """
        self._samples = ()

    # ── Statistics ─────────────────────────────────────────────────────

    def stats(self) -> DatasetStats:
        safe = sum(1 for s in self._samples if s.label is Label.SAFE)
        spoiled = len(self._samples) - safe
        largest = max(safe, spoiled)
        balance = abs(safe - spoiled) / largest if largest else 0.0
        return DatasetStats(total=len(self._samples), safe=safe, spoiled=spoiled, balance=balance)

    def export_summary(self) -> dict:
        """Backup-friendly summary: counts, source and a UTC timestamp."""
        return {
            "samples": len(self._samples),
            "stats": self.stats().to_dict(),
            "source": str(self.source) if self.source else None,
            "layout": self.layout,
            "discovered": self.discovered,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
