"""
Training configuration and paths.

All tuneable settings live here so they are easy to find, review,
and override without touching training logic.

Directory conventions
---------------------
::

    replate/
    ├── models/
    │   ├── food-spoilage/
    │   │   └── v1/
    │   │       └── model.keras          ← Served model (atomically replaced)
    │   └── runs/                        ← One folder per training run
    │       └── run_20261019_101500/
    │           ├── report.json          ← TrainingReport
    │           ├── metrics.json         ← Holdout evaluation
    │           ├── classification_report.txt
    │           ├── confusion_matrix.png
    │           └── model_summary.txt
    │
    └── training-data/                   ← Default corpus root
        ├── safe/                        ← either this layout …
        ├── spoiled/
        └── Train/                       ← … or the legacy one
            ├── freshapples/
            └── rottenapples/
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from django.conf import settings

# ── Paths ───────────────────────────────────────────────────────────────────

MODELS_ROOT: Path = Path(settings.MODELS_ROOT)
DATASETS_ROOT: Path = Path(settings.DATASETS_ROOT)
RUNS_DIR: Path = MODELS_ROOT / "runs"


@dataclass
class TrainingConfig:
    """All hyperparameters and settings for a single training run.

    Attributes
    ----------
    epochs : int
        Full passes over the corpus (default 10).
    batch_size : int
        Mini-batch size (default 32).
    validation_split : float
        Fraction of the (shuffled) corpus Keras withholds for validation,
        taken from the end of the arrays (default 0.2).
    max_per_class : int
        Cap on samples kept per class when balancing (default 500).
    min_samples : int
        Fewer balanced samples than this aborts the run (default 10).
    progress_every : int
        Log progress and yield the thread every N converted samples
        (default 100).
    shuffle_seed : int | None
        Seed for the post-balancing shuffle; ``None`` → nondeterministic.
    evaluate : bool
        Run the holdout evaluation (confusion matrix, report) after fitting.
    runs_dir : Path
        Parent folder for per-run artefacts.
    """

    # ── Hyperparameters ─────────────────────────────────────────────────
    epochs: int = 10
    batch_size: int = 32
    validation_split: float = 0.2

    # ── Corpus ──────────────────────────────────────────────────────────
    max_per_class: int = 500
    min_samples: int = 10
    progress_every: int = 100
    shuffle_seed: Optional[int] = None

    # ── Reporting ───────────────────────────────────────────────────────
    evaluate: bool = True
    runs_dir: Path = RUNS_DIR

    # ── Metadata ────────────────────────────────────────────────────────
    notes: str = ""

    def __post_init__(self) -> None:
        if self.epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if not 0.0 <= self.validation_split < 1.0:
            raise ValueError(
                f"validation_split must be in [0, 1), got {self.validation_split}"
            )
        if self.progress_every < 1:
            raise ValueError(f"progress_every must be >= 1, got {self.progress_every}")
        self.runs_dir = Path(self.runs_dir)

    def run_output_dir(self, run_name: str) -> Path:
        """Return (and create) the output directory for a named run."""
        out = self.runs_dir / run_name
        out.mkdir(parents=True, exist_ok=True)
        return out

    def to_dict(self) -> dict:
        """Serialise to a JSON-safe dict (for saving alongside artefacts)."""
        data = asdict(self)
        data["runs_dir"] = str(self.runs_dir)
        return data
