"""
Training run orchestrator — ties data → train → evaluate → save.

This is the main entry point for a complete retraining cycle:

1. Discover, balance and shuffle the corpus (``TrainingDataset.load``).
2. Fetch the live classifier from the model store.
3. Fit it in place (``Trainer.fit``, exclusive against inference).
4. Evaluate the validation holdout → metrics, confusion matrix, report.
5. Persist the weights atomically (``ModelStore.save``).
6. Write ``report.json`` beside the run's other artefacts.

Nothing is persisted unless every earlier step succeeded, so a failed or
killed run leaves the previously saved model untouched.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from classifier.model_loader import ModelStore, get_store

from .config import TrainingConfig
from .data import TrainingDataset
from .evaluate import evaluate_holdout
from .train import Trainer, TrainingReport

logger = logging.getLogger(__name__)


def run_training(
    directory: Path | str,
    config: Optional[TrainingConfig] = None,
    *,
    store: Optional[ModelStore] = None,
) -> TrainingReport:
    """Execute a full training run end-to-end.

    Parameters
    ----------
    directory : Path | str
        Corpus root in one of the layouts ``TrainingDataset`` understands.
    config : TrainingConfig, optional
        Hyperparameters; defaults to ``TrainingConfig()``.
    store : ModelStore, optional
        Store whose classifier is trained and saved; defaults to the
        process-wide store.

    Returns
    -------
    TrainingReport
        The completed report, including holdout metrics and artifact path.

    Raises
    ------
    InsufficientDataError
        If the corpus is too small; no training is attempted.
    TrainingError
        If conversion or fitting fails.
    """
    config = config or TrainingConfig()
    store = store or get_store()
    run_name = datetime.now().strftime("run_%Y%m%d_%H%M%S")

    # ── 1. Load data ────────────────────────────────────────────────
    logger.info("Loading training data from %s…", directory)
    dataset = TrainingDataset.load(
        directory,
        max_per_class=config.max_per_class,
        min_samples=config.min_samples,
        seed=config.shuffle_seed,
    )
    stats = dataset.stats()
    logger.info(
        "Training statistics: %d samples (%d safe, %d spoiled, %.1f%% difference)",
        stats.total, stats.safe, stats.spoiled, stats.balance * 100,
    )

    output_dir = config.run_output_dir(run_name)

    try:
        # ── 2. Classifier ───────────────────────────────────────────
        classifier = store.get()
        (output_dir / "model_summary.txt").write_text(
            classifier.summary(), encoding="utf-8",
        )

        # ── 3. Fit ──────────────────────────────────────────────────
        trainer = Trainer(config)
        report = trainer.fit(dataset, classifier, run_name=run_name)
        del dataset

        # ── 4. Evaluate holdout ─────────────────────────────────────
        if config.evaluate and trainer.validation_data is not None:
            images, labels = trainer.validation_data
            report.metrics = evaluate_holdout(
                classifier, images, labels, output_dir,
                batch_size=config.batch_size,
            )

        # ── 5. Persist ──────────────────────────────────────────────
        report.artifact_path = str(store.save(classifier))

    except Exception:
        logger.exception("Training run '%s' failed", run_name)
        raise

    # ── 6. Report ───────────────────────────────────────────────────
    (output_dir / "report.json").write_text(
        json.dumps(report.to_dict(), indent=2), encoding="utf-8",
    )

    logger.info(
        "═══ TRAINING COMPLETE: %s ═══\n"
        "  Samples  : %d (%d train / %d validation)\n"
        "  Loss     : %s\n"
        "  Accuracy : %s\n"
        "  Artefacts: %s\n"
        "  Model    : %s",
        run_name,
        report.num_samples, report.num_train, report.num_validation,
        report.final_loss,
        report.final_accuracy,
        output_dir,
        report.artifact_path,
    )
    return report
