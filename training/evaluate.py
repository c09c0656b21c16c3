"""
Holdout evaluation — run after every successful fit.

Scores the validation slice Keras withheld during training, both with the
raw argmax and with the conservative ``decide`` policy that serving uses,
and produces:

- ``confusion_matrix.png`` (policy verdicts vs true labels).
- ``classification_report.txt`` via ``sklearn.metrics.classification_report``.
- ``metrics.json`` with all numbers for programmatic use.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for server
import matplotlib.pyplot as plt
import numpy as np
from sklearn.metrics import (
    accuracy_score,
    classification_report,
    confusion_matrix,
    precision_recall_fscore_support,
)

from classifier.spoilage import (
    CLASS_ORDER,
    SpoilageClassifier,
    Verdict,
    decide,
    too_close_to_call,
)

logger = logging.getLogger(__name__)

CLASS_NAMES: List[str] = [v.value for v in CLASS_ORDER]


# ═══════════════════════════════════════════════════════════════════════════
# Core evaluation
# ═══════════════════════════════════════════════════════════════════════════

def evaluate_holdout(
    classifier: SpoilageClassifier,
    images: np.ndarray,
    labels: np.ndarray,
    output_dir: Path,
    *,
    batch_size: int = 32,
) -> Dict[str, Any]:
    """Evaluate *classifier* on the holdout arrays and save all artefacts.

    Parameters
    ----------
    classifier : SpoilageClassifier
        Freshly trained classifier.
    images : np.ndarray
        ``(N, 224, 224, 3)`` holdout images in [0, 1].
    labels : np.ndarray
        ``(N, 2)`` one-hot labels in class order (safe, spoiled).
    output_dir : Path
        Where to write confusion_matrix.png, classification_report.txt
        and metrics.json.

    Returns
    -------
    dict
        Keys: num_samples, argmax_accuracy, policy_accuracy, uncertain_rate,
        false_safe, per_class (list), confusion_matrix (nested list).
        Empty holdouts return ``{"num_samples": 0}``.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    if len(images) == 0:
        logger.warning("Empty holdout — skipping evaluation")
        metrics: Dict[str, Any] = {"num_samples": 0}
        (output_dir / "metrics.json").write_text(
            json.dumps(metrics, indent=2), encoding="utf-8",
        )
        return metrics

    # ── Forward pass ────────────────────────────────────────────────
    with classifier.shared():
        probs = np.asarray(
            classifier.model.predict(images, batch_size=batch_size, verbose=0),
            dtype=np.float64,
        )

    y_true = np.argmax(labels, axis=1).tolist()
    y_argmax = np.argmax(probs, axis=1).tolist()

    decisions = [decide(float(p[0]), float(p[1])) for p in probs]
    y_policy = [d.verdict.position for d in decisions]
    uncertain = sum(1 for p in probs if too_close_to_call(float(p[0]), float(p[1])))

    # A spoiled sample reported as safe is the costly mistake.
    safe, spoiled = Verdict.SAFE.position, Verdict.SPOILED.position
    false_safe = sum(1 for t, p in zip(y_true, y_policy) if t == spoiled and p == safe)

    # ── Artefacts ───────────────────────────────────────────────────
    positions = [v.position for v in CLASS_ORDER]
    cm = confusion_matrix(y_true, y_policy, labels=positions)
    _save_confusion_matrix(cm, CLASS_NAMES, output_dir)

    report_text = classification_report(
        y_true, y_policy,
        labels=positions,
        target_names=CLASS_NAMES,
        digits=4,
        zero_division=0,
    )
    (output_dir / "classification_report.txt").write_text(
        f"Decision policy on {len(y_true)} holdout images "
        f"({uncertain} too close to call, {false_safe} spoiled reported safe)\n\n"
        f"{report_text}",
        encoding="utf-8",
    )

    precision, recall, f1, support = precision_recall_fscore_support(
        y_true, y_policy, labels=positions, zero_division=0,
    )
    per_class = [
        {
            "class": name,
            "precision": round(float(precision[i]), 4),
            "recall": round(float(recall[i]), 4),
            "f1": round(float(f1[i]), 4),
            "support": int(support[i]),
        }
        for i, name in enumerate(CLASS_NAMES)
    ]

    metrics = {
        "num_samples": len(y_true),
        "argmax_accuracy": round(float(accuracy_score(y_true, y_argmax)), 4),
        "policy_accuracy": round(float(accuracy_score(y_true, y_policy)), 4),
        "uncertain_rate": round(uncertain / len(y_true), 4),
        "false_safe": int(false_safe),
        "per_class": per_class,
        "confusion_matrix": cm.tolist(),
    }
    (output_dir / "metrics.json").write_text(
        json.dumps(metrics, indent=2), encoding="utf-8",
    )

    logger.info(
        "Holdout of %d: argmax accuracy %.4f, policy accuracy %.4f, "
        "%d uncertain, %d false-safe",
        len(y_true), metrics["argmax_accuracy"], metrics["policy_accuracy"],
        uncertain, false_safe,
    )
    return metrics


# ═══════════════════════════════════════════════════════════════════════════
# Confusion matrix plot
# ═══════════════════════════════════════════════════════════════════════════

def _save_confusion_matrix(
    cm: np.ndarray,
    class_names: List[str],
    output_dir: Path,
) -> Path:
    """Plot policy verdicts against true labels, counts and row shares.

    The spoiled-as-safe cell is outlined in red.
    """
    row_totals = cm.sum(axis=1, keepdims=True)
    shares = np.divide(cm, row_totals, out=np.zeros(cm.shape, dtype=float), where=row_totals > 0)

    fig, ax = plt.subplots(figsize=(5, 4.5))
    ax.imshow(shares, vmin=0.0, vmax=1.0, cmap="Greens")
    ax.set_title("Holdout: decision policy vs. truth")
    ax.set_xticks(range(len(class_names)), labels=[f"says {n}" for n in class_names])
    ax.set_yticks(range(len(class_names)), labels=[f"is {n}" for n in class_names])

    for (row, col), count in np.ndenumerate(cm):
        ax.annotate(
            f"{count}\n{shares[row, col]:.0%}",
            xy=(col, row), ha="center", va="center",
            color="white" if shares[row, col] > 0.5 else "black",
        )

    danger = (Verdict.SPOILED.position, Verdict.SAFE.position)
    ax.add_patch(plt.Rectangle(
        (danger[1] - 0.5, danger[0] - 0.5), 1, 1,
        fill=False, edgecolor="red", linewidth=2,
    ))
    fig.tight_layout()

    out_path = output_dir / "confusion_matrix.png"
    fig.savefig(out_path, dpi=120)
    plt.close(fig)
    logger.info("Confusion matrix plot written to %s", out_path)
    return out_path
