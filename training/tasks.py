"""
Background thread launcher and status helpers for training runs.

Training is long-running and must stay off the request path.  A single
module-level lock ensures at most one run per process; there is no
timeout, so an operator cancels by stopping the process, which is safe
because nothing is persisted before a run succeeds.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from .config import TrainingConfig
from .runner import run_training
from .train import TrainingReport

logger = logging.getLogger(__name__)

# Module-level lock to prevent concurrent training runs
_training_lock = threading.Lock()

_state_lock = threading.Lock()
_last_report: Optional[TrainingReport] = None
_last_error: Optional[str] = None


def start_training(
    directory: Path | str,
    config: Optional[TrainingConfig] = None,
) -> Optional[threading.Thread]:
    """Launch a training run in a background thread.

    Returns
    -------
    threading.Thread | None
        The started thread, or None if another run is already in progress.
    """
    if not _training_lock.acquire(blocking=False):
        logger.warning("Training already in progress — refusing to start.")
        return None

    def _run():
        global _last_report, _last_error
        try:
            report = run_training(directory, config)
        except Exception as exc:
            logger.exception("Background training failed")
            with _state_lock:
                _last_error = f"{type(exc).__name__}: {exc}"
        else:
            with _state_lock:
                _last_report = report
                _last_error = None
        finally:
            _training_lock.release()

    thread = threading.Thread(target=_run, name="training-runner", daemon=True)
    try:
        thread.start()
    except Exception:
        _training_lock.release()
        raise
    logger.info("Background training started for %s", directory)
    return thread


def is_training_running() -> bool:
    """Return True if a training run is currently in progress."""
    return _training_lock.locked()


def get_last_report() -> Optional[TrainingReport]:
    """Return the report of the most recent successful run, if any."""
    with _state_lock:
        return _last_report


def get_last_error() -> Optional[str]:
    """Return the error of the most recent run if it failed."""
    with _state_lock:
        return _last_error
