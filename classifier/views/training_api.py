"""
Training API endpoints.

POST /api/training/start/    – Kick off a new training run (background).
GET  /api/training/status/   – Running flag plus the last report or error.
"""

from __future__ import annotations

import logging
from pathlib import Path

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from training.config import TrainingConfig
from training.tasks import (
    get_last_error,
    get_last_report,
    is_training_running,
    start_training,
)

from .helpers import parse_json_body

logger = logging.getLogger(__name__)

# TrainingConfig fields a request may set; paths and the rest stay with
# the operator.
REQUEST_CONFIG_KEYS = frozenset({"epochs", "batch_size", "shuffle_seed"})


@csrf_exempt
@require_POST
def api_training_start(request):
    """Start a new training run.

    Accepts an optional JSON body: ``{"directory": "...", "config": {...}}``.
    ``directory`` defaults to ``settings.DATASETS_ROOT``; ``config`` may only
    carry ``REQUEST_CONFIG_KEYS``.
    Returns 409 if a run is already in progress.
    """
    if is_training_running():
        return JsonResponse(
            {"error": "A training run is already in progress."},
            status=409,
        )

    try:
        body = parse_json_body(request)
    except ValueError:
        return JsonResponse({"error": "Invalid JSON body."}, status=400)

    directory = Path(body.get("directory") or settings.DATASETS_ROOT)
    if not directory.is_dir():
        return JsonResponse(
            {"error": f"Dataset directory not found: {directory}"},
            status=400,
        )

    overrides = body.get("config") or {}
    if not isinstance(overrides, dict):
        return JsonResponse({"error": "config must be an object."}, status=400)
    unknown = sorted(set(overrides) - REQUEST_CONFIG_KEYS)
    if unknown:
        return JsonResponse(
            {"error": f"Config keys not allowed: {', '.join(unknown)}"},
            status=400,
        )
    try:
        config = TrainingConfig(**overrides)
    except (TypeError, ValueError) as exc:
        return JsonResponse({"error": f"Bad config: {exc}"}, status=400)

    if start_training(directory, config) is None:
        return JsonResponse(
            {"error": "Could not start training (lock contention)."},
            status=409,
        )

    return JsonResponse({
        "status": "started",
        "directory": str(directory),
        "config": config.to_dict(),
    })


@require_GET
def api_training_status(request):
    """Return whether training is running and the last run's outcome."""
    report = get_last_report()
    return JsonResponse({
        "training_running": is_training_running(),
        "last_report": report.to_dict() if report else None,
        "last_error": get_last_error(),
    })
