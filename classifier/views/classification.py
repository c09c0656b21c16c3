"""
Food analysis endpoint — accept an upload, run inference, return a verdict.
"""

from __future__ import annotations

import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from classifier.analysis import MODEL_UNAVAILABLE, describe
from classifier.errors import DecodeError, InferenceError
from classifier.services import classify_result, conservative_default

from .helpers import ALLOWED_CONTENT_TYPES, MAX_UPLOAD_SIZE

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def analyze_food(request):
    """Classify an uploaded food photo as safe or spoiled.

    Workflow
    --------
    1. Validate the upload (presence, size, content-type).
    2. Preprocess + classify in memory; nothing is written to disk.
    3. ``DecodeError``     → 400, the client should send another photo.
       ``InferenceError``  → 200 with the conservative default verdict
       (spoiled, 0.5) and ``fallback: true``.
    4. Attach the narrative for the verdict's confidence band.
    """
    if "image" not in request.FILES:
        return JsonResponse({"error": "No image file provided."}, status=400)

    image_file = request.FILES["image"]

    if image_file.content_type not in ALLOWED_CONTENT_TYPES:
        return JsonResponse(
            {"error": f"Unsupported file type: {image_file.content_type}"},
            status=400,
        )

    if image_file.size > MAX_UPLOAD_SIZE:
        return JsonResponse(
            {"error": f"File too large ({image_file.size:,} bytes). "
                      f"Max {MAX_UPLOAD_SIZE:,}."},
            status=400,
        )

    fallback = False
    try:
        result = classify_result(image_file.read())
        analysis = describe(result)
    except DecodeError as exc:
        logger.info("Rejected undecodable upload %s: %s", image_file.name, exc)
        return JsonResponse(
            {"error": "Could not read the image. Please upload another photo."},
            status=400,
        )
    except InferenceError:
        logger.exception("Inference failed for file %s", image_file.name)
        result = conservative_default()
        analysis = MODEL_UNAVAILABLE
        fallback = True

    logger.info(
        "Analyzed %s → %s (confidence=%.4f, fallback=%s)",
        image_file.name, result.verdict.value, result.confidence, fallback,
    )

    return JsonResponse({
        **result.to_dict(),
        **analysis.to_dict(),
        "fallback": fallback,
    })
