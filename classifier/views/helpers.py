"""
Shared constants and helpers used across views.
"""

from __future__ import annotations

import json
from typing import Any, Dict

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10 MB

ALLOWED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/jpg",
    "image/webp",
    "image/bmp",
    "application/octet-stream",
})


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------

def parse_json_body(request) -> Dict[str, Any]:
    """Parse a JSON request body; an empty body is ``{}``.

    Raises ``ValueError`` on malformed JSON or a non-object payload.
    """
    if not request.body:
        return {}
    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValueError("JSON body must be an object.")
    return data
