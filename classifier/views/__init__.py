"""
View package for the Replate classifier app.

Modules
-------
helpers.py        – Shared constants and helper functions.
classification.py – Food photo upload and analysis endpoint.
training_api.py   – Training run lifecycle APIs (start, status).
"""

# Re-export all views so urls.py can do: from .views import analyze_food, …
from .classification import analyze_food                              # noqa: F401
from .training_api import (                                           # noqa: F401
    api_training_start,
    api_training_status,
)
