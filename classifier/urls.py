"""
URL configuration for the classifier app.

Route groups
------------
- Analysis API : POST endpoint for food spoilage classification.
- Training API : start a background run, poll its status.
"""

from django.urls import path

from . import views

urlpatterns = [
    # ── Analysis ────────────────────────────────────────────────────────
    path("analyze/", views.analyze_food, name="analyze_food"),

    # ── Training ────────────────────────────────────────────────────────
    path("api/training/start/", views.api_training_start, name="api_training_start"),
    path("api/training/status/", views.api_training_status, name="api_training_status"),
]
