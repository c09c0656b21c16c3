"""
Root URL configuration for the Replate project.

All classifier functionality lives under ``/classifier/``.
"""

from django.urls import include, path

urlpatterns = [
    path("classifier/", include("classifier.urls")),
]
