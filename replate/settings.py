"""
Django settings for the Replate spoilage-classification service.

Only the pieces the classifier needs are configured: no database, no
auth, no templates.  Filesystem roots can be redirected through
environment variables so tests and deployments never write into the
source tree.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("REPLATE_SECRET_KEY", "replate-dev-only-secret-key")
DEBUG = os.environ.get("REPLATE_DEBUG", "0") == "1"
ALLOWED_HOSTS = os.environ.get("REPLATE_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")

INSTALLED_APPS = [
    "classifier",
]

MIDDLEWARE = [
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "replate.urls"
WSGI_APPLICATION = "replate.wsgi.application"

DATABASES = {}

USE_TZ = True
TIME_ZONE = "UTC"

# Uploads above this size are rejected before decoding.
DATA_UPLOAD_MAX_MEMORY_SIZE = 10 * 1024 * 1024

# ── Classifier storage ──────────────────────────────────────────────────────

MODELS_ROOT = Path(os.environ.get("REPLATE_MODELS_ROOT", BASE_DIR / "models"))
DATASETS_ROOT = Path(os.environ.get("REPLATE_DATASETS_ROOT", BASE_DIR / "training-data"))

# Load the model when the app registry is ready instead of on first request.
SPOILAGE_WARM_ON_STARTUP = os.environ.get("REPLATE_WARM_ON_STARTUP", "0") == "1"

# ── Logging ─────────────────────────────────────────────────────────────────

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "loggers": {
        "classifier": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "training": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
