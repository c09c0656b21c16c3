"""WSGI config for the Replate project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "replate.settings")

application = get_wsgi_application()
