from django.apps import AppConfig
from django.conf import settings


class ClassifierConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'classifier'

    def ready(self):
        """Optionally load the spoilage model before the first request."""
        if getattr(settings, 'SPOILAGE_WARM_ON_STARTUP', False):
            _warm_model_store()


def _warm_model_store():
    """Populate the process-wide model store; failures fall back inside ``load``."""
    import logging
    logger = logging.getLogger(__name__)

    from classifier.model_loader import get_classifier

    classifier = get_classifier()
    logger.info(
        "Spoilage model ready (trained=%s).", classifier.trained,
    )
