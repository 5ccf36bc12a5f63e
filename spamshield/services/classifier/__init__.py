# spamshield/services/classifier/__init__.py
from spamshield.services.classifier.models import ClassifierMetadata, ModelHandle
from spamshield.services.classifier.service import SpamClassifierService

__all__ = ["ClassifierMetadata", "ModelHandle", "SpamClassifierService"]
