# spamshield/config/__init__.py
from spamshield.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
