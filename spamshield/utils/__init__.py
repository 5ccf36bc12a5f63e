# spamshield/utils/__init__.py
