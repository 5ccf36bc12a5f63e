# spamshield/services/__init__.py
