# spamshield/jobs/__init__.py
