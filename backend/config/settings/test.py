"""
Test settings.

Runs against an in-memory SQLite database with no external services.
"""

from .base import *  # noqa: F403
from .base import settings

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

settings.STRIPE_SECRET_KEY = "sk_test_dummy"
settings.STRIPE_WEBHOOK_SECRET = "whsec_test_dummy"
