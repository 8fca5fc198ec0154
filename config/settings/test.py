"""
Test settings for the Catalog Ingestion Service.

Uses in-memory SQLite and eager Celery for fast test execution.
"""

import os
from .base import *

# Test mode
DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Test Cache - use local memory cache
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Test Celery - run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["ingestion"]["level"] = "WARNING"

# Password validators disabled for faster tests
AUTH_PASSWORD_VALIDATORS = []

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

# Test ingestion settings - no real waiting
INGESTION_FETCH_INTERVAL_SECONDS = 0
INGESTION_FETCH_BACKOFF_SECONDS = 0
INGESTION_FETCH_RETRIES = 0
INGESTION_ALLOW_MANUAL_RUN = False
INGESTION_DISPATCH_TOKEN = "test-dispatch-token"
VENDOR_API_BASE_URL = "https://vendor.test"
VENDOR_API_KEY = "test-key"
VENDOR_REQUEST_TIMEOUT = 5
