"""
Django base settings for the Catalog Ingestion Service.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-ingestion-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "ingestion",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"


# Database
# https://docs.djangoproject.com/en/4.2/ref/settings/#databases
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


# Password validation
# https://docs.djangoproject.com/en/4.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization
# https://docs.djangoproject.com/en/4.2/topics/i18n/

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/4.2/howto/static-files/

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
# https://docs.djangoproject.com/en/4.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Cache Configuration
# https://docs.djangoproject.com/en/4.2/topics/cache/
# Configured in environment-specific settings

CACHES = {
    # Override in environment-specific settings
}


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 10 * 60  # hard kill shortly after the run deadline


# Django REST Framework Configuration
# https://www.django-rest-framework.org/

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 100,
}


# DRF Spectacular (OpenAPI/Swagger) Configuration
# https://drf-spectacular.readthedocs.io/

SPECTACULAR_SETTINGS = {
    "TITLE": "Catalog Ingestion Service API",
    "DESCRIPTION": "Price refresh queue, rate limiting and catalog merge service",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "ingestion": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# Vendor Price API Configuration

VENDOR_API_BASE_URL = os.getenv("VENDOR_API_BASE_URL", "http://localhost:9000")
VENDOR_API_KEY = os.getenv("VENDOR_API_KEY", "")
VENDOR_REQUEST_TIMEOUT = float(os.getenv("VENDOR_REQUEST_TIMEOUT", "30"))


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.2"))

import sentry_sdk

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        send_default_pii=False,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        environment=SENTRY_ENVIRONMENT,
    )


# Ingestion Queue Configuration

# Tasks claimed per run
INGESTION_QUEUE_BATCH_SIZE = int(os.getenv("INGESTION_QUEUE_BATCH_SIZE", "10"))

# Per-task retry budget before a task is marked failed
INGESTION_QUEUE_MAX_ATTEMPTS = int(os.getenv("INGESTION_QUEUE_MAX_ATTEMPTS", "3"))

# Vendor call chunking (chunk size is the vendor's per-call item limit)
INGESTION_FETCH_CHUNK_SIZE = int(os.getenv("INGESTION_FETCH_CHUNK_SIZE", "10"))
INGESTION_FETCH_INTERVAL_SECONDS = float(os.getenv("INGESTION_FETCH_INTERVAL_SECONDS", "20"))
INGESTION_FETCH_JITTER = float(os.getenv("INGESTION_FETCH_JITTER", "0.5"))
INGESTION_FETCH_RETRIES = int(os.getenv("INGESTION_FETCH_RETRIES", "3"))
INGESTION_FETCH_BACKOFF_SECONDS = float(os.getenv("INGESTION_FETCH_BACKOFF_SECONDS", "2"))

# Throttling cooldowns
INGESTION_TASK_COOLDOWN_MINUTES = int(os.getenv("INGESTION_TASK_COOLDOWN_MINUTES", "30"))
INGESTION_GLOBAL_COOLDOWN_MIN_MINUTES = int(
    os.getenv("INGESTION_GLOBAL_COOLDOWN_MIN_MINUTES", "30")
)

# Single-run mutex and run deadline
INGESTION_RUN_LOCK_TTL_SECONDS = int(os.getenv("INGESTION_RUN_LOCK_TTL_SECONDS", "300"))
INGESTION_RUN_TIMEOUT_SECONDS = int(os.getenv("INGESTION_RUN_TIMEOUT_SECONDS", "540"))

# Housekeeping: processing tasks older than this are considered abandoned
INGESTION_PROCESSING_TTL_MINUTES = int(os.getenv("INGESTION_PROCESSING_TTL_MINUTES", "15"))

# Stale scan bound per tenant per run
INGESTION_STALE_SCAN_LIMIT = int(os.getenv("INGESTION_STALE_SCAN_LIMIT", "25"))

# Optional tenant scope for runs (empty = all tenants)
INGESTION_FOCUS_TENANT = os.getenv("INGESTION_FOCUS_TENANT", "")

# On-demand run endpoint guards
INGESTION_ALLOW_MANUAL_RUN = os.getenv("INGESTION_ALLOW_MANUAL_RUN", "").lower() in (
    "1", "true", "yes",
)
INGESTION_DISPATCH_TOKEN = os.getenv("INGESTION_DISPATCH_TOKEN", "")
INGESTION_DISPATCH_HEADER = "X-Ingestion-Dispatch-Token"


# Freshness Policy Configuration

FRESHNESS_HOT_VIEWS = int(os.getenv("FRESHNESS_HOT_VIEWS", "100"))
FRESHNESS_WARM_VIEWS = int(os.getenv("FRESHNESS_WARM_VIEWS", "20"))
