"""
Celery configuration for the Catalog Ingestion Service.

This module configures Celery for the periodic queue run, stale scan
and housekeeping triggers.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("catalog_ingestion")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Configure task queues for different operations
app.conf.task_queues = {
    "ingest": {
        "exchange": "ingest",
        "routing_key": "ingest",
    },
    "maintenance": {
        "exchange": "maintenance",
        "routing_key": "maintenance",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Route specific tasks to their queues
app.conf.task_routes = {
    "ingestion.tasks.process_queue": {"queue": "ingest"},
    "ingestion.tasks.enqueue_stale_products": {"queue": "maintenance"},
    "ingestion.tasks.queue_housekeeping": {"queue": "maintenance"},
}

# Configure Celery Beat schedule for periodic tasks
app.conf.beat_schedule = {
    "process-queue-every-30-minutes": {
        "task": "ingestion.tasks.process_queue",
        "schedule": crontab(minute="*/30"),
    },
    "enqueue-stale-products-every-3-hours": {
        "task": "ingestion.tasks.enqueue_stale_products",
        "schedule": crontab(minute=5, hour="*/3"),
    },
    "queue-housekeeping-every-15-minutes": {
        "task": "ingestion.tasks.queue_housekeeping",
        "schedule": crontab(minute="*/15"),
    },
}
