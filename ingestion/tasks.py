"""
Celery tasks for the ingestion pipeline.

- process_queue: one queue run (beat every 30 minutes)
- enqueue_stale_products: feed the queue from stale products (every 3 hours)
- queue_housekeeping: reclaim stuck tasks, fail exhausted ones (every 15 minutes)
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from ingestion.services.runs import housekeeping_run, process_queue_run, stale_scan_run

logger = logging.getLogger(__name__)


@shared_task(
    name="ingestion.tasks.process_queue",
    time_limit=getattr(settings, "INGESTION_RUN_TIMEOUT_SECONDS", 540) + 60,
)
def process_queue(focus_tenant: Optional[str] = None) -> Dict[str, Any]:
    """
    Periodic queue run.

    Args:
        focus_tenant: Optional tenant slug overriding INGESTION_FOCUS_TENANT

    Returns:
        Run summary dict (taken, done, failed, throttled, deferred)
    """
    summary = process_queue_run(focus_tenant=focus_tenant)
    result = summary.to_dict()
    result["timestamp"] = timezone.now().isoformat()
    return result


@shared_task(name="ingestion.tasks.enqueue_stale_products")
def enqueue_stale_products(tenant_slug: Optional[str] = None) -> Dict[str, Any]:
    """
    Periodic stale scan over all active tenants (or one tenant).

    Returns:
        Dict with per-tenant scanned/enqueued counts
    """
    logger.info("Scanning for stale products...")
    results = stale_scan_run(tenant_slug=tenant_slug)
    enqueued = sum(r.get("enqueued", 0) for r in results.values())
    logger.info(f"Stale scan complete: {enqueued} tasks enqueued across {len(results)} tenants")
    return {
        "tenants": results,
        "enqueued": enqueued,
        "timestamp": timezone.now().isoformat(),
    }


@shared_task(name="ingestion.tasks.queue_housekeeping")
def queue_housekeeping() -> Dict[str, Any]:
    """
    Periodic housekeeping sweep.

    Returns:
        Housekeeping report dict
    """
    report = housekeeping_run()
    result = report.to_dict()
    result["timestamp"] = timezone.now().isoformat()
    return result
