"""
Run entrypoints shared by Celery tasks, the API and management commands.

Each function reads settings once into a RunConfig and wires the
collaborators explicitly.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from ingestion.models import Tenant
from ingestion.queue.work_queue import WorkQueue
from ingestion.services.housekeeping import HousekeepingReport, run_housekeeping
from ingestion.services.ingestion_worker import IngestionWorker, RunSummary
from ingestion.services.run_config import RunConfig
from ingestion.services.stale_scanner import enqueue_seed_items, enqueue_stale_products
from ingestion.vendors.factory import VendorClientFactory

logger = logging.getLogger(__name__)


def process_queue_run(
    config: Optional[RunConfig] = None,
    client_factory: Optional[VendorClientFactory] = None,
    **overrides,
) -> RunSummary:
    """
    Execute one queue run.

    Args:
        config: RunConfig (built from settings + overrides if omitted)
        client_factory: Vendor client factory (HTTP clients by default)
        **overrides: RunConfig field overrides

    Returns:
        RunSummary
    """
    config = config or RunConfig.from_settings(**overrides)
    factory = client_factory or VendorClientFactory()
    try:
        return IngestionWorker(config, factory).process_once()
    finally:
        if client_factory is None:
            factory.close()


def stale_scan_run(
    config: Optional[RunConfig] = None,
    tenant_slug: Optional[str] = None,
    include_seeds: bool = True,
) -> Dict[str, Any]:
    """
    Enqueue stale products (and missing seeds) for the focus tenant or all
    active tenants.

    Returns:
        Dict of per-tenant scan results
    """
    config = config or RunConfig.from_settings()
    slug = tenant_slug or config.focus_tenant
    tenants = Tenant.objects.filter(is_active=True)
    if slug:
        tenants = tenants.filter(slug=slug)

    queue = WorkQueue(max_attempts=config.max_attempts)
    results: Dict[str, Any] = {}
    for tenant in tenants:
        try:
            result = enqueue_stale_products(tenant, limit=config.stale_scan_limit, queue=queue)
            if include_seeds:
                result["seeds_enqueued"] = enqueue_seed_items(tenant, queue=queue)
            results[tenant.slug] = result
        except Exception as e:
            logger.error(f"Stale scan failed for {tenant.slug}: {e}")
            results[tenant.slug] = {"error": str(e)}
            continue

    return results


def housekeeping_run(
    config: Optional[RunConfig] = None,
    tenant_slug: Optional[str] = None,
    processing_ttl_minutes: Optional[int] = None,
    max_attempts: Optional[int] = None,
    sleep_others_days: int = 0,
    clear_cooldown: bool = False,
) -> HousekeepingReport:
    """
    Run a housekeeping sweep with settings defaults.

    Raises:
        Tenant.DoesNotExist: If tenant_slug names no tenant
    """
    config = config or RunConfig.from_settings()
    slug = tenant_slug or config.focus_tenant
    tenant = Tenant.objects.get(slug=slug) if slug else None

    ttl = (
        timedelta(minutes=processing_ttl_minutes)
        if processing_ttl_minutes
        else config.processing_ttl
    )
    return run_housekeeping(
        processing_ttl=ttl,
        max_attempts=max_attempts or config.max_attempts,
        tenant=tenant,
        sleep_others_days=sleep_others_days,
        clear_cooldown=clear_cooldown,
    )
