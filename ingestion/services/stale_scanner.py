"""
Stale scanner - feeds the work queue from catalog state.

Scans a tenant's canonical products ordered by (fresh_until asc nulls
first, updated_at asc) and enqueues a refresh task for each stale one,
bounded per run. Hot products get the lowest (earliest) priority.

Seed item ids configured on the tenant are enqueued while no canonical
product exists for them yet.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from django.db.models import F, Q
from django.utils import timezone

from ingestion.models import CanonicalProduct, FreshnessTier, Tenant
from ingestion.queue.work_queue import WorkQueue

logger = logging.getLogger(__name__)

TIER_PRIORITY = {
    FreshnessTier.HOT: 0,
    FreshnessTier.WARM: 1,
    FreshnessTier.COLD: 2,
}


def enqueue_stale_products(
    tenant: Tenant,
    limit: int = 25,
    now: Optional[datetime] = None,
    queue: Optional[WorkQueue] = None,
) -> Dict[str, int]:
    """
    Enqueue refresh tasks for the tenant's stale products.

    Args:
        tenant: Tenant to scan
        limit: Maximum products examined this run
        now: Current time
        queue: WorkQueue to enqueue into

    Returns:
        Dict with scanned / enqueued / skipped counts
    """
    now = now or timezone.now()
    queue = queue or WorkQueue(clock=lambda: now)
    cooldown = timedelta(days=tenant.enqueue_cooldown_days) if tenant.enqueue_cooldown_days else None

    stale = (
        CanonicalProduct.objects.filter(tenant=tenant)
        .exclude(item_id="")
        .filter(Q(fresh_until__isnull=True) | Q(fresh_until__lte=now))
        .order_by(F("fresh_until").asc(nulls_first=True), "updated_at")[:limit]
    )

    scanned = enqueued = 0
    for product in stale:
        scanned += 1
        priority = TIER_PRIORITY.get(product.freshness_tier, TIER_PRIORITY[FreshnessTier.COLD])
        if queue.enqueue(tenant, product.item_id, priority=priority, cooldown=cooldown):
            enqueued += 1

    result = {"scanned": scanned, "enqueued": enqueued, "skipped": scanned - enqueued}
    logger.info(f"Stale scan for {tenant.slug}: {result}")
    return result


def enqueue_seed_items(
    tenant: Tenant,
    now: Optional[datetime] = None,
    queue: Optional[WorkQueue] = None,
) -> int:
    """
    Enqueue the tenant's seed item ids that have no canonical product yet.

    Returns:
        Number of tasks enqueued
    """
    seeds = [str(s).strip() for s in tenant.seed_item_ids or [] if str(s).strip()]
    if not seeds:
        return 0

    now = now or timezone.now()
    queue = queue or WorkQueue(clock=lambda: now)
    known = set(
        CanonicalProduct.objects.filter(tenant=tenant, item_id__in=seeds).values_list(
            "item_id", flat=True
        )
    )
    missing = [s for s in seeds if s not in known]
    cooldown = timedelta(days=tenant.enqueue_cooldown_days) if tenant.enqueue_cooldown_days else None
    return queue.enqueue_many(tenant, missing, cooldown=cooldown) if missing else 0
