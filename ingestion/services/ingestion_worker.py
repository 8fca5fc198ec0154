"""
Ingestion Worker - one queue run.

Run state machine:
    run lock -> global cooldown check -> claim batch -> group by tenant
    -> per chunk: renew run lock, lease rate limiter -> call vendor (retry with backoff)
       -> success: merge + specs + tags + freshness, mark done
       -> Throttled: cooldown the rest of the group, set global cooldown
       -> DailyQuotaExhausted: defer the rest of the key's tasks to the reset
       -> PermanentTaskError: fail the chunk
       -> other errors: retry_or_fail the chunk

Vendor failures apply to every task of the chunk that shared the call.
Per-item merge failures only touch that item. Rate limiter database errors
propagate and abort the run; tasks left in processing are reclaimed by
housekeeping.
"""

import logging
import random
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from ingestion.catalog.types import PriceRecord
from ingestion.exceptions import (
    DailyQuotaExhausted,
    LockContention,
    PermanentTaskError,
    Throttled,
    TransientVendorError,
)
from ingestion.models import CanonicalProduct, QueueTask, TaskStatus, Tenant
from ingestion.monitoring import add_ingestion_breadcrumb, capture_ingestion_error
from ingestion.queue.work_queue import WorkQueue
from ingestion.services.cooldown import is_global_cooldown_active, set_global_cooldown
from ingestion.services.enrichment import apply_tag_rules, extract_specs
from ingestion.services.merge import upsert_canonical
from ingestion.services.rate_limiter import RateLimiter
from ingestion.services.run_config import RunConfig
from ingestion.services.run_lock import RunLease
from ingestion.utils.freshness import refresh_freshness
from ingestion.utils.hot_boost import HotBoostRules
from ingestion.utils.scheduling import backoff_delay, jittered
from ingestion.vendors.affiliate import build_affiliate_url
from ingestion.vendors.factory import VendorClientFactory

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """
    Outcome counters of one run.

    Attributes:
        taken: Tasks claimed
        done: Tasks completed
        failed: Tasks whose processing failed this run (requeued for retry
            or moved to failed)
        throttled: Tasks put on cooldown because the vendor throttled
        deferred: Tasks returned to the queue until the daily quota resets
        skipped_reason: Why the run did nothing ("locked", "global_cooldown",
            "unknown_focus_tenant"), empty otherwise
    """

    taken: int = 0
    done: int = 0
    failed: int = 0
    throttled: int = 0
    deferred: int = 0
    skipped_reason: str = ""

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class IngestionWorker:
    """
    Runs the price refresh pipeline over one claimed batch.

    Args:
        config: RunConfig for this run
        client_factory: VendorClientFactory creating one client per credential
        queue: WorkQueue (built from config if omitted)
        limiter: RateLimiter (built from clock/sleep if omitted)
        clock: Callable returning the current aware datetime
        sleep: Callable used for inter-chunk and backoff delays
        rng: random.Random used for jitter
    """

    def __init__(
        self,
        config: RunConfig,
        client_factory: VendorClientFactory,
        queue: Optional[WorkQueue] = None,
        limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = timezone.now,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.client_factory = client_factory
        self.clock = clock
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.queue = queue or WorkQueue(max_attempts=config.max_attempts, clock=clock)
        self.limiter = limiter or RateLimiter(clock=clock, sleep=sleep)
        self._lease: Optional[RunLease] = None

    def process_once(self) -> RunSummary:
        """
        Execute one run.

        Returns:
            RunSummary with the run's counters
        """
        summary = RunSummary()
        lease = RunLease(ttl=self.config.run_lease_ttl, clock=self.clock)
        self._lease = lease

        try:
            with lease:
                self._run(summary)
        except LockContention:
            summary.skipped_reason = "locked"
            logger.info("Queue run skipped: another run holds the lock")
            return summary

        logger.info(
            f"Queue run finished: taken={summary.taken} done={summary.done} "
            f"failed={summary.failed} throttled={summary.throttled} "
            f"deferred={summary.deferred}"
        )
        return summary

    # ------------------------------------------------------------------
    # Run steps
    # ------------------------------------------------------------------

    def _run(self, summary: RunSummary):
        started = self.clock()
        deadline = started + self.config.run_timeout

        if is_global_cooldown_active(started):
            summary.skipped_reason = "global_cooldown"
            logger.info("Queue run skipped: global cooldown active")
            return

        focus = None
        if self.config.focus_tenant:
            focus = Tenant.objects.filter(slug=self.config.focus_tenant).first()
            if focus is None:
                summary.skipped_reason = "unknown_focus_tenant"
                logger.warning(f"Focus tenant '{self.config.focus_tenant}' does not exist")
                return

        tasks = self.queue.claim_batch(self.config.batch_size, tenant=focus)
        summary.taken = len(tasks)
        if not tasks:
            return

        groups: "OrderedDict[object, List[QueueTask]]" = OrderedDict()
        for task in tasks:
            groups.setdefault(task.tenant_id, []).append(task)

        exhausted: Dict[str, datetime] = {}

        for group in groups.values():
            if self.clock() >= deadline:
                logger.warning("Queue run deadline reached; leaving remaining tasks in processing")
                return

            tenant = group[0].tenant
            if not tenant.is_active:
                for task in group:
                    self.queue.fail(task, "tenant inactive")
                summary.failed += len(group)
                continue

            if not self._process_group(tenant, group, summary, deadline, exhausted):
                return

    def _process_group(
        self,
        tenant: Tenant,
        group: List[QueueTask],
        summary: RunSummary,
        deadline: datetime,
        exhausted: Dict[str, datetime],
    ) -> bool:
        """
        Process one tenant's tasks chunk by chunk.

        Returns:
            False when the run deadline was hit or the run lock was lost
            and the run should stop
        """
        client = self.client_factory.for_tenant(tenant)
        hot_boost = HotBoostRules.for_tenant(tenant)
        size = max(1, self.config.chunk_size)
        chunks = [group[i:i + size] for i in range(0, len(group), size)]

        add_ingestion_breadcrumb(
            "Processing tenant group", tenant.slug, extra_data={"tasks": len(group)}
        )

        for index, chunk in enumerate(chunks):
            remaining = [task for rest in chunks[index:] for task in rest]

            if self.clock() >= deadline:
                logger.warning(
                    f"Queue run deadline reached in {tenant.slug}; "
                    f"{len(remaining)} tasks left in processing"
                )
                return False

            if self._lease is not None and not self._lease.renew():
                logger.warning(
                    f"Run lock lost in {tenant.slug}; {len(remaining)} tasks left in processing"
                )
                return False

            retry_at = exhausted.get(tenant.limiter_key)
            if retry_at is not None:
                self._defer(remaining, retry_at, summary)
                return True

            item_ids = [task.item_id for task in chunk]
            try:
                records = self._fetch_chunk(client, tenant, item_ids)
            except DailyQuotaExhausted as e:
                exhausted[e.key] = e.retry_at
                self._defer(remaining, e.retry_at, summary)
                return True
            except Throttled as e:
                self._throttle(tenant, remaining, e, summary)
                return True
            except PermanentTaskError as e:
                capture_ingestion_error(e, tenant=tenant, item_ids=item_ids)
                for task in chunk:
                    self.queue.fail(task, f"vendor rejected request: {e}")
                summary.failed += len(chunk)
            except DatabaseError:
                raise
            except Exception as e:
                logger.error(f"Vendor call failed for {tenant.slug} ({len(chunk)} items): {e}")
                capture_ingestion_error(e, tenant=tenant, item_ids=item_ids)
                for task in chunk:
                    self.queue.retry_or_fail(task, f"vendor call failed: {e}")
                summary.failed += len(chunk)
            else:
                self._apply_records(tenant, chunk, records, hot_boost, summary)

            if index < len(chunks) - 1:
                self.sleep(
                    jittered(self.config.fetch_interval_seconds, self.config.fetch_jitter, self.rng)
                )

        return True

    def _fetch_chunk(self, client, tenant: Tenant, item_ids: List[str]) -> Dict[str, PriceRecord]:
        """
        One vendor call per attempt, each behind a rate limiter lease.

        Throttled and TransientVendorError are retried up to fetch_retries
        times with exponential backoff; the last error is re-raised.
        """
        attempt = 0
        while True:
            self.limiter.lease(tenant.limiter_key, tenant.tps, tenant.burst, tenant.daily_max)
            try:
                return client.fetch_items(item_ids)
            except (Throttled, TransientVendorError) as e:
                if attempt >= self.config.fetch_retries:
                    raise
                delay = backoff_delay(
                    attempt, self.config.fetch_backoff_seconds, self.config.fetch_jitter, self.rng
                )
                logger.warning(
                    f"{type(e).__name__} from vendor for {tenant.slug}; retry "
                    f"{attempt + 1}/{self.config.fetch_retries} in {delay:.1f}s"
                )
                self.sleep(delay)
                attempt += 1

    def _apply_records(
        self,
        tenant: Tenant,
        chunk: List[QueueTask],
        records: Dict[str, PriceRecord],
        hot_boost: HotBoostRules,
        summary: RunSummary,
    ):
        for task in chunk:
            now = self.clock()
            try:
                with transaction.atomic():
                    record = records.get(task.item_id)
                    if record is None:
                        self._refresh_missing(tenant, task.item_id, now, hot_boost)
                    else:
                        self._merge_record(tenant, record, now, hot_boost)
            except Exception as e:
                logger.error(f"Merge failed for {tenant.slug}:{task.item_id}: {e}")
                status = self.queue.retry_or_fail(task, e)
                summary.failed += 1
                if status == TaskStatus.FAILED:
                    capture_ingestion_error(e, tenant=tenant, item_ids=[task.item_id])
                continue

            self.queue.complete(task)
            summary.done += 1

    def _merge_record(
        self, tenant: Tenant, record: PriceRecord, now: datetime, hot_boost: HotBoostRules
    ) -> CanonicalProduct:
        affiliate_url = build_affiliate_url(record.url, tenant.affiliate_tag)
        incoming = record.to_catalog_record(tenant.source, affiliate_url, now)
        incoming.specs = extract_specs(incoming.title, incoming.features)

        product, created = upsert_canonical(tenant, incoming, now)

        tags = apply_tag_rules(
            tenant.tag_rules,
            title=product.title,
            features=product.features,
            material=product.material,
            price=product.price,
        )
        product.tags = list(product.tags) + [t for t in tags if t not in product.tags]
        refresh_freshness(
            product,
            now,
            hot_boost,
            hot_views=self.config.hot_views,
            warm_views=self.config.warm_views,
        )
        product.save(update_fields=["tags", "freshness_tier", "fresh_until"])

        if created:
            logger.debug(f"New product {product.dedupe_key} for {tenant.slug}")
        return product

    def _refresh_missing(
        self, tenant: Tenant, item_id: str, now: datetime, hot_boost: HotBoostRules
    ):
        """The vendor had no data for the item: only push its freshness forward."""
        product = CanonicalProduct.objects.filter(tenant=tenant, item_id=item_id).first()
        if product is None:
            logger.info(f"Vendor returned nothing for new item {tenant.slug}:{item_id}")
            return
        refresh_freshness(
            product,
            now,
            hot_boost,
            hot_views=self.config.hot_views,
            warm_views=self.config.warm_views,
        )
        product.save(update_fields=["freshness_tier", "fresh_until"])

    # ------------------------------------------------------------------
    # Failure transitions
    # ------------------------------------------------------------------

    def _throttle(self, tenant: Tenant, tasks: List[QueueTask], error: Exception, summary: RunSummary):
        now = self.clock()
        until = now + self.config.task_cooldown
        for task in tasks:
            self.queue.cooldown(task, until, attempts_delta=-1, error=f"throttled: {error}")
        summary.throttled += len(tasks)

        set_global_cooldown(
            self.config.global_cooldown,
            reason=f"throttled while processing {tenant.slug}: {error}",
            now=now,
        )
        logger.warning(
            f"Vendor throttled {tenant.slug}; {len(tasks)} tasks cooled down until {until.isoformat()}"
        )

    def _defer(self, tasks: List[QueueTask], retry_at: datetime, summary: RunSummary):
        for task in tasks:
            self.queue.cooldown(task, retry_at, attempts_delta=-1, error="daily quota exhausted")
        summary.deferred += len(tasks)
        logger.warning(f"Deferred {len(tasks)} tasks until {retry_at.isoformat()} (daily quota)")
