"""
Queue housekeeping.

- release_stuck_processing: processing tasks older than the TTL were
  abandoned by a crashed or timed-out run; they go back to queued with the
  aborted attempt refunded.
- fail_exceeded_attempts: queued tasks that already used their retry
  budget are failed. Tasks still in processing are never failed here.
- sleep_non_focus_tenants: pushes queued tasks of every tenant except the
  focus tenant into the future.
- The global cooldown can be cleared in the same sweep.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from django.db.models import F, IntegerField
from django.db.models.functions import Greatest
from django.utils import timezone

from ingestion.models import QueueTask, TaskStatus, Tenant
from ingestion.services.cooldown import clear_global_cooldown

logger = logging.getLogger(__name__)

DEFAULT_PROCESSING_TTL = timedelta(minutes=15)
DEFAULT_SLEEP_DAYS = 14


@dataclass
class HousekeepingReport:
    """Counts of what one housekeeping sweep changed."""

    released_stuck: int = 0
    failed_exceeded: int = 0
    slept_non_focus: int = 0
    cleared_global_cooldown: bool = False
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def release_stuck_processing(
    ttl: timedelta = DEFAULT_PROCESSING_TTL,
    tenant: Optional[Tenant] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Return abandoned processing tasks to the queue.

    Args:
        ttl: Processing age after which a task counts as abandoned
        tenant: Optional tenant scope
        now: Current time

    Returns:
        Number of tasks released
    """
    now = now or timezone.now()
    stuck = QueueTask.objects.filter(status=TaskStatus.PROCESSING, updated_at__lte=now - ttl)
    if tenant is not None:
        stuck = stuck.filter(tenant=tenant)

    released = stuck.update(
        status=TaskStatus.QUEUED,
        attempts=Greatest(F("attempts") - 1, 0, output_field=IntegerField()),
        updated_at=now,
    )
    if released:
        logger.warning(f"Released {released} tasks stuck in processing for over {ttl}")
    return released


def fail_exceeded_attempts(
    max_attempts: int,
    tenant: Optional[Tenant] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Fail queued tasks whose attempts reached max_attempts.

    Processing tasks are left to their worker, or to release_stuck_processing
    once they outlive the processing TTL.

    Returns:
        Number of tasks failed
    """
    now = now or timezone.now()
    exceeded = QueueTask.objects.filter(
        status=TaskStatus.QUEUED,
        attempts__gte=max_attempts,
    )
    if tenant is not None:
        exceeded = exceeded.filter(tenant=tenant)

    failed = exceeded.update(
        status=TaskStatus.FAILED,
        error=f"housekeeping: attempts>={max_attempts}",
        updated_at=now,
    )
    if failed:
        logger.warning(f"Failed {failed} tasks that exceeded {max_attempts} attempts")
    return failed


def sleep_non_focus_tenants(
    focus: Tenant,
    days: int = DEFAULT_SLEEP_DAYS,
    now: Optional[datetime] = None,
) -> int:
    """
    Push queued tasks of all other tenants `days` into the future.

    Returns:
        Number of tasks put to sleep
    """
    if focus is None or days <= 0:
        return 0
    now = now or timezone.now()
    slept = (
        QueueTask.objects.filter(status=TaskStatus.QUEUED)
        .exclude(tenant=focus)
        .update(updated_at=now + timedelta(days=days))
    )
    if slept:
        logger.info(f"Put {slept} queued tasks outside {focus.slug} to sleep for {days} days")
    return slept


def run_housekeeping(
    processing_ttl: timedelta = DEFAULT_PROCESSING_TTL,
    max_attempts: int = 3,
    tenant: Optional[Tenant] = None,
    sleep_others_days: int = 0,
    clear_cooldown: bool = False,
    now: Optional[datetime] = None,
) -> HousekeepingReport:
    """
    Run a full housekeeping sweep.

    Args:
        processing_ttl: Stuck-task TTL
        max_attempts: Retry budget used to fail exhausted tasks
        tenant: Focus tenant; scopes release/fail and is the tenant kept
            awake when sleep_others_days > 0
        sleep_others_days: Days to push other tenants' queued tasks (0 = off)
        clear_cooldown: Also clear the global cooldown
        now: Current time

    Returns:
        HousekeepingReport
    """
    now = now or timezone.now()
    report = HousekeepingReport(
        params={
            "processing_ttl_minutes": processing_ttl.total_seconds() / 60,
            "max_attempts": max_attempts,
            "tenant": tenant.slug if tenant else None,
            "sleep_others_days": sleep_others_days,
        }
    )

    report.released_stuck = release_stuck_processing(processing_ttl, tenant, now)
    report.failed_exceeded = fail_exceeded_attempts(max_attempts, tenant, now)
    if tenant is not None and sleep_others_days > 0:
        report.slept_non_focus = sleep_non_focus_tenants(tenant, sleep_others_days, now)
    if clear_cooldown:
        clear_global_cooldown()
        report.cleared_global_cooldown = True

    logger.info(
        f"Housekeeping: released={report.released_stuck} failed={report.failed_exceeded} "
        f"slept={report.slept_non_focus} cleared_cooldown={report.cleared_global_cooldown}"
    )
    return report
