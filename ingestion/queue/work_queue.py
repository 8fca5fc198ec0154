"""
Work Queue - persistent per-item fetch tasks.

Tasks move queued -> processing -> done/failed. The claim step is a
conditional UPDATE on status='queued', so concurrent callers never both
claim the same task; a zero rowcount means another caller won and the task
is skipped.

updated_at is also the eligibility timestamp: a task is only claimable once
updated_at <= now, which is how per-task cooldowns are expressed.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, F, IntegerField
from django.db.models.functions import Greatest
from django.utils import timezone

from ingestion.models import QueueTask, TaskStatus, Tenant

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


def _error_text(error) -> str:
    if error is None:
        return ""
    text = str(error) or error.__class__.__name__
    return text[:MAX_ERROR_LENGTH]


class WorkQueue:
    """
    Database-backed work queue of QueueTask rows.

    Args:
        max_attempts: Per-task retry budget
        clock: Callable returning the current aware datetime
    """

    ACTIVE_STATUSES = (TaskStatus.QUEUED, TaskStatus.PROCESSING)

    def __init__(self, max_attempts: int = 3, clock: Callable[[], datetime] = timezone.now):
        self.max_attempts = max_attempts
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def enqueue(
        self,
        tenant: Tenant,
        item_id: str,
        priority: int = 0,
        not_before: Optional[datetime] = None,
        cooldown: Optional[timedelta] = None,
    ) -> bool:
        """
        Insert or requeue a task for (tenant, item_id).

        Skipped when the existing task is already queued or processing, when
        it was updated within `cooldown`, or when it has failed / used up its
        attempts. Calling twice is harmless.

        Args:
            tenant: Owning tenant
            item_id: Vendor item identifier
            priority: Lower values are claimed first among equal timestamps
            not_before: Earliest claim time (defaults to now)
            cooldown: Minimum age of the existing task before it is requeued

        Returns:
            True if a task was created or requeued
        """
        item_id = str(item_id or "").strip()
        if not item_id:
            return False

        now = self.now()
        eligible_at = not_before or now

        with transaction.atomic():
            task = (
                QueueTask.objects.select_for_update()
                .filter(tenant=tenant, item_id=item_id)
                .first()
            )

            if task is None:
                try:
                    with transaction.atomic():
                        QueueTask.objects.create(
                            tenant=tenant,
                            item_id=item_id,
                            status=TaskStatus.QUEUED,
                            attempts=0,
                            priority=priority,
                            created_at=now,
                            updated_at=eligible_at,
                        )
                except IntegrityError:
                    # Concurrent enqueue created it first
                    logger.debug(f"Enqueue race lost for {tenant.slug}:{item_id}")
                    return False
                return True

            if task.status in self.ACTIVE_STATUSES:
                return False
            if task.status == TaskStatus.FAILED:
                return False
            if task.status != TaskStatus.DONE and task.attempts >= self.max_attempts:
                return False
            if cooldown and now - task.updated_at < cooldown:
                return False

            task.status = TaskStatus.QUEUED
            task.attempts = 0
            task.priority = priority
            task.error = ""
            task.updated_at = eligible_at
            task.save(update_fields=["status", "attempts", "priority", "error", "updated_at"])
            return True

    def enqueue_many(
        self,
        tenant: Tenant,
        item_ids: Iterable[str],
        priority: int = 0,
        not_before: Optional[datetime] = None,
        cooldown: Optional[timedelta] = None,
    ) -> int:
        """Enqueue distinct item ids; returns how many were (re)queued."""
        seen = set()
        count = 0
        for item_id in item_ids:
            item_id = str(item_id or "").strip()
            if not item_id or item_id in seen:
                continue
            seen.add(item_id)
            if self.enqueue(tenant, item_id, priority, not_before, cooldown):
                count += 1

        logger.info(f"Enqueued {count}/{len(seen)} items for {tenant.slug}")
        return count

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    def claim_batch(self, limit: int, tenant: Optional[Tenant] = None) -> List[QueueTask]:
        """
        Claim up to `limit` eligible tasks for processing.

        Candidates are ordered by (updated_at, priority, attempts, tenant, item id).
        Each claim is an independent compare-and-swap; tasks taken by a
        concurrent caller in between are silently dropped.

        Args:
            limit: Maximum number of tasks to claim
            tenant: Optional tenant scope

        Returns:
            Claimed tasks, already in PROCESSING with attempts incremented
        """
        if limit <= 0:
            return []

        now = self.now()
        candidates = QueueTask.objects.filter(status=TaskStatus.QUEUED, updated_at__lte=now)
        if tenant is not None:
            candidates = candidates.filter(tenant=tenant)
        candidates = list(
            candidates.select_related("tenant").order_by(
                "updated_at", "priority", "attempts", "tenant__slug", "item_id"
            )[:limit]
        )

        claimed = []
        for task in candidates:
            with transaction.atomic():
                updated = QueueTask.objects.filter(
                    pk=task.pk, status=TaskStatus.QUEUED, updated_at__lte=now
                ).update(
                    status=TaskStatus.PROCESSING,
                    attempts=F("attempts") + 1,
                    updated_at=now,
                )
            if not updated:
                logger.debug(f"Claim race lost for task {task.pk}")
                continue

            task.refresh_from_db(fields=["status", "attempts", "updated_at"])
            claimed.append(task)

        if claimed:
            logger.info(f"Claimed {len(claimed)}/{len(candidates)} queued tasks")
        return claimed

    def complete(self, task: QueueTask):
        """Mark a task done and clear its error."""
        now = self.now()
        QueueTask.objects.filter(pk=task.pk).update(
            status=TaskStatus.DONE, error="", updated_at=now
        )
        task.status = TaskStatus.DONE
        task.error = ""
        task.updated_at = now

    def retry_or_fail(self, task: QueueTask, error=None) -> str:
        """
        Requeue a task for immediate retry, or fail it once attempts are used up.

        Returns:
            The new status
        """
        now = self.now()
        status = TaskStatus.QUEUED if task.attempts < self.max_attempts else TaskStatus.FAILED
        message = _error_text(error)

        QueueTask.objects.filter(pk=task.pk).update(status=status, error=message, updated_at=now)
        task.status = status
        task.error = message
        task.updated_at = now

        if status == TaskStatus.FAILED:
            logger.error(
                f"Task {task.tenant_id}:{task.item_id} failed after {task.attempts} attempts: {message}"
            )
        return status

    def fail(self, task: QueueTask, error=None):
        """Fail a task immediately without retry."""
        now = self.now()
        message = _error_text(error)
        QueueTask.objects.filter(pk=task.pk).update(
            status=TaskStatus.FAILED, error=message, updated_at=now
        )
        task.status = TaskStatus.FAILED
        task.error = message
        task.updated_at = now
        logger.error(f"Task {task.tenant_id}:{task.item_id} failed permanently: {message}")

    def cooldown(
        self,
        task: QueueTask,
        until: datetime,
        attempts_delta: int = 0,
        error=None,
    ):
        """
        Return a task to the queue with eligibility pushed to `until`.

        Args:
            task: Task to defer
            until: Not-eligible-before timestamp
            attempts_delta: Added to attempts (negative to refund), floored at 0
            error: Optional reason recorded on the task
        """
        updates = {"status": TaskStatus.QUEUED, "updated_at": until}
        if attempts_delta:
            updates["attempts"] = Greatest(
                F("attempts") + attempts_delta, 0, output_field=IntegerField()
            )
        if error is not None:
            updates["error"] = _error_text(error)

        QueueTask.objects.filter(pk=task.pk).update(**updates)
        task.status = TaskStatus.QUEUED
        task.updated_at = until
        task.attempts = max(0, task.attempts + attempts_delta)
        if error is not None:
            task.error = _error_text(error)

    # ------------------------------------------------------------------
    # Administrative
    # ------------------------------------------------------------------

    def requeue_failed(
        self,
        tenant: Optional[Tenant] = None,
        limit: int = 200,
        reason_contains: Optional[str] = None,
    ) -> int:
        """
        Move failed tasks back to queued with a fresh retry budget.

        Args:
            tenant: Optional tenant scope
            limit: Maximum tasks to requeue
            reason_contains: Only requeue tasks whose error contains this text

        Returns:
            Number of tasks requeued
        """
        failed = QueueTask.objects.filter(status=TaskStatus.FAILED)
        if tenant is not None:
            failed = failed.filter(tenant=tenant)
        if reason_contains:
            failed = failed.filter(error__icontains=reason_contains)
        ids = list(failed.order_by("updated_at").values_list("pk", flat=True)[:limit])

        count = QueueTask.objects.filter(pk__in=ids, status=TaskStatus.FAILED).update(
            status=TaskStatus.QUEUED, attempts=0, error="", updated_at=self.now()
        )
        logger.info(f"Requeued {count} failed tasks")
        return count

    def tasks_by_status(
        self, status: str, tenant: Optional[Tenant] = None, limit: int = 20
    ) -> List[QueueTask]:
        """Most recently updated tasks in a given status."""
        tasks = QueueTask.objects.filter(status=status).select_related("tenant")
        if tenant is not None:
            tasks = tasks.filter(tenant=tenant)
        return list(tasks.order_by("-updated_at")[:limit])

    def status_counts(self, tenant: Optional[Tenant] = None) -> Dict[str, int]:
        """Task counts for every status (zero-filled)."""
        tasks = QueueTask.objects.all()
        if tenant is not None:
            tasks = tasks.filter(tenant=tenant)
        counts = {status: 0 for status in TaskStatus.values}
        for row in tasks.values("status").annotate(total=Count("pk")):
            counts[row["status"]] = row["total"]
        return counts
