"""
Tests for queue housekeeping, the global cooldown and the run lock.
"""

from datetime import timedelta

import pytest


@pytest.fixture
def queue(clock):
    from ingestion.queue.work_queue import WorkQueue

    return WorkQueue(max_attempts=3, clock=clock)


@pytest.mark.django_db
class TestReleaseStuck:
    """Tests for release_stuck_processing."""

    def test_abandoned_task_is_released_with_attempt_refund(self, queue, tenant, clock):
        """Test that a task stuck past the TTL returns to queued with one attempt refunded."""
        from ingestion.models import QueueTask, TaskStatus
        from ingestion.services.housekeeping import release_stuck_processing

        queue.enqueue(tenant, "X")
        task = queue.claim_batch(1)[0]
        attempts_at_claim = task.attempts

        clock.advance(minutes=16)
        released = release_stuck_processing(timedelta(minutes=15), now=clock.now)

        stored = QueueTask.objects.get(pk=task.pk)
        assert released == 1
        assert stored.status == TaskStatus.QUEUED
        assert stored.attempts == attempts_at_claim - 1
        assert stored.updated_at == clock.now

    def test_recent_processing_task_is_left_alone(self, queue, tenant, clock):
        """Test that tasks within the TTL stay in processing."""
        from ingestion.models import QueueTask, TaskStatus
        from ingestion.services.housekeeping import release_stuck_processing

        queue.enqueue(tenant, "X")
        task = queue.claim_batch(1)[0]

        clock.advance(minutes=10)
        assert release_stuck_processing(timedelta(minutes=15), now=clock.now) == 0
        assert QueueTask.objects.get(pk=task.pk).status == TaskStatus.PROCESSING

    def test_release_is_tenant_scoped(self, queue, tenant, other_tenant, clock):
        """Test that a tenant scope limits the release."""
        from ingestion.services.housekeeping import release_stuck_processing

        queue.enqueue(tenant, "A")
        queue.enqueue(other_tenant, "B")
        queue.claim_batch(5)

        clock.advance(minutes=20)

        assert release_stuck_processing(timedelta(minutes=15), tenant=tenant, now=clock.now) == 1


@pytest.mark.django_db
class TestFailExceeded:
    """Tests for fail_exceeded_attempts."""

    def test_exhausted_tasks_are_failed(self, tenant, clock):
        """Test that queued tasks with attempts >= max are failed."""
        from ingestion.models import QueueTask, TaskStatus
        from ingestion.services.housekeeping import fail_exceeded_attempts

        QueueTask.objects.create(tenant=tenant, item_id="A", attempts=3, updated_at=clock.now)
        QueueTask.objects.create(tenant=tenant, item_id="B", attempts=1, updated_at=clock.now)

        assert fail_exceeded_attempts(3, now=clock.now) == 1

        failed = QueueTask.objects.get(item_id="A")
        assert failed.status == TaskStatus.FAILED
        assert failed.error == "housekeeping: attempts>=3"
        assert QueueTask.objects.get(item_id="B").status == TaskStatus.QUEUED

    def test_task_on_final_attempt_is_not_failed_while_claimed(self, tenant, clock):
        """Test that a claimed task at max attempts stays with its worker and is later released."""
        from ingestion.models import QueueTask, TaskStatus
        from ingestion.queue.work_queue import WorkQueue
        from ingestion.services.housekeeping import fail_exceeded_attempts, release_stuck_processing

        QueueTask.objects.create(tenant=tenant, item_id="A", attempts=2, updated_at=clock.now)
        claimed = WorkQueue(max_attempts=3, clock=clock).claim_batch(1)
        assert claimed[0].attempts == 3

        assert fail_exceeded_attempts(3, now=clock.now) == 0
        assert QueueTask.objects.get(item_id="A").status == TaskStatus.PROCESSING

        # Worker crashed; the sweep after the TTL refunds the aborted attempt
        clock.advance(minutes=16)
        assert release_stuck_processing(timedelta(minutes=15), now=clock.now) == 1
        assert fail_exceeded_attempts(3, now=clock.now) == 0

        task = QueueTask.objects.get(item_id="A")
        assert task.status == TaskStatus.QUEUED
        assert task.attempts == 2


@pytest.mark.django_db
class TestRunHousekeeping:
    """Tests for the aggregated sweep."""

    def test_full_sweep(self, queue, tenant, other_tenant, clock):
        """Test release, fail, sleep and cooldown clear in one sweep."""
        from ingestion.models import QueueTask
        from ingestion.services.cooldown import is_global_cooldown_active, set_global_cooldown
        from ingestion.services.housekeeping import run_housekeeping

        queue.enqueue(tenant, "stuck")
        queue.claim_batch(1)
        queue.enqueue(other_tenant, "other")
        set_global_cooldown(timedelta(hours=1), reason="throttled", now=clock.now)

        clock.advance(minutes=16)
        report = run_housekeeping(
            processing_ttl=timedelta(minutes=15),
            max_attempts=3,
            tenant=tenant,
            sleep_others_days=14,
            clear_cooldown=True,
            now=clock.now,
        )

        assert report.released_stuck == 1
        assert report.failed_exceeded == 0
        assert report.slept_non_focus == 1
        assert report.cleared_global_cooldown is True
        assert report.params["tenant"] == "gadget-lab"
        assert QueueTask.objects.get(item_id="other").updated_at == clock.now + timedelta(days=14)
        assert is_global_cooldown_active(clock.now) is False

    def test_report_to_dict(self, clock):
        """Test that the report serializes to a plain dict."""
        from ingestion.services.housekeeping import run_housekeeping

        data = run_housekeeping(now=clock.now).to_dict()

        assert data["released_stuck"] == 0
        assert data["params"]["processing_ttl_minutes"] == 15


@pytest.mark.django_db
class TestGlobalCooldown:
    """Tests for the global cooldown helpers."""

    def test_set_and_check(self, clock):
        """Test that a cooldown is active until it runs out."""
        from ingestion.services.cooldown import is_global_cooldown_active, set_global_cooldown

        set_global_cooldown(timedelta(minutes=30), reason="429", now=clock.now)

        assert is_global_cooldown_active(clock.now) is True
        assert is_global_cooldown_active(clock.now + timedelta(minutes=30)) is False

    def test_never_shortens(self, clock):
        """Test that a shorter cooldown does not cut an active longer one."""
        from ingestion.services.cooldown import get_global_cooldown, set_global_cooldown

        set_global_cooldown(timedelta(hours=2), reason="long", now=clock.now)
        set_global_cooldown(timedelta(minutes=30), reason="short", now=clock.now)

        cooldown = get_global_cooldown()
        assert cooldown.until == clock.now + timedelta(hours=2)
        assert cooldown.reason == "long"

    def test_clear(self, clock):
        """Test that clearing reports whether anything was cleared."""
        from ingestion.services.cooldown import clear_global_cooldown, set_global_cooldown

        assert clear_global_cooldown() is False
        set_global_cooldown(timedelta(minutes=30), now=clock.now)
        assert clear_global_cooldown() is True


@pytest.mark.django_db
class TestRunLease:
    """Tests for the run mutex."""

    def test_second_holder_is_refused(self, clock):
        """Test that only one lease is valid at a time."""
        from ingestion.services.run_lock import RunLease

        first = RunLease(clock=clock)
        second = RunLease(clock=clock)

        assert first.acquire() is True
        assert second.acquire() is False

    def test_expired_lease_can_be_taken_over(self, clock):
        """Test that a crashed holder is recovered by expiry."""
        from ingestion.services.run_lock import RunLease

        RunLease(ttl=timedelta(minutes=5), clock=clock).acquire()
        clock.advance(minutes=6)

        assert RunLease(clock=clock).acquire() is True

    def test_release_frees_the_lock(self, clock):
        """Test that releasing lets the next run in."""
        from ingestion.services.run_lock import RunLease

        first = RunLease(clock=clock)
        first.acquire()
        first.release()

        assert RunLease(clock=clock).acquire() is True

    def test_context_manager_raises_on_contention(self, clock):
        """Test that entering a held lock raises LockContention."""
        from ingestion.exceptions import LockContention
        from ingestion.models import RunLock
        from ingestion.services.run_lock import RunLease

        with RunLease(clock=clock):
            with pytest.raises(LockContention):
                with RunLease(clock=clock):
                    pass

        assert RunLock.objects.count() == 0

    def test_renew_extends_the_lease(self, clock):
        """Test that a renewed lease keeps other runs out past the original expiry."""
        from ingestion.services.run_lock import RunLease

        first = RunLease(ttl=timedelta(minutes=5), clock=clock)
        first.acquire()
        clock.advance(minutes=4)

        assert first.renew() is True
        clock.advance(minutes=4)
        assert RunLease(clock=clock).acquire() is False

    def test_renew_fails_after_takeover(self, clock):
        """Test that a holder whose lease was taken over cannot renew it."""
        from ingestion.services.run_lock import RunLease

        first = RunLease(ttl=timedelta(minutes=5), clock=clock)
        first.acquire()
        clock.advance(minutes=6)
        assert RunLease(clock=clock).acquire() is True

        assert first.renew() is False
        assert first.acquired is False
