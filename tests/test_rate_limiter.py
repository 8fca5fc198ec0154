"""
Tests for the token bucket rate limiter.

Tests cover:
1. Pure lease arithmetic (refill, burst cap, wait times)
2. Daily quota and UTC-midnight reset
3. The database-backed limiter shared across tenants
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=dt_timezone.utc)


class TestComputeLease:
    """Tests for the pure compute_lease function."""

    def test_new_key_starts_with_full_bucket(self):
        """Test that the first lease of a key is granted from a full bucket."""
        from ingestion.services.rate_limiter import compute_lease

        decision = compute_lease(None, T0, tps=1.0, burst=5, daily_max=100)

        assert decision.granted is True
        assert decision.state.tokens == 4
        assert decision.state.daily_remaining == 99

    def test_burst_then_wait(self):
        """Test that leases beyond the burst must wait one fill interval."""
        from ingestion.services.rate_limiter import compute_lease

        state = None
        for _ in range(5):
            decision = compute_lease(state, T0, tps=1.0, burst=5, daily_max=100)
            assert decision.granted
            state = decision.state

        decision = compute_lease(state, T0, tps=1.0, burst=5, daily_max=100)

        assert decision.granted is False
        assert decision.exhausted is False
        assert decision.wait_seconds == pytest.approx(1.0)

    def test_fractional_tps_wait(self):
        """Test that tps=0.5 means one token every two seconds."""
        from ingestion.services.rate_limiter import BucketState, compute_lease

        state = BucketState(tokens=0, last_refill_at=T0, daily_remaining=10, daily_reset_at=T0 + timedelta(hours=12))

        decision = compute_lease(state, T0 + timedelta(seconds=0.5), tps=0.5, burst=1, daily_max=10)
        assert decision.wait_seconds == pytest.approx(1.5)

        decision = compute_lease(decision.state, T0 + timedelta(seconds=2), tps=0.5, burst=1, daily_max=10)
        assert decision.granted is True

    def test_refill_is_capped_at_burst(self):
        """Test that a long idle period never banks more than burst tokens."""
        from ingestion.services.rate_limiter import BucketState, compute_lease

        state = BucketState(tokens=0, last_refill_at=T0, daily_remaining=100, daily_reset_at=T0 + timedelta(hours=12))

        decision = compute_lease(state, T0 + timedelta(hours=1), tps=1.0, burst=3, daily_max=100)

        assert decision.granted
        assert decision.state.tokens == 2

    def test_grants_never_exceed_burst_plus_rate(self):
        """Test that grants over a window stay within burst + tps * window."""
        from ingestion.services.rate_limiter import compute_lease

        tps, burst, window = 2.0, 4, 10.0
        state = None
        granted = 0
        now = T0
        # Ask every 50ms for the whole window
        for step in range(int(window / 0.05) + 1):
            now = T0 + timedelta(seconds=step * 0.05)
            decision = compute_lease(state, now, tps=tps, burst=burst, daily_max=10_000)
            state = decision.state
            if decision.granted:
                granted += 1

        assert granted <= burst + tps * window

    def test_stored_tokens_above_burst_are_clamped(self):
        """Test that a bucket stored with more than burst tokens is clamped first."""
        from ingestion.services.rate_limiter import BucketState, compute_lease

        state = BucketState(tokens=50, last_refill_at=T0, daily_remaining=100, daily_reset_at=T0 + timedelta(hours=12))

        decision = compute_lease(state, T0, tps=1.0, burst=2, daily_max=100)

        assert decision.state.tokens == 1

    def test_tps_below_minimum_is_rejected(self):
        """Test that tps < 0.1 is a configuration error."""
        from ingestion.services.rate_limiter import compute_lease

        with pytest.raises(ValueError):
            compute_lease(None, T0, tps=0.05, burst=1, daily_max=10)


class TestDailyQuota:
    """Tests for the daily cap."""

    def test_daily_cap_exhausts_until_midnight(self):
        """Test that daily_max grants are followed by exhaustion until UTC midnight."""
        from ingestion.services.rate_limiter import compute_lease

        state = None
        now = T0
        for _ in range(3):
            decision = compute_lease(state, now, tps=10.0, burst=10, daily_max=3)
            assert decision.granted
            state = decision.state

        decision = compute_lease(state, now, tps=10.0, burst=10, daily_max=3)

        assert decision.exhausted is True
        assert decision.retry_at == datetime(2026, 3, 11, 0, 0, tzinfo=dt_timezone.utc)

    def test_counter_resets_after_midnight(self):
        """Test that the first lease after midnight sees a fresh daily counter."""
        from ingestion.services.rate_limiter import BucketState, compute_lease, next_daily_reset

        state = BucketState(tokens=5, last_refill_at=T0, daily_remaining=0, daily_reset_at=next_daily_reset(T0))
        after_midnight = datetime(2026, 3, 11, 0, 0, 5, tzinfo=dt_timezone.utc)

        decision = compute_lease(state, after_midnight, tps=1.0, burst=5, daily_max=50)

        assert decision.granted
        assert decision.state.daily_remaining == 49
        assert decision.state.daily_reset_at == datetime(2026, 3, 12, 0, 0, tzinfo=dt_timezone.utc)

    def test_next_daily_reset_at_exact_midnight(self):
        """Test that midnight itself resets to the following midnight."""
        from ingestion.services.rate_limiter import next_daily_reset

        midnight = datetime(2026, 3, 11, 0, 0, tzinfo=dt_timezone.utc)

        assert next_daily_reset(midnight) == datetime(2026, 3, 12, 0, 0, tzinfo=dt_timezone.utc)


@pytest.mark.django_db
class TestRateLimiter:
    """Tests for the database-backed RateLimiter."""

    def test_state_is_persisted_per_key(self, clock):
        """Test that each lease updates the stored bucket."""
        from ingestion.models import RateLimiterState
        from ingestion.services.rate_limiter import RateLimiter

        limiter = RateLimiter(clock=clock, sleep=lambda s: None)
        limiter.try_lease("key-a", tps=1.0, burst=3, daily_max=100)
        limiter.try_lease("key-a", tps=1.0, burst=3, daily_max=100)

        row = RateLimiterState.objects.get(key="key-a")
        assert row.tokens == 1
        assert row.daily_remaining == 98

    def test_tenants_sharing_a_key_share_the_bucket(self, tenant, other_tenant, clock):
        """Test that two tenants on the same limiter key draw from one bucket."""
        from ingestion.services.rate_limiter import RateLimiter

        limiter = RateLimiter(clock=clock, sleep=lambda s: None)
        for t in (tenant, other_tenant) * 2 + (tenant,):
            assert limiter.try_lease(t.limiter_key, t.tps, t.burst, t.daily_max).granted

        decision = limiter.try_lease(other_tenant.limiter_key, 1.0, 5, 1000)

        assert decision.granted is False

    def test_lease_waits_for_a_token(self, clock, fake_sleep, sleeps):
        """Test that lease() sleeps until the next token instead of failing."""
        from ingestion.services.rate_limiter import RateLimiter

        limiter = RateLimiter(clock=clock, sleep=fake_sleep)
        limiter.lease("key-b", tps=1.0, burst=1, daily_max=100)

        decision = limiter.lease("key-b", tps=1.0, burst=1, daily_max=100)

        assert decision.granted
        assert sleeps == [pytest.approx(1.0)]

    def test_lease_raises_when_daily_quota_exhausted(self, clock):
        """Test that an exhausted daily quota raises with the reset time."""
        from ingestion.exceptions import DailyQuotaExhausted
        from ingestion.services.rate_limiter import RateLimiter

        limiter = RateLimiter(clock=clock, sleep=lambda s: None)
        limiter.lease("key-c", tps=5.0, burst=5, daily_max=1)

        with pytest.raises(DailyQuotaExhausted) as exc_info:
            limiter.lease("key-c", tps=5.0, burst=5, daily_max=1)

        assert exc_info.value.key == "key-c"
        assert exc_info.value.retry_at == datetime(2026, 3, 11, 0, 0, tzinfo=dt_timezone.utc)

    def test_usage_stats(self, clock):
        """Test that usage stats report the stored bucket."""
        from ingestion.services.rate_limiter import RateLimiter

        limiter = RateLimiter(clock=clock, sleep=lambda s: None)
        assert limiter.usage_stats("key-d") is None

        limiter.try_lease("key-d", tps=1.0, burst=2, daily_max=10)
        stats = limiter.usage_stats("key-d")

        assert stats["tokens"] == 1
        assert stats["daily_remaining"] == 9
