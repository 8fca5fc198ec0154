"""
Rate Limiter - cooperative token bucket plus daily quota per limiter key.

The bucket state lives in RateLimiterState and every lease is one
SELECT ... FOR UPDATE read-modify-write, so concurrent workers in different
processes draw from the same bucket without double-spending tokens.

Bucket arithmetic:
- fill interval = 1 / tps seconds (tps may be fractional, minimum 0.1)
- tokens refill in whole units: floor(elapsed / fill_interval)
- tokens are capped at burst and never go negative
- the daily counter resets at the next UTC midnight
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Callable, Dict, Optional

from django.db import transaction
from django.utils import timezone

from ingestion.exceptions import DailyQuotaExhausted
from ingestion.models import RateLimiterState

logger = logging.getLogger(__name__)

MIN_TPS = 0.1
MIN_WAIT_SECONDS = 0.05


@dataclass
class BucketState:
    """Snapshot of one limiter key."""

    tokens: float
    last_refill_at: datetime
    daily_remaining: int
    daily_reset_at: datetime


@dataclass
class LeaseDecision:
    """
    Outcome of one lease attempt.

    Exactly one of granted / exhausted / (wait_seconds > 0) describes it.
    """

    state: BucketState
    granted: bool = False
    exhausted: bool = False
    wait_seconds: float = 0.0
    retry_at: Optional[datetime] = None


def next_daily_reset(now: datetime) -> datetime:
    """Next UTC midnight strictly after `now`."""
    utc_now = now.astimezone(dt_timezone.utc)
    midnight = utc_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(days=1)


def initial_state(now: datetime, burst: int, daily_max: int) -> BucketState:
    return BucketState(
        tokens=float(burst),
        last_refill_at=now,
        daily_remaining=daily_max,
        daily_reset_at=next_daily_reset(now),
    )


def compute_lease(
    state: Optional[BucketState],
    now: datetime,
    tps: float,
    burst: int,
    daily_max: int,
) -> LeaseDecision:
    """
    Decide a single lease request. Pure; the caller persists `decision.state`.

    Args:
        state: Current bucket, or None for a key never seen before
        now: Current time
        tps: Sustained requests per second (>= 0.1)
        burst: Bucket capacity
        daily_max: Leases allowed per UTC day

    Returns:
        LeaseDecision with the updated state

    Raises:
        ValueError: If tps is below the supported minimum
    """
    if tps < MIN_TPS:
        raise ValueError(f"tps must be >= {MIN_TPS}, got {tps}")

    if state is None:
        state = initial_state(now, burst, daily_max)
    else:
        state = BucketState(
            tokens=min(float(burst), max(0.0, state.tokens)),
            last_refill_at=state.last_refill_at,
            daily_remaining=state.daily_remaining,
            daily_reset_at=state.daily_reset_at,
        )

    fill_interval = 1.0 / tps

    # Refill
    elapsed = max(0.0, (now - state.last_refill_at).total_seconds())
    added = math.floor(elapsed / fill_interval)
    if added > 0:
        if state.tokens + added >= burst:
            # A full bucket cannot bank idle time
            state.tokens = float(burst)
            state.last_refill_at = now
        else:
            state.tokens += added
            state.last_refill_at = state.last_refill_at + timedelta(seconds=added * fill_interval)

    # Daily reset
    if now >= state.daily_reset_at:
        state.daily_remaining = daily_max
        state.daily_reset_at = next_daily_reset(now)

    if state.daily_remaining <= 0:
        return LeaseDecision(state=state, exhausted=True, retry_at=state.daily_reset_at)

    if state.tokens < 1:
        since_refill = max(0.0, (now - state.last_refill_at).total_seconds())
        wait = fill_interval - (since_refill % fill_interval)
        return LeaseDecision(state=state, wait_seconds=max(MIN_WAIT_SECONDS, wait))

    state.tokens -= 1
    state.daily_remaining -= 1
    return LeaseDecision(state=state, granted=True)


class RateLimiter:
    """
    Shared rate limiter backed by RateLimiterState rows.

    Args:
        clock: Callable returning the current aware datetime
        sleep: Callable used to wait between lease attempts
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = timezone.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleep = sleep

    def try_lease(self, key: str, tps: float, burst: int, daily_max: int) -> LeaseDecision:
        """
        Make one lease attempt inside a row-locking transaction.

        Database errors propagate; the caller's run aborts and the next run
        resumes from the persisted state.
        """
        if tps < MIN_TPS:
            raise ValueError(f"tps must be >= {MIN_TPS}, got {tps}")

        now = self._clock()
        with transaction.atomic():
            fresh = initial_state(now, burst, daily_max)
            RateLimiterState.objects.get_or_create(
                key=key,
                defaults={
                    "tokens": fresh.tokens,
                    "last_refill_at": fresh.last_refill_at,
                    "daily_remaining": fresh.daily_remaining,
                    "daily_reset_at": fresh.daily_reset_at,
                },
            )
            row = RateLimiterState.objects.select_for_update().get(key=key)

            decision = compute_lease(
                BucketState(
                    tokens=row.tokens,
                    last_refill_at=row.last_refill_at,
                    daily_remaining=row.daily_remaining,
                    daily_reset_at=row.daily_reset_at,
                ),
                now,
                tps,
                burst,
                daily_max,
            )

            row.tokens = decision.state.tokens
            row.last_refill_at = decision.state.last_refill_at
            row.daily_remaining = decision.state.daily_remaining
            row.daily_reset_at = decision.state.daily_reset_at
            row.save()

        return decision

    def lease(self, key: str, tps: float, burst: int, daily_max: int) -> LeaseDecision:
        """
        Block until a lease is granted.

        Raises:
            DailyQuotaExhausted: When the key's daily quota is used up
        """
        while True:
            decision = self.try_lease(key, tps, burst, daily_max)
            if decision.granted:
                return decision
            if decision.exhausted:
                logger.warning(
                    f"Daily quota exhausted for {key}, next reset {decision.retry_at.isoformat()}"
                )
                raise DailyQuotaExhausted(key, decision.retry_at)

            logger.debug(f"Rate limited on {key}, waiting {decision.wait_seconds:.2f}s")
            self._sleep(decision.wait_seconds)

    def usage_stats(self, key: str) -> Optional[Dict[str, Any]]:
        """Current bucket state for diagnostics, or None if the key was never used."""
        row = RateLimiterState.objects.filter(key=key).first()
        if row is None:
            return None
        return {
            "key": row.key,
            "tokens": round(row.tokens, 3),
            "last_refill_at": row.last_refill_at.isoformat(),
            "daily_remaining": row.daily_remaining,
            "daily_reset_at": row.daily_reset_at.isoformat(),
        }
