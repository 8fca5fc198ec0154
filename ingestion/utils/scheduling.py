"""
Delay utilities for vendor calls.

Chunk retries back off exponentially (base * 2^attempt) and both retry and
inter-chunk delays are spread by a +/- jitter factor.
"""

import random
from datetime import timedelta
from typing import Optional

# Cap for a single retry delay
MAX_BACKOFF_SECONDS = 300.0


def jittered(seconds: float, jitter: float, rng: Optional[random.Random] = None) -> float:
    """
    Spread a delay uniformly over seconds * (1 +/- jitter).

    Args:
        seconds: Base delay
        jitter: Fraction in [0, 1]
        rng: Random source (module random by default)

    Returns:
        Delay in seconds, never negative
    """
    if seconds <= 0:
        return 0.0
    rng = rng or random
    jitter = min(max(jitter, 0.0), 1.0)
    factor = 1.0 + rng.uniform(-jitter, jitter)
    return max(0.0, seconds * factor)


def backoff_delay(
    attempt: int,
    base_seconds: float,
    jitter: float = 0.0,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Exponential backoff delay for the n-th retry (attempt starts at 0).

    - attempt 0: base
    - attempt 1: 2x base
    - attempt n: 2^n x base (capped at MAX_BACKOFF_SECONDS)
    """
    delay = min(base_seconds * (2 ** max(attempt, 0)), MAX_BACKOFF_SECONDS)
    return jittered(delay, jitter, rng)


def global_cooldown_duration(task_cooldown: timedelta, minimum: timedelta) -> timedelta:
    """Global cooldown is never shorter than the configured minimum."""
    return max(task_cooldown, minimum)
