"""
Exception taxonomy for the ingestion pipeline.

Vendor failures are applied to every task in the failed chunk; the worker
maps each class onto a queue transition:

- Throttled: per-task cooldown plus global cooldown, attempts not charged
- TransientVendorError: retried with backoff, charged to the task
- PermanentTaskError: task failed immediately
- DailyQuotaExhausted: no more vendor calls for the limiter key this run
- LockContention: not an error, the run is skipped
"""

from datetime import datetime


class IngestionError(Exception):
    """Base class for ingestion pipeline errors."""

    pass


class Throttled(IngestionError):
    """Vendor signalled rate exhaustion (HTTP 429 or equivalent)."""

    pass


class TransientVendorError(IngestionError):
    """Network failure, timeout or 5xx from the vendor."""

    pass


class PermanentTaskError(IngestionError):
    """The request can never succeed, e.g. an invalid item identifier."""

    pass


class DailyQuotaExhausted(IngestionError):
    """
    Rate limiter hard stop for a limiter key.

    Attributes:
        key: Limiter key whose daily quota ran out
        retry_at: Earliest time a lease can be granted again
    """

    def __init__(self, key: str, retry_at: datetime):
        self.key = key
        self.retry_at = retry_at
        super().__init__(f"Daily quota exhausted for {key}, retry at {retry_at.isoformat()}")


class LockContention(IngestionError):
    """Another run holds the run lock."""

    pass
