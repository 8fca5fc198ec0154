"""
Run configuration for the ingestion worker.

Settings are read once at the entrypoint (Celery task, API view or
management command) and passed down explicitly; the worker and the
services it calls never read settings themselves.
"""

from dataclasses import dataclass, fields, replace
from datetime import timedelta

from django.conf import settings

from ingestion.utils.scheduling import global_cooldown_duration


@dataclass(frozen=True)
class RunConfig:
    """Tunables for one ingestion run."""

    batch_size: int = 10
    max_attempts: int = 3
    chunk_size: int = 10
    fetch_interval_seconds: float = 20.0
    fetch_jitter: float = 0.5
    fetch_retries: int = 3
    fetch_backoff_seconds: float = 2.0
    task_cooldown: timedelta = timedelta(minutes=30)
    global_cooldown_min: timedelta = timedelta(minutes=30)
    run_lock_ttl: timedelta = timedelta(minutes=5)
    run_timeout: timedelta = timedelta(minutes=9)
    processing_ttl: timedelta = timedelta(minutes=15)
    stale_scan_limit: int = 25
    focus_tenant: str = ""
    hot_views: int = 100
    warm_views: int = 20

    @property
    def global_cooldown(self) -> timedelta:
        """Global cooldown applied on throttling, never below the minimum."""
        return global_cooldown_duration(self.task_cooldown, self.global_cooldown_min)

    @property
    def run_lease_ttl(self) -> timedelta:
        """Run lock lease length; a lease never expires before the run deadline."""
        return max(self.run_lock_ttl, self.run_timeout)

    @classmethod
    def from_settings(cls, **overrides) -> "RunConfig":
        """
        Build a config from Django settings.

        Args:
            **overrides: Field values that take precedence over settings
                (None values are ignored)

        Returns:
            RunConfig
        """
        config = cls(
            batch_size=settings.INGESTION_QUEUE_BATCH_SIZE,
            max_attempts=settings.INGESTION_QUEUE_MAX_ATTEMPTS,
            chunk_size=settings.INGESTION_FETCH_CHUNK_SIZE,
            fetch_interval_seconds=settings.INGESTION_FETCH_INTERVAL_SECONDS,
            fetch_jitter=settings.INGESTION_FETCH_JITTER,
            fetch_retries=settings.INGESTION_FETCH_RETRIES,
            fetch_backoff_seconds=settings.INGESTION_FETCH_BACKOFF_SECONDS,
            task_cooldown=timedelta(minutes=settings.INGESTION_TASK_COOLDOWN_MINUTES),
            global_cooldown_min=timedelta(minutes=settings.INGESTION_GLOBAL_COOLDOWN_MIN_MINUTES),
            run_lock_ttl=timedelta(seconds=settings.INGESTION_RUN_LOCK_TTL_SECONDS),
            run_timeout=timedelta(seconds=settings.INGESTION_RUN_TIMEOUT_SECONDS),
            processing_ttl=timedelta(minutes=settings.INGESTION_PROCESSING_TTL_MINUTES),
            stale_scan_limit=settings.INGESTION_STALE_SCAN_LIMIT,
            focus_tenant=settings.INGESTION_FOCUS_TENANT,
            hot_views=settings.FRESHNESS_HOT_VIEWS,
            warm_views=settings.FRESHNESS_WARM_VIEWS,
        )
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown RunConfig fields: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **changes) if changes else config
