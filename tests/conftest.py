"""
Pytest configuration and fixtures for the catalog ingestion test suite.
"""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture(autouse=True)
def clear_cache():
    """API throttles keep their counters in the cache."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


class FixedClock:
    """Deterministic clock; call it for the current time, advance it explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeVendorClient:
    """
    In-memory vendor client.

    `records` maps item id -> PriceRecord. `failures` is a list of
    exceptions raised by successive calls before records are served.
    """

    def __init__(self, records=None, failures=None):
        self.records = dict(records or {})
        self.failures = list(failures or [])
        self.calls = []

    def fetch_items(self, item_ids):
        self.calls.append(list(item_ids))
        if self.failures:
            raise self.failures.pop(0)
        return {i: self.records[i] for i in item_ids if i in self.records}


class FakeClientFactory:
    """Hands the same fake client to every tenant."""

    def __init__(self, client):
        self.client = client

    def for_tenant(self, tenant):
        return self.client

    def close(self):
        pass


@pytest.fixture
def clock():
    """Clock fixed at 2026-03-10 12:00 UTC."""
    return FixedClock(datetime(2026, 3, 10, 12, 0, tzinfo=dt_timezone.utc))


@pytest.fixture
def sleeps():
    """Recorded sleep calls (replaces time.sleep)."""
    return []


@pytest.fixture
def fake_sleep(sleeps, clock):
    """Sleep that records the delay and advances the fixed clock."""

    def _sleep(seconds):
        sleeps.append(seconds)
        clock.advance(seconds=seconds)

    return _sleep


@pytest.fixture
def tenant(db):
    """Create an active test Tenant."""
    from ingestion.models import Tenant

    return Tenant.objects.create(
        slug="gadget-lab",
        name="Gadget Lab",
        limiter_key="vendor-key-a",
        affiliate_tag="gadgetlab-22",
        tps=1.0,
        burst=5,
        daily_max=1000,
    )


@pytest.fixture
def other_tenant(db):
    """Second tenant sharing the same limiter key."""
    from ingestion.models import Tenant

    return Tenant.objects.create(
        slug="power-picks",
        name="Power Picks",
        limiter_key="vendor-key-a",
        tps=1.0,
        burst=5,
        daily_max=1000,
    )


@pytest.fixture
def price_record():
    """Factory for vendor PriceRecords."""
    from ingestion.catalog.types import PriceRecord

    def _make(item_id, price=2000, **kwargs):
        kwargs.setdefault("title", f"Anker PowerCore 10000mAh {item_id}")
        kwargs.setdefault("url", f"https://shop.example.com/dp/{item_id}")
        return PriceRecord(item_id=item_id, price=price, **kwargs)

    return _make


@pytest.fixture
def fake_client():
    return FakeVendorClient()


@pytest.fixture
def make_worker(clock, fake_sleep, fake_client):
    """Build an IngestionWorker wired to the fixed clock and the fake client."""
    import random

    from ingestion.services.ingestion_worker import IngestionWorker
    from ingestion.services.run_config import RunConfig

    def _make(client=None, **config_overrides):
        defaults = {
            "batch_size": 10,
            "chunk_size": 10,
            "fetch_interval_seconds": 0,
            "fetch_retries": 0,
            "fetch_backoff_seconds": 0,
            "fetch_jitter": 0,
        }
        defaults.update(config_overrides)
        return IngestionWorker(
            RunConfig(**defaults),
            FakeClientFactory(client or fake_client),
            clock=clock,
            sleep=fake_sleep,
            rng=random.Random(7),
        )

    return _make
