"""
Single-run mutex.

A RunLock row is a lease: acquiring succeeds when no row exists or the
existing lease has expired. Crashed holders are recovered by expiry; a
live holder renews the lease as it makes progress.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from ingestion.exceptions import LockContention
from ingestion.models import RunLock

logger = logging.getLogger(__name__)

DEFAULT_LOCK_NAME = "process_queue"


class RunLease:
    """
    Handle on a run lock.

    Args:
        name: Lock name
        ttl: Lease duration
        clock: Callable returning the current aware datetime
        holder: Identifier written on the row (random by default)
    """

    def __init__(
        self,
        name: str = DEFAULT_LOCK_NAME,
        ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = timezone.now,
        holder: Optional[str] = None,
    ):
        self.name = name
        self.ttl = ttl
        self._clock = clock
        self.holder = holder or uuid.uuid4().hex
        self.acquired = False

    def acquire(self) -> bool:
        """Take the lease; False when another holder's lease is still valid."""
        now = self._clock()
        expires_at = now + self.ttl

        try:
            with transaction.atomic():
                RunLock.objects.create(
                    name=self.name, holder=self.holder, expires_at=expires_at, acquired_at=now
                )
            self.acquired = True
            return True
        except IntegrityError:
            pass

        # Row exists: take it over only if expired (or already ours)
        updated = RunLock.objects.filter(
            Q(expires_at__lte=now) | Q(holder=self.holder), name=self.name
        ).update(holder=self.holder, expires_at=expires_at, acquired_at=now)

        self.acquired = bool(updated)
        if not self.acquired:
            logger.info(f"Run lock '{self.name}' is held by another run")
        return self.acquired

    def renew(self) -> bool:
        """
        Push the lease expiry to now + ttl.

        Returns:
            False when the lease was taken over by another holder
        """
        if not self.acquired:
            return False
        updated = RunLock.objects.filter(name=self.name, holder=self.holder).update(
            expires_at=self._clock() + self.ttl
        )
        if not updated:
            self.acquired = False
            logger.warning(f"Run lock '{self.name}' was taken over by another run")
        return bool(updated)

    def release(self):
        """Drop the lease if we still hold it."""
        if not self.acquired:
            return
        RunLock.objects.filter(name=self.name, holder=self.holder).delete()
        self.acquired = False

    def __enter__(self) -> "RunLease":
        if not self.acquire():
            raise LockContention(f"Run lock '{self.name}' is held by another run")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
