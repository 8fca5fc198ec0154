"""
Global vendor cooldown.

Set when the vendor signals sustained throttling; while active, runs skip
claiming any task. Updates go through a locked read-modify-write so two
runs never shorten each other's cooldown.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from django.db import transaction
from django.utils import timezone

from ingestion.models import GlobalCooldown

logger = logging.getLogger(__name__)


def get_global_cooldown(name: str = GlobalCooldown.DEFAULT_NAME) -> Optional[GlobalCooldown]:
    """Cooldown row, or None if never set."""
    return GlobalCooldown.objects.filter(name=name).first()


def is_global_cooldown_active(
    now: Optional[datetime] = None, name: str = GlobalCooldown.DEFAULT_NAME
) -> bool:
    cooldown = get_global_cooldown(name)
    return bool(cooldown and cooldown.is_active(now or timezone.now()))


def set_global_cooldown(
    duration: timedelta,
    reason: str = "",
    now: Optional[datetime] = None,
    name: str = GlobalCooldown.DEFAULT_NAME,
) -> GlobalCooldown:
    """
    Extend the global cooldown to at least now + duration.

    An active cooldown that already lasts longer is left untouched.

    Args:
        duration: Cooldown length
        reason: Why it was set (shown in admin and the API)
        now: Current time
        name: Cooldown name

    Returns:
        The updated GlobalCooldown row
    """
    now = now or timezone.now()
    until = now + duration

    with transaction.atomic():
        GlobalCooldown.objects.get_or_create(name=name)
        cooldown = GlobalCooldown.objects.select_for_update().get(name=name)
        if cooldown.until is None or cooldown.until < until:
            cooldown.until = until
            cooldown.reason = reason[:500]
            cooldown.save()
            logger.warning(f"Global cooldown '{name}' set until {until.isoformat()}: {reason}")

    return cooldown


def clear_global_cooldown(name: str = GlobalCooldown.DEFAULT_NAME) -> bool:
    """
    Clear the cooldown immediately.

    Returns:
        True if an active or pending cooldown was cleared
    """
    updated = GlobalCooldown.objects.filter(name=name, until__isnull=False).update(
        until=None, reason="cleared manually"
    )
    if updated:
        logger.info(f"Global cooldown '{name}' cleared")
    return bool(updated)
