"""
Freshness policy for canonical products.

Maps engagement signals onto a refresh tier and the tier onto the time the
product next becomes eligible for a price re-fetch.

Tiers:
- hot: pinned, hot-boost match, or views >= FRESHNESS_HOT_VIEWS (30 minutes)
- warm: views >= FRESHNESS_WARM_VIEWS (6 hours)
- cold: everything else (24 hours)
"""

from datetime import datetime, timedelta
from typing import Literal, Optional

from django.utils import timezone

from ingestion.utils.hot_boost import HotBoostRules

FreshnessTier = Literal["hot", "warm", "cold"]

HOT = "hot"
WARM = "warm"
COLD = "cold"

# Re-fetch intervals per tier
TIER_INTERVALS = {
    HOT: timedelta(minutes=30),
    WARM: timedelta(hours=6),
    COLD: timedelta(hours=24),
}

# Default view-count thresholds (overridable via settings / arguments)
DEFAULT_HOT_VIEWS = 100
DEFAULT_WARM_VIEWS = 20


def classify(
    view_count: int,
    pinned: bool = False,
    hot_boost_matched: bool = False,
    hot_views: int = DEFAULT_HOT_VIEWS,
    warm_views: int = DEFAULT_WARM_VIEWS,
) -> FreshnessTier:
    """
    Pick the refresh tier for a product.

    Args:
        view_count: Engagement signal (page views)
        pinned: Editorially pinned products are always hot
        hot_boost_matched: Result of the tenant's hot-boost rules
        hot_views: View threshold for hot
        warm_views: View threshold for warm

    Returns:
        "hot", "warm" or "cold"
    """
    if pinned or hot_boost_matched:
        return HOT
    views = view_count or 0
    if views >= hot_views:
        return HOT
    if views >= warm_views:
        return WARM
    return COLD


def next_eligible(tier: FreshnessTier, now: Optional[datetime] = None) -> datetime:
    """Time at which a product in `tier` becomes stale again."""
    if now is None:
        now = timezone.now()
    return now + TIER_INTERVALS.get(tier, TIER_INTERVALS[COLD])


def is_stale(fresh_until: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when freshness was never set or has run out."""
    if fresh_until is None:
        return True
    if now is None:
        now = timezone.now()
    return now >= fresh_until


def refresh_freshness(
    product,
    now: datetime,
    hot_boost: Optional[HotBoostRules] = None,
    hot_views: int = DEFAULT_HOT_VIEWS,
    warm_views: int = DEFAULT_WARM_VIEWS,
) -> FreshnessTier:
    """
    Reclassify a CanonicalProduct and set its fresh_until. Does not save.

    Args:
        product: CanonicalProduct instance
        now: Merge time
        hot_boost: Tenant hot-boost strategy (None means never boosted)

    Returns:
        The tier written to the product
    """
    matched = False
    if hot_boost is not None:
        matched = hot_boost.matches(
            item_id=product.item_id,
            price=product.price,
            tags=product.tags,
            text=" ".join([product.title or ""] + list(product.features or [])),
        )

    tier = classify(
        product.views,
        pinned=product.pinned,
        hot_boost_matched=matched,
        hot_views=hot_views,
        warm_views=warm_views,
    )
    product.freshness_tier = tier
    product.fresh_until = next_eligible(tier, now)
    return tier
