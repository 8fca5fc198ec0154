"""
Catalog merge engine.

Merge policy:
- Offers are keyed by (source, shop identity), case-insensitive. An incoming
  offer overwrites the price and last_seen_at of its slot; its other fields
  only fill gaps. New slots are appended.
- The displayed price and affiliate URL follow the cheapest offer.
- A price history point is appended only when the displayed price differs
  from the last recorded point.
- Scalars (brand, image, identifiers, specs) are fill-if-empty. The longer
  title wins. Tags are unioned.

Concurrent merges of the same product are merge-then-write: the last writer
wins. No per-product transaction is taken.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from django.db import IntegrityError, transaction

from ingestion.catalog.types import CatalogRecord, Offer, PricePoint
from ingestion.services.deduplication import build_dedupe_key

logger = logging.getLogger(__name__)


def _merge_offer(existing: Offer, incoming: Offer) -> Offer:
    last_seen = existing.last_seen_at
    if incoming.last_seen_at and (last_seen is None or incoming.last_seen_at > last_seen):
        last_seen = incoming.last_seen_at
    return Offer(
        source=existing.source or incoming.source,
        price=incoming.price if incoming.price is not None else existing.price,
        url=existing.url or incoming.url,
        shop_identity=existing.shop_identity or incoming.shop_identity,
        last_seen_at=last_seen,
    )


def merge_offers(existing: List[Offer], incoming: List[Offer]) -> List[Offer]:
    """Union offers by slot, keeping the existing order and appending new slots."""
    merged: Dict[Tuple[str, str], Offer] = {}
    for offer in existing:
        merged[offer.slot] = offer
    for offer in incoming:
        previous = merged.get(offer.slot)
        merged[offer.slot] = _merge_offer(previous, offer) if previous else offer
    return list(merged.values())


def cheapest_offer(offers: List[Offer]) -> Optional[Offer]:
    """Lowest-priced offer; ties go to the earlier offer."""
    priced = [o for o in offers if o.price is not None]
    if not priced:
        return None
    return min(priced, key=lambda o: o.price)


def merge_catalog(
    existing: Optional[CatalogRecord],
    incoming: CatalogRecord,
    now: datetime,
) -> CatalogRecord:
    """
    Merge an incoming record into the existing canonical state.

    Re-merging the same incoming record is a no-op for offers and price
    history.

    Args:
        existing: Stored canonical state, or None on first sighting
        incoming: Freshly fetched record
        now: Merge time (used for history points and updated_at)

    Returns:
        New merged CatalogRecord (inputs are not modified)
    """
    base = existing.copy() if existing is not None else CatalogRecord()

    offers = merge_offers(base.offers, incoming.offers)
    best = cheapest_offer(offers)

    if best is not None:
        price = best.price
        affiliate_url = best.url or base.affiliate_url or incoming.affiliate_url
    else:
        price = base.price if base.price is not None else incoming.price
        affiliate_url = base.affiliate_url or incoming.affiliate_url

    history = list(base.price_history)
    last_point = history[-1] if history else None
    if price is not None and (last_point is None or last_point.price != price):
        source = best.source if best is not None else (incoming.offers[0].source if incoming.offers else "")
        history.append(PricePoint(ts=now, source=source, price=price))

    title = base.title
    if len(incoming.title or "") > len(title or ""):
        title = incoming.title

    specs = dict(incoming.specs)
    specs.update({k: v for k, v in base.specs.items() if v not in (None, "", [], {})})

    tags = list(base.tags)
    for tag in incoming.tags:
        if tag not in tags:
            tags.append(tag)

    features = list(base.features) or list(incoming.features)

    return CatalogRecord(
        title=title,
        item_id=base.item_id or incoming.item_id,
        jan=base.jan or incoming.jan,
        ean=base.ean or incoming.ean,
        upc=base.upc or incoming.upc,
        model_number=base.model_number or incoming.model_number,
        brand=base.brand or incoming.brand,
        image_url=base.image_url or incoming.image_url,
        price=price,
        affiliate_url=affiliate_url,
        offers=offers,
        price_history=history,
        specs=specs,
        tags=tags,
        features=features,
        material=base.material or incoming.material,
        updated_at=now,
    )


def upsert_canonical(tenant, incoming: CatalogRecord, now: datetime):
    """
    Create or merge the canonical product for an incoming record.

    Args:
        tenant: Owning Tenant
        incoming: Freshly fetched record
        now: Merge time

    Returns:
        Tuple of (CanonicalProduct, created)
    """
    from ingestion.models import CanonicalProduct

    dedupe = build_dedupe_key(incoming)
    product = CanonicalProduct.objects.filter(tenant=tenant, dedupe_key=dedupe.key).first()

    if product is None:
        merged = merge_catalog(None, incoming, now)
        product = CanonicalProduct(
            tenant=tenant,
            dedupe_key=dedupe.key,
            dedupe_reason=dedupe.reason,
            created_at=now,
        )
        product.apply_record(merged, now)
        try:
            with transaction.atomic():
                product.save()
            logger.debug(f"Created canonical product {dedupe.key} for {tenant.slug}")
            return product, True
        except IntegrityError:
            # A concurrent run created it; merge into that row instead
            product = CanonicalProduct.objects.get(tenant=tenant, dedupe_key=dedupe.key)

    merged = merge_catalog(product.to_record(), incoming, now)
    product.apply_record(merged, now)
    product.save()
    return product, False
