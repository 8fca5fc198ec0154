"""
Plain data types shared by the vendor clients, the merge engine and the worker.

These are deliberately free of Django so the merge and dedupe logic can be
exercised without a database. Prices are integers in the minor currency unit.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.utils.dateparse import parse_datetime


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return parse_datetime(value)


@dataclass(frozen=True)
class Offer:
    """One sighting of a product from a single source channel and shop."""

    source: str
    price: Optional[int]
    url: str = ""
    shop_identity: str = ""
    last_seen_at: Optional[datetime] = None

    @property
    def slot(self) -> tuple:
        """Offer slot key; at most one offer per slot on a product."""
        return (self.source.lower(), (self.shop_identity or "").lower())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "price": self.price,
            "url": self.url,
            "shop_identity": self.shop_identity,
            "last_seen_at": _to_iso(self.last_seen_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Offer":
        return cls(
            source=data.get("source") or "",
            price=data.get("price"),
            url=data.get("url") or "",
            shop_identity=data.get("shop_identity") or "",
            last_seen_at=_from_iso(data.get("last_seen_at")),
        )


@dataclass(frozen=True)
class PricePoint:
    """A single entry of the append-only price history."""

    ts: datetime
    source: str
    price: int

    def to_dict(self) -> Dict[str, Any]:
        return {"ts": _to_iso(self.ts), "source": self.source, "price": self.price}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricePoint":
        return cls(
            ts=_from_iso(data.get("ts")),
            source=data.get("source") or "",
            price=data.get("price"),
        )


@dataclass
class CatalogRecord:
    """
    Source-agnostic view of a catalog product.

    Used both for incoming records (one offer, no history) and for the
    merged canonical state loaded from CanonicalProduct.
    """

    title: str = ""
    item_id: str = ""
    jan: str = ""
    ean: str = ""
    upc: str = ""
    model_number: str = ""
    brand: str = ""
    image_url: str = ""
    price: Optional[int] = None
    affiliate_url: str = ""
    offers: List[Offer] = field(default_factory=list)
    price_history: List[PricePoint] = field(default_factory=list)
    specs: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    features: List[str] = field(default_factory=list)
    material: str = ""
    updated_at: Optional[datetime] = None

    @property
    def barcode(self) -> str:
        """First non-empty global trade identifier (JAN, EAN, UPC)."""
        for value in (self.jan, self.ean, self.upc):
            if value and value.strip():
                return value.strip()
        return ""

    def copy(self, **changes) -> "CatalogRecord":
        return replace(
            self,
            offers=list(self.offers),
            price_history=list(self.price_history),
            specs=dict(self.specs),
            tags=list(self.tags),
            features=list(self.features),
            **changes,
        )


@dataclass
class PriceRecord:
    """What the vendor price API returns for one item id."""

    item_id: str
    price: Optional[int]
    title: str = ""
    url: str = ""
    brand: str = ""
    image_url: str = ""
    model_number: str = ""
    jan: str = ""
    ean: str = ""
    upc: str = ""
    shop_identity: str = ""
    features: List[str] = field(default_factory=list)
    material: str = ""

    @classmethod
    def from_payload(cls, item_id: str, data: Dict[str, Any]) -> "PriceRecord":
        """Build a record from one entry of the vendor JSON payload."""
        price = data.get("price")
        if price is not None:
            price = int(round(float(price)))
        return cls(
            item_id=str(data.get("item_id") or item_id),
            price=price,
            title=data.get("title") or "",
            url=data.get("url") or "",
            brand=data.get("brand") or "",
            image_url=data.get("image_url") or "",
            model_number=data.get("model_number") or "",
            jan=data.get("jan") or "",
            ean=data.get("ean") or "",
            upc=data.get("upc") or "",
            shop_identity=data.get("shop") or "",
            features=list(data.get("features") or []),
            material=data.get("material") or "",
        )

    def to_catalog_record(
        self, source: str, affiliate_url: str, now: datetime
    ) -> CatalogRecord:
        """Convert to an incoming catalog record carrying a single offer."""
        offers = []
        if self.price is not None:
            offers.append(
                Offer(
                    source=source,
                    price=self.price,
                    url=affiliate_url,
                    shop_identity=self.shop_identity,
                    last_seen_at=now,
                )
            )
        return CatalogRecord(
            title=self.title,
            item_id=self.item_id,
            jan=self.jan,
            ean=self.ean,
            upc=self.upc,
            model_number=self.model_number,
            brand=self.brand,
            image_url=self.image_url,
            price=self.price,
            affiliate_url=affiliate_url,
            offers=offers,
            features=list(self.features),
            material=self.material,
            updated_at=now,
        )
