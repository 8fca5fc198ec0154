"""
Django models for the catalog ingestion pipeline.

Models: Tenant, QueueTask, RateLimiterState, GlobalCooldown, RunLock,
        CanonicalProduct

QueueTask.updated_at doubles as the "not eligible before" timestamp used
for per-task cooldowns. RateLimiterState and GlobalCooldown are the only
state shared across concurrent workers and are only mutated inside
transactions.
"""

import uuid
from typing import Optional

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from ingestion.catalog.types import CatalogRecord, Offer, PricePoint


class TaskStatus(models.TextChoices):
    """Lifecycle states of a queue task."""

    QUEUED = "queued", "Queued"
    PROCESSING = "processing", "Processing"
    DONE = "done", "Done"
    FAILED = "failed", "Failed"


class FreshnessTier(models.TextChoices):
    """Refresh cadence tiers of a canonical product."""

    HOT = "hot", "Hot"
    WARM = "warm", "Warm"
    COLD = "cold", "Cold"


class Tenant(models.Model):
    """
    A site/account whose catalog is refreshed from the vendor API.

    Managed via Django Admin. Tenants sharing a vendor credential should
    share a limiter_key so they draw from the same token bucket.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slug = models.SlugField(max_length=100, unique=True, help_text="Tenant identifier")
    name = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True, help_text="Enable/disable ingestion")

    # Vendor access
    source = models.CharField(
        max_length=50, default="vendor", help_text="Source channel name used on offers"
    )
    limiter_key = models.CharField(
        max_length=100, help_text="Rate limiter bucket, usually one per vendor credential"
    )
    api_key = models.CharField(
        max_length=200, blank=True, help_text="Vendor credential (falls back to VENDOR_API_KEY)"
    )
    affiliate_tag = models.CharField(max_length=100, blank=True)

    # Rate limits
    tps = models.FloatField(
        default=1.0, validators=[MinValueValidator(0.1)], help_text="Sustained requests/second"
    )
    burst = models.PositiveIntegerField(default=5, help_text="Token bucket capacity")
    daily_max = models.PositiveIntegerField(default=8640, help_text="Requests per UTC day")

    # Scheduling
    enqueue_cooldown_days = models.PositiveIntegerField(
        default=0, help_text="Skip re-enqueue when the task was updated this recently"
    )
    seed_item_ids = models.JSONField(default=list, blank=True)
    hot_boost_rules = models.JSONField(
        default=list,
        blank=True,
        help_text="[{'type': 'price_between', 'min': 1000, 'max': 3000}, ...]",
    )
    tag_rules = models.JSONField(
        default=list,
        blank=True,
        help_text="[{'tag': 'usb-c', 'any': [{'type': 'title_matches', 'pattern': '...'}]}]",
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "ingestion_tenants"
        ordering = ["slug"]

    def __str__(self):
        return self.slug


class QueueTask(models.Model):
    """
    One per-item fetch task.

    Transition into PROCESSING is a compare-and-swap on status=queued so a
    task is never held by two workers.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="tasks")
    item_id = models.CharField(max_length=100)

    status = models.CharField(
        max_length=20, choices=TaskStatus.choices, default=TaskStatus.QUEUED
    )
    attempts = models.PositiveIntegerField(default=0)
    priority = models.IntegerField(default=0, help_text="Lower runs first")
    error = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(
        default=timezone.now, help_text="Last transition; also the not-eligible-before time"
    )

    class Meta:
        db_table = "ingestion_queue_tasks"
        ordering = ["updated_at", "priority", "attempts"]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "item_id"], name="unique_task_per_tenant_item"
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "updated_at", "priority", "attempts"],
                name="ingestion_q_status_8b1f2e_idx",
            ),
            models.Index(fields=["tenant", "status"], name="ingestion_q_tenant__c4d7a1_idx"),
        ]

    def __str__(self):
        return f"{self.tenant_id}:{self.item_id} ({self.status})"


class RateLimiterState(models.Model):
    """
    Token bucket and daily quota for one limiter key.

    Created lazily on the first lease request for the key.
    """

    key = models.CharField(max_length=100, primary_key=True)
    tokens = models.FloatField(default=0)
    last_refill_at = models.DateTimeField()
    daily_remaining = models.IntegerField(default=0)
    daily_reset_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "ingestion_rate_limiter_state"

    def __str__(self):
        return f"{self.key}: {self.tokens:.2f} tokens, {self.daily_remaining} left today"


class GlobalCooldown(models.Model):
    """While now < until, no new tasks are claimed."""

    DEFAULT_NAME = "vendor"

    name = models.CharField(max_length=50, primary_key=True, default=DEFAULT_NAME)
    until = models.DateTimeField(null=True, blank=True)
    reason = models.CharField(max_length=500, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "ingestion_global_cooldown"

    def __str__(self):
        return f"{self.name} until {self.until}"

    def is_active(self, now=None) -> bool:
        now = now or timezone.now()
        return bool(self.until and now < self.until)


class RunLock(models.Model):
    """Single-run mutex lease with a TTL."""

    name = models.CharField(max_length=50, primary_key=True)
    holder = models.CharField(max_length=100, blank=True)
    expires_at = models.DateTimeField()
    acquired_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "ingestion_run_locks"

    def __str__(self):
        return f"{self.name} held by {self.holder} until {self.expires_at}"


class CanonicalProduct(models.Model):
    """
    Merged, deduplicated representation of one physical item.

    Identity is (tenant, dedupe_key). Never hard-deleted by ingestion.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name="products")
    dedupe_key = models.CharField(max_length=200)
    dedupe_reason = models.CharField(max_length=20, blank=True)

    # Identifiers
    item_id = models.CharField(max_length=100, blank=True, db_index=True)
    jan = models.CharField(max_length=20, blank=True)
    ean = models.CharField(max_length=20, blank=True)
    upc = models.CharField(max_length=20, blank=True)
    model_number = models.CharField(max_length=100, blank=True)

    # Display
    title = models.CharField(max_length=500)
    brand = models.CharField(max_length=200, blank=True)
    image_url = models.URLField(max_length=1000, blank=True)
    price = models.IntegerField(null=True, blank=True, help_text="Cheapest offer, minor units")
    affiliate_url = models.URLField(max_length=2000, blank=True)

    # Merged data
    offers = models.JSONField(default=list, blank=True)
    price_history = models.JSONField(default=list, blank=True)
    specs = models.JSONField(default=dict, blank=True)
    tags = models.JSONField(default=list, blank=True)
    features = models.JSONField(default=list, blank=True)
    material = models.CharField(max_length=200, blank=True)

    # Engagement and freshness
    views = models.PositiveIntegerField(default=0)
    pinned = models.BooleanField(default=False)
    freshness_tier = models.CharField(
        max_length=10, choices=FreshnessTier.choices, default=FreshnessTier.COLD
    )
    fresh_until = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "ingestion_canonical_products"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "dedupe_key"], name="unique_product_per_tenant_key"
            ),
        ]
        indexes = [
            models.Index(
                fields=["tenant", "fresh_until", "updated_at"],
                name="ingestion_c_tenant__5e9a0b_idx",
            ),
        ]

    def __str__(self):
        return f"{self.title[:60]} [{self.dedupe_key}]"

    def to_record(self) -> CatalogRecord:
        """Load the stored state into a CatalogRecord for merging."""
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
            affiliate_url=self.affiliate_url,
            offers=[Offer.from_dict(o) for o in self.offers or []],
            price_history=[PricePoint.from_dict(p) for p in self.price_history or []],
            specs=dict(self.specs or {}),
            tags=list(self.tags or []),
            features=list(self.features or []),
            material=self.material,
            updated_at=self.updated_at,
        )

    def apply_record(self, record: CatalogRecord, now: Optional[object] = None):
        """Copy merged state back onto the model. Does not save."""
        self.title = record.title[:500]
        self.item_id = record.item_id
        self.jan = record.jan
        self.ean = record.ean
        self.upc = record.upc
        self.model_number = record.model_number
        self.brand = record.brand
        self.image_url = record.image_url
        self.price = record.price
        self.affiliate_url = record.affiliate_url
        self.offers = [o.to_dict() for o in record.offers]
        self.price_history = [p.to_dict() for p in record.price_history]
        self.specs = dict(record.specs)
        self.tags = list(record.tags)
        self.features = list(record.features)
        self.material = record.material
        self.updated_at = now or record.updated_at or timezone.now()
