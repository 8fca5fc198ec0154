"""
Initial schema for the ingestion app.
"""

import uuid
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Tenant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("slug", models.SlugField(help_text="Tenant identifier", max_length=100, unique=True)),
                ("name", models.CharField(blank=True, max_length=200)),
                ("is_active", models.BooleanField(default=True, help_text="Enable/disable ingestion")),
                ("source", models.CharField(default="vendor", help_text="Source channel name used on offers", max_length=50)),
                ("limiter_key", models.CharField(help_text="Rate limiter bucket, usually one per vendor credential", max_length=100)),
                ("api_key", models.CharField(blank=True, help_text="Vendor credential (falls back to VENDOR_API_KEY)", max_length=200)),
                ("affiliate_tag", models.CharField(blank=True, max_length=100)),
                (
                    "tps",
                    models.FloatField(
                        default=1.0,
                        help_text="Sustained requests/second",
                        validators=[django.core.validators.MinValueValidator(0.1)],
                    ),
                ),
                ("burst", models.PositiveIntegerField(default=5, help_text="Token bucket capacity")),
                ("daily_max", models.PositiveIntegerField(default=8640, help_text="Requests per UTC day")),
                (
                    "enqueue_cooldown_days",
                    models.PositiveIntegerField(
                        default=0, help_text="Skip re-enqueue when the task was updated this recently"
                    ),
                ),
                ("seed_item_ids", models.JSONField(blank=True, default=list)),
                (
                    "hot_boost_rules",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="[{'type': 'price_between', 'min': 1000, 'max': 3000}, ...]",
                    ),
                ),
                (
                    "tag_rules",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="[{'tag': 'usb-c', 'any': [{'type': 'title_matches', 'pattern': '...'}]}]",
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "ingestion_tenants",
                "ordering": ["slug"],
            },
        ),
        migrations.CreateModel(
            name="RateLimiterState",
            fields=[
                ("key", models.CharField(max_length=100, primary_key=True, serialize=False)),
                ("tokens", models.FloatField(default=0)),
                ("last_refill_at", models.DateTimeField()),
                ("daily_remaining", models.IntegerField(default=0)),
                ("daily_reset_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "ingestion_rate_limiter_state",
            },
        ),
        migrations.CreateModel(
            name="GlobalCooldown",
            fields=[
                ("name", models.CharField(default="vendor", max_length=50, primary_key=True, serialize=False)),
                ("until", models.DateTimeField(blank=True, null=True)),
                ("reason", models.CharField(blank=True, max_length=500)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "ingestion_global_cooldown",
            },
        ),
        migrations.CreateModel(
            name="RunLock",
            fields=[
                ("name", models.CharField(max_length=50, primary_key=True, serialize=False)),
                ("holder", models.CharField(blank=True, max_length=100)),
                ("expires_at", models.DateTimeField()),
                ("acquired_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "ingestion_run_locks",
            },
        ),
        migrations.CreateModel(
            name="QueueTask",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("item_id", models.CharField(max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("queued", "Queued"),
                            ("processing", "Processing"),
                            ("done", "Done"),
                            ("failed", "Failed"),
                        ],
                        default="queued",
                        max_length=20,
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("priority", models.IntegerField(default=0, help_text="Lower runs first")),
                ("error", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "updated_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="Last transition; also the not-eligible-before time",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="tasks",
                        to="ingestion.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "ingestion_queue_tasks",
                "ordering": ["updated_at", "priority", "attempts"],
                "indexes": [
                    models.Index(
                        fields=["status", "updated_at", "priority", "attempts"],
                        name="ingestion_q_status_8b1f2e_idx",
                    ),
                    models.Index(fields=["tenant", "status"], name="ingestion_q_tenant__c4d7a1_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tenant", "item_id"), name="unique_task_per_tenant_item"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CanonicalProduct",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("dedupe_key", models.CharField(max_length=200)),
                ("dedupe_reason", models.CharField(blank=True, max_length=20)),
                ("item_id", models.CharField(blank=True, db_index=True, max_length=100)),
                ("jan", models.CharField(blank=True, max_length=20)),
                ("ean", models.CharField(blank=True, max_length=20)),
                ("upc", models.CharField(blank=True, max_length=20)),
                ("model_number", models.CharField(blank=True, max_length=100)),
                ("title", models.CharField(max_length=500)),
                ("brand", models.CharField(blank=True, max_length=200)),
                ("image_url", models.URLField(blank=True, max_length=1000)),
                ("price", models.IntegerField(blank=True, help_text="Cheapest offer, minor units", null=True)),
                ("affiliate_url", models.URLField(blank=True, max_length=2000)),
                ("offers", models.JSONField(blank=True, default=list)),
                ("price_history", models.JSONField(blank=True, default=list)),
                ("specs", models.JSONField(blank=True, default=dict)),
                ("tags", models.JSONField(blank=True, default=list)),
                ("features", models.JSONField(blank=True, default=list)),
                ("material", models.CharField(blank=True, max_length=200)),
                ("views", models.PositiveIntegerField(default=0)),
                ("pinned", models.BooleanField(default=False)),
                (
                    "freshness_tier",
                    models.CharField(
                        choices=[("hot", "Hot"), ("warm", "Warm"), ("cold", "Cold")],
                        default="cold",
                        max_length=10,
                    ),
                ),
                ("fresh_until", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="products",
                        to="ingestion.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "ingestion_canonical_products",
                "indexes": [
                    models.Index(
                        fields=["tenant", "fresh_until", "updated_at"],
                        name="ingestion_c_tenant__5e9a0b_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tenant", "dedupe_key"), name="unique_product_per_tenant_key"
                    ),
                ],
            },
        ),
    ]
