"""
Django admin configuration for the ingestion models.

Tenants are managed here (rate limits, affiliate tag, rules). Queue tasks
can be requeued or failed in bulk.
"""

from django.contrib import admin
from django.utils import timezone
from django.utils.html import format_html

from ingestion.models import (
    CanonicalProduct,
    GlobalCooldown,
    QueueTask,
    RateLimiterState,
    RunLock,
    TaskStatus,
    Tenant,
)

STATUS_COLORS = {
    TaskStatus.QUEUED: "#ffc107",
    TaskStatus.PROCESSING: "#007bff",
    TaskStatus.DONE: "#28a745",
    TaskStatus.FAILED: "#dc3545",
}


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    """Admin interface for tenants and their vendor limits."""

    list_display = ["slug", "name", "is_active", "limiter_key", "tps", "burst", "daily_max"]
    list_filter = ["is_active", "source"]
    search_fields = ["slug", "name", "limiter_key"]
    readonly_fields = ["id", "created_at", "updated_at"]

    fieldsets = (
        ("Identity", {
            "fields": ("id", "slug", "name", "is_active"),
        }),
        ("Vendor Access", {
            "fields": ("source", "limiter_key", "api_key", "affiliate_tag"),
        }),
        ("Rate Limits", {
            "fields": ("tps", "burst", "daily_max"),
        }),
        ("Scheduling", {
            "fields": ("enqueue_cooldown_days", "seed_item_ids", "hot_boost_rules", "tag_rules"),
            "classes": ("collapse",),
        }),
        ("Metadata", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )


@admin.register(QueueTask)
class QueueTaskAdmin(admin.ModelAdmin):
    """Admin interface for queue tasks with requeue/fail actions."""

    list_display = ["item_id", "tenant", "status_badge", "attempts", "priority", "updated_at"]
    list_filter = ["status", "tenant"]
    search_fields = ["item_id", "error"]
    readonly_fields = ["id", "created_at"]
    ordering = ["-updated_at"]
    list_select_related = ["tenant"]

    actions = ["requeue_tasks", "fail_tasks"]

    def status_badge(self, obj):
        """Display task status as colored badge."""
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 2px 8px; border-radius: 4px;">{}</span>',
            STATUS_COLORS.get(obj.status, "#6c757d"),
            obj.get_status_display(),
        )
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    @admin.action(description="Requeue selected tasks (reset attempts)")
    def requeue_tasks(self, request, queryset):
        count = queryset.exclude(status=TaskStatus.PROCESSING).update(
            status=TaskStatus.QUEUED, attempts=0, error="", updated_at=timezone.now()
        )
        self.message_user(request, f"Requeued {count} tasks.")

    @admin.action(description="Fail selected tasks")
    def fail_tasks(self, request, queryset):
        count = queryset.exclude(status=TaskStatus.DONE).update(
            status=TaskStatus.FAILED, error="failed via admin", updated_at=timezone.now()
        )
        self.message_user(request, f"Failed {count} tasks.")


@admin.register(RateLimiterState)
class RateLimiterStateAdmin(admin.ModelAdmin):
    list_display = ["key", "tokens", "daily_remaining", "daily_reset_at", "last_refill_at"]
    search_fields = ["key"]


@admin.register(GlobalCooldown)
class GlobalCooldownAdmin(admin.ModelAdmin):
    list_display = ["name", "until", "reason", "updated_at"]


@admin.register(RunLock)
class RunLockAdmin(admin.ModelAdmin):
    list_display = ["name", "holder", "acquired_at", "expires_at"]


@admin.register(CanonicalProduct)
class CanonicalProductAdmin(admin.ModelAdmin):
    """Admin interface for merged catalog products."""

    list_display = [
        "title",
        "tenant",
        "price",
        "freshness_tier",
        "fresh_until",
        "views",
        "pinned",
        "dedupe_reason",
    ]
    list_filter = ["tenant", "freshness_tier", "pinned", "dedupe_reason"]
    search_fields = ["title", "item_id", "dedupe_key", "jan", "ean", "upc", "model_number"]
    readonly_fields = ["id", "dedupe_key", "dedupe_reason", "created_at", "updated_at"]
    list_select_related = ["tenant"]
    ordering = ["-updated_at"]
