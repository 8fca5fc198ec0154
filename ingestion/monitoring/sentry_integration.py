"""
Sentry integration for the ingestion pipeline.

Sentry itself is initialised in settings/base.py; without a DSN the SDK
calls below are no-ops.

Usage:
    from ingestion.monitoring import capture_ingestion_error

    try:
        records = client.fetch_items(chunk)
    except TransientVendorError as e:
        capture_ingestion_error(e, tenant=tenant, item_ids=chunk)
"""

import logging
from typing import Any, Dict, List, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Keys whose values never leave the process
SENSITIVE_FIELDS = {
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "dispatch_token",
    "x-api-key",
}

# Item ids attached to events are truncated to this many
MAX_ITEM_IDS = 20


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values of sensitive keys, recursing into nested dicts.

    Args:
        data: Context dictionary

    Returns:
        Copy with sensitive values replaced by "[Filtered]"
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_ingestion_breadcrumb(
    message: str,
    tenant_slug: str = "",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record a breadcrumb for the current run.

    Args:
        message: Description of the step
        tenant_slug: Tenant being processed
        level: Breadcrumb level
        extra_data: Additional context (filtered)
    """
    data = {"tenant": tenant_slug}
    if extra_data:
        data.update(_filter_sensitive_data(extra_data))

    sentry_sdk.add_breadcrumb(category="ingestion", message=message, level=level, data=data)


def capture_ingestion_error(
    error: Exception,
    tenant=None,
    item_ids: Optional[List[str]] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a vendor or merge error with tenant and item context.

    Args:
        error: The exception
        tenant: Tenant instance (optional)
        item_ids: Items affected by the failure
        extra_context: Additional context (filtered)
    """
    tenant_slug = tenant.slug if tenant is not None else "unknown"
    ids = list(item_ids or [])[:MAX_ITEM_IDS]

    add_ingestion_breadcrumb(
        message=f"Error: {type(error).__name__}",
        tenant_slug=tenant_slug,
        level="error",
        extra_data={"item_ids": ids, **(extra_context or {})},
    )

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("ingestion.tenant", tenant_slug)
        scope.set_tag("ingestion.error_type", type(error).__name__)
        if ids:
            scope.set_extra("item_ids", ids)
        if extra_context:
            scope.set_extra("ingestion_context", _filter_sensitive_data(extra_context))
        sentry_sdk.capture_exception(error)

    logger.debug(f"Captured {type(error).__name__} for {tenant_slug} in Sentry")
