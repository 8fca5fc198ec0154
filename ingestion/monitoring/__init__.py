"""
Monitoring helpers for the ingestion pipeline (Sentry breadcrumbs and
exception capture with tenant context).
"""

from .sentry_integration import add_ingestion_breadcrumb, capture_ingestion_error

__all__ = [
    "add_ingestion_breadcrumb",
    "capture_ingestion_error",
]
