"""
Permission guarding the queue operations API.

Requests pass when they carry the dispatch header with the configured
token, or when manual runs are enabled (development). Everything else,
including authenticated users without the token, is rejected with 403.
"""

import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission


class IsInternalDispatcher(BasePermission):
    """Allow only the internal scheduler (or anyone when manual runs are on)."""

    message = "Queue operations are restricted to the internal dispatcher."

    def has_permission(self, request, view):
        if getattr(settings, "INGESTION_ALLOW_MANUAL_RUN", False):
            return True

        expected = getattr(settings, "INGESTION_DISPATCH_TOKEN", "")
        if not expected:
            return False

        header = getattr(settings, "INGESTION_DISPATCH_HEADER", "X-Ingestion-Dispatch-Token")
        provided = request.headers.get(header, "")
        return bool(provided) and hmac.compare_digest(provided, expected)
