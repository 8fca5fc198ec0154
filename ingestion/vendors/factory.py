"""
Vendor client factory.

One client per credential set, created on first use and cached on the
factory instance. The factory is passed into the worker explicitly.
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from django.conf import settings

from ingestion.vendors.base import VendorClient
from ingestion.vendors.http_client import HttpVendorClient

logger = logging.getLogger(__name__)


class VendorClientFactory:
    """
    Creates and caches vendor clients per tenant credential.

    Args:
        builder: Callable(base_url, api_key) -> VendorClient
        base_url: Vendor API URL (defaults to settings.VENDOR_API_BASE_URL)
    """

    def __init__(
        self,
        builder: Optional[Callable[[str, str], VendorClient]] = None,
        base_url: Optional[str] = None,
    ):
        self._builder = builder or (lambda url, key: HttpVendorClient(base_url=url, api_key=key))
        self.base_url = base_url or getattr(settings, "VENDOR_API_BASE_URL", "")
        self._clients: Dict[Tuple[str, str], VendorClient] = {}

    def for_tenant(self, tenant) -> VendorClient:
        """Client for the tenant's credential (falls back to the default key)."""
        api_key = tenant.api_key or getattr(settings, "VENDOR_API_KEY", "")
        cache_key = (self.base_url, api_key)
        client = self._clients.get(cache_key)
        if client is None:
            client = self._builder(self.base_url, api_key)
            self._clients[cache_key] = client
            logger.debug(f"Created vendor client for tenant {tenant.slug}")
        return client

    def close(self):
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close:
                close()
        self._clients.clear()
