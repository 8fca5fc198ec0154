"""
Vendor price API clients.

Exports:
- VendorClient: client protocol
- HttpVendorClient: httpx implementation
- VendorClientFactory: per-credential client cache
- build_affiliate_url: affiliate link builder
"""

from ingestion.vendors.affiliate import build_affiliate_url
from ingestion.vendors.base import VendorClient
from ingestion.vendors.factory import VendorClientFactory
from ingestion.vendors.http_client import HttpVendorClient

__all__ = [
    "VendorClient",
    "HttpVendorClient",
    "VendorClientFactory",
    "build_affiliate_url",
]
