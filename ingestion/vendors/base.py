"""
Vendor price API contract.

A client turns a list of item ids into PriceRecords. Ids the vendor does not
return are simply absent from the result. Failures are signalled with the
ingestion exception taxonomy:

- Throttled: the vendor asked us to slow down
- TransientVendorError: network trouble, timeouts, 5xx
- PermanentTaskError: the request can never succeed as sent
"""

from typing import Dict, List, Protocol, runtime_checkable

from ingestion.catalog.types import PriceRecord


@runtime_checkable
class VendorClient(Protocol):
    """Anything that can fetch prices for a chunk of item ids."""

    def fetch_items(self, item_ids: List[str]) -> Dict[str, PriceRecord]:
        ...
