"""
HTTP client for the vendor price API.

Endpoint: POST {base_url}/v1/items/lookup with {"item_ids": [...]}.
Response: {"items": [{"item_id": ..., "price": ..., "title": ...}, ...],
           "errors": [{"item_id": ..., "code": ...}]}

Status mapping:
- 429, or a throttling error code in the body -> Throttled
- 5xx, timeouts, connection errors -> TransientVendorError
- 400/404/422 -> PermanentTaskError
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

from ingestion.catalog.types import PriceRecord
from ingestion.exceptions import PermanentTaskError, Throttled, TransientVendorError

logger = logging.getLogger(__name__)

THROTTLE_CODES = {"TooManyRequests", "RATE_TPD_EXHAUSTED", "RequestThrottled"}
PERMANENT_STATUS_CODES = {400, 404, 422}


class HttpVendorClient:
    """
    Synchronous httpx client for one vendor credential.

    Args:
        base_url: Vendor API URL (defaults to settings.VENDOR_API_BASE_URL)
        api_key: Credential (defaults to settings.VENDOR_API_KEY)
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    LOOKUP_PATH = "/v1/items/lookup"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or getattr(settings, "VENDOR_API_BASE_URL", "")).rstrip("/")
        self.api_key = api_key if api_key is not None else getattr(settings, "VENDOR_API_KEY", "")
        self.timeout = timeout or getattr(settings, "VENDOR_REQUEST_TIMEOUT", 30)

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=transport,
        )

    def close(self):
        self._client.close()

    def fetch_items(self, item_ids: List[str]) -> Dict[str, PriceRecord]:
        """
        Fetch prices for a chunk of item ids.

        Returns:
            Mapping of item id to PriceRecord; unknown ids are omitted

        Raises:
            Throttled, TransientVendorError, PermanentTaskError
        """
        if not item_ids:
            return {}

        try:
            response = self._client.post(self.LOOKUP_PATH, json={"item_ids": list(item_ids)})
        except httpx.TimeoutException as e:
            raise TransientVendorError(f"Vendor timeout after {self.timeout}s: {e}") from e
        except httpx.TransportError as e:
            raise TransientVendorError(f"Vendor connection error: {e}") from e

        payload = self._parse_body(response)
        error_code = self._error_code(payload)

        if response.status_code == 429 or error_code in THROTTLE_CODES:
            raise Throttled(f"HTTP {response.status_code}: {error_code or 'Too Many Requests'}")
        if response.status_code >= 500:
            raise TransientVendorError(f"HTTP {response.status_code}: {response.text[:200]}")
        if response.status_code in PERMANENT_STATUS_CODES:
            raise PermanentTaskError(f"HTTP {response.status_code}: {error_code or response.text[:200]}")
        if response.status_code != 200 or payload is None:
            raise TransientVendorError(f"Unexpected vendor response HTTP {response.status_code}")

        records = {}
        for entry in payload.get("items") or []:
            item_id = str(entry.get("item_id") or "")
            if not item_id:
                continue
            try:
                records[item_id] = PriceRecord.from_payload(item_id, entry)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed vendor item {item_id}: {e}")

        for error in payload.get("errors") or []:
            logger.info(f"Vendor reported {error.get('code')} for item {error.get('item_id')}")

        return records

    @staticmethod
    def _parse_body(response: httpx.Response) -> Optional[Dict[str, Any]]:
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _error_code(payload: Optional[Dict[str, Any]]) -> str:
        if not payload:
            return ""
        error = payload.get("error")
        if isinstance(error, dict):
            return str(error.get("code") or "")
        if isinstance(error, str):
            return error
        return ""
