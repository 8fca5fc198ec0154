"""
Tests for the vendor HTTP client and client factory.

Uses httpx.MockTransport; no network access.
"""

import json

import httpx
import pytest


def _client(handler):
    from ingestion.vendors.http_client import HttpVendorClient

    return HttpVendorClient(
        base_url="https://vendor.test",
        api_key="secret-key",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestHttpVendorClient:
    """Tests for HttpVendorClient.fetch_items."""

    def test_parses_items(self):
        """Test that a 200 response becomes PriceRecords keyed by item id."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "items": [
                    {"item_id": "A", "price": "2980", "title": "Charger", "shop": "Anker Direct"},
                    {"item_id": "B", "price": 1480.4, "title": "Cable"},
                ],
                "errors": [{"item_id": "C", "code": "ItemNotAccessible"}],
            })

        records = _client(handler).fetch_items(["A", "B", "C"])

        assert seen == {
            "path": "/v1/items/lookup",
            "auth": "Bearer secret-key",
            "body": {"item_ids": ["A", "B", "C"]},
        }
        assert set(records) == {"A", "B"}
        assert records["A"].price == 2980
        assert records["A"].shop_identity == "Anker Direct"
        assert records["B"].price == 1480

    def test_empty_request_skips_http(self):
        """Test that no call is made for an empty chunk."""
        def handler(request):
            raise AssertionError("should not be called")

        assert _client(handler).fetch_items([]) == {}

    def test_429_is_throttled(self):
        """Test that HTTP 429 raises Throttled."""
        from ingestion.exceptions import Throttled

        client = _client(lambda request: httpx.Response(429, json={"error": {"code": "TooManyRequests"}}))

        with pytest.raises(Throttled):
            client.fetch_items(["A"])

    def test_throttle_code_in_body_is_throttled(self):
        """Test that a throttling error code is recognized even without 429."""
        from ingestion.exceptions import Throttled

        client = _client(lambda request: httpx.Response(503, json={"error": "RATE_TPD_EXHAUSTED"}))

        with pytest.raises(Throttled):
            client.fetch_items(["A"])

    def test_5xx_is_transient(self):
        """Test that server errors raise TransientVendorError."""
        from ingestion.exceptions import TransientVendorError

        client = _client(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(TransientVendorError):
            client.fetch_items(["A"])

    def test_timeout_is_transient(self):
        """Test that timeouts raise TransientVendorError."""
        from ingestion.exceptions import TransientVendorError

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransientVendorError):
            _client(handler).fetch_items(["A"])

    def test_400_is_permanent(self):
        """Test that rejected requests raise PermanentTaskError."""
        from ingestion.exceptions import PermanentTaskError

        client = _client(lambda request: httpx.Response(400, json={"error": {"code": "InvalidParameterValue"}}))

        with pytest.raises(PermanentTaskError):
            client.fetch_items(["A"])

    def test_non_json_body_is_transient(self):
        """Test that an unparseable 200 body is treated as transient."""
        from ingestion.exceptions import TransientVendorError

        client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(TransientVendorError):
            client.fetch_items(["A"])


@pytest.mark.django_db
class TestVendorClientFactory:
    """Tests for VendorClientFactory."""

    def test_one_client_per_credential(self, tenant, other_tenant):
        """Test that tenants sharing a credential share one client."""
        from ingestion.vendors.factory import VendorClientFactory

        built = []

        def builder(base_url, api_key):
            built.append((base_url, api_key))
            return object()

        factory = VendorClientFactory(builder=builder, base_url="https://vendor.test")

        assert factory.for_tenant(tenant) is factory.for_tenant(other_tenant)
        assert built == [("https://vendor.test", "test-key")]

    def test_tenant_key_overrides_default(self, tenant):
        """Test that a tenant api_key gets its own client."""
        from ingestion.vendors.factory import VendorClientFactory

        built = []
        factory = VendorClientFactory(builder=lambda url, key: built.append(key) or object())
        tenant.api_key = "tenant-key"

        factory.for_tenant(tenant)

        assert built == ["tenant-key"]

    def test_default_builder_is_http_client(self, tenant):
        """Test that the default factory builds HTTP clients and closes them."""
        from ingestion.vendors import HttpVendorClient, VendorClient
        from ingestion.vendors.factory import VendorClientFactory

        factory = VendorClientFactory()
        client = factory.for_tenant(tenant)

        assert isinstance(client, HttpVendorClient)
        assert isinstance(client, VendorClient)
        assert client.base_url == "https://vendor.test"
        factory.close()
