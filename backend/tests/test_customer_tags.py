"""
Customer tag lookup tests.

The client never raises: network and payload failures degrade to no tags.
"""

import httpx

from sampleledger.services.customer_tags import CustomerTagClient


def _configure(db_session, brand):
    brand.api_base_url = "https://vitaldrops.example/admin/api/2024-01/"
    brand.api_access_token = "shpat_test"
    db_session.commit()


def test_unconfigured_brand_returns_no_tags(db_session, brand):
    client = CustomerTagClient(brand)
    assert client.configured is False
    assert client("9001") == []


def test_fetches_and_splits_tags(db_session, brand):
    _configure(db_session, brand)
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["token"] = request.headers.get("X-Shopify-Access-Token")
        return httpx.Response(200, json={"customer": {"id": 9001, "tags": "vip, member:MEM-AAAA ,"}})

    client = CustomerTagClient(brand, transport=httpx.MockTransport(handler))

    assert client("9001") == ["vip", "member:MEM-AAAA"]
    assert seen["url"] == "https://vitaldrops.example/admin/api/2024-01/customers/9001.json"
    assert seen["token"] == "shpat_test"


def test_http_error_degrades_to_empty(db_session, brand):
    _configure(db_session, brand)
    client = CustomerTagClient(brand, transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    assert client.fetch_tags("9001") == []


def test_transport_failure_degrades_to_empty(db_session, brand):
    _configure(db_session, brand)

    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    client = CustomerTagClient(brand, transport=httpx.MockTransport(handler))
    assert client.fetch_tags("9001") == []


def test_non_json_body_degrades_to_empty(db_session, brand):
    _configure(db_session, brand)
    client = CustomerTagClient(brand, transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")))
    assert client.fetch_tags("9001") == []
