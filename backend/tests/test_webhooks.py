"""
Webhook ingress tests (through the HTTP layer).

Verifies:
- Signature and header failures map to 401/400 and are audited
- An attributed order posts commission exactly once
- Business non-events are acknowledged with 200
- Wholesale orders stage incoming inventory once and reach delivered,
  whichever of the paid and shipped events arrives first
"""

import json

import pytest
from sqlalchemy.orm.exc import StaleDataError

from conftest import SHOP_DOMAIN, STORE_CUSTOMER_ID, WEBHOOK_SECRET, order_payload, post_webhook
from sampleledger.models import (
    BrandPartnership,
    Conversion,
    CreditTransaction,
    Customer,
    InventoryTransaction,
    PendingFulfillment,
    StoreInventory,
    WebhookLog,
    WholesaleOrder,
)
from sampleledger.models.conversions import (
    WEBHOOK_DUPLICATE,
    WEBHOOK_FAILED,
    WEBHOOK_IGNORED,
    WEBHOOK_SUCCESS,
)
from sampleledger.models.customers import STAGE_PURCHASED
from sampleledger.models.wholesale import WHOLESALE_DELIVERED, WHOLESALE_SUBMITTED
from sampleledger.services import webhook_service, wholesale_service
from sampleledger.services.webhook_service import compute_signature


class RecordingSender:
    def __init__(self):
        self.sent = []

    def send(self, *, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body})


@pytest.fixture
def sender(app, monkeypatch):
    recorder = RecordingSender()
    monkeypatch.setitem(app.extensions, "notification_sender", recorder)
    return recorder


def _wholesale_payload(order_id="2001", **overrides):
    overrides.setdefault("customer_id", STORE_CUSTOMER_ID)
    return order_payload(
        order_id,
        total="120.00",
        phone=None,
        email=None,
        line_items=[{
            "product_id": "gid://shopify/Product/88001",
            "variant_id": 44001,
            "sku": "VD-SB-30-BX",
            "quantity": 2,
            "price": "60.00",
            "title": "Sleep Drops box",
        }],
        **overrides,
    )


# ---------------------------------------------------------------------------
# Authentication and malformed requests
# ---------------------------------------------------------------------------

def test_bad_signature_is_rejected_and_audited(client, db_session, brand):
    response = post_webhook(client, "orders/paid", order_payload(), signature="bm90LXRoZS1yaWdodC1zaWc=")

    assert response.status_code == 401
    db_session.expire_all()
    logs = db_session.query(WebhookLog).all()
    assert len(logs) == 1
    assert logs[0].status == WEBHOOK_FAILED
    assert logs[0].message == "Invalid signature"
    assert db_session.query(Conversion).count() == 0


def test_unknown_shop_domain(client, db_session, brand):
    response = post_webhook(client, "orders/paid", order_payload(), domain="other.myshopify.com")
    assert response.status_code == 401
    db_session.expire_all()
    log = db_session.query(WebhookLog).one()
    assert log.message == "Unknown shop domain"
    assert log.brand_id is None
    assert log.payload


def test_missing_headers(client, db_session, brand):
    response = client.post("/api/webhooks/orders", data=b"{}", headers={"X-Shopify-Topic": "orders/paid"})
    assert response.status_code == 400
    db_session.expire_all()
    assert db_session.query(WebhookLog).one().status == WEBHOOK_FAILED


def test_invalid_json_body(client, db_session, brand):
    response = post_webhook(client, "orders/paid", b"not json at all")

    assert response.status_code == 400
    db_session.expire_all()
    log = db_session.query(WebhookLog).one()
    assert log.status == WEBHOOK_FAILED


def test_order_without_id(client, db_session, brand):
    payload = order_payload()
    del payload["id"]
    response = post_webhook(client, "orders/paid", payload)
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------

def test_attributed_order_posts_commission(client, db_session, brand, partnership_a, sampled_customer):
    response = post_webhook(client, "orders/paid", order_payload("1001", total="133.33"))

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["status"] == WEBHOOK_SUCCESS
    assert body["conversion_id"] is not None

    db_session.expire_all()
    conversion = db_session.query(Conversion).one()
    assert conversion.commission_cents == 1333
    assert conversion.order_total_cents == 13333
    assert conversion.paid is True
    assert conversion.external_customer_id == "9001"

    partnership = db_session.get(BrandPartnership, partnership_a.id)
    assert partnership.credit_balance_cents == 1333

    tx = db_session.query(CreditTransaction).one()
    assert tx.amount_cents == 1333
    assert tx.conversion_id == conversion.id

    customer = db_session.get(Customer, sampled_customer.id)
    assert customer.stage == STAGE_PURCHASED
    assert customer.external_customer_id == "9001"

    log = db_session.query(WebhookLog).one()
    assert log.status == WEBHOOK_SUCCESS
    assert "$13.33" in log.message


def test_redelivered_order_credits_once(client, db_session, brand, partnership_a, sampled_customer):
    first = post_webhook(client, "orders/paid", order_payload("1002"))
    second = post_webhook(client, "orders/paid", order_payload("1002"))
    third = post_webhook(client, "orders/create", order_payload("1002"))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.get_json()["status"] == WEBHOOK_DUPLICATE
    assert third.get_json()["status"] == WEBHOOK_DUPLICATE

    db_session.expire_all()
    assert db_session.query(Conversion).count() == 1
    assert db_session.query(CreditTransaction).count() == 1
    assert db_session.get(BrandPartnership, partnership_a.id).credit_balance_cents == 1333
    assert db_session.query(WebhookLog).filter_by(status=WEBHOOK_DUPLICATE).count() == 2


def test_zero_total_order_records_conversion_without_credit(
    client, db_session, brand, partnership_a, sampled_customer
):
    response = post_webhook(client, "orders/paid", order_payload("1003", total="0.00"))

    assert response.status_code == 200
    db_session.expire_all()
    conversion = db_session.query(Conversion).one()
    assert conversion.commission_cents == 0
    assert conversion.paid is True
    assert db_session.query(CreditTransaction).count() == 0
    assert db_session.get(BrandPartnership, partnership_a.id).credit_balance_cents == 0


def test_order_without_partnership_is_unpaid(client, db_session, brand, sampled_customer):
    response = post_webhook(client, "orders/paid", order_payload("1004"))

    assert response.status_code == 200
    assert "no partnership" in response.get_json()["message"]
    db_session.expire_all()
    conversion = db_session.query(Conversion).one()
    assert conversion.paid is False
    assert db_session.query(CreditTransaction).count() == 0


def test_untracked_customer_is_ignored(client, db_session, brand, partnership_a):
    payload = order_payload("1005", phone="+15550009999", email="stranger@example.com")
    response = post_webhook(client, "orders/paid", payload)

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == WEBHOOK_IGNORED
    assert body["reason"] == "customer_not_tracked"
    db_session.expire_all()
    assert db_session.query(Conversion).count() == 0
    assert db_session.query(WebhookLog).one().status == WEBHOOK_IGNORED


def test_unsupported_topic_is_ignored(client, db_session, brand):
    response = post_webhook(client, "products/update", {"id": 55})

    assert response.status_code == 200
    assert response.get_json()["reason"] == "unsupported_topic"
    db_session.expire_all()
    log = db_session.query(WebhookLog).one()
    assert log.status == WEBHOOK_IGNORED
    assert log.external_order_id == "55"


def test_expired_window_is_acknowledged(client, db_session, brand, partnership_a, sampled_customer):
    from datetime import timedelta

    from sampleledger.time_utils import utcnow

    payload = order_payload("1006", created_at=utcnow() + timedelta(days=25))
    response = post_webhook(client, "orders/paid", payload)

    assert response.status_code == 200
    body = response.get_json()
    assert body["reason"] == "window_expired"
    assert body["message"].startswith("Not attributed")
    db_session.expire_all()
    assert db_session.query(Conversion).count() == 0


# ---------------------------------------------------------------------------
# Wholesale staging
# ---------------------------------------------------------------------------

def test_wholesale_order_paid_then_fulfilled(client, db_session, brand, store_a, box_product, sender):
    paid = post_webhook(client, "orders/paid", _wholesale_payload())
    assert paid.status_code == 200
    order_id = paid.get_json()["wholesale_order_id"]
    assert order_id is not None

    db_session.expire_all()
    inventory = db_session.query(StoreInventory).filter_by(store_id=store_a.id, product_sku="VD-SB-30").one()
    assert inventory.quantity_incoming == 12
    assert inventory.quantity_on_hand == 0
    order = db_session.get(WholesaleOrder, order_id)
    assert order.status == WHOLESALE_SUBMITTED
    assert order.external_order_id == "2001"
    assert order.items[0].expected_units == 12

    # Redelivery of the paid event stages nothing new
    again = post_webhook(client, "orders/paid", _wholesale_payload())
    assert again.status_code == 200
    db_session.expire_all()
    inventory = db_session.query(StoreInventory).filter_by(store_id=store_a.id, product_sku="VD-SB-30").one()
    assert inventory.quantity_incoming == 12
    assert db_session.query(WholesaleOrder).count() == 1

    payload = _wholesale_payload()
    payload["fulfillments"] = [{"tracking_number": "1Z999"}]
    fulfilled = post_webhook(client, "orders/fulfilled", payload)
    assert fulfilled.status_code == 200
    assert fulfilled.get_json()["reason"] == "wholesale_delivered"

    db_session.expire_all()
    order = db_session.get(WholesaleOrder, order_id)
    assert order.status == WHOLESALE_DELIVERED
    assert order.tracking_number == "1Z999"
    assert order.verification_token
    inventory = db_session.query(StoreInventory).filter_by(store_id=store_a.id, product_sku="VD-SB-30").one()
    assert inventory.quantity_incoming == 12
    assert db_session.query(InventoryTransaction).count() == 1

    subjects = [m["subject"] for m in sender.sent]
    assert any("shipped" in s for s in subjects)
    delivered = [m for m in sender.sent if "delivered" in m["subject"]]
    assert delivered and f"https://ledger.test/api/wholesale/verify/{order.verification_token}" in delivered[0]["body"]

    repeat = post_webhook(client, "orders/fulfilled", payload)
    assert repeat.get_json()["status"] == WEBHOOK_DUPLICATE


def test_fulfilled_before_paid_stages_once(client, db_session, brand, store_a, box_product, sender):
    shipped_payload = _wholesale_payload("2002")
    shipped_payload["fulfillments"] = [{"tracking_numbers": ["TRACK-1"]}]
    shipped = post_webhook(client, "orders/fulfilled", shipped_payload)
    assert shipped.status_code == 200
    assert shipped.get_json()["reason"] == "wholesale_delivered"

    paid = post_webhook(client, "orders/paid", _wholesale_payload("2002"))
    assert paid.status_code == 200

    db_session.expire_all()
    inventory = db_session.query(StoreInventory).filter_by(store_id=store_a.id, product_sku="VD-SB-30").one()
    assert inventory.quantity_incoming == 12
    order = db_session.query(WholesaleOrder).one()
    assert order.status == WHOLESALE_DELIVERED
    assert order.tracking_number == "TRACK-1"


def test_fulfillment_topic_resolves_order_by_id(client, db_session, brand, store_a, box_product, sender):
    post_webhook(client, "orders/paid", _wholesale_payload("2003"))

    fulfillment = {"id": 777, "order_id": 2003, "tracking_number": "TRACK-2", "line_items": []}
    response = post_webhook(client, "fulfillments/create", fulfillment)

    assert response.status_code == 200
    db_session.expire_all()
    order = db_session.query(WholesaleOrder).one()
    assert order.status == WHOLESALE_DELIVERED
    assert order.tracking_number == "TRACK-2"


def test_shipment_for_retail_customer_is_not_wholesale(client, db_session, brand, box_product):
    response = post_webhook(client, "orders/fulfilled", order_payload("3001"))

    assert response.status_code == 200
    assert response.get_json()["reason"] == "not_wholesale"


def test_audit_log_listing(client, db_session, brand, partnership_a, sampled_customer):
    post_webhook(client, "orders/paid", order_payload("4001"))
    post_webhook(client, "orders/paid", order_payload("4001"))
    post_webhook(client, "orders/paid", order_payload("4002"), signature="bad")

    everything = client.get("/api/webhooks/events").get_json()
    assert everything["count"] == 3

    failed = client.get(f"/api/webhooks/events?status=failed&brand_id={brand.id}").get_json()
    assert [e["message"] for e in failed["items"]] == ["Invalid signature"]
    assert "payload" not in failed["items"][0]


def test_fulfillment_before_paid_is_applied_when_order_links(client, db_session, brand, store_a, box_product, sender):
    # Fulfillment payloads carry no customer, so the store is unknown until the paid event
    fulfillment = {
        "id": 778,
        "order_id": 2009,
        "tracking_number": "TRACK-9",
        "line_items": [{"variant_id": 44001, "sku": "VD-SB-30-BX", "quantity": 2}],
    }
    shipped = post_webhook(client, "fulfillments/create", fulfillment)
    assert shipped.status_code == 200
    assert shipped.get_json()["status"] == WEBHOOK_SUCCESS
    assert shipped.get_json()["reason"] == "fulfillment_pending"

    again = post_webhook(client, "fulfillments/create", fulfillment)
    assert again.get_json()["status"] == WEBHOOK_DUPLICATE

    db_session.expire_all()
    pending = db_session.query(PendingFulfillment).one()
    assert pending.applied_at is None
    assert db_session.query(WholesaleOrder).count() == 0

    paid = post_webhook(client, "orders/paid", _wholesale_payload("2009"))
    assert paid.status_code == 200
    order_id = paid.get_json()["wholesale_order_id"]

    db_session.expire_all()
    order = db_session.get(WholesaleOrder, order_id)
    assert order.status == WHOLESALE_DELIVERED
    assert order.tracking_number == "TRACK-9"
    assert order.verification_token
    inventory = db_session.query(StoreInventory).filter_by(store_id=store_a.id, product_sku="VD-SB-30").one()
    assert inventory.quantity_incoming == 12
    pending = db_session.query(PendingFulfillment).one()
    assert pending.applied_at is not None
    assert pending.wholesale_order_id == order.id

    delivered = [m for m in sender.sent if "delivered" in m["subject"]]
    assert delivered and order.verification_token in delivered[0]["body"]

    # A later redelivery of the shipment is a duplicate, not a second delivery
    late = post_webhook(client, "fulfillments/create", fulfillment)
    assert late.get_json()["status"] == WEBHOOK_DUPLICATE
    assert len([m for m in sender.sent if "delivered" in m["subject"]]) == 1


def test_retail_fulfillment_is_not_parked(client, db_session, brand, box_product):
    fulfillment = {"id": 779, "order_id": 3002, "line_items": [{"sku": "VD-SB-30", "quantity": 1}]}
    response = post_webhook(client, "fulfillments/create", fulfillment)

    assert response.status_code == 200
    assert response.get_json()["reason"] == "not_wholesale"
    db_session.expire_all()
    assert db_session.query(PendingFulfillment).count() == 0


def test_cart_order_is_staged_when_paid(client, db_session, brand, store_b, box_product, sender):
    # store_b has no shop customer id; the submitted cart order identifies it
    order = wholesale_service.create_wholesale_order(store_id=store_b.id, cart={"VD:VD-SB-30-BX": 2})[0]
    wholesale_service.submit_wholesale_order(order.id, external_order_id="2010")

    paid = post_webhook(client, "orders/paid", _wholesale_payload("2010", customer_id="9001"))
    assert paid.status_code == 200
    assert paid.get_json()["wholesale_order_id"] == order.id

    db_session.expire_all()
    inventory = db_session.query(StoreInventory).filter_by(store_id=store_b.id, product_sku="VD-SB-30").one()
    assert inventory.quantity_incoming == 12
    assert db_session.query(WholesaleOrder).count() == 1
    assert db_session.get(WholesaleOrder, order.id).status == WHOLESALE_SUBMITTED


def test_unparsable_order_timestamp_is_rejected(client, db_session, brand, partnership_a, sampled_customer):
    payload = order_payload("1101")
    payload["created_at"] = "not-a-date"
    response = post_webhook(client, "orders/paid", payload)

    assert response.status_code == 400
    db_session.expire_all()
    log = db_session.query(WebhookLog).one()
    assert log.status == WEBHOOK_FAILED
    assert "created_at" in log.message
    assert db_session.query(Conversion).count() == 0


def test_unparsable_fulfillment_timestamp_is_tolerated(client, db_session, brand, store_a, box_product, sender):
    post_webhook(client, "orders/paid", _wholesale_payload("2011"))

    fulfillment = {"id": 780, "order_id": 2011, "created_at": "yesterday-ish", "line_items": []}
    response = post_webhook(client, "fulfillments/create", fulfillment)

    assert response.status_code == 200
    assert response.get_json()["reason"] == "wholesale_delivered"


def test_tag_lookup_runs_once_when_unit_of_work_retries(db_session, brand, partnership_a, sampled_customer, monkeypatch):
    lookups = []

    def lookup(external_customer_id):
        lookups.append(external_customer_id)
        return ["vip"]

    real_resolve = webhook_service.resolve_customer
    attempts = []

    def conflicting_resolve(signals, **kwargs):
        attempts.append(signals.tags)
        if len(attempts) == 1:
            raise StaleDataError("concurrent update")
        return real_resolve(signals, **kwargs)

    monkeypatch.setattr(webhook_service, "resolve_customer", conflicting_resolve)

    body = json.dumps(order_payload("5001", tags="")).encode("utf-8")
    outcome = webhook_service.process_webhook(
        shop_domain=SHOP_DOMAIN,
        topic="orders/paid",
        signature=compute_signature(WEBHOOK_SECRET, body),
        raw_body=body,
        tag_lookup=lookup,
    )

    assert outcome.status == WEBHOOK_SUCCESS
    assert outcome.conversion_id is not None
    assert lookups == ["9001"]
    assert attempts == [("vip",), ("vip",)]
