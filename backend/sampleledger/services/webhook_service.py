# Overview: Webhook ingress pipeline; authenticate, dedupe, dispatch, audit.

"""
Webhook Ingress Invariants (authoritative)

- A request is processed only after its HMAC-SHA256 signature (base64, over
  the raw body, keyed by the brand's webhook secret) verifies against the
  brand that owns the shop domain.
- Delivery is at-least-once. Before any side effect every order event is
  checked against Conversion(brand, external order id); a hit means the
  event is a redelivery and processing stops after the audit row.
- The unique constraint on Conversion is the real guard: a concurrent
  delivery that wins the insert turns ours into a duplicate, never a
  second credit.
- Business non-events (customer not tracked, not attributed, duplicate,
  unknown topic) are outcomes, not errors; the caller acknowledges them.
- Every processed event writes exactly one WebhookLog row, committed on its
  own after the business transaction (or its rollback).
- A wholesale shipment whose order is not known yet is parked, then applied
  when the paid event creates or links the order.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Brand, Conversion, Customer, Store, WholesaleOrder
from ..models.conversions import (
    WEBHOOK_DUPLICATE,
    WEBHOOK_FAILED,
    WEBHOOK_IGNORED,
    WEBHOOK_SUCCESS,
)
from ..models.customers import STAGE_PURCHASED, STAGE_REPEAT
from ..models.inventory import TX_WHOLESALE_INCOMING, TX_WHOLESALE_ORDERED
from ..time_utils import utcnow
from .attribution_service import AttributionDecision, conversion_exists, evaluate_attribution
from .audit_service import record_webhook_event
from .commission import (
    RATE_CONTEXT_ONLINE,
    calculate_commission_cents,
    format_cents,
    select_commission_rate,
)
from .concurrency import run_with_retry
from .credit_service import apply_credit, find_partnership
from .customer_tags import CustomerTagClient
from .identity_service import BuyerSignals, resolve_customer, with_fetched_tags
from .inventory_service import expand_wholesale_lines, stage_order_once
from .notification_service import notify_wholesale_delivered, notify_wholesale_shipped
from .order_events import OrderEvent, OrderPayloadError, parse_fulfillment_payload, parse_order_payload
from .wholesale_service import (
    apply_pending_fulfillment,
    find_order_by_external_id,
    record_fulfillment,
    record_pending_fulfillment,
    record_placed_order,
    store_for_external_customer,
    verification_url,
)


TOPIC_ORDERS_PAID = "orders/paid"
TOPIC_ORDERS_CREATE = "orders/create"
TOPIC_ORDERS_FULFILLED = "orders/fulfilled"
TOPIC_FULFILLMENTS_CREATE = "fulfillments/create"

ORDER_PLACED_TOPICS = {TOPIC_ORDERS_PAID, TOPIC_ORDERS_CREATE}
ORDER_SHIPPED_TOPICS = {TOPIC_ORDERS_FULFILLED, TOPIC_FULFILLMENTS_CREATE}

REASON_CUSTOMER_NOT_TRACKED = "customer_not_tracked"
REASON_DUPLICATE = "duplicate_delivery"
REASON_UNSUPPORTED_TOPIC = "unsupported_topic"
REASON_NOT_WHOLESALE = "not_wholesale"
REASON_FULFILLMENT_PENDING = "fulfillment_pending"


class WebhookAuthError(Exception):
    """Signature missing/invalid, or no active brand owns the shop domain."""
    pass


class WebhookPayloadError(Exception):
    """Headers missing or body unparsable."""
    pass


@dataclass
class WebhookOutcome:
    topic: str
    status: str
    reason: str
    message: str
    external_order_id: Optional[str] = None
    customer_id: Optional[int] = None
    conversion_id: Optional[int] = None
    wholesale_order_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "success": True,
            "topic": self.topic,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "external_order_id": self.external_order_id,
            "conversion_id": self.conversion_id,
            "wholesale_order_id": self.wholesale_order_id,
        }


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def compute_signature(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret: str | None, raw_body: bytes, signature: str | None) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(secret, raw_body)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("ascii", errors="replace"))


def find_brand_for_domain(shop_domain: str) -> Brand | None:
    return db.session.query(Brand).filter(
        Brand.shop_domain == shop_domain.strip().lower(),
        Brand.is_active.is_(True),
        Brand.shop_active.is_(True),
    ).first()


def authenticate(*, shop_domain: str | None, topic: str | None, signature: str | None, raw_body: bytes) -> Brand:
    if not shop_domain or not topic or not signature:
        record_webhook_event(
            topic=topic,
            status=WEBHOOK_FAILED,
            message="Missing required webhook headers",
            shop_domain=shop_domain,
            payload=raw_body,
        )
        raise WebhookPayloadError("Missing required webhook headers")

    brand = find_brand_for_domain(shop_domain)
    if brand is None:
        record_webhook_event(
            topic=topic,
            status=WEBHOOK_FAILED,
            message="Unknown shop domain",
            shop_domain=shop_domain,
            payload=raw_body,
        )
        raise WebhookAuthError(f"No active brand for shop domain {shop_domain}")

    if not verify_signature(brand.webhook_secret, raw_body, signature):
        current_app.logger.warning("Invalid webhook signature from %s (topic %s)", shop_domain, topic)
        record_webhook_event(
            topic=topic,
            status=WEBHOOK_FAILED,
            message="Invalid signature",
            brand_id=brand.id,
            shop_domain=shop_domain,
            payload=raw_body,
        )
        raise WebhookAuthError("Invalid webhook signature")
    return brand


# ---------------------------------------------------------------------------
# Attribution pipeline (orders/paid, orders/create)
# ---------------------------------------------------------------------------

def _default_tag_lookup(brand: Brand) -> Callable[[str], Iterable[str]] | None:
    client = CustomerTagClient(brand)
    return client if client.configured else None


def _attribute_order(brand: Brand, event: OrderEvent, tag_lookup) -> WebhookOutcome:
    """One unit of work: identity link, conversion insert, credit posting."""
    topic_stub = dict(topic="", external_order_id=event.external_order_id)
    # Outside the retried unit: a conflict must not repeat the shop API call
    signals = with_fetched_tags(
        BuyerSignals(
            brand_id=brand.id,
            external_customer_id=event.external_customer_id,
            phone=event.phone,
            email=event.email,
            tags=event.tags,
        ),
        tag_lookup,
    )

    def _op() -> WebhookOutcome:
        match = resolve_customer(signals)
        if match is None:
            db.session.commit()
            return WebhookOutcome(
                status=WEBHOOK_IGNORED,
                reason=REASON_CUSTOMER_NOT_TRACKED,
                message="Customer not tracked; no attribution",
                **topic_stub,
            )

        customer: Customer = match.customer
        decision: AttributionDecision = evaluate_attribution(
            customer=customer,
            brand=brand,
            purchase_at=event.purchased_at,
            external_order_id=event.external_order_id,
        )
        if not decision.attributed:
            db.session.commit()
            return WebhookOutcome(
                status=WEBHOOK_SUCCESS,
                reason=decision.reason,
                message=f"Not attributed: {decision.describe()}",
                customer_id=customer.id,
                **topic_stub,
            )

        partnership = find_partnership(decision.store_id, brand.id)
        rate = select_commission_rate(
            brand,
            partnership,
            RATE_CONTEXT_ONLINE,
            default=current_app.config.get("DEFAULT_COMMISSION_RATE"),
        )
        commission_cents = calculate_commission_cents(event.total_cents, rate)

        conversion = Conversion(
            brand_id=brand.id,
            external_order_id=event.external_order_id,
            order_number=event.order_number or f"#{event.external_order_id}",
            external_customer_id=event.external_customer_id,
            customer_id=customer.id,
            store_id=decision.store_id,
            partnership_id=partnership.id if partnership else None,
            sample_id=decision.sample.id,
            order_total_cents=event.total_cents,
            commission_rate=rate,
            commission_cents=commission_cents,
            sample_date=decision.sample.sampled_at,
            purchase_date=event.purchased_at,
            days_to_conversion=decision.days_to_conversion,
            attributed=True,
            paid=False,
        )
        db.session.add(conversion)
        # A racing delivery of the same order fails here, before any credit
        db.session.flush()

        message = f"Conversion tracked: {format_cents(commission_cents)}"
        if partnership is not None:
            if commission_cents > 0:
                apply_credit(
                    partnership_id=partnership.id,
                    amount_cents=commission_cents,
                    reason=f"Commission for order {conversion.order_number}",
                    conversion_id=conversion.id,
                    occurred_at=event.purchased_at,
                )
            conversion.paid = True
            conversion.paid_at = utcnow()
        else:
            message += " (no partnership; credit not posted)"

        customer.stage = STAGE_REPEAT if customer.purchased_at is not None else STAGE_PURCHASED
        customer.purchased_at = event.purchased_at
        customer.attributed_store_id = decision.store_id

        db.session.commit()
        return WebhookOutcome(
            status=WEBHOOK_SUCCESS,
            reason=decision.reason,
            message=message,
            customer_id=customer.id,
            conversion_id=conversion.id,
            **topic_stub,
        )

    try:
        return run_with_retry(_op)
    except IntegrityError:
        db.session.rollback()
        return WebhookOutcome(
            status=WEBHOOK_DUPLICATE,
            reason=REASON_DUPLICATE,
            message="Conversion already tracked by a concurrent delivery",
            **topic_stub,
        )


# ---------------------------------------------------------------------------
# Wholesale staging
# ---------------------------------------------------------------------------

@dataclass
class _StagingStep:
    order: Optional[WholesaleOrder] = None
    staged_now: bool = False
    delivered_now: bool = False
    note: str = ""
    # None: no shipment parked; True: new pending row; False: redelivered
    parked: Optional[bool] = None


def _resolve_wholesale_store(brand: Brand, event: OrderEvent) -> tuple[Optional[WholesaleOrder], Optional[Store]]:
    """Order first (cart checkouts), then the buying customer (direct shop orders)."""
    order = find_order_by_external_id(brand.id, event.external_order_id)
    if order is not None:
        return order, order.store
    return None, store_for_external_customer(event.external_customer_id)


def _notify_delivered(order: WholesaleOrder) -> None:
    notify_wholesale_shipped(order)
    notify_wholesale_delivered(
        order,
        verification_url(order, current_app.config.get("APP_BASE_URL", "")),
    )


def _stage_placed_order(brand: Brand, event: OrderEvent) -> _StagingStep:
    if not event.lines:
        return _StagingStep()

    def _op() -> _StagingStep:
        order, store = _resolve_wholesale_store(brand, event)
        if store is None:
            return _StagingStep()
        result = expand_wholesale_lines(brand.id, event.lines)
        if not result.staged:
            return _StagingStep()

        order = record_placed_order(
            store=store,
            brand=brand,
            external_order_id=event.external_order_id,
            staged=result.staged,
        )
        step = _StagingStep(order=order)
        step.staged_now = stage_order_once(
            store_id=store.id,
            external_order_id=event.external_order_id,
            staged=result.staged,
            tx_type=TX_WHOLESALE_ORDERED,
            wholesale_order_id=order.id,
            order_label=f"Wholesale order {order.order_number}",
        )
        step.delivered_now = apply_pending_fulfillment(order)
        db.session.commit()

        if step.staged_now:
            step.note = f"staged {result.total_units} units for {store.store_code}"
        else:
            step.note = "wholesale already staged"
        if step.delivered_now:
            step.note += "; earlier shipment applied"
        return step

    step = run_with_retry(_op)
    if step.delivered_now:
        _notify_delivered(step.order)
    return step


def _stage_shipped_order(brand: Brand, event: OrderEvent) -> WebhookOutcome:
    outcome = WebhookOutcome(
        topic="",
        status=WEBHOOK_IGNORED,
        reason=REASON_NOT_WHOLESALE,
        message="Not a wholesale order",
        external_order_id=event.external_order_id,
    )

    def _op() -> _StagingStep:
        order, store = _resolve_wholesale_store(brand, event)
        result = expand_wholesale_lines(brand.id, event.lines)
        if store is None:
            # Fulfillment payloads name no customer: park box shipments until the paid event links the order
            if event.external_customer_id is None and (result.staged or not event.lines):
                _, created = record_pending_fulfillment(
                    brand=brand,
                    external_order_id=event.external_order_id,
                    tracking_number=event.tracking_number,
                )
                db.session.commit()
                return _StagingStep(parked=created)
            return _StagingStep()

        step = _StagingStep(order=order)
        if result.staged:
            if step.order is None:
                step.order = record_placed_order(
                    store=store,
                    brand=brand,
                    external_order_id=event.external_order_id,
                    staged=result.staged,
                )
            step.staged_now = stage_order_once(
                store_id=store.id,
                external_order_id=event.external_order_id,
                staged=result.staged,
                tx_type=TX_WHOLESALE_INCOMING,
                wholesale_order_id=step.order.id,
                order_label=f"Wholesale order {step.order.order_number}",
            )
        if step.order is None:
            return step

        step.delivered_now = record_fulfillment(step.order, tracking_number=event.tracking_number)
        db.session.commit()
        return step

    step = run_with_retry(_op)

    if step.parked is not None:
        if step.parked:
            outcome.status = WEBHOOK_SUCCESS
            outcome.reason = REASON_FULFILLMENT_PENDING
            outcome.message = f"Shipment recorded; waiting for order {event.external_order_id}"
        else:
            outcome.status = WEBHOOK_DUPLICATE
            outcome.reason = REASON_DUPLICATE
            outcome.message = f"Shipment for order {event.external_order_id} already recorded"
        return outcome

    order = step.order
    if order is None:
        return outcome

    outcome.wholesale_order_id = order.id
    if not step.staged_now and not step.delivered_now:
        outcome.status = WEBHOOK_DUPLICATE
        outcome.reason = REASON_DUPLICATE
        outcome.message = f"Wholesale order {order.order_number} already fulfilled"
        return outcome

    if step.delivered_now:
        _notify_delivered(order)

    outcome.status = WEBHOOK_SUCCESS
    outcome.reason = "wholesale_delivered" if step.delivered_now else "wholesale_staged"
    outcome.message = f"Wholesale order {order.order_number} fulfilled"
    if step.staged_now:
        outcome.message += "; incoming inventory staged"
    return outcome


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def _handle_order_placed(brand: Brand, event: OrderEvent, tag_lookup) -> WebhookOutcome:
    outcome = _attribute_order(brand, event, tag_lookup)
    if outcome.status == WEBHOOK_DUPLICATE:
        return outcome

    step = _stage_placed_order(brand, event)
    if step.order is not None:
        outcome.wholesale_order_id = step.order.id
        if step.note:
            outcome.message += f"; {step.note}"
    return outcome


def _parse_event(topic: str, payload: dict) -> OrderEvent:
    if topic == TOPIC_FULFILLMENTS_CREATE:
        return parse_fulfillment_payload(payload)
    return parse_order_payload(payload)


def process_webhook(
    *,
    shop_domain: str | None,
    topic: str | None,
    signature: str | None,
    raw_body: bytes,
    tag_lookup: Callable[[str], Iterable[str]] | None = None,
) -> WebhookOutcome:
    """
    Authenticate and process one webhook delivery.

    Raises:
        WebhookPayloadError: missing headers, bad JSON, or an order payload
            without the fields every event needs (400)
        WebhookAuthError: unknown shop domain or bad signature (401)
    Any other exception is audited as failed and re-raised.
    """
    brand = authenticate(shop_domain=shop_domain, topic=topic, signature=signature, raw_body=raw_body)
    audit = dict(topic=topic, brand_id=brand.id, shop_domain=shop_domain)

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        record_webhook_event(status=WEBHOOK_FAILED, message="Unparsable JSON body", payload=raw_body, **audit)
        raise WebhookPayloadError("Webhook body is not valid JSON")

    if topic not in ORDER_PLACED_TOPICS and topic not in ORDER_SHIPPED_TOPICS:
        current_app.logger.info("Ignoring webhook topic %s from %s", topic, shop_domain)
        record_webhook_event(
            status=WEBHOOK_IGNORED,
            message=f"Unsupported topic {topic}",
            external_order_id=str(payload.get("id")) if isinstance(payload, dict) and payload.get("id") else None,
            **audit,
        )
        return WebhookOutcome(
            topic=topic,
            status=WEBHOOK_IGNORED,
            reason=REASON_UNSUPPORTED_TOPIC,
            message=f"Unsupported topic {topic}",
        )

    try:
        event = _parse_event(topic, payload)
    except OrderPayloadError as e:
        record_webhook_event(status=WEBHOOK_FAILED, message=str(e), payload=raw_body, **audit)
        raise WebhookPayloadError(str(e))

    audit["external_order_id"] = event.external_order_id

    if conversion_exists(brand.id, event.external_order_id):
        record_webhook_event(status=WEBHOOK_DUPLICATE, message="Conversion already tracked", **audit)
        return WebhookOutcome(
            topic=topic,
            status=WEBHOOK_DUPLICATE,
            reason=REASON_DUPLICATE,
            message="Conversion already tracked",
            external_order_id=event.external_order_id,
        )

    if tag_lookup is None:
        tag_lookup = _default_tag_lookup(brand)

    try:
        if topic in ORDER_PLACED_TOPICS:
            outcome = _handle_order_placed(brand, event, tag_lookup)
        else:
            outcome = _stage_shipped_order(brand, event)
    except Exception as e:
        db.session.rollback()
        record_webhook_event(status=WEBHOOK_FAILED, message=str(e) or e.__class__.__name__, payload=raw_body, **audit)
        raise

    outcome.topic = topic
    record_webhook_event(
        status=outcome.status,
        message=outcome.message,
        customer_id=outcome.customer_id,
        **audit,
    )
    current_app.logger.info(
        "Webhook %s order %s from %s: %s (%s)",
        topic,
        event.external_order_id,
        shop_domain,
        outcome.status,
        outcome.reason,
    )
    return outcome
