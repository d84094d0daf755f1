# Overview: Normalizes shop order and fulfillment payloads into OrderEvent values.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from flask import current_app

from ..time_utils import parse_iso_datetime, utcnow
from .commission import dollars_to_cents
from .identity_service import parse_tags
from .inventory_service import OrderLine, external_id


class OrderPayloadError(ValueError):
    """Raised when a payload lacks the fields every order event needs."""
    pass


@dataclass(frozen=True)
class OrderEvent:
    external_order_id: str
    order_number: Optional[str]
    total_cents: int
    purchased_at: datetime
    external_customer_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    lines: tuple[OrderLine, ...] = field(default_factory=tuple)
    tracking_number: Optional[str] = None


def _parse_time(value, *, field_name: str, strict: bool) -> datetime:
    """
    Missing timestamps default to now. An unparsable one is rejected when
    strict (it decides the attribution window), otherwise logged and
    replaced by now.
    """
    if not value:
        return utcnow()
    try:
        parsed = parse_iso_datetime(str(value))
    except ValueError:
        if strict:
            raise OrderPayloadError(f"Order {field_name} is not an ISO-8601 timestamp: {value!r}")
        current_app.logger.warning("Unparsable %s %r on webhook payload; using current time", field_name, value)
        return utcnow()
    return parsed or utcnow()


def _price_cents(value) -> int:
    try:
        return max(0, dollars_to_cents(value))
    except ArithmeticError:
        return 0


def _parse_lines(raw_lines) -> tuple[OrderLine, ...]:
    lines = []
    for raw in raw_lines or []:
        if not isinstance(raw, dict):
            continue
        try:
            quantity = int(raw.get("quantity") or 0)
        except (TypeError, ValueError):
            quantity = 0
        lines.append(OrderLine(
            sku=(raw.get("sku") or None),
            quantity=quantity,
            external_product_id=external_id(raw.get("product_id")),
            external_variant_id=external_id(raw.get("variant_id")),
            price_cents=_price_cents(raw.get("price")),
            title=raw.get("title") or raw.get("name"),
        ))
    return tuple(lines)


def _tracking_number(payload: dict) -> str | None:
    if payload.get("tracking_number"):
        return str(payload["tracking_number"])
    numbers = payload.get("tracking_numbers") or []
    if numbers:
        return str(numbers[0])
    for fulfillment in payload.get("fulfillments") or []:
        if isinstance(fulfillment, dict):
            found = _tracking_number(fulfillment)
            if found:
                return found
    return None


def parse_order_payload(payload: dict) -> OrderEvent:
    """Order topics: the payload is the order itself."""
    if not isinstance(payload, dict) or payload.get("id") in (None, ""):
        raise OrderPayloadError("Order payload has no id")

    customer = payload.get("customer") or {}
    address = customer.get("default_address") or {}
    phone = (
        customer.get("phone")
        or payload.get("phone")
        or address.get("phone")
        or (payload.get("billing_address") or {}).get("phone")
    )
    try:
        total_cents = dollars_to_cents(payload.get("total_price"))
    except ArithmeticError:
        raise OrderPayloadError("Order total is not a number")
    if total_cents < 0:
        raise OrderPayloadError("Order total cannot be negative")

    number = payload.get("name") or payload.get("order_number")
    return OrderEvent(
        external_order_id=external_id(payload["id"]),
        order_number=str(number) if number is not None else None,
        total_cents=total_cents,
        purchased_at=_parse_time(
            payload.get("processed_at") or payload.get("created_at"),
            field_name="processed_at" if payload.get("processed_at") else "created_at",
            strict=True,
        ),
        external_customer_id=external_id(customer.get("id")),
        email=customer.get("email") or payload.get("email") or payload.get("contact_email"),
        phone=phone,
        tags=parse_tags(customer.get("tags")),
        lines=_parse_lines(payload.get("line_items")),
        tracking_number=_tracking_number(payload),
    )


def parse_fulfillment_payload(payload: dict) -> OrderEvent:
    """Fulfillment topics: the payload is a fulfillment that points at its order."""
    if not isinstance(payload, dict) or payload.get("order_id") in (None, ""):
        raise OrderPayloadError("Fulfillment payload has no order_id")

    return OrderEvent(
        external_order_id=external_id(payload["order_id"]),
        order_number=payload.get("name"),
        total_cents=0,
        purchased_at=_parse_time(payload.get("created_at"), field_name="created_at", strict=False),
        email=payload.get("email"),
        lines=_parse_lines(payload.get("line_items")),
        tracking_number=_tracking_number(payload),
    )
