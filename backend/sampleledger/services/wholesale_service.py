# Overview: Wholesale replenishment orders; credit redemption, lifecycle and receipt verification.

"""
Wholesale Order Service

LIFECYCLE (no skipping):
1. pending: created from a store cart, credit already applied
2. submitted: placed with the brand's shop (external order id recorded)
3. delivered: shipment arrived; a one-time verification token is issued
4. verified: store confirmed received quantities (terminal)

CREDIT:
- Each order belongs to one brand shop domain. Available partnership credit
  is deducted through the credit ledger poster in the same unit of work as
  the order insert; the deduction is clamped, so a short balance becomes a
  partial redemption and the remainder is paid in cash.

VERIFICATION:
- Only delivered orders can be verified; a verified order cannot be
  verified again. Received quantities move units from incoming to on-hand
  and discrepancies are recorded, never auto-corrected.
"""

from __future__ import annotations

import secrets
from collections import OrderedDict
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Brand,
    PendingFulfillment,
    Product,
    Store,
    WholesaleOrder,
    WholesaleOrderItem,
    WholesaleOrderSequence,
)
from ..models.wholesale import (
    WHOLESALE_DELIVERED,
    WHOLESALE_PENDING,
    WHOLESALE_SUBMITTED,
    WHOLESALE_VERIFIED,
)
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .credit_service import apply_credit, find_partnership
from .inventory_service import StagedLine, reconcile_received, retail_sku_for


ALLOWED_TRANSITIONS = {
    WHOLESALE_PENDING: WHOLESALE_SUBMITTED,
    WHOLESALE_SUBMITTED: WHOLESALE_DELIVERED,
    WHOLESALE_DELIVERED: WHOLESALE_VERIFIED,
}


class WholesaleOrderNotFoundError(Exception):
    """Raised when a wholesale order is not found."""
    pass


class WholesaleOrderValidationError(Exception):
    """Raised when wholesale order data fails validation."""
    pass


class WholesaleOrderStateError(Exception):
    """Raised when an operation is invalid for the current order status."""
    pass


def get_wholesale_order(order_id: int) -> WholesaleOrder:
    order = db.session.get(WholesaleOrder, order_id)
    if order is None:
        raise WholesaleOrderNotFoundError(f"Wholesale order {order_id} not found")
    return order


def get_order_by_token(token: str) -> WholesaleOrder:
    order = None
    if token:
        order = db.session.query(WholesaleOrder).filter_by(verification_token=token).first()
    if order is None:
        raise WholesaleOrderNotFoundError("Invalid or expired verification link")
    return order


def find_order_by_external_id(brand_id: int, external_order_id: str) -> WholesaleOrder | None:
    return db.session.query(WholesaleOrder).filter_by(
        brand_id=brand_id,
        external_order_id=external_order_id,
    ).first()


def store_for_external_customer(external_customer_id: str | None) -> Store | None:
    """A store buys wholesale as a customer of the brand's shop."""
    if not external_customer_id:
        return None
    return db.session.query(Store).filter(
        Store.external_customer_id == str(external_customer_id),
        Store.is_active.is_(True),
    ).first()


def _next_order_number() -> str:
    """
    Allocate the next WO-YYYYMMDD-NNN number from the day's sequence row.

    Runs inside the caller's unit of work; a lost race on the first number
    of the day rolls back to a savepoint only.
    """
    day = f"{utcnow():%Y%m%d}"
    stmt = (
        update(WholesaleOrderSequence)
        .where(WholesaleOrderSequence.sequence_date == day)
        .values(next_number=WholesaleOrderSequence.next_number + 1)
    )

    def _current() -> int:
        db.session.flush()
        return db.session.query(WholesaleOrderSequence.next_number).filter_by(sequence_date=day).scalar() - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current()
    else:
        nested = db.session.begin_nested()
        try:
            db.session.add(WholesaleOrderSequence(sequence_date=day, next_number=2))
            db.session.flush()
            nested.commit()
            next_num = 1
        except IntegrityError:
            nested.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current()

    return f"WO-{day}-{next_num:03d}"


def _transition(order: WholesaleOrder, target: str) -> None:
    if ALLOWED_TRANSITIONS.get(order.status) != target:
        raise WholesaleOrderStateError(
            f"Cannot move {order.status} order {order.order_number} to {target}"
        )
    now = utcnow()
    order.status = target
    if target == WHOLESALE_SUBMITTED:
        order.submitted_at = now
    elif target == WHOLESALE_DELIVERED:
        order.delivered_at = now
        order.verification_token = secrets.token_hex(32)
    elif target == WHOLESALE_VERIFIED:
        order.verified_at = now


def _find_cart_product(key: str) -> Product:
    """Cart keys are "BRAND_CODE:SKU", or a bare SKU when only one brand sells it."""
    brand_code, _, sku = str(key).rpartition(":")
    query = db.session.query(Product).filter(
        Product.sku == sku.strip(),
        Product.is_active.is_(True),
        Product.units_per_box.isnot(None),
    )
    if brand_code:
        query = query.join(Brand, Product.brand_id == Brand.id).filter(Brand.code == brand_code.strip())

    products = query.limit(2).all()
    if not products:
        raise WholesaleOrderValidationError(f"Wholesale product {key} not found")
    if len(products) > 1:
        raise WholesaleOrderValidationError(
            f"SKU {sku} is sold by more than one brand; use BRAND_CODE:{sku}"
        )
    return products[0]


def _resolve_cart(cart: dict) -> "OrderedDict[str, list[tuple[Product, int]]]":
    if not cart:
        raise WholesaleOrderValidationError("Cart is empty")

    groups: OrderedDict[str, list[tuple[Product, int]]] = OrderedDict()
    for key, boxes in cart.items():
        try:
            boxes = int(boxes)
        except (TypeError, ValueError):
            raise WholesaleOrderValidationError(f"Invalid quantity for {key}")
        if boxes <= 0:
            raise WholesaleOrderValidationError(f"Quantity for {key} must be positive")

        product = _find_cart_product(key)
        brand = product.brand
        group_key = brand.shop_domain or f"brand-{brand.id}"
        groups.setdefault(group_key, []).append((product, boxes))
    return groups


def create_wholesale_order(*, store_id: int, cart: dict) -> list[WholesaleOrder]:
    """
    Create one pending order per brand shop domain from a {"BRAND_CODE:box_sku": boxes} cart
    (a bare box SKU is accepted when a single brand sells it).

    Available partnership credit is redeemed against each order's subtotal.

    Raises:
        WholesaleOrderValidationError: unknown store/SKU or bad quantities
    """
    store = db.session.get(Store, store_id)
    if store is None or not store.is_active:
        raise WholesaleOrderValidationError(f"Store {store_id} not found")

    def _op() -> list[WholesaleOrder]:
        groups = _resolve_cart(cart)
        orders = []
        for shop_domain, entries in groups.items():
            brand: Brand = entries[0][0].brand
            order = WholesaleOrder(
                order_number=_next_order_number(),
                store_id=store.id,
                brand_id=brand.id,
                shop_domain=brand.shop_domain,
                status=WHOLESALE_PENDING,
            )
            db.session.add(order)
            db.session.flush()

            subtotal = 0
            for product, boxes in entries:
                unit_price = product.price_cents or 0
                line_total = unit_price * boxes
                subtotal += line_total
                db.session.add(WholesaleOrderItem(
                    wholesale_order_id=order.id,
                    product_sku=product.sku,
                    retail_sku=retail_sku_for(product.sku),
                    brand_id=brand.id,
                    quantity=boxes,
                    units_per_box=product.units_per_box,
                    unit_price_cents=unit_price,
                    total_cents=line_total,
                    expected_units=boxes * product.units_per_box,
                ))

            credit_applied = 0
            partnership = find_partnership(store.id, brand.id)
            if partnership is not None and subtotal > 0:
                posting = apply_credit(
                    partnership_id=partnership.id,
                    amount_cents=-subtotal,
                    reason=f"Wholesale order {order.order_number}",
                    wholesale_order_id=order.id,
                )
                credit_applied = -posting.applied_cents

            order.subtotal_cents = subtotal
            order.credit_applied_cents = credit_applied
            order.total_cents = subtotal - credit_applied
            orders.append(order)

        db.session.commit()
        return orders

    return run_with_retry(_op)


def submit_wholesale_order(order_id: int, *, external_order_id: str | None = None) -> WholesaleOrder:
    def _op():
        order = get_wholesale_order(order_id)
        _transition(order, WHOLESALE_SUBMITTED)
        if external_order_id:
            order.external_order_id = str(external_order_id)
        db.session.commit()
        return order

    return run_with_retry(_op)


def mark_delivered(order_id: int, *, tracking_number: str | None = None) -> WholesaleOrder:
    def _op():
        order = get_wholesale_order(order_id)
        _transition(order, WHOLESALE_DELIVERED)
        if tracking_number:
            order.tracking_number = tracking_number
        db.session.commit()
        return order

    return run_with_retry(_op)


def _parse_received(order: WholesaleOrder, received: dict) -> dict[int, int]:
    parsed: dict[int, int] = {}
    for key, value in (received or {}).items():
        try:
            item_id = int(key)
            units = int(value)
        except (TypeError, ValueError):
            raise WholesaleOrderValidationError(f"Invalid received quantity for item {key}")
        if units < 0:
            raise WholesaleOrderValidationError("Received quantity cannot be negative")
        parsed[item_id] = units

    known = {item.id for item in order.items}
    unknown = set(parsed) - known
    if unknown:
        raise WholesaleOrderValidationError(
            f"Items {sorted(unknown)} do not belong to order {order.order_number}"
        )
    return parsed


def verify_wholesale_order(order_id: int, *, received: dict, notes: str | None = None) -> WholesaleOrder:
    """
    Confirm a delivered order's received quantities.

    received maps order item id -> units received; items left out count as
    nothing received.

    Raises:
        WholesaleOrderNotFoundError: If not found
        WholesaleOrderStateError: If not delivered (including already verified)
        WholesaleOrderValidationError: Bad quantities or foreign item ids
    """
    def _op():
        order = get_wholesale_order(order_id)
        if order.status == WHOLESALE_VERIFIED:
            raise WholesaleOrderStateError(f"Order {order.order_number} was already verified")
        if order.status != WHOLESALE_DELIVERED:
            raise WholesaleOrderStateError(
                f"Cannot verify {order.status} order. Only delivered orders can be verified."
            )

        counts = _parse_received(order, received)
        for item in order.items:
            units = counts.get(item.id, 0)
            item.received_units = units
            item.discrepancy_units = reconcile_received(
                store_id=order.store_id,
                sku=item.retail_sku,
                expected_units=item.expected_units,
                received_units=units,
                notes=notes,
                wholesale_order_id=order.id,
            )

        order.verification_notes = notes
        _transition(order, WHOLESALE_VERIFIED)
        db.session.commit()
        return order

    return run_with_retry(_op)


def verify_by_token(token: str, *, received: dict, notes: str | None = None) -> WholesaleOrder:
    order = get_order_by_token(token)
    return verify_wholesale_order(order.id, received=received, notes=notes)


# ---------------------------------------------------------------------------
# Webhook-driven bookkeeping (no commit; runs inside the caller's unit of work)
# ---------------------------------------------------------------------------

def record_placed_order(
    *,
    store: Store,
    brand: Brand,
    external_order_id: str,
    staged: Iterable[StagedLine],
) -> WholesaleOrder:
    """
    Link a paid shop order to its wholesale order, creating one when the
    store ordered directly on the shop, and make sure it is submitted.
    """
    order = find_order_by_external_id(brand.id, external_order_id)
    if order is None:
        order = WholesaleOrder(
            order_number=_next_order_number(),
            store_id=store.id,
            brand_id=brand.id,
            shop_domain=brand.shop_domain,
            external_order_id=external_order_id,
            status=WHOLESALE_PENDING,
        )
        db.session.add(order)
        db.session.flush()

        subtotal = 0
        for line in staged:
            line_total = line.price_cents * line.boxes
            subtotal += line_total
            db.session.add(WholesaleOrderItem(
                wholesale_order_id=order.id,
                product_sku=line.box_sku,
                retail_sku=line.retail_sku,
                brand_id=brand.id,
                quantity=line.boxes,
                units_per_box=line.units_per_box,
                unit_price_cents=line.price_cents,
                total_cents=line_total,
                expected_units=line.units,
            ))
        order.subtotal_cents = subtotal
        order.total_cents = subtotal

    if order.status == WHOLESALE_PENDING:
        _transition(order, WHOLESALE_SUBMITTED)
    db.session.flush()
    return order


def record_fulfillment(order: WholesaleOrder, *, tracking_number: str | None = None) -> bool:
    """
    Advance an order to delivered. Returns False when it already was
    delivered or verified (redelivered fulfillment event).
    """
    if tracking_number:
        order.tracking_number = tracking_number
    if order.status in (WHOLESALE_DELIVERED, WHOLESALE_VERIFIED):
        db.session.flush()
        return False
    if order.status == WHOLESALE_PENDING:
        _transition(order, WHOLESALE_SUBMITTED)
    _transition(order, WHOLESALE_DELIVERED)
    db.session.flush()
    return True


def record_pending_fulfillment(
    *,
    brand: Brand,
    external_order_id: str,
    tracking_number: str | None = None,
) -> tuple[PendingFulfillment, bool]:
    """
    Park a shipment whose order is not known yet. Returns (row, created);
    a redelivered fulfillment only refreshes the tracking number.
    """
    query = db.session.query(PendingFulfillment).filter_by(brand_id=brand.id, external_order_id=external_order_id)
    pending = query.first()
    if pending is None:
        nested = db.session.begin_nested()
        try:
            pending = PendingFulfillment(
                brand_id=brand.id,
                external_order_id=external_order_id,
                tracking_number=tracking_number,
            )
            db.session.add(pending)
            db.session.flush()
            nested.commit()
            return pending, True
        except IntegrityError:
            nested.rollback()
            pending = query.one()
    if tracking_number:
        pending.tracking_number = tracking_number
        db.session.flush()
    return pending, False


def apply_pending_fulfillment(order: WholesaleOrder) -> bool:
    """
    Deliver an order whose shipment arrived before it was linked.
    Returns True when the order moved to delivered.
    """
    if not order.brand_id or not order.external_order_id:
        return False
    pending = db.session.query(PendingFulfillment).filter_by(
        brand_id=order.brand_id,
        external_order_id=order.external_order_id,
        applied_at=None,
    ).first()
    if pending is None:
        return False

    pending.applied_at = utcnow()
    pending.wholesale_order_id = order.id
    return record_fulfillment(order, tracking_number=pending.tracking_number)


def verification_url(order: WholesaleOrder, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/api/wholesale/verify/{order.verification_token}"
