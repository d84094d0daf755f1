from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Lifecycle: pending -> submitted -> delivered -> verified (terminal)
WHOLESALE_PENDING = "pending"
WHOLESALE_SUBMITTED = "submitted"
WHOLESALE_DELIVERED = "delivered"
WHOLESALE_VERIFIED = "verified"


class WholesaleOrder(db.Model):
    """
    Store replenishment order placed against one brand shop domain.

    Totals are in cents: total_cents = subtotal_cents - credit_applied_cents.
    credit_applied_cents is what the credit ledger actually deducted, which
    may be less than the subtotal when the partnership balance is short.
    """
    __tablename__ = "wholesale_orders"
    __table_args__ = (
        db.Index("ix_wholesale_orders_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    shop_domain = db.Column(db.String(255), nullable=True)
    external_order_id = db.Column(db.String(64), nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_applied_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=WHOLESALE_PENDING, index=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    verification_token = db.Column(db.String(64), nullable=True, unique=True, index=True)
    verification_notes = db.Column(db.Text, nullable=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("wholesale_orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<WholesaleOrder id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "store_id": self.store_id,
            "brand_id": self.brand_id,
            "shop_domain": self.shop_domain,
            "external_order_id": self.external_order_id,
            "subtotal_cents": self.subtotal_cents,
            "credit_applied_cents": self.credit_applied_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "tracking_number": self.tracking_number,
            "verification_notes": self.verification_notes,
            "submitted_at": to_utc_z(self.submitted_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "verified_at": to_utc_z(self.verified_at),
            "created_at": to_utc_z(self.created_at),
        }


class WholesaleOrderItem(db.Model):
    __tablename__ = "wholesale_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    wholesale_order_id = db.Column(db.Integer, db.ForeignKey("wholesale_orders.id"), nullable=False, index=True)

    product_sku = db.Column(db.String(64), nullable=False)
    retail_sku = db.Column(db.String(64), nullable=False)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)  # boxes
    units_per_box = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    expected_units = db.Column(db.Integer, nullable=False)
    received_units = db.Column(db.Integer, nullable=True)
    discrepancy_units = db.Column(db.Integer, nullable=True)

    wholesale_order = db.relationship(
        "WholesaleOrder",
        backref=db.backref("items", lazy=True, order_by="WholesaleOrderItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "wholesale_order_id": self.wholesale_order_id,
            "product_sku": self.product_sku,
            "retail_sku": self.retail_sku,
            "brand_id": self.brand_id,
            "quantity": self.quantity,
            "units_per_box": self.units_per_box,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "expected_units": self.expected_units,
            "received_units": self.received_units,
            "discrepancy_units": self.discrepancy_units,
        }


class WholesaleOrderSequence(db.Model):
    """
    Atomic per-day wholesale order numbers.

    One row per UTC day (YYYYMMDD); next_number is bumped with a single
    UPDATE so concurrent creators never share a number.
    """
    __tablename__ = "wholesale_order_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sequence_date = db.Column(db.String(8), nullable=False, unique=True, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_date": self.sequence_date,
            "next_number": self.next_number,
        }


class PendingFulfillment(db.Model):
    """
    A shipment event that arrived before its wholesale order could be resolved.

    Fulfillment payloads carry only the shop order id. The row is applied
    (order moved to delivered) once the paid event creates or links the
    wholesale order.
    """
    __tablename__ = "pending_fulfillments"
    __table_args__ = (
        db.UniqueConstraint("brand_id", "external_order_id", name="uq_pending_fulfillments_brand_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)
    external_order_id = db.Column(db.String(64), nullable=False, index=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    wholesale_order_id = db.Column(db.Integer, db.ForeignKey("wholesale_orders.id"), nullable=True)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "external_order_id": self.external_order_id,
            "tracking_number": self.tracking_number,
            "wholesale_order_id": self.wholesale_order_id,
            "applied_at": to_utc_z(self.applied_at),
            "created_at": to_utc_z(self.created_at),
        }
