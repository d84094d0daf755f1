from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


WEBHOOK_SUCCESS = "success"
WEBHOOK_FAILED = "failed"
WEBHOOK_IGNORED = "ignored"
WEBHOOK_DUPLICATE = "duplicate"


class Conversion(db.Model):
    """
    One attributed purchase tied back to a sample.

    IDEMPOTENCY: (brand_id, external_order_id) is unique. This constraint,
    not any in-process check, is what guarantees an order delivered twice
    (or by two racing webhook deliveries) is credited at most once.

    paid flips to True in the same transaction that posts the commission
    to the partnership credit ledger.
    """
    __tablename__ = "conversions"
    __table_args__ = (
        db.UniqueConstraint("brand_id", "external_order_id", name="uq_conversions_brand_order"),
        db.Index("ix_conversions_store_purchase", "store_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)
    external_order_id = db.Column(db.String(64), nullable=False)
    order_number = db.Column(db.String(64), nullable=True)
    external_customer_id = db.Column(db.String(64), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    partnership_id = db.Column(db.Integer, db.ForeignKey("brand_partnerships.id"), nullable=True, index=True)
    sample_id = db.Column(db.Integer, db.ForeignKey("sample_history.id"), nullable=True)

    order_total_cents = db.Column(db.Integer, nullable=False)
    commission_rate = db.Column(db.Numeric(6, 3), nullable=False)
    commission_cents = db.Column(db.Integer, nullable=False)

    sample_date = db.Column(db.DateTime(timezone=True), nullable=False)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)
    days_to_conversion = db.Column(db.Integer, nullable=False)

    attributed = db.Column(db.Boolean, nullable=False, default=True)
    paid = db.Column(db.Boolean, nullable=False, default=False, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("conversions", lazy=True))
    store = db.relationship("Store")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "external_order_id": self.external_order_id,
            "order_number": self.order_number,
            "external_customer_id": self.external_customer_id,
            "customer_id": self.customer_id,
            "store_id": self.store_id,
            "partnership_id": self.partnership_id,
            "sample_id": self.sample_id,
            "order_total_cents": self.order_total_cents,
            "commission_rate": str(self.commission_rate),
            "commission_cents": self.commission_cents,
            "sample_date": to_utc_z(self.sample_date),
            "purchase_date": to_utc_z(self.purchase_date),
            "days_to_conversion": self.days_to_conversion,
            "attributed": self.attributed,
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }


class WebhookLog(db.Model):
    """
    Durable audit entry for every inbound webhook, whatever the outcome.

    status: success | failed | ignored | duplicate
    message carries the human-readable reason ("customer not tracked",
    "Not attributed: window_expired", "Conversion tracked: $13.33", ...).
    """
    __tablename__ = "webhook_logs"
    __table_args__ = (
        db.Index("ix_webhook_logs_brand_order", "brand_id", "external_order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    topic = db.Column(db.String(64), nullable=False, index=True)
    shop_domain = db.Column(db.String(255), nullable=True)
    external_order_id = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, index=True)
    message = db.Column(db.Text, nullable=True)
    payload = db.Column(db.Text, nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "customer_id": self.customer_id,
            "topic": self.topic,
            "shop_domain": self.shop_domain,
            "external_order_id": self.external_order_id,
            "status": self.status,
            "message": self.message,
            "processed_at": to_utc_z(self.processed_at),
        }
