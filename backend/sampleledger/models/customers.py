from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


STAGE_SAMPLED = "sampled"
STAGE_PURCHASED = "purchased"
STAGE_REPEAT = "repeat"


class Customer(db.Model):
    """
    Consumer tracked by the platform from their first sample request.

    WHY: A customer is the join point between an anonymous online order and
    the store that handed out the sample. Customers are never deleted.

    IDENTITY SIGNALS (used by the identity resolver):
    - member_id: platform-issued, mirrored into "member:<id>" shop tags
    - external_customer_id: shop customer id, NULL until first linked
    - phone / email: raw buyer contact, least reliable
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_brand_phone", "brand_id", "phone"),
        db.Index("ix_customers_brand_email", "brand_id", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.String(32), nullable=False, unique=True, index=True)

    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    attributed_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    external_customer_id = db.Column(db.String(64), nullable=True, index=True)

    sample_date = db.Column(db.DateTime(timezone=True), nullable=True)
    stage = db.Column(db.String(16), nullable=False, default=STAGE_SAMPLED, index=True)
    purchased_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    brand = db.relationship("Brand", backref=db.backref("customers", lazy=True))
    store = db.relationship("Store", foreign_keys=[store_id])
    attributed_store = db.relationship("Store", foreign_keys=[attributed_store_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} member_id={self.member_id!r} brand_id={self.brand_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "brand_id": self.brand_id,
            "store_id": self.store_id,
            "attributed_store_id": self.attributed_store_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "email": self.email,
            "external_customer_id": self.external_customer_id,
            "sample_date": to_utc_z(self.sample_date),
            "stage": self.stage,
            "purchased_at": to_utc_z(self.purchased_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SampleHistory(db.Model):
    """
    One sample given to a customer by a brand at a store.

    IMMUTABLE: Written once per sample request. expires_at is fixed at
    creation (sampled_at + attribution_window_days) so later policy changes
    on the brand never move an existing window.
    """
    __tablename__ = "sample_history"
    __table_args__ = (
        db.Index("ix_sample_history_customer_brand_sampled", "customer_id", "brand_id", "sampled_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    display_id = db.Column(db.String(64), nullable=True)
    product_sku = db.Column(db.String(64), nullable=True)

    sampled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    attribution_window_days = db.Column(db.Integer, nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("samples", lazy=True))
    store = db.relationship("Store")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "brand_id": self.brand_id,
            "store_id": self.store_id,
            "display_id": self.display_id,
            "product_sku": self.product_sku,
            "sampled_at": to_utc_z(self.sampled_at),
            "attribution_window_days": self.attribution_window_days,
            "expires_at": to_utc_z(self.expires_at),
        }


@event.listens_for(SampleHistory, "before_update")
def _reject_sample_update(mapper, connection, target):
    raise ValueError("sample history is immutable")
