from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


PARTNERSHIP_ACTIVE = "active"
PARTNERSHIP_INACTIVE = "inactive"

CREDIT_EARNED = "earned"
CREDIT_DEDUCTED = "deducted"


class BrandPartnership(db.Model):
    """
    Commercial relationship between one store and one brand.

    WHY: Commission earned by a store is redeemable only against that
    brand's wholesale orders, so credit is held per (store, brand).

    INVARIANT: credit_balance_cents == SUM(CreditTransaction.amount_cents)
    for this partnership. The column is a derived running balance and is
    only ever written by the credit_service poster, in the same unit of
    work that appends the matching CreditTransaction.

    CONCURRENCY: version_id is an optimistic lock column; a concurrent
    writer that read a stale version fails with StaleDataError and retries.
    """
    __tablename__ = "brand_partnerships"
    __table_args__ = (
        db.UniqueConstraint("store_id", "brand_id", name="uq_partnerships_store_brand"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=PARTNERSHIP_ACTIVE, index=True)

    credit_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Partnership-specific overrides (NULL -> brand default)
    online_commission_rate = db.Column(db.Numeric(6, 3), nullable=True)
    promo_commission_rate = db.Column(db.Numeric(6, 3), nullable=True)
    subscription_commission_rate = db.Column(db.Numeric(6, 3), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("brand_partnerships", lazy=True))
    brand = db.relationship("Brand", backref=db.backref("partnerships", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<BrandPartnership id={self.id} store_id={self.store_id} "
            f"brand_id={self.brand_id} balance={self.credit_balance_cents}>"
        )

    def to_dict(self) -> dict:
        def _rate(value):
            return str(value) if value is not None else None

        return {
            "id": self.id,
            "store_id": self.store_id,
            "brand_id": self.brand_id,
            "status": self.status,
            "credit_balance_cents": self.credit_balance_cents,
            "online_commission_rate": _rate(self.online_commission_rate),
            "promo_commission_rate": _rate(self.promo_commission_rate),
            "subscription_commission_rate": _rate(self.subscription_commission_rate),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class CreditTransaction(db.Model):
    """
    Append-only credit ledger entry.

    TRANSACTION TYPES:
    - earned: commission credited for an attributed conversion
    - deducted: credit redeemed against a wholesale order

    amount_cents is signed (positive earn, negative deduct).
    balance_after_cents is the partnership balance right after this entry.

    IMMUTABLE: Records are never updated or deleted; corrections are new rows.
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.Index("ix_credit_txns_partnership_occurred", "partnership_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    partnership_id = db.Column(db.Integer, db.ForeignKey("brand_partnerships.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    conversion_id = db.Column(db.Integer, db.ForeignKey("conversions.id"), nullable=True, index=True)
    wholesale_order_id = db.Column(db.Integer, db.ForeignKey("wholesale_orders.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    partnership = db.relationship("BrandPartnership", backref=db.backref("credit_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "partnership_id": self.partnership_id,
            "store_id": self.store_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "reason": self.reason,
            "conversion_id": self.conversion_id,
            "wholesale_order_id": self.wholesale_order_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(CreditTransaction, "before_update")
def _reject_credit_update(mapper, connection, target):
    raise ValueError("credit transactions are append-only")


@event.listens_for(CreditTransaction, "before_delete")
def _reject_credit_delete(mapper, connection, target):
    raise ValueError("credit transactions are append-only")
