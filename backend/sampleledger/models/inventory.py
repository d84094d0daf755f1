from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


PRODUCT_RETAIL = "retail"
PRODUCT_WHOLESALE_BOX = "wholesale-box"

# Inventory transaction types
TX_WHOLESALE_ORDERED = "wholesale_ordered"
TX_WHOLESALE_INCOMING = "wholesale_incoming"
TX_WHOLESALE_RECEIVED = "wholesale_received"
TX_WHOLESALE_DISCREPANCY = "wholesale_discrepancy"
TX_SALE = "sale"
TX_ADJUSTMENT = "adjustment"

STAGING_TX_TYPES = (TX_WHOLESALE_ORDERED, TX_WHOLESALE_INCOMING)


class Product(db.Model):
    """
    Brand catalog entry (retail unit or wholesale box).

    SKU CONVENTION:
    A wholesale box SKU is the retail SKU plus "-BX"
    (VD-SB-30-BX -> VD-SB-30). units_per_box is set only on boxes.

    external_product_id / external_variant_id are the shop's ids and are the
    preferred way to recognize a box on an incoming order.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("brand_id", "sku", name="uq_products_brand_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    product_type = db.Column(db.String(32), nullable=False, default=PRODUCT_RETAIL)
    units_per_box = db.Column(db.Integer, nullable=True)

    external_product_id = db.Column(db.String(128), nullable=True, index=True)
    external_variant_id = db.Column(db.String(128), nullable=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} type={self.product_type!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "sku": self.sku,
            "name": self.name,
            "product_type": self.product_type,
            "units_per_box": self.units_per_box,
            "external_product_id": self.external_product_id,
            "external_variant_id": self.external_variant_id,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
        }


class StoreInventory(db.Model):
    """
    Per store/SKU stock counters.

    COUNTERS:
    - quantity_on_hand: physically confirmed units
    - quantity_reserved: held for customers
    - quantity_available: sellable now (<= on_hand - reserved)
    - quantity_incoming: staged from wholesale orders, not yet verified

    Every counter change appends an InventoryTransaction in the same unit
    of work. version_id serializes concurrent writers on the same row.
    """
    __tablename__ = "store_inventory"
    __table_args__ = (
        db.UniqueConstraint("store_id", "product_sku", name="uq_store_inventory_store_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_sku = db.Column(db.String(64), nullable=False)

    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)
    quantity_reserved = db.Column(db.Integer, nullable=False, default=0)
    quantity_available = db.Column(db.Integer, nullable=False, default=0)
    quantity_incoming = db.Column(db.Integer, nullable=False, default=0)

    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("inventory", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StoreInventory store_id={self.store_id} sku={self.product_sku!r} "
            f"on_hand={self.quantity_on_hand} incoming={self.quantity_incoming}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_sku": self.product_sku,
            "quantity_on_hand": self.quantity_on_hand,
            "quantity_reserved": self.quantity_reserved,
            "quantity_available": self.quantity_available,
            "quantity_incoming": self.quantity_incoming,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class InventoryTransaction(db.Model):
    """
    Append-only log of inventory counter changes.

    quantity is signed; balance_after is the value of the counter the
    transaction moved (incoming for staging, on_hand otherwise).
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_store_sku_created", "store_id", "product_sku", "created_at"),
        db.Index("ix_invtx_store_order_type", "store_id", "external_order_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_sku = db.Column(db.String(64), nullable=False)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    wholesale_order_id = db.Column(db.Integer, db.ForeignKey("wholesale_orders.id"), nullable=True, index=True)
    external_order_id = db.Column(db.String(64), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_sku": self.product_sku,
            "type": self.type,
            "quantity": self.quantity,
            "balance_after": self.balance_after,
            "wholesale_order_id": self.wholesale_order_id,
            "external_order_id": self.external_order_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(InventoryTransaction, "before_update")
def _reject_inventory_tx_update(mapper, connection, target):
    raise ValueError("inventory transactions are append-only")
