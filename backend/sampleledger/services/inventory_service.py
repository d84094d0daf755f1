# Overview: Store inventory counters; wholesale staging and receipt reconciliation.

"""
Inventory Invariants (authoritative)

Counters live on StoreInventory (one row per store/SKU):
- quantity_incoming: units staged from wholesale orders, not yet verified
- quantity_on_hand: units a store has physically confirmed
- quantity_available = max(0, on_hand - reserved), recomputed on every change

Every counter change appends an InventoryTransaction in the same DB
transaction. Rows are serialized per (store, SKU) through lock_for_update()
plus the StoreInventory version column; run_with_retry() re-runs the whole
unit of work (existence checks included) after a conflict.

Two-phase wholesale flow:
1. Staging: a box line on an order event adds boxes * units_per_box to
   incoming (wholesale_ordered when paid, wholesale_incoming when shipped).
   A second staging pass for the same (store, external order id) is a no-op.
2. Reconciliation: the store confirms what arrived; received units move into
   on-hand, the whole expected amount leaves incoming, and any shortfall is
   recorded as a discrepancy. Nothing else is adjusted automatically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryTransaction, Product, StoreInventory
from ..models.inventory import (
    STAGING_TX_TYPES,
    TX_ADJUSTMENT,
    TX_SALE,
    TX_WHOLESALE_DISCREPANCY,
    TX_WHOLESALE_RECEIVED,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry

BOX_SKU_SUFFIX = "-BX"

MATCH_VARIANT_ID = "variant_id"
MATCH_PRODUCT_ID = "product_id"
MATCH_SKU = "sku"


class InventoryError(Exception):
    """Raised when an inventory operation would break a counter invariant."""
    pass


def external_id(value) -> str | None:
    """Shop ids arrive as 123 or "gid://shopify/ProductVariant/123"."""
    if value is None or value == "":
        return None
    text = str(value).strip()
    if "/" in text:
        text = text.rsplit("/", 1)[-1]
    return text or None


def retail_sku_for(box_sku: str) -> str:
    if box_sku.endswith(BOX_SKU_SUFFIX):
        return box_sku[: -len(BOX_SKU_SUFFIX)]
    return box_sku


@dataclass(frozen=True)
class OrderLine:
    sku: Optional[str]
    quantity: int
    external_product_id: Optional[str] = None
    external_variant_id: Optional[str] = None
    price_cents: int = 0
    title: Optional[str] = None


@dataclass(frozen=True)
class StagedLine:
    box_sku: str
    retail_sku: str
    boxes: int
    units_per_box: int
    units: int
    match_method: str
    price_cents: int = 0


@dataclass
class StagingResult:
    staged: list[StagedLine] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)

    @property
    def total_units(self) -> int:
        return sum(line.units for line in self.staged)


# ---------------------------------------------------------------------------
# Wholesale product matching
# ---------------------------------------------------------------------------

def _box_query(brand_id: int):
    return db.session.query(Product).filter(
        Product.brand_id == brand_id,
        Product.is_active.is_(True),
        Product.units_per_box.isnot(None),
        Product.units_per_box > 0,
    )


def _match_by_variant(brand_id: int, line: OrderLine) -> Product | None:
    variant = external_id(line.external_variant_id)
    if not variant:
        return None
    return _box_query(brand_id).filter(Product.external_variant_id == variant).first()


def _match_by_product(brand_id: int, line: OrderLine) -> Product | None:
    product = external_id(line.external_product_id)
    if not product:
        return None
    return _box_query(brand_id).filter(Product.external_product_id == product).first()


def _match_by_sku(brand_id: int, line: OrderLine) -> Product | None:
    if not line.sku or not line.sku.endswith(BOX_SKU_SUFFIX):
        return None
    return _box_query(brand_id).filter(Product.sku == line.sku).first()


PRODUCT_MATCHERS: list[tuple[str, Callable[[int, OrderLine], Optional[Product]]]] = [
    (MATCH_VARIANT_ID, _match_by_variant),
    (MATCH_PRODUCT_ID, _match_by_product),
    (MATCH_SKU, _match_by_sku),
]


def match_wholesale_product(brand_id: int, line: OrderLine) -> tuple[Product, str] | None:
    for method, matcher in PRODUCT_MATCHERS:
        product = matcher(brand_id, line)
        if product is not None:
            return product, method
    return None


def expand_wholesale_lines(brand_id: int, lines: Iterable[OrderLine]) -> StagingResult:
    """Resolve box lines to retail units without touching any counter."""
    result = StagingResult()
    for line in lines:
        if line.quantity is None or line.quantity <= 0:
            continue
        match = match_wholesale_product(brand_id, line)
        if match is None:
            result.unmatched.append(line.sku or line.title or "?")
            continue
        product, method = match
        result.staged.append(StagedLine(
            box_sku=product.sku,
            retail_sku=retail_sku_for(product.sku),
            boxes=line.quantity,
            units_per_box=product.units_per_box,
            units=line.quantity * product.units_per_box,
            match_method=method,
            price_cents=line.price_cents or product.price_cents or 0,
        ))
    return result


# ---------------------------------------------------------------------------
# Counter primitives
# ---------------------------------------------------------------------------

def _get_inventory_locked(store_id: int, sku: str, *, create: bool = True) -> StoreInventory | None:
    query = db.session.query(StoreInventory).filter_by(store_id=store_id, product_sku=sku)
    inventory = lock_for_update(query).populate_existing().first()
    if inventory is None and create:
        # First movement for this (store, SKU); a concurrent writer may insert it first
        nested = db.session.begin_nested()
        try:
            inventory = StoreInventory(
                store_id=store_id,
                product_sku=sku,
                quantity_on_hand=0,
                quantity_reserved=0,
                quantity_available=0,
                quantity_incoming=0,
            )
            db.session.add(inventory)
            db.session.flush()
            nested.commit()
        except IntegrityError:
            nested.rollback()
            inventory = lock_for_update(query).populate_existing().one()
    return inventory


def _recompute_available(inventory: StoreInventory) -> None:
    inventory.quantity_available = max(
        0, (inventory.quantity_on_hand or 0) - (inventory.quantity_reserved or 0)
    )


def _append_tx(
    *,
    store_id: int,
    sku: str,
    tx_type: str,
    quantity: int,
    balance_after: int,
    notes: str | None = None,
    wholesale_order_id: int | None = None,
    external_order_id: str | None = None,
) -> InventoryTransaction:
    tx = InventoryTransaction(
        store_id=store_id,
        product_sku=sku,
        type=tx_type,
        quantity=quantity,
        balance_after=balance_after,
        notes=notes,
        wholesale_order_id=wholesale_order_id,
        external_order_id=external_order_id,
    )
    db.session.add(tx)
    return tx


def get_inventory(store_id: int, sku: str) -> StoreInventory | None:
    return db.session.query(StoreInventory).filter_by(store_id=store_id, product_sku=sku).first()


def list_inventory_transactions(*, store_id: int, sku: str | None = None, limit: int = 200):
    q = InventoryTransaction.query.filter_by(store_id=store_id)
    if sku is not None:
        q = q.filter_by(product_sku=sku)
    return q.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc()).limit(limit).all()


# ---------------------------------------------------------------------------
# Phase 1: staging
# ---------------------------------------------------------------------------

def already_staged(store_id: int, external_order_id: str) -> bool:
    return db.session.query(InventoryTransaction.id).filter(
        InventoryTransaction.store_id == store_id,
        InventoryTransaction.external_order_id == external_order_id,
        InventoryTransaction.type.in_(STAGING_TX_TYPES),
    ).first() is not None


def stage_lines(
    *,
    store_id: int,
    staged: Iterable[StagedLine],
    tx_type: str,
    external_order_id: str | None = None,
    wholesale_order_id: int | None = None,
    order_label: str | None = None,
) -> None:
    """Core staging logic without retry, dedup check, or commit."""
    if tx_type not in STAGING_TX_TYPES:
        raise InventoryError(f"{tx_type} is not a staging transaction type")
    for line in staged:
        inventory = _get_inventory_locked(store_id, line.retail_sku)
        inventory.quantity_incoming = (inventory.quantity_incoming or 0) + line.units
        _append_tx(
            store_id=store_id,
            sku=line.retail_sku,
            tx_type=tx_type,
            quantity=line.units,
            balance_after=inventory.quantity_incoming,
            notes=(
                f"{order_label or 'Order'}: {line.boxes}x {line.box_sku} "
                f"({line.units_per_box} units per box) = {line.units} units incoming"
            ),
            wholesale_order_id=wholesale_order_id,
            external_order_id=external_order_id,
        )
    db.session.flush()


def stage_order_once(
    *,
    store_id: int,
    external_order_id: str,
    staged: Iterable[StagedLine],
    tx_type: str,
    wholesale_order_id: int | None = None,
    order_label: str | None = None,
) -> bool:
    """
    Stage one order's box lines as incoming units unless any staging row
    already exists for (store, external order id). Returns True when staged.

    No retry or commit: callers run this inside their own retried unit of
    work so the existence check is repeated after a conflict.
    """
    staged = list(staged)
    if not staged or already_staged(store_id, external_order_id):
        return False
    stage_lines(
        store_id=store_id,
        staged=staged,
        tx_type=tx_type,
        external_order_id=external_order_id,
        wholesale_order_id=wholesale_order_id,
        order_label=order_label,
    )
    return True


# ---------------------------------------------------------------------------
# Phase 2: reconciliation
# ---------------------------------------------------------------------------

def reconcile_received(
    *,
    store_id: int,
    sku: str,
    expected_units: int,
    received_units: int,
    notes: str | None = None,
    wholesale_order_id: int | None = None,
) -> int:
    """
    Move confirmed units from incoming to on-hand. Returns the discrepancy
    (expected - received). No commit.
    """
    if received_units < 0:
        raise InventoryError("received quantity cannot be negative")

    inventory = _get_inventory_locked(store_id, sku)
    inventory.quantity_on_hand = (inventory.quantity_on_hand or 0) + received_units
    inventory.quantity_incoming = max(0, (inventory.quantity_incoming or 0) - expected_units)
    inventory.last_restocked_at = utcnow()
    _recompute_available(inventory)

    discrepancy = expected_units - received_units
    detail = "Verified receipt of wholesale shipment"
    if discrepancy:
        detail += f" (expected {expected_units}, received {received_units})"
    if notes:
        detail += f" - {notes}"

    _append_tx(
        store_id=store_id,
        sku=sku,
        tx_type=TX_WHOLESALE_RECEIVED,
        quantity=received_units,
        balance_after=inventory.quantity_on_hand,
        notes=detail,
        wholesale_order_id=wholesale_order_id,
    )
    if discrepancy:
        _append_tx(
            store_id=store_id,
            sku=sku,
            tx_type=TX_WHOLESALE_DISCREPANCY,
            quantity=-discrepancy,
            balance_after=inventory.quantity_on_hand,
            notes=f"Discrepancy: expected {expected_units}, received {received_units}",
            wholesale_order_id=wholesale_order_id,
        )
    db.session.flush()
    return discrepancy


# ---------------------------------------------------------------------------
# Store-side movements
# ---------------------------------------------------------------------------

def record_sale(*, store_id: int, sku: str, quantity: int, note: str | None = None) -> StoreInventory:
    """Decrement on-hand for an in-store sale; never below zero."""
    if quantity <= 0:
        raise InventoryError("quantity must be positive")

    def _op():
        inventory = _get_inventory_locked(store_id, sku, create=False)
        if inventory is None or (inventory.quantity_on_hand or 0) < quantity:
            raise InventoryError("sale would make on-hand negative")
        inventory.quantity_on_hand -= quantity
        _recompute_available(inventory)
        _append_tx(
            store_id=store_id,
            sku=sku,
            tx_type=TX_SALE,
            quantity=-quantity,
            balance_after=inventory.quantity_on_hand,
            notes=note,
        )
        db.session.commit()
        return inventory

    return run_with_retry(_op)


def adjust_inventory(*, store_id: int, sku: str, quantity_delta: int, note: str | None = None) -> StoreInventory:
    """Manual on-hand correction (count, damage, shrink)."""
    if quantity_delta == 0:
        raise InventoryError("quantity_delta cannot be zero")

    def _op():
        inventory = _get_inventory_locked(store_id, sku)
        if (inventory.quantity_on_hand or 0) + quantity_delta < 0:
            raise InventoryError("adjustment would make on-hand negative")
        inventory.quantity_on_hand += quantity_delta
        _recompute_available(inventory)
        _append_tx(
            store_id=store_id,
            sku=sku,
            tx_type=TX_ADJUSTMENT,
            quantity=quantity_delta,
            balance_after=inventory.quantity_on_hand,
            notes=note,
        )
        db.session.commit()
        return inventory

    return run_with_retry(_op)
