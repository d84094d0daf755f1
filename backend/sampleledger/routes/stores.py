# Overview: Flask API routes for store-facing credit, inventory and sample views.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import Brand, Store
from ..services import credit_service, inventory_service, sample_service
from ..services.credit_service import CreditLedgerError, PartnershipNotFoundError
from ..services.inventory_service import InventoryError
from ..services.sample_service import SampleError


stores_bp = Blueprint("stores", __name__, url_prefix="/api")


def _clamp_limit(limit: int) -> int:
    if limit < 1:
        return 1
    if limit > 500:
        return 500
    return limit


def _get_store(store_code: str) -> Store | None:
    return db.session.query(Store).filter_by(store_code=store_code).first()


@stores_bp.get("/stores/<store_code>/credit-transactions")
def store_credit_transactions_route(store_code: str):
    """
    Credit ledger entries across all of a store's brand partnerships.

    Query parameters:
    - limit: Maximum results (default: 200)
    """
    limit = _clamp_limit(request.args.get("limit", 200, type=int))
    try:
        txs = credit_service.list_store_transactions(store_code, limit=limit)
    except CreditLedgerError:
        return jsonify({"error": "Store not found"}), 404
    return jsonify({"items": [t.to_dict() for t in txs], "count": len(txs)})


@stores_bp.get("/partnerships/<int:partnership_id>/credit")
def partnership_credit_route(partnership_id: int):
    """Running balance, ledger check and recent transactions for one partnership."""
    limit = _clamp_limit(request.args.get("limit", 50, type=int))
    try:
        partnership = credit_service.get_partnership(partnership_id)
        check = credit_service.verify_partnership_balance(partnership_id)
    except PartnershipNotFoundError:
        return jsonify({"error": "Partnership not found"}), 404

    txs = credit_service.list_transactions(partnership_id=partnership_id, limit=limit)
    result = partnership.to_dict()
    result["ledger_sum_cents"] = check["ledger_sum_cents"]
    result["consistent"] = check["consistent"]
    result["transactions"] = [t.to_dict() for t in txs]
    return jsonify(result)


@stores_bp.get("/stores/<store_code>/inventory")
def store_inventory_route(store_code: str):
    store = _get_store(store_code)
    if store is None:
        return jsonify({"error": "Store not found"}), 404

    sku = request.args.get("sku")
    if sku:
        inventory = inventory_service.get_inventory(store.id, sku)
        if inventory is None:
            return jsonify({"error": "No inventory for this SKU"}), 404
        return jsonify(inventory.to_dict())

    return jsonify({"items": [i.to_dict() for i in store.inventory]})


@stores_bp.get("/stores/<store_code>/inventory/transactions")
def store_inventory_transactions_route(store_code: str):
    store = _get_store(store_code)
    if store is None:
        return jsonify({"error": "Store not found"}), 404

    limit = _clamp_limit(request.args.get("limit", 200, type=int))
    txs = inventory_service.list_inventory_transactions(
        store_id=store.id,
        sku=request.args.get("sku"),
        limit=limit,
    )
    return jsonify({"items": [t.to_dict() for t in txs], "count": len(txs)})


@stores_bp.post("/stores/<store_code>/inventory/adjust")
def adjust_store_inventory_route(store_code: str):
    """
    Manual on-hand correction.

    Request body:
    {"sku": "VD-SB-30", "quantity_delta": -1, "note": "damaged"}
    """
    store = _get_store(store_code)
    if store is None:
        return jsonify({"error": "Store not found"}), 404

    data = request.get_json(silent=True) or {}
    sku = data.get("sku")
    delta = data.get("quantity_delta")
    if not sku:
        return jsonify({"error": "sku is required"}), 400
    if not isinstance(delta, int) or isinstance(delta, bool):
        return jsonify({"error": "quantity_delta must be an integer"}), 400

    try:
        inventory = inventory_service.adjust_inventory(
            store_id=store.id,
            sku=sku,
            quantity_delta=delta,
            note=data.get("note"),
        )
        return jsonify(inventory.to_dict())
    except InventoryError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400


@stores_bp.post("/stores/<store_code>/inventory/sale")
def store_inventory_sale_route(store_code: str):
    store = _get_store(store_code)
    if store is None:
        return jsonify({"error": "Store not found"}), 404

    data = request.get_json(silent=True) or {}
    sku = data.get("sku")
    quantity = data.get("quantity")
    if not sku:
        return jsonify({"error": "sku is required"}), 400
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        return jsonify({"error": "quantity must be an integer"}), 400

    try:
        inventory = inventory_service.record_sale(
            store_id=store.id,
            sku=sku,
            quantity=quantity,
            note=data.get("note"),
        )
        return jsonify(inventory.to_dict())
    except InventoryError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400


@stores_bp.post("/stores/<store_code>/samples")
def record_sample_route(store_code: str):
    """
    Record a sample handed out at a store.

    Request body:
    {
        "brand_code": "VD",          // required
        "phone": "(555) 123-4567",   // phone or email required
        "email": "...",
        "first_name": "...",
        "last_name": "...",
        "display_id": "...",
        "product_sku": "VD-SB-30"
    }
    """
    store = _get_store(store_code)
    if store is None:
        return jsonify({"error": "Store not found"}), 404

    data = request.get_json(silent=True) or {}
    brand_code = data.get("brand_code")
    if not brand_code:
        return jsonify({"error": "brand_code is required"}), 400
    brand = db.session.query(Brand).filter_by(code=brand_code).first()
    if brand is None:
        return jsonify({"error": "Brand not found"}), 404

    try:
        sample = sample_service.record_sample(
            brand_id=brand.id,
            store_id=store.id,
            phone=data.get("phone"),
            email=data.get("email"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            display_id=data.get("display_id"),
            product_sku=data.get("product_sku"),
        )
        result = sample.to_dict()
        result["member_id"] = sample.customer.member_id
        return jsonify(result), 201
    except SampleError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record sample")
        return jsonify({"error": "Internal server error"}), 500
