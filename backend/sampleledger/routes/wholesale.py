# Overview: Flask API routes for wholesale orders and store receipt verification.

"""
Wholesale Routes

Orders are created from a store cart ({"BRAND_CODE:box_sku": boxes}), one per brand shop
domain, then moved through submitted -> delivered -> verified. The verify
endpoints are reached through the one-time link sent to the store when an
order is delivered.
"""

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import Store
from ..services import wholesale_service
from ..services.inventory_service import InventoryError
from ..services.wholesale_service import (
    WholesaleOrderNotFoundError,
    WholesaleOrderStateError,
    WholesaleOrderValidationError,
)


wholesale_bp = Blueprint("wholesale", __name__, url_prefix="/api/wholesale")


def _order_payload(order) -> dict:
    result = order.to_dict()
    result["items"] = [item.to_dict() for item in order.items]
    return result


@wholesale_bp.post("/orders")
def create_wholesale_order_route():
    """
    Create wholesale orders from a cart.

    Request body:
    {
        "store_code": "SID-001",            // required
        "cart": {"VD:VD-SB-30-BX": 2, ...}  // required, [BRAND_CODE:]box SKU -> boxes
    }

    Returns:
        {orders: WholesaleOrder[]} (201)
    """
    data = request.get_json(silent=True) or {}
    store_code = data.get("store_code")
    cart = data.get("cart")

    if not store_code:
        return jsonify({"error": "store_code is required"}), 400
    if not isinstance(cart, dict) or not cart:
        return jsonify({"error": "cart must be a non-empty object of sku -> boxes"}), 400

    store = db.session.query(Store).filter_by(store_code=store_code).first()
    if store is None:
        return jsonify({"error": "Store not found"}), 404

    try:
        orders = wholesale_service.create_wholesale_order(store_id=store.id, cart=cart)
        return jsonify({"orders": [_order_payload(o) for o in orders]}), 201
    except WholesaleOrderValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create wholesale order")
        return jsonify({"error": "Internal server error"}), 500


@wholesale_bp.get("/orders/<int:order_id>")
def get_wholesale_order_route(order_id: int):
    try:
        order = wholesale_service.get_wholesale_order(order_id)
        return jsonify(_order_payload(order))
    except WholesaleOrderNotFoundError:
        return jsonify({"error": "Wholesale order not found"}), 404


@wholesale_bp.post("/orders/<int:order_id>/submit")
def submit_wholesale_order_route(order_id: int):
    """
    Mark a pending order as placed with the brand's shop.

    Request body (optional):
    {"external_order_id": "5551234"}
    """
    data = request.get_json(silent=True) or {}
    try:
        order = wholesale_service.submit_wholesale_order(
            order_id,
            external_order_id=data.get("external_order_id"),
        )
        return jsonify(_order_payload(order))
    except WholesaleOrderNotFoundError:
        return jsonify({"error": "Wholesale order not found"}), 404
    except WholesaleOrderStateError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409


@wholesale_bp.post("/orders/<int:order_id>/deliver")
def deliver_wholesale_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = wholesale_service.mark_delivered(order_id, tracking_number=data.get("tracking_number"))
        result = _order_payload(order)
        result["verification_url"] = wholesale_service.verification_url(
            order, current_app.config.get("APP_BASE_URL", "")
        )
        return jsonify(result)
    except WholesaleOrderNotFoundError:
        return jsonify({"error": "Wholesale order not found"}), 404
    except WholesaleOrderStateError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409


@wholesale_bp.get("/verify/<token>")
def get_verification_route(token: str):
    """Order and expected quantities behind a verification link."""
    try:
        order = wholesale_service.get_order_by_token(token)
        return jsonify(_order_payload(order))
    except WholesaleOrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@wholesale_bp.post("/verify/<token>")
def verify_wholesale_order_route(token: str):
    """
    Confirm received quantities for a delivered order.

    Request body:
    {
        "received": {"<item_id>": 10, ...},   // units received per order item
        "notes": "one box crushed"            // optional
    }

    Returns:
        Verified WholesaleOrder with per-item discrepancies
    """
    data = request.get_json(silent=True) or {}
    received = data.get("received")
    if not isinstance(received, dict):
        return jsonify({"error": "received must be an object of item id -> units"}), 400

    try:
        order = wholesale_service.verify_by_token(token, received=received, notes=data.get("notes"))
        return jsonify(_order_payload(order))
    except WholesaleOrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except WholesaleOrderStateError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except (WholesaleOrderValidationError, InventoryError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to verify wholesale order")
        return jsonify({"error": "Internal server error"}), 500
