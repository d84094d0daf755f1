# Overview: Flask routes for inbound shop webhooks; thin HTTP layer over webhook_service.

"""
Webhook Routes

SECURITY: No session auth. Every request is authenticated by the
X-Shopify-Hmac-Sha256 signature against the owning brand's secret.

Status codes:
- 200: any business outcome (attributed, not attributed, duplicate,
  untracked customer, unsupported topic) so the sender stops retrying
- 400: missing headers or unparsable body
- 401: unknown shop domain or bad signature
- 500: unexpected failure (audited as failed; the sender's retry is safe)
"""

from flask import Blueprint, current_app, jsonify, request

from ..services import audit_service, webhook_service
from ..services.webhook_service import WebhookAuthError, WebhookPayloadError


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


def _handle_webhook():
    shop_domain = request.headers.get("X-Shopify-Shop-Domain")
    topic = request.headers.get("X-Shopify-Topic")
    signature = request.headers.get("X-Shopify-Hmac-Sha256")
    raw_body = request.get_data(cache=True)

    try:
        outcome = webhook_service.process_webhook(
            shop_domain=shop_domain,
            topic=topic,
            signature=signature,
            raw_body=raw_body,
        )
        return jsonify(outcome.to_dict()), 200
    except WebhookPayloadError as e:
        return jsonify({"error": str(e)}), 400
    except WebhookAuthError as e:
        current_app.logger.warning("Rejected webhook from %s: %s", shop_domain, e)
        return jsonify({"error": "Unauthorized"}), 401
    except Exception:
        current_app.logger.exception("Failed to process webhook %s from %s", topic, shop_domain)
        return jsonify({"error": "Internal server error"}), 500


@webhooks_bp.post("/orders")
def orders_webhook_route():
    """Order topics: orders/paid, orders/create, orders/fulfilled."""
    return _handle_webhook()


@webhooks_bp.post("/fulfillments")
def fulfillments_webhook_route():
    """Fulfillment topics: fulfillments/create."""
    return _handle_webhook()


@webhooks_bp.get("/events")
def list_webhook_events_route():
    """
    Webhook audit log, newest first.

    Query parameters:
    - brand_id: Filter by brand
    - status: success | failed | ignored | duplicate
    - limit: Maximum results (default: 100, max: 500)
    """
    limit = max(1, min(request.args.get("limit", 100, type=int), 500))
    events = audit_service.list_webhook_events(
        brand_id=request.args.get("brand_id", type=int),
        status=request.args.get("status"),
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})
