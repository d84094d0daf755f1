# Overview: Append-only webhook audit log writer.

"""
Webhook Audit Invariants

- Every inbound webhook produces exactly one WebhookLog row, whatever the
  outcome (success, ignored, duplicate, failed).
- The row is committed on its own so a rolled-back business transaction
  still leaves its audit trail.
- Failed rows keep the raw payload for replay; the rest keep it only when
  asked to.
"""

from __future__ import annotations

import json
from typing import Optional

from ..extensions import db
from ..models import WebhookLog


def _payload_text(payload) -> Optional[str]:
    if payload is None:
        return None
    if isinstance(payload, bytes):
        return payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, default=str)


def record_webhook_event(
    *,
    topic: str,
    status: str,
    message: str | None = None,
    brand_id: int | None = None,
    customer_id: int | None = None,
    shop_domain: str | None = None,
    external_order_id: str | None = None,
    payload=None,
) -> WebhookLog:
    """Append one audit row and commit it."""
    entry = WebhookLog(
        brand_id=brand_id,
        customer_id=customer_id,
        topic=topic or "unknown",
        shop_domain=shop_domain,
        external_order_id=external_order_id,
        status=status,
        message=message,
        payload=_payload_text(payload),
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def list_webhook_events(*, brand_id: int | None = None, status: str | None = None, limit: int = 100):
    q = WebhookLog.query
    if brand_id is not None:
        q = q.filter(WebhookLog.brand_id == brand_id)
    if status is not None:
        q = q.filter(WebhookLog.status == status)
    return q.order_by(WebhookLog.processed_at.desc(), WebhookLog.id.desc()).limit(limit).all()
