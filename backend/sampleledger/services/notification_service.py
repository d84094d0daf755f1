# Overview: Best-effort outbound notifications (store wholesale updates).

from __future__ import annotations

from flask import current_app

from ..models import Store, WholesaleOrder


class NotificationSender:
    """
    Default sender: writes the message to the application log.

    Deployments swap in an SMS/email sender by assigning
    app.extensions["notification_sender"]. Callers never let a sender
    failure affect ledger state.
    """

    def send(self, *, to: str, subject: str, body: str) -> None:
        current_app.logger.info("Notification to %s: %s | %s", to, subject, body)


def get_sender() -> NotificationSender:
    sender = current_app.extensions.get("notification_sender")
    if sender is None:
        sender = NotificationSender()
        current_app.extensions["notification_sender"] = sender
    return sender


def _store_contact(store: Store) -> str | None:
    return store.purchasing_phone or store.owner_phone or store.purchasing_email or store.owner_email


def notify_store(store: Store, *, subject: str, body: str) -> bool:
    """Returns False when nothing was sent; never raises."""
    to = _store_contact(store)
    if not to:
        current_app.logger.info("Store %s has no contact on file; skipping notification", store.store_code)
        return False
    try:
        get_sender().send(to=to, subject=subject, body=body)
    except Exception:
        current_app.logger.exception("Notification to store %s failed", store.store_code)
        return False
    return True


def notify_wholesale_delivered(order: WholesaleOrder, verify_url: str) -> bool:
    store = order.store
    return notify_store(
        store,
        subject=f"Wholesale order {order.order_number} delivered",
        body=(
            f"Your wholesale order {order.order_number} has been delivered. "
            f"Please confirm what arrived: {verify_url}"
        ),
    )


def notify_wholesale_shipped(order: WholesaleOrder) -> bool:
    tracking = f" Tracking: {order.tracking_number}." if order.tracking_number else ""
    return notify_store(
        order.store,
        subject=f"Wholesale order {order.order_number} shipped",
        body=f"Your wholesale order {order.order_number} is on its way.{tracking}",
    )
