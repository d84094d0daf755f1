# Overview: Records sample requests, creating the tracked customer on first contact.

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Brand, Customer, SampleHistory, Store
from ..time_utils import utcnow, normalize_datetime
from .identity_service import normalize_email, normalize_phone


class SampleError(Exception):
    """Raised when a sample request cannot be recorded."""
    pass


def generate_member_id() -> str:
    return f"MEM-{secrets.token_hex(4).upper()}"


def _find_existing_customer(brand_id: int, phone: str | None, email: str | None) -> Customer | None:
    q = db.session.query(Customer).filter(Customer.brand_id == brand_id)
    if phone:
        found = q.filter(Customer.phone == phone).order_by(Customer.id.desc()).first()
        if found:
            return found
    if email:
        return q.filter(Customer.email == email).order_by(Customer.id.desc()).first()
    return None


def record_sample(
    *,
    brand_id: int,
    store_id: int,
    phone: str | None = None,
    email: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    display_id: str | None = None,
    product_sku: str | None = None,
    sampled_at: datetime | None = None,
    commit: bool = True,
) -> SampleHistory:
    """
    Append a SampleHistory row for a (possibly new) customer.

    The window is copied from the brand at sample time, so expires_at never
    moves afterwards. The customer's sample_date and attributed store follow
    the latest sample.
    """
    brand = db.session.get(Brand, brand_id)
    if brand is None:
        raise SampleError(f"Brand {brand_id} not found")
    store = db.session.get(Store, store_id)
    if store is None:
        raise SampleError(f"Store {store_id} not found")

    phone_n = normalize_phone(phone)
    email_n = normalize_email(email)
    if not phone_n and not email_n:
        raise SampleError("A valid phone number or email is required")

    sampled_dt = normalize_datetime(sampled_at) if sampled_at else utcnow()
    window = brand.attribution_window_days
    if window is None:
        window = current_app.config.get("DEFAULT_ATTRIBUTION_WINDOW_DAYS", 30)

    customer = _find_existing_customer(brand.id, phone_n, email_n)
    if customer is None:
        customer = Customer(
            member_id=generate_member_id(),
            brand_id=brand.id,
            store_id=store.id,
            phone=phone_n,
            email=email_n,
            first_name=first_name,
            last_name=last_name,
        )
        db.session.add(customer)
        db.session.flush()

    sample = SampleHistory(
        customer_id=customer.id,
        brand_id=brand.id,
        store_id=store.id,
        display_id=display_id,
        product_sku=product_sku,
        sampled_at=sampled_dt,
        attribution_window_days=window,
        expires_at=sampled_dt + timedelta(days=window),
    )
    db.session.add(sample)

    if customer.sample_date is None or sampled_dt >= customer.sample_date:
        customer.sample_date = sampled_dt
        customer.attributed_store_id = store.id

    db.session.flush()
    if commit:
        db.session.commit()
    return sample
