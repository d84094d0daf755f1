# Overview: Resolves an inbound order's buyer to a tracked Customer.

"""
Identity Resolution

Strategies are evaluated in order; the first one that returns a customer
wins:

1. member_tag        "member:<member_id>" in the shop customer's tags
2. store_tag_contact "store:<store_code>" tag + buyer phone or email
3. external_id       shop customer id linked on a previous order
4. contact           buyer phone or email alone

A match found by any strategy other than external_id links the shop
customer id onto the Customer (when not linked yet) so later orders hit
strategy 3 directly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Store

STRATEGY_MEMBER_TAG = "member_tag"
STRATEGY_STORE_TAG_CONTACT = "store_tag_contact"
STRATEGY_EXTERNAL_ID = "external_id"
STRATEGY_CONTACT = "contact"

MEMBER_TAG_PREFIX = "member:"
STORE_TAG_PREFIX = "store:"


def normalize_phone(raw: str | None) -> str | None:
    """US numbers to E.164 (+1XXXXXXXXXX); anything else -> None."""
    if not raw:
        return None
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 10:
        return "+1" + digits
    if len(digits) == 11 and digits[0] == "1":
        return "+" + digits
    return None


def normalize_email(raw: str | None) -> str | None:
    if not raw:
        return None
    value = raw.strip().lower()
    return value or None


def parse_tags(raw) -> tuple[str, ...]:
    """Shop tags arrive as "a, b, c" or as a list."""
    if not raw:
        return ()
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = list(raw)
    return tuple(str(p).strip() for p in parts if str(p).strip())


def _tag_value(tags: Iterable[str], prefix: str) -> str | None:
    for tag in tags:
        if tag.lower().startswith(prefix):
            value = tag[len(prefix):].strip()
            if value:
                return value
    return None


@dataclass(frozen=True)
class BuyerSignals:
    brand_id: int
    external_customer_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    @property
    def member_id(self) -> str | None:
        return _tag_value(self.tags, MEMBER_TAG_PREFIX)

    @property
    def store_code(self) -> str | None:
        return _tag_value(self.tags, STORE_TAG_PREFIX)


@dataclass(frozen=True)
class IdentityMatch:
    customer: Customer
    strategy: str
    linked: bool = False


def _contact_filter(signals: BuyerSignals):
    clauses = []
    phone = normalize_phone(signals.phone)
    if phone:
        clauses.append(Customer.phone == phone)
    email = normalize_email(signals.email)
    if email:
        clauses.append(func.lower(Customer.email) == email)
    if not clauses:
        return None
    return or_(*clauses)


def _match_member_tag(signals: BuyerSignals) -> Customer | None:
    member_id = signals.member_id
    if not member_id:
        return None
    return db.session.query(Customer).filter_by(brand_id=signals.brand_id, member_id=member_id).first()


def _match_store_tag_contact(signals: BuyerSignals) -> Customer | None:
    store_code = signals.store_code
    contact = _contact_filter(signals)
    if not store_code or contact is None:
        return None
    store = db.session.query(Store).filter_by(store_code=store_code).first()
    if store is None:
        return None
    return (
        db.session.query(Customer)
        .filter(
            Customer.brand_id == signals.brand_id,
            or_(Customer.store_id == store.id, Customer.attributed_store_id == store.id),
            contact,
        )
        .order_by(Customer.id.desc())
        .first()
    )


def _match_external_id(signals: BuyerSignals) -> Customer | None:
    if not signals.external_customer_id:
        return None
    return (
        db.session.query(Customer)
        .filter_by(brand_id=signals.brand_id, external_customer_id=signals.external_customer_id)
        .order_by(Customer.id.desc())
        .first()
    )


def _match_contact(signals: BuyerSignals) -> Customer | None:
    contact = _contact_filter(signals)
    if contact is None:
        return None
    return (
        db.session.query(Customer)
        .filter(Customer.brand_id == signals.brand_id, contact)
        .order_by(Customer.id.desc())
        .first()
    )


STRATEGIES: list[tuple[str, Callable[[BuyerSignals], Optional[Customer]]]] = [
    (STRATEGY_MEMBER_TAG, _match_member_tag),
    (STRATEGY_STORE_TAG_CONTACT, _match_store_tag_contact),
    (STRATEGY_EXTERNAL_ID, _match_external_id),
    (STRATEGY_CONTACT, _match_contact),
]


def with_fetched_tags(
    signals: BuyerSignals,
    tag_lookup: Callable[[str], Iterable[str]] | None,
) -> BuyerSignals:
    """
    Fill in the shop customer's tags when the event carried none and a shop
    customer id is known. tag_lookup must not raise.
    """
    if signals.tags or not signals.external_customer_id or tag_lookup is None:
        return signals
    fetched = parse_tags(tag_lookup(signals.external_customer_id))
    if not fetched:
        return signals
    return BuyerSignals(
        brand_id=signals.brand_id,
        external_customer_id=signals.external_customer_id,
        phone=signals.phone,
        email=signals.email,
        tags=fetched,
    )


def resolve_customer(
    signals: BuyerSignals,
    *,
    tag_lookup: Callable[[str], Iterable[str]] | None = None,
) -> IdentityMatch | None:
    """
    Run the strategy chain. Flushes (never commits) a newly linked id.

    tag_lookup, when given, goes through with_fetched_tags first. Callers
    inside a retried unit of work fetch tags beforehand instead.
    """
    signals = with_fetched_tags(signals, tag_lookup)

    for name, strategy in STRATEGIES:
        customer = strategy(signals)
        if customer is None:
            continue

        linked = False
        if (
            name != STRATEGY_EXTERNAL_ID
            and signals.external_customer_id
            and not customer.external_customer_id
        ):
            customer.external_customer_id = signals.external_customer_id
            db.session.flush()
            linked = True
        return IdentityMatch(customer=customer, strategy=name, linked=linked)

    return None
