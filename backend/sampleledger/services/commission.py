# Overview: Pure commission arithmetic; no lookups, no side effects.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR

RATE_CONTEXT_ONLINE = "online"
RATE_CONTEXT_PROMO = "promo"
RATE_CONTEXT_SUBSCRIPTION = "subscription"

SECONDS_PER_DAY = 86400


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # via str so 10.1 stays 10.1, not its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def calculate_commission_cents(order_total_cents: int, rate) -> int:
    """
    commission = order_total * (rate / 100), rounded half-up to the cent.

    order_total_cents is an integer number of cents; rate is a percentage
    (10 means 10%). Example: 13333 cents at 10% -> 1333 cents.
    """
    if order_total_cents < 0:
        raise ValueError("order total cannot be negative")
    rate_dec = _to_decimal(rate)
    if rate_dec < 0:
        raise ValueError("commission rate cannot be negative")
    raw = Decimal(order_total_cents) * rate_dec / Decimal(100)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def dollars_to_cents(value) -> int:
    """Parse a decimal money string ("133.33") into cents, half-up."""
    amount = _to_decimal(value if value not in (None, "") else "0")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}${cents // 100}.{cents % 100:02d}"


def days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed from start to end (floored)."""
    seconds = Decimal(str((end - start).total_seconds()))
    return int((seconds / SECONDS_PER_DAY).to_integral_value(rounding=ROUND_FLOOR))


def select_commission_rate(brand, partnership=None, context: str = RATE_CONTEXT_ONLINE, default=None) -> Decimal:
    """
    Pick the rate a caller should hand to calculate_commission_cents().

    Partnership overrides win over the brand default for their context;
    promo and subscription fall back to the online rate.
    """
    override = None
    if partnership is not None:
        if context == RATE_CONTEXT_PROMO:
            override = partnership.promo_commission_rate
        elif context == RATE_CONTEXT_SUBSCRIPTION:
            override = partnership.subscription_commission_rate
        if override is None:
            override = partnership.online_commission_rate
    if override is not None:
        return _to_decimal(override)
    if brand is not None and brand.commission_rate is not None:
        return _to_decimal(brand.commission_rate)
    return _to_decimal(default if default is not None else "10.0")
