# Overview: Decides whether a purchase is an attributed conversion, and for which store.

"""
Attribution rule

A purchase is attributed iff
- the customer has a SampleHistory row for this brand sampled at or before
  the purchase (the most recent such row is "the sample"),
- sample.expires_at >= purchase time (window end is inclusive), and
- no Conversion exists yet for (brand, external order id).

The store credited is the store on that sample, which need not be the
customer's signup store. Ineligibility is an expected outcome and is
returned as a reason code, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import Brand, Conversion, Customer, SampleHistory
from .commission import days_between

REASON_ATTRIBUTED = "attributed"
REASON_NO_SAMPLE = "no_sample_history"
REASON_WINDOW_EXPIRED = "window_expired"
REASON_ALREADY_ATTRIBUTED = "already_attributed"


@dataclass(frozen=True)
class AttributionDecision:
    attributed: bool
    reason: str
    sample: Optional[SampleHistory] = None
    store_id: Optional[int] = None
    days_to_conversion: Optional[int] = None

    def describe(self) -> str:
        if self.attributed:
            return f"Within attribution window ({self.days_to_conversion} days)"
        if self.reason == REASON_WINDOW_EXPIRED and self.sample is not None:
            return (
                f"Outside attribution window ({self.days_to_conversion} days, "
                f"limit is {self.sample.attribution_window_days} days)"
            )
        return self.reason


def most_recent_sample(customer_id: int, brand_id: int, as_of: datetime | None = None) -> SampleHistory | None:
    q = db.session.query(SampleHistory).filter(
        SampleHistory.customer_id == customer_id,
        SampleHistory.brand_id == brand_id,
    )
    if as_of is not None:
        q = q.filter(SampleHistory.sampled_at <= as_of)
    return q.order_by(SampleHistory.sampled_at.desc(), SampleHistory.id.desc()).first()


def conversion_exists(brand_id: int, external_order_id: str) -> bool:
    return db.session.query(Conversion.id).filter_by(
        brand_id=brand_id,
        external_order_id=external_order_id,
    ).first() is not None


def evaluate_attribution(
    *,
    customer: Customer,
    brand: Brand,
    purchase_at: datetime,
    external_order_id: str,
) -> AttributionDecision:
    if conversion_exists(brand.id, external_order_id):
        return AttributionDecision(attributed=False, reason=REASON_ALREADY_ATTRIBUTED)

    sample = most_recent_sample(customer.id, brand.id, as_of=purchase_at)
    if sample is None:
        return AttributionDecision(attributed=False, reason=REASON_NO_SAMPLE)

    days = days_between(sample.sampled_at, purchase_at)
    if sample.expires_at < purchase_at:
        return AttributionDecision(
            attributed=False,
            reason=REASON_WINDOW_EXPIRED,
            sample=sample,
            store_id=sample.store_id,
            days_to_conversion=days,
        )

    return AttributionDecision(
        attributed=True,
        reason=REASON_ATTRIBUTED,
        sample=sample,
        store_id=sample.store_id,
        days_to_conversion=days,
    )
