"""
Commission arithmetic tests.

Verifies:
- Half-up rounding to the cent on integer-cent totals
- $0 orders produce $0 commission
- Rate selection precedence (partnership override > brand > default)
"""

from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from sampleledger.services.commission import (
    RATE_CONTEXT_PROMO,
    RATE_CONTEXT_SUBSCRIPTION,
    calculate_commission_cents,
    days_between,
    dollars_to_cents,
    format_cents,
    select_commission_rate,
)


class TestCalculateCommission:

    def test_ten_percent_of_133_33(self):
        assert calculate_commission_cents(13333, 10) == 1333

    def test_zero_total(self):
        assert calculate_commission_cents(0, 10) == 0

    @pytest.mark.parametrize(
        "total_cents,rate,expected",
        [
            (5, 10, 1),          # 0.5 cent rounds up
            (4, 10, 0),          # 0.4 cent rounds down
            (10000, "12.5", 1250),
            (999, Decimal("7.5"), 75),   # 74.925 -> 75
            (12345, 10.1, 1247),         # 1246.845 -> 1247
        ],
    )
    def test_half_up_rounding(self, total_cents, rate, expected):
        assert calculate_commission_cents(total_cents, rate) == expected

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            calculate_commission_cents(-1, 10)

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            calculate_commission_cents(100, -5)


def test_dollars_to_cents():
    assert dollars_to_cents("133.33") == 13333
    assert dollars_to_cents("0.00") == 0
    assert dollars_to_cents(None) == 0
    assert dollars_to_cents("19.995") == 2000


def test_format_cents():
    assert format_cents(1333) == "$13.33"
    assert format_cents(5) == "$0.05"
    assert format_cents(-1200) == "-$12.00"


def test_days_between_is_floored():
    start = datetime(2026, 1, 1, 12, 0, 0)
    assert days_between(start, start + timedelta(days=30)) == 30
    assert days_between(start, start + timedelta(days=30, hours=23)) == 30
    assert days_between(start, start + timedelta(hours=1)) == 0


class TestSelectCommissionRate:

    def setup_method(self):
        self.brand = SimpleNamespace(commission_rate=Decimal("10.000"))

    def test_brand_default(self):
        assert select_commission_rate(self.brand) == Decimal("10.000")

    def test_partnership_online_override(self):
        partnership = SimpleNamespace(
            online_commission_rate=Decimal("12"),
            promo_commission_rate=None,
            subscription_commission_rate=None,
        )
        assert select_commission_rate(self.brand, partnership) == Decimal("12")

    def test_promo_and_subscription_contexts(self):
        partnership = SimpleNamespace(
            online_commission_rate=Decimal("12"),
            promo_commission_rate=Decimal("20"),
            subscription_commission_rate=None,
        )
        assert select_commission_rate(self.brand, partnership, RATE_CONTEXT_PROMO) == Decimal("20")
        # Falls back to the online override
        assert select_commission_rate(self.brand, partnership, RATE_CONTEXT_SUBSCRIPTION) == Decimal("12")

    def test_config_default_when_brand_unset(self):
        brand = SimpleNamespace(commission_rate=None)
        assert select_commission_rate(brand, default="8.5") == Decimal("8.5")
