"""
Identity resolution tests.

Verifies the strategy chain order (member tag > store tag + contact >
shop customer id > contact), id linking, and tag lookup fallback.
"""

import pytest

from sampleledger.models import Customer
from sampleledger.services.identity_service import (
    STRATEGY_CONTACT,
    STRATEGY_EXTERNAL_ID,
    STRATEGY_MEMBER_TAG,
    STRATEGY_STORE_TAG_CONTACT,
    BuyerSignals,
    normalize_email,
    normalize_phone,
    parse_tags,
    resolve_customer,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("(555) 867-5309", "+15558675309"),
        ("555.867.5309", "+15558675309"),
        ("+1 555 867 5309", "+15558675309"),
        ("15558675309", "+15558675309"),
        ("867-5309", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_email_and_tags():
    assert normalize_email("  Jane@Example.COM ") == "jane@example.com"
    assert parse_tags("member:MEM-1, store:SID-001 ,") == ("member:MEM-1", "store:SID-001")
    assert parse_tags(["vip", " "]) == ("vip",)
    assert parse_tags(None) == ()


def _customer(db_session, brand, store, member_id, **kwargs):
    customer = Customer(member_id=member_id, brand_id=brand.id, store_id=store.id, **kwargs)
    db_session.add(customer)
    db_session.commit()
    return customer


class TestResolveCustomer:

    def test_member_tag_beats_phone(self, db_session, brand, store_a):
        tagged = _customer(db_session, brand, store_a, "MEM-AAAA", phone="+15550000001")
        by_phone = _customer(db_session, brand, store_a, "MEM-BBBB", phone="+15550000002")

        match = resolve_customer(BuyerSignals(
            brand_id=brand.id,
            phone="+15550000002",
            tags=("member:MEM-AAAA",),
        ))

        assert match.customer.id == tagged.id
        assert match.customer.id != by_phone.id
        assert match.strategy == STRATEGY_MEMBER_TAG

    def test_store_tag_with_contact(self, db_session, brand, store_a, store_b):
        _customer(db_session, brand, store_a, "MEM-0001", email="sam@example.com")
        at_b = _customer(db_session, brand, store_b, "MEM-0002", email="sam@example.com")

        match = resolve_customer(BuyerSignals(
            brand_id=brand.id,
            email="SAM@example.com",
            tags=("store:SID-002",),
        ))

        assert match.customer.id == at_b.id
        assert match.strategy == STRATEGY_STORE_TAG_CONTACT

    def test_external_id_then_contact_links_id(self, db_session, brand, store_a):
        customer = _customer(db_session, brand, store_a, "MEM-0003", phone="+15551112222")

        first = resolve_customer(BuyerSignals(
            brand_id=brand.id,
            external_customer_id="9001",
            phone="555-111-2222",
        ))
        db_session.commit()

        assert first.customer.id == customer.id
        assert first.strategy == STRATEGY_CONTACT
        assert first.linked is True
        assert customer.external_customer_id == "9001"

        second = resolve_customer(BuyerSignals(brand_id=brand.id, external_customer_id="9001"))
        assert second.customer.id == customer.id
        assert second.strategy == STRATEGY_EXTERNAL_ID
        assert second.linked is False

    def test_lookup_scoped_to_brand(self, db_session, brand, store_a):
        from sampleledger.models import Brand

        other = Brand(name="Other", code="OT", shop_domain="other.myshopify.com", webhook_secret="x")
        db_session.add(other)
        db_session.commit()
        _customer(db_session, other, store_a, "MEM-0004", phone="+15553334444")

        assert resolve_customer(BuyerSignals(brand_id=brand.id, phone="+15553334444")) is None

    def test_tag_lookup_used_when_payload_has_no_tags(self, db_session, brand, store_a):
        customer = _customer(db_session, brand, store_a, "MEM-0005")
        calls = []

        def lookup(external_id):
            calls.append(external_id)
            return ["member:MEM-0005"]

        match = resolve_customer(
            BuyerSignals(brand_id=brand.id, external_customer_id="4242"),
            tag_lookup=lookup,
        )

        assert calls == ["4242"]
        assert match.customer.id == customer.id
        assert match.strategy == STRATEGY_MEMBER_TAG

    def test_tag_lookup_skipped_when_tags_present(self, db_session, brand, store_a):
        _customer(db_session, brand, store_a, "MEM-0006")

        def lookup(external_id):
            raise AssertionError("lookup should not be called")

        match = resolve_customer(
            BuyerSignals(brand_id=brand.id, external_customer_id="4242", tags=("member:MEM-0006",)),
            tag_lookup=lookup,
        )
        assert match.strategy == STRATEGY_MEMBER_TAG

    def test_no_signals_no_match(self, db_session, brand):
        assert resolve_customer(BuyerSignals(brand_id=brand.id)) is None
