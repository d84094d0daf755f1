"""
Pytest fixtures for sample ledger backend tests.

Provides test database setup, brand/store/partnership fixtures, catalog
fixtures for wholesale boxes, and a signed-webhook helper.
"""

import json
from datetime import timedelta

import pytest

from sampleledger import create_app
from sampleledger.extensions import db
from sampleledger.models import Brand, BrandPartnership, Product, Store
from sampleledger.services.sample_service import record_sample
from sampleledger.services.webhook_service import compute_signature
from sampleledger.time_utils import utcnow


SHOP_DOMAIN = "vitaldrops.myshopify.com"
WEBHOOK_SECRET = "test-webhook-secret"
STORE_CUSTOMER_ID = "7001"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'APP_BASE_URL': 'https://ledger.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def brand(db_session):
    """Brand with a 30-day window and 10% commission."""
    brand = Brand(
        name="Vital Drops",
        code="VD",
        shop_domain=SHOP_DOMAIN,
        webhook_secret=WEBHOOK_SECRET,
        attribution_window_days=30,
        commission_rate=10,
    )
    db_session.add(brand)
    db_session.commit()
    return brand


@pytest.fixture(scope='function')
def store_a(db_session):
    """Store that also buys wholesale as shop customer 7001."""
    store = Store(
        store_code="SID-001",
        name="Corner Market",
        purchasing_phone="+15550001111",
        external_customer_id=STORE_CUSTOMER_ID,
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    store = Store(store_code="SID-002", name="Harbor Pharmacy")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def partnership_a(db_session, store_a, brand):
    partnership = BrandPartnership(store_id=store_a.id, brand_id=brand.id, credit_balance_cents=0)
    db_session.add(partnership)
    db_session.commit()
    return partnership


@pytest.fixture(scope='function')
def partnership_b(db_session, store_b, brand):
    partnership = BrandPartnership(store_id=store_b.id, brand_id=brand.id, credit_balance_cents=0)
    db_session.add(partnership)
    db_session.commit()
    return partnership


@pytest.fixture(scope='function')
def box_product(db_session, brand):
    """Wholesale box of 6 (VD-SB-30-BX) plus its retail unit."""
    retail = Product(brand_id=brand.id, sku="VD-SB-30", name="Sleep Drops 30ml", price_cents=2500)
    box = Product(
        brand_id=brand.id,
        sku="VD-SB-30-BX",
        name="Sleep Drops 30ml (box of 6)",
        product_type="wholesale-box",
        units_per_box=6,
        external_product_id="88001",
        external_variant_id="44001",
        price_cents=6000,
    )
    db_session.add_all([retail, box])
    db_session.commit()
    return box


@pytest.fixture(scope='function')
def sampled_customer(db_session, brand, store_a):
    """Customer sampled at store A ten days ago."""
    sample = record_sample(
        brand_id=brand.id,
        store_id=store_a.id,
        phone="(555) 867-5309",
        email="jane@example.com",
        first_name="Jane",
        sampled_at=utcnow() - timedelta(days=10),
    )
    return sample.customer


def order_payload(
    order_id="1001",
    *,
    total="133.33",
    customer_id="9001",
    phone="+15558675309",
    email="jane@example.com",
    tags="",
    line_items=None,
    created_at=None,
) -> dict:
    """Minimal shop order payload."""
    return {
        "id": int(order_id),
        "name": f"#{order_id}",
        "total_price": total,
        "created_at": (created_at or utcnow()).isoformat() + "Z",
        "customer": {
            "id": int(customer_id) if customer_id else None,
            "phone": phone,
            "email": email,
            "tags": tags,
        },
        "line_items": line_items or [],
    }


def post_webhook(client, topic, payload, *, domain=SHOP_DOMAIN, secret=WEBHOOK_SECRET, path=None, signature=None):
    """POST a payload the way the shop signs it."""
    body = json.dumps(payload).encode("utf-8") if not isinstance(payload, bytes) else payload
    headers = {
        "X-Shopify-Shop-Domain": domain,
        "X-Shopify-Topic": topic,
        "X-Shopify-Hmac-Sha256": signature or compute_signature(secret, body),
        "Content-Type": "application/json",
    }
    if path is None:
        path = "/api/webhooks/fulfillments" if topic.startswith("fulfillments/") else "/api/webhooks/orders"
    return client.post(path, data=body, headers=headers)
