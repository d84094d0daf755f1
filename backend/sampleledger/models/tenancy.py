from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Brand(db.Model):
    """
    Brand organization that hands out samples through partner stores.

    WHY: The brand owns the e-commerce shop that emits order webhooks,
    the shared webhook secret, and the attribution policy (window and
    default commission rate) applied to every conversion it pays for.

    DESIGN:
    - shop_domain identifies the brand on inbound webhooks (unique)
    - webhook_secret keys the HMAC-SHA256 signature check
    - api_base_url/api_access_token are only used for best-effort
      customer-tag lookups and may be NULL
    """
    __tablename__ = "brands"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    shop_domain = db.Column(db.String(255), nullable=True, unique=True, index=True)
    shop_active = db.Column(db.Boolean, nullable=False, default=True)
    webhook_secret = db.Column(db.String(255), nullable=True)
    api_base_url = db.Column(db.String(255), nullable=True)
    api_access_token = db.Column(db.String(255), nullable=True)

    # Attribution policy
    attribution_window_days = db.Column(db.Integer, nullable=False, default=30)
    commission_rate = db.Column(db.Numeric(6, 3), nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Brand id={self.id} name={self.name!r} shop_domain={self.shop_domain!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "shop_domain": self.shop_domain,
            "shop_active": self.shop_active,
            "attribution_window_days": self.attribution_window_days,
            "commission_rate": str(self.commission_rate) if self.commission_rate is not None else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Store(db.Model):
    """
    Physical retail store hosting sample displays.

    store_code is the human-facing identifier (e.g. "SID-001") and is also
    what the platform carries in "store:<code>" customer tags.
    external_customer_id is the store's wholesale customer on the brand shop.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    owner_email = db.Column(db.String(255), nullable=True)
    owner_phone = db.Column(db.String(32), nullable=True)
    purchasing_email = db.Column(db.String(255), nullable=True)
    purchasing_phone = db.Column(db.String(32), nullable=True)

    external_customer_id = db.Column(db.String(64), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} store_code={self.store_code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_code": self.store_code,
            "name": self.name,
            "owner_email": self.owner_email,
            "owner_phone": self.owner_phone,
            "purchasing_email": self.purchasing_email,
            "purchasing_phone": self.purchasing_phone,
            "external_customer_id": self.external_customer_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
