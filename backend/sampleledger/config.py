# backend/sampleledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///sampleledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Brand-level fallbacks when a brand row leaves them unset
    DEFAULT_ATTRIBUTION_WINDOW_DAYS = int(os.environ.get("DEFAULT_ATTRIBUTION_WINDOW_DAYS", "30"))
    DEFAULT_COMMISSION_RATE = os.environ.get("DEFAULT_COMMISSION_RATE", "10.0")

    # Seconds; tag enrichment is best-effort and must not stall a webhook
    CUSTOMER_TAG_LOOKUP_TIMEOUT = float(os.environ.get("CUSTOMER_TAG_LOOKUP_TIMEOUT", "3.0"))

    # Total attempts for ledger writes (1 retry on contention)
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "2"))

    # Used to build store-facing wholesale verification links
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")
