# Overview: Read-only client for the shop's customer tags (best-effort enrichment).

from __future__ import annotations

import httpx
from flask import current_app

from ..models import Brand


class CustomerTagClient:
    """
    Fetches a shop customer's tags when an order payload arrives without them.

    Every failure (timeout, HTTP error, bad JSON, missing credentials)
    degrades to an empty tag list: identity resolution then proceeds on the
    remaining signals instead of stalling the webhook.
    """

    def __init__(self, brand: Brand, *, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self.brand = brand
        if timeout is None:
            timeout = float(current_app.config.get("CUSTOMER_TAG_LOOKUP_TIMEOUT", 3.0))
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.brand.api_base_url and self.brand.api_access_token)

    def fetch_tags(self, external_customer_id: str) -> list[str]:
        if not self.configured:
            return []
        url = f"{self.brand.api_base_url.rstrip('/')}/customers/{external_customer_id}.json"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, headers={"X-Shopify-Access-Token": self.brand.api_access_token})
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError):
            current_app.logger.warning(
                "Customer tag lookup failed for brand %s customer %s",
                self.brand.id,
                external_customer_id,
                exc_info=True,
            )
            return []

        raw = (body.get("customer") or {}).get("tags") if isinstance(body, dict) else None
        if not raw:
            return []
        if isinstance(raw, str):
            return [t.strip() for t in raw.split(",") if t.strip()]
        return [str(t).strip() for t in raw if str(t).strip()]

    __call__ = fetch_tags
