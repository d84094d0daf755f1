# backend/sampleledger/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Brand, BrandPartnership, WebhookLog
from ..models.conversions import WEBHOOK_FAILED
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and the tables webhooks depend on.
    """
    start_time = time.time()
    try:
        brand_count = db.session.query(Brand).count()
        partnership_count = db.session.query(BrandPartnership).count()
        failed_webhooks = db.session.query(WebhookLog).filter_by(status=WEBHOOK_FAILED).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "brands": brand_count,
                "partnerships": partnership_count,
                "failed_webhooks": failed_webhooks,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503
    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "0.1.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
