# backend/kirana/routes/system.py
"""
System health and store settings endpoints.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..decorators import handle_service_errors, json_body, require_admin
from ..extensions import db
from ..models import Counter
from ..money import as_number
from ..services import settings_service
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and counter table accessibility.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        counter_count = db.session.query(Counter).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"counters": counter_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200
    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status


def _gift_json(gift: dict) -> dict:
    return {
        **gift,
        "threshold": as_number(gift["threshold"]),
        "discountPrice": as_number(gift["discountPrice"]),
    }


@system_bp.get("/settings")
@require_admin
@handle_service_errors("Failed to load settings")
def get_settings_route():
    return {
        "milkPrice": as_number(settings_service.get_milk_price()),
        "freeGift": _gift_json(settings_service.get_free_gift()),
    }, 200


@system_bp.put("/settings/free-gift")
@require_admin
@handle_service_errors("Failed to update free gift")
def update_free_gift_route():
    gift = settings_service.set_free_gift(json_body())
    return {"ok": True, "freeGift": _gift_json(gift)}, 200
