# backend/hirepay/routes/system.py
"""
System health endpoint.

Reports database connectivity and settlement backlog for deployment checks.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Business, Payment, Purchase
from ..models.purchases import STATUS_OVERDUE
from hirepay.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        business_count = db.session.query(Business).count()
        purchase_count = db.session.query(Purchase).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "businesses": business_count,
                "purchases": purchase_count,
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


def check_settlement_health() -> dict:
    """
    Settlement backlog: pending payments and overdue purchases.

    A backlog is reported, never treated as unhealthy.
    """
    start_time = time.time()
    try:
        pending = db.session.query(Payment).filter(
            Payment.is_confirmed.is_(False),
            Payment.rejected_at.is_(None),
        ).count()
        overdue = db.session.query(Purchase).filter(Purchase.status == STATUS_OVERDUE).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending_payments": pending,
                "overdue_purchases": overdue,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Settlement health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Settlement query error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    settlement_health = check_settlement_health()

    all_checks = [database_health, settlement_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "settlement": settlement_health,
        }
    }

    return response, http_status
