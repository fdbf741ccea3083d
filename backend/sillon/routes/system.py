# backend/sillon/routes/system.py
"""
System health endpoint.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Order, Product, StockMovement, SupplierPayout
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a few cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "stock_movements": db.session.query(StockMovement).count(),
            "orders": db.session.query(Order).count(),
            "payouts": db.session.query(SupplierPayout).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "database": database,
    }, status_code
