# backend/closet/routes/system.py
"""
System health and version endpoints.

Reports database reachability plus a quick count of the ledger tables, and
version information for deployment debugging.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Installment, Product, Sale, StockReservation
from ..models.inventory import RESERVATION_ACTIVE
from closet.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        sale_count = db.session.query(Sale).count()
        installment_count = db.session.query(Installment).count()
        open_reservations = db.session.query(StockReservation).filter_by(status=RESERVATION_ACTIVE).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "sales": sale_count,
                "installments": installment_count,
                "active_reservations": open_reservations,
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
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
        }
    }
    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information (no secrets, no paths)."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
