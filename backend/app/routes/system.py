# backend/app/routes/system.py
"""
System health endpoint.

Reports database reachability plus a few counts useful when a register
cannot open a session or a terminal stops taking cards.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError
from ..extensions import db
from ..models import Vendor, Register, PaymentProcessor, POSSession, SessionToken
from ..models.registers import SESSION_STATUS_OPEN
from app.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "vendors": db.session.query(Vendor).count(),
            "registers": db.session.query(Register).count(),
            "active_processors": db.session.query(PaymentProcessor).filter_by(is_active=True).count(),
            "open_sessions": db.session.query(POSSession).filter_by(status=SESSION_STATUS_OPEN).count(),
            "active_tokens": db.session.query(SessionToken).filter_by(is_revoked=False).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except SQLAlchemyError:
        db.session.rollback()
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
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "environment": current_app.config.get("APP_ENV"),
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
        }
    }

    return response, 200 if healthy else 503
