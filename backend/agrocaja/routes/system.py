# backend/agrocaja/routes/system.py
"""
System health and version endpoints.

Unauthenticated. Used by deployment probes and for debugging.
"""

import sys
import time

from flask import Blueprint, current_app

from .. import __version__
from ..extensions import db
from ..models import SessionToken, Settlement, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        settlement_count = db.session.query(Settlement).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at > utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "settlements": settlement_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
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
    - 503: database unhealthy
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "success": healthy,
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
        }
    }
    if not healthy:
        response["error"] = "Service unhealthy"
    return response, 200 if healthy else 503


@system_bp.get("/version")
def version():
    """
    Non-sensitive deployment information (no secrets, no credentials, no paths).
    """
    env = "production" if not current_app.debug else "development"

    return {
        "success": True,
        "message": "ok",
        "api_version": __version__,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
