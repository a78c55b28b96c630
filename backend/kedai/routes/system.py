# Overview: Health endpoints.

import time

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
@system_bp.get("/api/health")
def health_route():
    database = check_database_health()
    ok = database["status"] == "healthy"
    return jsonify({
        "ok": ok,
        "service": "backend",
        "time": to_utc_z(utcnow()),
        "database": database,
    }), 200 if ok else 503
