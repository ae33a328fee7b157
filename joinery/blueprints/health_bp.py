"""
Health check blueprint.

Endpoints:
    GET /api/health/ready  — simple 200 for load balancers
    GET /api/health        — database round-trip
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy.exc import SQLAlchemyError

from joinery.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness check: always 200 while the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("", methods=["GET"])
def live():
    """Liveness check with database status."""
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        database = {"status": "ok", "latency_ms": round(db_ms, 1)}
        status = 200
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check — database failed: %s", exc)
        database = {"status": "error"}
        status = 503

    return jsonify({
        "status": "ok" if status == 200 else "degraded",
        "checks": {"database": database},
    }), status
