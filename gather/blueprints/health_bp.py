"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        simple 200 for load balancers
    GET /api/v1/health/live   database round-trip with latency
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from gather.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe: always 200 if the app is running."""
    return jsonify({"status": "ok", "app": "gather"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["sms"] = {"status": "configured" if current_app.config.get("SMS_GATEWAY_URL") else "disabled"}
    checks["mail"] = {"status": "configured" if current_app.config.get("MAIL_SERVER") else "log-only"}

    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), 200 if overall else 503
