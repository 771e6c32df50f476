"""
Cron trigger blueprint.

    POST /api/v1/cron/nudges   Authorization: Bearer <CRON_SECRET>
"""

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from gather.services.nudge_service import run_nudge_scheduler
from gather.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

cron_bp = Blueprint("cron", __name__, url_prefix="/api/v1/cron")
register_error_handlers(cron_bp)


def _authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET")
    if not secret:
        return False
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header, f"Bearer {secret}")


@cron_bp.route("/nudges", methods=["POST"])
def nudges():
    if not _authorized():
        logger.warning("Rejected cron call from %s", request.remote_addr)
        return api_error(E.UNAUTHORIZED, "Unauthorized")
    return jsonify(run_nudge_scheduler()), 200
