"""
Conflict blueprint.

    GET  /events/<id>/conflicts?status=active|all|resolved|dismissed
    GET  /events/<id>/conflicts/dismissed
    POST /events/<id>/check                               run detection
    GET  /events/<id>/conflicts/<cid>
    POST /events/<id>/conflicts/<cid>/acknowledge
    GET/POST /events/<id>/conflicts/<cid>/resolve
    POST /events/<id>/conflicts/<cid>/delegate            {delegate_to?}
    POST /events/<id>/conflicts/<cid>/dismiss

A conflict id addressed through another event's path answers 403.
"""

import logging

from flask import Blueprint, g, jsonify, request

from gather.auth import require_event_role
from gather.services import conflict_lifecycle
from gather.services.conflict_detector import run_conflict_check
from gather.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

conflict_bp = Blueprint("conflict", __name__, url_prefix="/api/v1")
register_error_handlers(conflict_bp)

ANY_SCOPE = ("HOST", "COORDINATOR", "PARTICIPANT")


@conflict_bp.route("/events/<int:event_id>/conflicts", methods=["GET"])
@require_event_role(*ANY_SCOPE)
def list_conflicts(event_id):
    status_filter = request.args.get("status", "active")
    return jsonify(conflict_lifecycle.list_conflicts(event_id, status_filter)), 200


@conflict_bp.route("/events/<int:event_id>/conflicts/dismissed", methods=["GET"])
@require_event_role(*ANY_SCOPE)
def list_dismissed(event_id):
    return jsonify({"conflicts": conflict_lifecycle.list_dismissed(event_id)}), 200


@conflict_bp.route("/events/<int:event_id>/check", methods=["POST"])
@require_event_role("HOST")
def check(event_id):
    result = run_conflict_check(event_id, g.actor.actor_id)
    listing = conflict_lifecycle.list_conflicts(event_id)
    return jsonify({"check": result, **listing}), 200


@conflict_bp.route("/events/<int:event_id>/conflicts/<int:conflict_id>", methods=["GET"])
@require_event_role(*ANY_SCOPE)
def get_conflict(event_id, conflict_id):
    conflict = conflict_lifecycle.get_conflict_for_event(event_id, conflict_id)
    return jsonify({"conflict": conflict.to_dict(include_acknowledgements=True)}), 200


@conflict_bp.route("/events/<int:event_id>/conflicts/<int:conflict_id>/acknowledge", methods=["POST"])
@require_event_role("HOST")
def acknowledge(event_id, conflict_id):
    data = request.get_json(silent=True) or {}
    result = conflict_lifecycle.acknowledge_conflict(event_id, conflict_id, g.actor.actor_id, data)
    return jsonify(result), 201


@conflict_bp.route("/events/<int:event_id>/conflicts/<int:conflict_id>/resolve", methods=["GET", "POST"])
@require_event_role("HOST")
def resolve(event_id, conflict_id):
    conflict = conflict_lifecycle.resolve_conflict(event_id, conflict_id, g.actor.actor_id)
    return jsonify({"conflict": conflict.to_dict()}), 200


@conflict_bp.route("/events/<int:event_id>/conflicts/<int:conflict_id>/delegate", methods=["POST"])
@require_event_role("HOST")
def delegate(event_id, conflict_id):
    data = request.get_json(silent=True) or {}
    conflict = conflict_lifecycle.delegate_conflict(
        event_id, conflict_id, g.actor.actor_id, data.get("delegate_to") or "COORDINATOR",
    )
    return jsonify({"conflict": conflict.to_dict()}), 200


@conflict_bp.route("/events/<int:event_id>/conflicts/<int:conflict_id>/dismiss", methods=["POST"])
@require_event_role("HOST", "COORDINATOR")
def dismiss(event_id, conflict_id):
    conflict = conflict_lifecycle.dismiss_conflict(event_id, conflict_id, g.actor.actor_id)
    return jsonify({"conflict": conflict.to_dict()}), 200
