"""
Revision blueprint.

    GET  /events/<id>/revisions          newest five, header fields
    POST /events/<id>/revisions          {reason?} manual snapshot
    GET  /events/<id>/revisions/<rid>    full snapshot
"""

from flask import Blueprint, g, jsonify, request

from gather.auth import require_event_role
from gather.services import revision_service
from gather.utils.errors import register_error_handlers

revision_bp = Blueprint("revision", __name__, url_prefix="/api/v1")
register_error_handlers(revision_bp)

ANY_SCOPE = ("HOST", "COORDINATOR", "PARTICIPANT")


@revision_bp.route("/events/<int:event_id>/revisions", methods=["GET"])
@require_event_role(*ANY_SCOPE)
def list_revisions(event_id):
    return jsonify({"revisions": revision_service.list_revisions(event_id)}), 200


@revision_bp.route("/events/<int:event_id>/revisions", methods=["POST"])
@require_event_role("HOST")
def create_revision(event_id):
    data = request.get_json(silent=True) or {}
    rev = revision_service.create_revision(event_id, g.actor.actor_id, data.get("reason"))
    return jsonify({"revision": rev.to_summary()}), 201


@revision_bp.route("/events/<int:event_id>/revisions/<int:revision_id>", methods=["GET"])
@require_event_role(*ANY_SCOPE)
def get_revision(event_id, revision_id):
    return jsonify({"revision": revision_service.get_revision(event_id, revision_id).to_dict()}), 200
