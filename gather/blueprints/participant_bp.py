"""
Participant link blueprint.

    GET  /api/v1/t/<token>                                   holder's view
    POST /api/v1/t/<token>/assignments/<aid>/respond         {response}
"""

from flask import Blueprint, jsonify, request

from gather.services.participant_service import open_invite_link, respond_to_assignment
from gather.utils.errors import register_error_handlers

participant_bp = Blueprint("participant", __name__, url_prefix="/api/v1/t")
register_error_handlers(participant_bp)


@participant_bp.route("/<token>", methods=["GET"])
def view(token):
    return jsonify(open_invite_link(token)), 200


@participant_bp.route("/<token>/assignments/<int:assignment_id>/respond", methods=["POST"])
def respond(token, assignment_id):
    data = request.get_json(silent=True) or {}
    return jsonify(respond_to_assignment(token, assignment_id, data.get("response"))), 200
