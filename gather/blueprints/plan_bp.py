"""
Plan blueprint: teams, items and assignments.

Hosts edit the whole plan; a coordinator edits only the items of the
team their link is bound to.

    GET/POST /events/<id>/teams
    DELETE   /events/<id>/teams/<team_id>
    POST     /events/<id>/items                         {team_id, name, ...}
    PATCH    /events/<id>/items/<item_id>
    DELETE   /events/<id>/items/<item_id>
    POST     /events/<id>/items/<item_id>/assign        {person_id}
    DELETE   /events/<id>/items/<item_id>/assign
"""

from flask import Blueprint, g, jsonify, request

from gather.auth import require_event_role
from gather.core.exceptions import ValidationError
from gather.services import plan_service
from gather.services.authorization import require_team_access
from gather.utils.errors import register_error_handlers

plan_bp = Blueprint("plan", __name__, url_prefix="/api/v1")
register_error_handlers(plan_bp)


def _item_in_reach(event_id, item_id):
    item = plan_service.get_item_for_event(event_id, item_id)
    require_team_access(g.actor, item.team_id)
    return item


# ── Teams ────────────────────────────────────────────────────────────────

@plan_bp.route("/events/<int:event_id>/teams", methods=["GET"])
@require_event_role("HOST", "COORDINATOR", "PARTICIPANT")
def list_teams(event_id):
    return jsonify({"teams": plan_service.list_teams(event_id)}), 200


@plan_bp.route("/events/<int:event_id>/teams", methods=["POST"])
@require_event_role("HOST")
def create_team(event_id):
    data = request.get_json(silent=True) or {}
    team = plan_service.create_team(event_id, data, g.actor.actor_id)
    return jsonify({"team": team.to_dict(include_counts=True)}), 201


@plan_bp.route("/events/<int:event_id>/teams/<int:team_id>", methods=["DELETE"])
@require_event_role("HOST")
def delete_team(event_id, team_id):
    return jsonify(plan_service.delete_team(event_id, team_id, g.actor.actor_id)), 200


# ── Items ────────────────────────────────────────────────────────────────

@plan_bp.route("/events/<int:event_id>/items", methods=["POST"])
@require_event_role("HOST", "COORDINATOR")
def create_item(event_id):
    data = request.get_json(silent=True) or {}
    team_id = data.get("team_id")
    if team_id is None:
        raise ValidationError("team_id is required", details={"team_id": "Required"})
    require_team_access(g.actor, team_id)
    item = plan_service.create_item(event_id, team_id, data, g.actor.actor_id)
    return jsonify({"item": item.to_dict()}), 201


@plan_bp.route("/events/<int:event_id>/items/<int:item_id>", methods=["PATCH"])
@require_event_role("HOST", "COORDINATOR")
def update_item(event_id, item_id):
    _item_in_reach(event_id, item_id)
    data = request.get_json(silent=True) or {}
    item = plan_service.update_item(event_id, item_id, data, g.actor.actor_id)
    return jsonify({"item": item.to_dict()}), 200


@plan_bp.route("/events/<int:event_id>/items/<int:item_id>", methods=["DELETE"])
@require_event_role("HOST", "COORDINATOR")
def delete_item(event_id, item_id):
    _item_in_reach(event_id, item_id)
    return jsonify(plan_service.delete_item(event_id, item_id, g.actor.actor_id)), 200


@plan_bp.route("/events/<int:event_id>/items/<int:item_id>/assign", methods=["POST"])
@require_event_role("HOST", "COORDINATOR")
def assign_item(event_id, item_id):
    _item_in_reach(event_id, item_id)
    data = request.get_json(silent=True) or {}
    item = plan_service.assign_item(event_id, item_id, data.get("person_id"), g.actor.actor_id)
    return jsonify({"item": item.to_dict()}), 200


@plan_bp.route("/events/<int:event_id>/items/<int:item_id>/assign", methods=["DELETE"])
@require_event_role("HOST", "COORDINATOR")
def unassign_item(event_id, item_id):
    _item_in_reach(event_id, item_id)
    item = plan_service.unassign_item(event_id, item_id, g.actor.actor_id)
    return jsonify({"item": item.to_dict()}), 200
