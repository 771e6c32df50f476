"""
Event blueprint: event lifecycle, people, invites and workflow gates.

Endpoint groups
───────────────
  Events      GET/POST /events                          hosted events / create
              GET/PATCH /events/<id>                    detail / update
              POST /events/<id>/archive | /restore
              POST /events/<id>/transition              {status}
  Gates       POST /events/<id>/freeze-check            advisory readiness
              POST /events/<id>/gate-check              hard blocks
  Invites     POST /events/<id>/confirm-invites-sent
              GET/POST /events/<id>/tokens              list / issue links
              GET /events/<id>/invite-status
              GET /events/<id>/invite-events
  People      GET/POST /events/<id>/people
              DELETE /events/<id>/people/<pid>
              POST /events/<id>/people/<pid>/manual-override
  Review      POST /events/<id>/items/mark-for-review
"""

import logging

from flask import Blueprint, g, jsonify, request

from gather.auth import require_event_role, require_session
from gather.services import plan_service, token_service, workflow
from gather.services.invite_events import list_invite_events, list_invite_events_for_person
from gather.services.readiness import check_freeze_readiness, run_gate_check
from gather.utils.errors import register_error_handlers
from gather.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

event_bp = Blueprint("event", __name__, url_prefix="/api/v1")
register_error_handlers(event_bp)


# ══════════════════════════════════════════════════════════════════
# 1.  Events
# ══════════════════════════════════════════════════════════════════

@event_bp.route("/events", methods=["GET"])
@require_session
def list_events():
    include_archived = parse_bool(request.args.get("include_archived"))
    return jsonify({"events": plan_service.list_hosted_events(g.current_user.id, include_archived)}), 200


@event_bp.route("/events", methods=["POST"])
@require_session
def create_event():
    data = request.get_json(silent=True) or {}
    event = plan_service.create_event(g.current_user, data)
    return jsonify({"event": event.to_dict()}), 201


@event_bp.route("/events/<int:event_id>", methods=["GET"])
@require_event_role("HOST", "COORDINATOR")
def get_event(event_id):
    return jsonify({"event": plan_service.get_event_detail(event_id)}), 200


@event_bp.route("/events/<int:event_id>", methods=["PATCH"])
@require_event_role("HOST")
def update_event(event_id):
    data = request.get_json(silent=True) or {}
    event = plan_service.update_event(event_id, data, g.actor.actor_id)
    return jsonify({"event": event.to_dict()}), 200


@event_bp.route("/events/<int:event_id>/archive", methods=["POST"])
@require_event_role("HOST")
def archive_event(event_id):
    event = workflow.archive_event(event_id, g.actor.actor_id)
    return jsonify({"event": event.to_dict()}), 200


@event_bp.route("/events/<int:event_id>/restore", methods=["POST"])
@require_event_role("HOST")
def restore_event(event_id):
    event = workflow.restore_event(event_id, g.actor.actor_id)
    return jsonify({"event": event.to_dict()}), 200


@event_bp.route("/events/<int:event_id>/transition", methods=["POST"])
@require_event_role("HOST")
def transition_event(event_id):
    """Body: {"status": "CONFIRMING"}"""
    data = request.get_json(silent=True) or {}
    result = workflow.transition_event(event_id, data.get("status"), g.actor.actor_id)
    return jsonify(result), 200


# ══════════════════════════════════════════════════════════════════
# 2.  Gates
# ══════════════════════════════════════════════════════════════════

@event_bp.route("/events/<int:event_id>/freeze-check", methods=["POST"])
@require_event_role("HOST")
def freeze_check(event_id):
    return jsonify(check_freeze_readiness(event_id)), 200


@event_bp.route("/events/<int:event_id>/gate-check", methods=["POST"])
@require_event_role("HOST")
def gate_check(event_id):
    return jsonify(run_gate_check(event_id)), 200


# ══════════════════════════════════════════════════════════════════
# 3.  Invites
# ══════════════════════════════════════════════════════════════════

@event_bp.route("/events/<int:event_id>/confirm-invites-sent", methods=["POST"])
@require_event_role("HOST")
def confirm_invites_sent(event_id):
    return jsonify(workflow.confirm_invites_sent(event_id, g.actor.actor_id)), 200


@event_bp.route("/events/<int:event_id>/tokens", methods=["GET"])
@require_event_role("HOST")
def list_tokens(event_id):
    return jsonify({"inviteLinks": token_service.list_invite_links(event_id)}), 200


@event_bp.route("/events/<int:event_id>/tokens", methods=["POST"])
@require_event_role("HOST")
def issue_tokens(event_id):
    summary = token_service.ensure_event_tokens(event_id)
    return jsonify({
        "created": summary["created"],
        "removed": summary["removed"],
        "inviteLinks": token_service.list_invite_links(event_id),
    }), 200


@event_bp.route("/events/<int:event_id>/invite-status", methods=["GET"])
@require_event_role("HOST")
def invite_status(event_id):
    return jsonify(plan_service.invite_status(event_id)), 200


@event_bp.route("/events/<int:event_id>/invite-events", methods=["GET"])
@require_event_role("HOST")
def invite_events(event_id):
    person_id = request.args.get("person_id", type=int)
    if person_id is not None:
        rows = list_invite_events_for_person(event_id, person_id)
    else:
        rows = list_invite_events(event_id)
    return jsonify({"inviteEvents": rows}), 200


# ══════════════════════════════════════════════════════════════════
# 4.  People
# ══════════════════════════════════════════════════════════════════

@event_bp.route("/events/<int:event_id>/people", methods=["GET"])
@require_event_role("HOST", "COORDINATOR")
def list_people(event_id):
    return jsonify({"people": plan_service.list_people(event_id)}), 200


@event_bp.route("/events/<int:event_id>/people", methods=["POST"])
@require_event_role("HOST")
def add_person(event_id):
    data = request.get_json(silent=True) or {}
    return jsonify({"person": plan_service.add_person(event_id, data, g.actor.actor_id)}), 201


@event_bp.route("/events/<int:event_id>/people/<int:person_id>", methods=["DELETE"])
@require_event_role("HOST")
def remove_person(event_id, person_id):
    return jsonify(workflow.remove_person(event_id, person_id, g.actor.actor_id)), 200


@event_bp.route("/events/<int:event_id>/people/<int:person_id>/manual-override", methods=["POST"])
@require_event_role("HOST")
def manual_override(event_id, person_id):
    """Body: {"response": "ACCEPTED" | "DECLINED", "reason"?: str}"""
    data = request.get_json(silent=True) or {}
    result = workflow.manual_override(
        event_id, person_id, data.get("response"), g.actor.actor_id, reason=data.get("reason"),
    )
    return jsonify(result), 200


# ══════════════════════════════════════════════════════════════════
# 5.  Review
# ══════════════════════════════════════════════════════════════════

@event_bp.route("/events/<int:event_id>/items/mark-for-review", methods=["POST"])
@require_event_role("HOST")
def mark_for_review(event_id):
    return jsonify(workflow.mark_for_review(event_id, g.actor.actor_id)), 200
