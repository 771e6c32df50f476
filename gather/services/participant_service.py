"""
Participant-facing token views.

A participant (or coordinator) opens their link, sees their assignments
and answers each one. Opening and answering are mirrored into the
invite-event log, after the main write has committed.
"""

import logging

from gather.core.exceptions import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from gather.models import db
from gather.models.audit import write_audit
from gather.models.auth import AccessToken
from gather.models.base import utcnow
from gather.models.event import Assignment, Item, PersonEvent, Team
from gather.services.authorization import ActorContext, resolve_token
from gather.services.invite_events import log_invite_event

logger = logging.getLogger(__name__)

RESPONSES = ("ACCEPTED", "DECLINED")


def _resolve(token: str) -> ActorContext:
    ctx = resolve_token(token)
    if ctx is None:
        raise UnauthorizedError("Invalid or expired link")
    if ctx.person is None:
        raise ForbiddenError("Link is not bound to a person")
    return ctx


def _assignments(ctx: ActorContext) -> list[Assignment]:
    return (
        Assignment.query.join(Item, Assignment.item_id == Item.id)
        .join(Team, Item.team_id == Team.id)
        .filter(Team.event_id == ctx.event.id, Assignment.person_id == ctx.person.id)
        .order_by(Item.name, Item.id)
        .all()
    )


def open_invite_link(token: str) -> dict:
    """Landing view for a token link. Stamps ``opened_at`` on first open."""
    ctx = _resolve(token)
    row = db.session.get(AccessToken, ctx.access_token_id)
    first_open = row.opened_at is None
    if first_open:
        row.opened_at = utcnow()
        db.session.commit()
        log_invite_event(
            ctx.event.id, "LINK_OPENED", person_id=ctx.person.id, metadata={"scope": ctx.scope},
        )

    membership = PersonEvent.query_for_event(ctx.event.id).filter_by(person_id=ctx.person.id).first()
    team = membership.team if membership else None
    return {
        "scope": ctx.scope,
        "person": {"id": ctx.person.id, "name": ctx.person.name},
        "event": {
            "id": ctx.event.id,
            "name": ctx.event.name,
            "status": ctx.event.status,
            "start_date": ctx.event.start_date.isoformat() if ctx.event.start_date else None,
            "end_date": ctx.event.end_date.isoformat() if ctx.event.end_date else None,
            "guest_count": ctx.event.guest_count,
        },
        "team": {"id": team.id, "name": team.name} if team else None,
        "assignments": [
            {
                "id": a.id,
                "response": a.response,
                "item": {
                    "id": a.item.id,
                    "name": a.item.name,
                    "quantity_text": a.item.quantity_text,
                    "critical": a.item.critical,
                    "serve_time": a.item.serve_time,
                    "day": a.item.day.to_dict() if a.item.day else None,
                },
            }
            for a in _assignments(ctx)
        ],
    }


def respond_to_assignment(token: str, assignment_id: int, response: str) -> dict:
    """Record the holder's answer for one of their own assignments."""
    if response not in RESPONSES:
        raise ValidationError("Invalid response", details={"response": "Must be ACCEPTED or DECLINED"})
    ctx = _resolve(token)
    if ctx.scope not in ("PARTICIPANT", "COORDINATOR"):
        raise ForbiddenError("Only participants and coordinators can respond")

    assignment = db.session.get(Assignment, assignment_id)
    if (
        assignment is None
        or assignment.person_id != ctx.person.id
        or assignment.item.team.event_id != ctx.event.id
    ):
        raise NotFoundError(resource="Assignment", resource_id=assignment_id)

    if ctx.event.status in ("FROZEN", "COMPLETE"):
        raise ValidationError(f"Responses are closed while the event is {ctx.event.status}")

    previous = assignment.response
    if previous != response:
        assignment.response = response
        assignment.responded_at = utcnow()
        write_audit(
            event_id=ctx.event.id, actor_id=ctx.actor_id, action_type="RESPOND_ASSIGNMENT",
            target_type="Assignment", target_id=assignment.id,
            details=f"{previous} → {response}",
        )
        db.session.commit()
        log_invite_event(
            ctx.event.id,
            "RESPONSE_SUBMITTED",
            person_id=ctx.person.id,
            metadata={"assignmentId": assignment.id, "response": response, "previous": previous},
        )
    return {"success": True, "assignment": assignment.to_dict()}
