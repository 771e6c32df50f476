"""
Event workflow service.

State machine:
    DRAFT      → PLANNING | CONFIRMING
    PLANNING   → CONFIRMING
    CONFIRMING → FROZEN
    FROZEN     → CONFIRMING (unfreeze override) | COMPLETE
    COMPLETE   → (terminal)

Moving into CONFIRMING from an editable state, and into FROZEN, runs the
gate check first; any block refuses the transition. Every transition
snapshots a PlanRevision of the plan as it stood, in the same unit of
work as the status change.

Mutation rules (``can_mutate``):
    DRAFT / PLANNING   everything allowed
    CONFIRMING         everything except deleting a critical item
    FROZEN / COMPLETE  nothing
"""

import logging

from sqlalchemy import func, select, update

from gather.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from gather.models import db
from gather.models.audit import write_audit
from gather.models.auth import AccessToken
from gather.models.base import utcnow
from gather.models.event import EVENT_STATUSES, Assignment, Event, Item, Person, PersonEvent, Team
from gather.services.entitlement_service import can_edit_event
from gather.services.invite_events import log_invite_event
from gather.services.readiness import check_freeze_readiness, run_gate_check
from gather.services.revision_service import add_revision, run_with_revision_retry

logger = logging.getLogger(__name__)


EVENT_TRANSITIONS = {
    "DRAFT": ["PLANNING", "CONFIRMING"],
    "PLANNING": ["CONFIRMING"],
    "CONFIRMING": ["FROZEN"],
    "FROZEN": ["CONFIRMING", "COMPLETE"],
    "COMPLETE": [],
}

# Targets that require a passing gate check, keyed by target → sources
GATED_TRANSITIONS = {
    "CONFIRMING": {"DRAFT", "PLANNING"},
    "FROZEN": {"CONFIRMING"},
}

MUTATION_ACTIONS = {
    "create_item", "update_item", "delete_item", "assign_item", "unassign_item",
    "update_event", "create_team", "delete_team", "add_person", "remove_person",
    "mark_for_review",
}

OVERRIDE_RESPONSES = ("ACCEPTED", "DECLINED")


def can_transition(from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True
    return to_status in EVENT_TRANSITIONS.get(from_status, [])


def can_mutate(status: str, action: str, item_critical: bool = False) -> bool:
    if action not in MUTATION_ACTIONS:
        raise ValueError(f"Unknown mutation action: {action}")
    if status in ("FROZEN", "COMPLETE"):
        return False
    if status == "CONFIRMING":
        return not (action == "delete_item" and item_critical)
    return True


def compute_team_status(items) -> str:
    """SORTED when every item has an owner; CRITICAL_GAP beats GAP."""
    unassigned = [i for i in items if i.assignment is None]
    if not unassigned:
        return "SORTED"
    if any(i.critical for i in unassigned):
        return "CRITICAL_GAP"
    return "GAP"


def get_event(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)
    return event


def ensure_mutable(event: Event, action: str, item_critical: bool = False) -> None:
    """Raise unless the plan may be changed right now."""
    if event.archived:
        raise ValidationError("Archived events cannot be changed")
    if not can_mutate(event.status, action, item_critical):
        reason = (
            "Critical items cannot be deleted while confirming"
            if event.status == "CONFIRMING"
            else f"Plan is locked while the event is {event.status}"
        )
        raise ValidationError(reason, details={"status": event.status, "action": action})
    if not can_edit_event(event):
        raise ForbiddenError("Your plan does not allow editing this event")


# ═════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════


def transition_event(event_id: int, target: str, actor_id: str) -> dict:
    """Move an event to ``target``.

    Returns:
        {"event": {...}, "previousStatus", "revision": {...} | None,
         "readiness": {...}}   (readiness only when freezing)

    Raises:
        InvalidTransitionError: illegal move, archived event, or a failed
            gate check (the blocks ride along on the exception).
    """
    if target not in EVENT_STATUSES:
        raise ValidationError(
            "Invalid status", details={"status": f"Must be one of: {', '.join(EVENT_STATUSES)}"},
        )
    event = get_event(event_id)
    current = event.status

    if event.archived:
        raise InvalidTransitionError("Event", current, target, "Event is archived")
    if current == target:
        return {"event": event.to_dict(), "previousStatus": current, "revision": None}
    if not can_transition(current, target):
        raise InvalidTransitionError("Event", current, target, "Transition not allowed")
    if not can_edit_event(event):
        raise ForbiddenError("Your plan does not allow editing this event")

    if current in GATED_TRANSITIONS.get(target, ()):
        gate = run_gate_check(event_id)
        if not gate["passed"]:
            logger.info(
                "Transition %s → %s refused for event %s: %d block(s)",
                current, target, event_id, len(gate["blocks"]),
            )
            raise InvalidTransitionError(
                "Event", current, target, "Gate check failed", blocks=gate["blocks"],
            )

    result = {"previousStatus": current}
    if target == "FROZEN":
        result["readiness"] = check_freeze_readiness(event_id)

    is_override = current == "FROZEN" and target == "CONFIRMING"
    action_type = "UNFREEZE_OVERRIDE" if is_override else f"TRANSITION_TO_{target}"

    def unit_of_work():
        rev = add_revision(event, actor_id, reason=f"Transition to {target}")
        event.status = target
        write_audit(
            event_id=event.id,
            actor_id=actor_id,
            action_type=action_type,
            target_type="Event",
            target_id=event.id,
            details=f"{current} → {target}",
        )
        return rev

    revision = run_with_revision_retry(unit_of_work)
    logger.info("Event %s moved %s → %s by %s", event_id, current, target, actor_id)

    result["event"] = event.to_dict()
    result["revision"] = revision.to_summary()
    return result


def archive_event(event_id: int, actor_id: str) -> Event:
    event = get_event(event_id)
    event.archive()
    write_audit(
        event_id=event.id, actor_id=actor_id, action_type="ARCHIVE_EVENT",
        target_type="Event", target_id=event.id,
    )
    db.session.commit()
    logger.info("Event %s archived by %s", event_id, actor_id)
    return event


def restore_event(event_id: int, actor_id: str) -> Event:
    event = get_event(event_id)
    event.restore()
    write_audit(
        event_id=event.id, actor_id=actor_id, action_type="RESTORE_EVENT",
        target_type="Event", target_id=event.id,
    )
    db.session.commit()
    logger.info("Event %s restored by %s", event_id, actor_id)
    return event


# ═════════════════════════════════════════════════════════════════════════
# People
# ═════════════════════════════════════════════════════════════════════════


def remove_person(event_id: int, person_id: int, actor_id: str) -> dict:
    """Drop a person from the event, keeping a trail on their items."""
    event = get_event(event_id)
    membership = PersonEvent.query_for_event(event_id).filter_by(person_id=person_id).first()
    if membership is None:
        raise NotFoundError(resource="Person", resource_id=person_id)
    ensure_mutable(event, "remove_person")
    person = membership.person

    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="REMOVE_PERSON",
        target_type="Person", target_id=person_id,
        details=f"Removed person {person.name} from event",
    )

    assignments = (
        Assignment.query.join(Item, Assignment.item_id == Item.id)
        .join(Team, Item.team_id == Team.id)
        .filter(Team.event_id == event_id, Assignment.person_id == person_id)
        .all()
    )
    for assignment in assignments:
        item = assignment.item
        item.previously_assigned_to = (
            f"{item.previously_assigned_to}, {person.name}"
            if item.previously_assigned_to else person.name
        )
        db.session.delete(assignment)
        write_audit(
            event_id=event_id, actor_id=actor_id, action_type="UNASSIGN_ITEM",
            target_type="Item", target_id=item.id,
            details=f"Unassigned item due to removing person {person.name}",
        )

    AccessToken.query.filter_by(event_id=event_id, person_id=person_id).delete()
    Team.query_for_event(event_id).filter_by(coordinator_id=person_id).update(
        {"coordinator_id": None}, synchronize_session=False,
    )
    db.session.delete(membership)
    db.session.commit()

    logger.info(
        "Person %s removed from event %s (%d assignment(s) released)",
        person_id, event_id, len(assignments),
    )
    return {"success": True, "assignmentsRemoved": len(assignments)}


def confirm_invites_sent(event_id: int, actor_id: str) -> dict:
    """Stamp the event and anchor each member's nudge clock.

    Anchors are first-write-wins: a person already anchored (possibly by
    another event) keeps their original time.
    """
    event = get_event(event_id)
    if event.status != "CONFIRMING":
        raise ValidationError(
            "Invites can only be confirmed while the event is CONFIRMING",
            details={"status": event.status},
        )

    now = utcnow()
    event.invite_send_confirmed_at = now
    people = (
        Person.query.join(PersonEvent, PersonEvent.person_id == Person.id)
        .filter(PersonEvent.event_id == event_id)
        .all()
    )
    newly_anchored = 0
    for person in people:
        if person.invite_anchor_at is None:
            person.invite_anchor_at = now
            newly_anchored += 1

    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="CONFIRM_INVITES_SENT",
        target_type="Event", target_id=event_id,
        details=f"{newly_anchored} of {len(people)} people anchored",
    )
    db.session.commit()

    log_invite_event(
        event_id,
        "INVITE_SEND_CONFIRMED",
        metadata={
            "totalPeople": len(people),
            "newAnchorsSet": newly_anchored,
            "previouslyAnchored": len(people) - newly_anchored,
        },
    )
    return {
        "success": True,
        "confirmedAt": now.isoformat(),
        "peopleAnchored": newly_anchored,
        "totalPeople": len(people),
    }


def _event_item_ids(event_id: int):
    return select(Item.id).join(Team, Item.team_id == Team.id).where(Team.event_id == event_id)


def manual_override(
    event_id: int,
    person_id: int,
    response: str,
    actor_id: str,
    reason: str | None = None,
) -> dict:
    """Set every one of a person's assignments in the event to ``response``.

    One UPDATE … WHERE response != target, so concurrent overrides never
    lose each other's rows.
    """
    if response not in OVERRIDE_RESPONSES:
        raise ValidationError(
            "Invalid response", details={"response": "Must be ACCEPTED or DECLINED"},
        )
    get_event(event_id)
    person = db.session.get(Person, person_id)
    if person is None:
        raise NotFoundError(resource="Person", resource_id=person_id)

    previous = dict(
        db.session.query(Assignment.response, func.count(Assignment.id))
        .filter(
            Assignment.person_id == person_id,
            Assignment.item_id.in_(_event_item_ids(event_id)),
        )
        .group_by(Assignment.response)
        .all()
    )

    result = db.session.execute(
        update(Assignment)
        .where(
            Assignment.person_id == person_id,
            Assignment.item_id.in_(_event_item_ids(event_id)),
            Assignment.response != response,
        )
        .values(response=response, responded_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    updated = result.rowcount or 0
    db.session.commit()

    log_invite_event(
        event_id,
        "MANUAL_OVERRIDE_MARKED",
        person_id=person_id,
        metadata={
            "response": response,
            "reason": reason or (
                "Confirmed outside the app" if response == "ACCEPTED" else "Declined outside the app"
            ),
            "assignmentsUpdated": updated,
            "previousResponses": previous,
            "actor": actor_id,
        },
    )
    logger.info(
        "Manual override: person %s → %s on event %s (%d updated)",
        person_id, response, event_id, updated,
    )
    return {
        "success": True,
        "assignmentsUpdated": updated,
        "message": f"Marked {updated} assignment(s) as {response}",
    }


def mark_for_review(event_id: int, actor_id: str) -> dict:
    """Flag every item of the event as an unconfirmed suggestion."""
    event = get_event(event_id)
    ensure_mutable(event, "mark_for_review")

    team_ids = select(Team.id).where(Team.event_id == event_id)
    result = db.session.execute(
        update(Item)
        .where(Item.team_id.in_(team_ids))
        .values(ai_generated=True, user_confirmed=False)
        .execution_options(synchronize_session=False)
    )
    marked = result.rowcount or 0
    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="MARK_FOR_REVIEW",
        target_type="Event", target_id=event_id, details=f"{marked} item(s) marked",
    )
    db.session.commit()
    return {"success": True, "markedCount": marked}
