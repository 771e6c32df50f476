"""
Plan service: events, teams, people, items and assignments.

Thin CRUD around the plan graph. Every write checks that the event may
be mutated (``workflow.ensure_mutable``), validates cross-event
references before touching the store, audits, then commits.

Cross-event references:
    item / team addressed through another event's route   → 403 / 400
    person or day of another event used as a reference    → 400
"""

import logging
from datetime import timedelta

from gather.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from gather.models import db
from gather.models.audit import write_audit
from gather.models.auth import AccessToken, EventRole, User
from gather.models.base import utcnow
from gather.models.event import (
    OCCASION_TYPES,
    QUANTITY_STATES,
    TEAM_DOMAINS,
    Assignment,
    Day,
    Event,
    Item,
    Person,
    PersonEvent,
    Team,
)
from gather.services.entitlement_service import can_create_event
from gather.services.workflow import compute_team_status, ensure_mutable, get_event
from gather.utils.helpers import (
    normalize_email,
    parse_bool,
    parse_date_input,
    parse_non_negative_int,
)

logger = logging.getLogger(__name__)

MAX_EVENT_DAYS = 14
PERSON_ROLES = ("PARTICIPANT", "COORDINATOR")


# ═════════════════════════════════════════════════════════════════════════
# Events
# ═════════════════════════════════════════════════════════════════════════


def list_hosted_events(user_id: int, include_archived: bool = False) -> list[dict]:
    query = Event.query.filter(Event.host_id == user_id)
    if not include_archived:
        query = query.filter(Event.archived.is_(False))
    return [e.to_dict() for e in query.order_by(Event.created_at.desc(), Event.id.desc()).all()]


def _apply_event_fields(event: Event, data: dict) -> None:
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "Required"})
        event.name = name
    if "occasion_type" in data:
        occasion = data.get("occasion_type")
        if occasion is not None and occasion not in OCCASION_TYPES:
            raise ValidationError(
                "Invalid occasion_type",
                details={"occasion_type": f"Must be one of: {', '.join(sorted(OCCASION_TYPES))}"},
            )
        event.occasion_type = occasion
    for field in ("guest_count", "dietary_vegetarian", "dietary_gluten_free", "venue_oven_count"):
        if field in data:
            value = parse_non_negative_int(data.get(field), field)
            if value is None and field != "guest_count":
                value = 0
            setattr(event, field, value)


def create_event(user: User, data: dict) -> Event:
    """Create an event hosted by ``user``, with days, host role and host person."""
    if not can_create_event(user.id):
        raise ForbiddenError("Event limit reached for your plan")

    if not (data.get("name") or "").strip():
        raise ValidationError("name is required", details={"name": "Required"})
    start = parse_date_input(data.get("start_date"), "start_date")
    end = parse_date_input(data.get("end_date"), "end_date") or start
    if start and end and end < start:
        raise ValidationError("end_date is before start_date", details={"end_date": "Before start"})
    if start and (end - start).days >= MAX_EVENT_DAYS:
        raise ValidationError(
            f"Events may span at most {MAX_EVENT_DAYS} days", details={"end_date": "Too far out"},
        )

    event = Event(name="", host_id=user.id, status="DRAFT", start_date=start, end_date=end)
    _apply_event_fields(event, data)
    db.session.add(event)
    db.session.flush()

    if start:
        for offset in range((end - start).days + 1):
            day = start + timedelta(days=offset)
            db.session.add(Day(event_id=event.id, name=day.strftime("%A"), date=day))

    db.session.add(EventRole(user_id=user.id, event_id=event.id, role="HOST"))
    host_person = Person.query.filter_by(user_id=user.id).first()
    if host_person is None:
        host_person = Person(
            name=(data.get("host_name") or user.email.split("@")[0]).strip(),
            email=user.email,
            user_id=user.id,
        )
        db.session.add(host_person)
        db.session.flush()
    db.session.add(PersonEvent(event_id=event.id, person_id=host_person.id, role="HOST"))

    write_audit(
        event_id=event.id, actor_id=f"user:{user.id}", action_type="CREATE_EVENT",
        target_type="Event", target_id=event.id, details=event.name,
    )
    db.session.commit()
    logger.info("Event %s created by user %s", event.id, user.id)
    return event


def update_event(event_id: int, data: dict, actor_id: str) -> Event:
    event = get_event(event_id)
    ensure_mutable(event, "update_event")
    _apply_event_fields(event, data)
    write_audit(
        event_id=event.id, actor_id=actor_id, action_type="UPDATE_EVENT",
        target_type="Event", target_id=event.id,
        details=", ".join(sorted(data.keys())),
    )
    db.session.commit()
    return event


def get_event_detail(event_id: int) -> dict:
    event = get_event(event_id)
    result = event.to_dict()
    result["days"] = [d.to_dict() for d in event.days.all()]
    result["teams"] = list_teams(event_id)
    result["people"] = list_people(event_id)
    return result


# ═════════════════════════════════════════════════════════════════════════
# Teams
# ═════════════════════════════════════════════════════════════════════════


def get_team_for_event(event_id: int, team_id: int) -> Team:
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFoundError(resource="Team", resource_id=team_id)
    if team.event_id != event_id:
        raise ValidationError("Team does not belong to this event")
    return team


def list_teams(event_id: int) -> list[dict]:
    get_event(event_id)
    teams = Team.query_for_event(event_id).order_by(Team.name, Team.id).all()
    result = []
    for team in teams:
        row = team.to_dict(include_counts=True)
        row["status"] = compute_team_status(team.items.all())
        result.append(row)
    return result


def _membership(event_id: int, person_id) -> PersonEvent:
    membership = (
        PersonEvent.query_for_event(event_id).filter_by(person_id=person_id).first()
        if person_id is not None else None
    )
    if membership is None:
        raise ValidationError(
            "Person is not part of this event", details={"person_id": person_id},
        )
    return membership


def create_team(event_id: int, data: dict, actor_id: str) -> Team:
    event = get_event(event_id)
    ensure_mutable(event, "create_team")

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "Required"})
    domain = data.get("domain")
    if domain is not None and domain not in TEAM_DOMAINS:
        raise ValidationError(
            "Invalid domain", details={"domain": f"Must be one of: {', '.join(sorted(TEAM_DOMAINS))}"},
        )

    team = Team(event_id=event_id, name=name, scope=data.get("scope"), domain=domain)
    db.session.add(team)
    db.session.flush()

    coordinator_id = data.get("coordinator_id")
    if coordinator_id is not None:
        membership = _membership(event_id, coordinator_id)
        team.coordinator_id = membership.person_id
        membership.team_id = team.id
        membership.role = "COORDINATOR"

    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="CREATE_TEAM",
        target_type="Team", target_id=team.id, details=name,
    )
    db.session.commit()
    return team


def delete_team(event_id: int, team_id: int, actor_id: str) -> dict:
    """Delete a team and every item in it.

    Returns:
        {"success": True, "message": "Team deleted", "itemsDeleted": n}
    """
    team = get_team_for_event(event_id, team_id)
    ensure_mutable(team.event, "delete_team")

    items_deleted = team.items.count()
    PersonEvent.query_for_event(event_id).filter_by(team_id=team.id).update(
        {"team_id": None}, synchronize_session=False,
    )
    AccessToken.query.filter_by(event_id=event_id, team_id=team.id).delete()
    db.session.delete(team)
    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="DELETE_TEAM",
        target_type="Team", target_id=team_id,
        details=f"Deleted team {team.name} with {items_deleted} item(s)",
    )
    db.session.commit()
    logger.info("Team %s deleted from event %s (%d items)", team_id, event_id, items_deleted)
    return {"success": True, "message": "Team deleted", "itemsDeleted": items_deleted}


# ═════════════════════════════════════════════════════════════════════════
# People
# ═════════════════════════════════════════════════════════════════════════


def list_people(event_id: int) -> list[dict]:
    rows = (
        db.session.query(PersonEvent, Person)
        .join(Person, PersonEvent.person_id == Person.id)
        .filter(PersonEvent.event_id == event_id)
        .order_by(Person.name, Person.id)
        .all()
    )
    result = []
    for membership, person in rows:
        row = person.to_dict()
        row.update(role=membership.role, team_id=membership.team_id)
        result.append(row)
    return result


def add_person(event_id: int, data: dict, actor_id: str) -> dict:
    """Add a participant (or coordinator) to the event.

    An existing Person with the same email is reused, so one person keeps
    a single invite anchor across events.
    """
    event = get_event(event_id)
    ensure_mutable(event, "add_person")

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "Required"})
    email = normalize_email(data["email"]) if data.get("email") else None

    role = data.get("role") or "PARTICIPANT"
    if role not in PERSON_ROLES:
        raise ValidationError("Invalid role", details={"role": f"Must be one of: {', '.join(PERSON_ROLES)}"})

    team = None
    if data.get("team_id") is not None:
        team = get_team_for_event(event_id, data["team_id"])

    person = Person.query.filter_by(email=email).first() if email else None
    if person is None:
        person = Person(name=name, email=email, phone_number=data.get("phone_number"))
        db.session.add(person)
        db.session.flush()
    elif PersonEvent.query_for_event(event_id).filter_by(person_id=person.id).first():
        raise ValidationError("Person is already part of this event", details={"email": email})

    membership = PersonEvent(
        event_id=event_id, person_id=person.id, team_id=team.id if team else None, role=role,
    )
    db.session.add(membership)
    if role == "COORDINATOR" and team is not None and team.coordinator_id is None:
        team.coordinator_id = person.id

    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="ADD_PERSON",
        target_type="Person", target_id=person.id, details=f"{name} as {role}",
    )
    db.session.commit()
    row = person.to_dict()
    row.update(role=membership.role, team_id=membership.team_id)
    return row


# ═════════════════════════════════════════════════════════════════════════
# Items
# ═════════════════════════════════════════════════════════════════════════


_ITEM_TEXT_FIELDS = ("description", "quantity_text", "critical_reason", "serve_time")
_ITEM_FLAG_FIELDS = (
    "placeholder_acknowledged", "critical", "needs_oven", "vegetarian", "gluten_free",
    "user_confirmed",
)


def get_item_for_event(event_id: int, item_id: int) -> Item:
    """404 when missing, 403 when it belongs to another event."""
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFoundError(resource="Item", resource_id=item_id)
    if item.team.event_id != event_id:
        raise ForbiddenError("Item does not belong to this event")
    return item


def _apply_item_fields(item: Item, event_id: int, data: dict) -> None:
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "Required"})
        item.name = name
    for field in _ITEM_TEXT_FIELDS:
        if field in data:
            setattr(item, field, data.get(field))
    for field in _ITEM_FLAG_FIELDS:
        if field in data:
            setattr(item, field, parse_bool(data.get(field)))
    if "quantity_state" in data:
        state = data.get("quantity_state")
        if state not in QUANTITY_STATES:
            raise ValidationError(
                "Invalid quantity_state",
                details={"quantity_state": f"Must be one of: {', '.join(sorted(QUANTITY_STATES))}"},
            )
        item.quantity_state = state
    if "day_id" in data:
        day_id = data.get("day_id")
        if day_id is not None:
            day = db.session.get(Day, day_id)
            if day is None or day.event_id != event_id:
                raise ValidationError("Day does not belong to this event", details={"day_id": day_id})
        item.day_id = day_id
    if "team_id" in data and data["team_id"] != item.team_id:
        item.team_id = get_team_for_event(event_id, data["team_id"]).id


def create_item(event_id: int, team_id: int, data: dict, actor_id: str) -> Item:
    event = get_event(event_id)
    team = get_team_for_event(event_id, team_id)
    ensure_mutable(event, "create_item")

    item = Item(team_id=team.id, name="")
    fields = {k: v for k, v in data.items() if k != "team_id"}
    fields.setdefault("name", "")
    _apply_item_fields(item, event_id, fields)
    db.session.add(item)
    db.session.flush()
    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="CREATE_ITEM",
        target_type="Item", target_id=item.id, details=f"{item.name} in {team.name}",
    )
    db.session.commit()
    return item


def update_item(event_id: int, item_id: int, data: dict, actor_id: str) -> Item:
    item = get_item_for_event(event_id, item_id)
    ensure_mutable(item.team.event, "update_item")
    _apply_item_fields(item, event_id, data)
    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="UPDATE_ITEM",
        target_type="Item", target_id=item.id, details=", ".join(sorted(data.keys())),
    )
    db.session.commit()
    return item


def delete_item(event_id: int, item_id: int, actor_id: str) -> dict:
    item = get_item_for_event(event_id, item_id)
    ensure_mutable(item.team.event, "delete_item", item_critical=item.critical)
    name = item.name
    db.session.delete(item)
    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="DELETE_ITEM",
        target_type="Item", target_id=item_id, details=name,
    )
    db.session.commit()
    return {"success": True}


def assign_item(event_id: int, item_id: int, person_id, actor_id: str) -> Item:
    """Give the item to ``person_id``; a previous owner is replaced."""
    item = get_item_for_event(event_id, item_id)
    ensure_mutable(item.team.event, "assign_item")
    membership = _membership(event_id, person_id)

    current = item.assignment
    if current is not None and current.person_id == membership.person_id:
        return item
    if current is not None:
        db.session.delete(current)
        db.session.flush()

    db.session.add(Assignment(item_id=item.id, person_id=membership.person_id))
    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="ASSIGN_ITEM",
        target_type="Item", target_id=item.id,
        details=f"Assigned to {membership.person.name}",
    )
    db.session.commit()
    db.session.refresh(item)
    return item


def unassign_item(event_id: int, item_id: int, actor_id: str) -> Item:
    item = get_item_for_event(event_id, item_id)
    ensure_mutable(item.team.event, "unassign_item")
    if item.assignment is None:
        return item
    person_name = item.assignment.person.name
    db.session.delete(item.assignment)
    write_audit(
        event_id=event_id, actor_id=actor_id, action_type="UNASSIGN_ITEM",
        target_type="Item", target_id=item.id, details=f"Unassigned {person_name}",
    )
    db.session.commit()
    db.session.refresh(item)
    return item


# ═════════════════════════════════════════════════════════════════════════
# Invite status
# ═════════════════════════════════════════════════════════════════════════


INVITE_STATUSES = ("NOT_SENT", "SENT", "OPENED", "RESPONDED")


def invite_status(event_id: int) -> dict:
    """Per-member invite progress, strongest signal wins.

    RESPONDED  any non-PENDING assignment response
    OPENED     one of their access tokens was opened
    SENT       invites were confirmed sent and the person is anchored
    NOT_SENT   otherwise
    """
    event = get_event(event_id)
    people = list_people(event_id)

    responded = {
        pid for (pid,) in (
            db.session.query(Assignment.person_id)
            .join(Item, Assignment.item_id == Item.id)
            .join(Team, Item.team_id == Team.id)
            .filter(Team.event_id == event_id, Assignment.response != "PENDING")
            .distinct()
            .all()
        )
    }
    opened = {
        pid for (pid,) in (
            db.session.query(AccessToken.person_id)
            .filter(AccessToken.event_id == event_id, AccessToken.opened_at.isnot(None))
            .distinct()
            .all()
        )
    }

    counts = {status: 0 for status in INVITE_STATUSES}
    rows = []
    for person in people:
        if person["role"] == "HOST":
            continue
        if person["id"] in responded:
            status = "RESPONDED"
        elif person["id"] in opened:
            status = "OPENED"
        elif event.invite_send_confirmed_at and person["invite_anchor_at"]:
            status = "SENT"
        else:
            status = "NOT_SENT"
        counts[status] += 1
        rows.append({
            "person_id": person["id"],
            "name": person["name"],
            "role": person["role"],
            "team_id": person["team_id"],
            "status": status,
        })

    return {
        "inviteSendConfirmedAt": event.to_dict()["invite_send_confirmed_at"],
        "people": rows,
        "counts": counts,
        "generatedAt": utcnow().isoformat(),
    }
