"""
Revision snapshotter.

Persists immutable copies of an event plan. Revision numbers are
max(existing) + 1 per event, protected by the unique
(event_id, revision_number) constraint: a concurrent writer that took the
same number makes the insert fail, and the whole unit of work is retried
with a fresh number.

Usage:
    from gather.services.revision_service import create_revision

    rev = create_revision(event_id=7, created_by="user:1", reason="Before freeze")
"""

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from gather.core.exceptions import DuplicateError, ForbiddenError, NotFoundError
from gather.models import db
from gather.models.audit import write_audit
from gather.models.conflict import Acknowledgement, Conflict
from gather.models.event import Day, Event, Item, Team
from gather.models.revision import PlanRevision

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RECENT_LIMIT = 5


def next_revision_number(event_id: int) -> int:
    current = (
        db.session.query(func.max(PlanRevision.revision_number))
        .filter(PlanRevision.event_id == event_id)
        .scalar()
    )
    return (current or 0) + 1


def build_snapshot(event: Event) -> dict:
    """Denormalised value copies of the live plan."""
    teams = Team.query_for_event(event.id).order_by(Team.name, Team.id).all()
    items = (
        Item.query.join(Team, Item.team_id == Team.id)
        .filter(Team.event_id == event.id)
        .order_by(Item.id)
        .all()
    )
    item_rows = []
    for item in items:
        row = item.to_dict()
        row["team_name"] = item.team.name
        item_rows.append(row)

    return {
        "event_status": event.status,
        "teams": [t.to_dict() for t in teams],
        "items": item_rows,
        "days": [d.to_dict() for d in Day.query_for_event(event.id).order_by(Day.date).all()],
        "conflicts": [
            c.to_dict() for c in Conflict.query_for_event(event.id).order_by(Conflict.id).all()
        ],
        "acknowledgements": [
            a.to_dict() for a in
            Acknowledgement.query.filter_by(event_id=event.id).order_by(Acknowledgement.id).all()
        ],
    }


def add_revision(event: Event, created_by: str, reason: str | None = None) -> PlanRevision:
    """Insert a revision into the current unit of work (flush, no commit).

    Raises IntegrityError if another writer took the same number; the
    caller rolls back and retries its whole unit of work.
    """
    snapshot = build_snapshot(event)
    rev = PlanRevision(
        event_id=event.id,
        revision_number=next_revision_number(event.id),
        created_by=str(created_by),
        reason=reason,
        **snapshot,
    )
    db.session.add(rev)
    db.session.flush()
    write_audit(
        event_id=event.id,
        actor_id=created_by,
        action_type="CREATE_REVISION",
        target_type="PlanRevision",
        target_id=rev.id,
        details=f"Revision {rev.revision_number}: {reason or 'manual snapshot'}",
    )
    return rev


def run_with_revision_retry(unit_of_work):
    """Run ``unit_of_work()`` and commit, retrying on a revision-number race.

    Raises DuplicateError (409) once MAX_ATTEMPTS inserts have collided.
    """
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            result = unit_of_work()
            db.session.commit()
            return result
        except IntegrityError as exc:
            db.session.rollback()
            if attempt == MAX_ATTEMPTS:
                logger.error("Revision number still colliding after %d attempts", attempt)
                raise DuplicateError("PlanRevision", "revision_number") from exc
            logger.info("Revision number collision, retrying (attempt %d)", attempt)


def create_revision(event_id: int, created_by: str, reason: str | None = None) -> PlanRevision:
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)

    rev = run_with_revision_retry(lambda: add_revision(event, created_by, reason))
    logger.info("Revision %s created for event %s by %s", rev.revision_number, event_id, created_by)
    return rev


def get_revision(event_id: int, revision_id: int) -> PlanRevision:
    """404 when missing, 403 when it belongs to another event."""
    rev = db.session.get(PlanRevision, revision_id)
    if rev is None:
        raise NotFoundError(resource="Revision", resource_id=revision_id)
    if rev.event_id != event_id:
        raise ForbiddenError("Revision does not belong to this event")
    return rev


def list_revisions(event_id: int, limit: int = RECENT_LIMIT) -> list[dict]:
    rows = (
        PlanRevision.query_for_event(event_id)
        .order_by(PlanRevision.revision_number.desc())
        .limit(limit)
        .all()
    )
    return [r.to_summary() for r in rows]
