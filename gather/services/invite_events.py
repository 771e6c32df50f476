"""
Invite-event logger.

Best-effort trail of invite lifecycle actions. Callers commit their own
change first, then log; a failure here is logged and swallowed so it
never fails the action it describes.

Usage:
    from gather.services.invite_events import log_invite_event

    db.session.commit()
    log_invite_event(event_id, "INVITE_SEND_CONFIRMED", metadata={"totalPeople": 5})
"""

import logging

from gather.models import db
from gather.models.invite import INVITE_EVENT_TYPES, InviteEvent

logger = logging.getLogger(__name__)


def log_invite_event(
    event_id: int,
    event_type: str,
    *,
    person_id: int | None = None,
    metadata: dict | None = None,
) -> None:
    """Persist one InviteEvent. Never raises."""
    if event_type not in INVITE_EVENT_TYPES:
        logger.warning("Unregistered invite event type %s", event_type)
    try:
        db.session.add(InviteEvent(
            event_id=event_id,
            person_id=person_id,
            type=event_type,
            metadata_json=metadata or {},
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(
            "Failed to log invite event %s for event=%s person=%s (main flow unaffected)",
            event_type, event_id, person_id, exc_info=True,
        )


def list_invite_events(event_id: int, limit: int = 200) -> list[dict]:
    rows = (
        InviteEvent.query_for_event(event_id)
        .order_by(InviteEvent.created_at.desc(), InviteEvent.id.desc())
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows]


def list_invite_events_for_person(event_id: int, person_id: int) -> list[dict]:
    rows = (
        InviteEvent.query_for_event(event_id)
        .filter_by(person_id=person_id)
        .order_by(InviteEvent.created_at.desc(), InviteEvent.id.desc())
        .all()
    )
    return [r.to_dict() for r in rows]
