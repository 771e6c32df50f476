"""
Entitlement service: may this user create or edit events?

Rules:
  - TRIALING / ACTIVE users are unlimited.
  - FREE users may hold up to FREE_TIER_EVENT_LIMIT non-legacy,
    non-archived hosted events.
  - PAST_DUE / CANCELED users may not create, and may edit only legacy
    events.
  - Legacy events are evaluated per event, not per user: they stay
    editable whatever the host's billing status.
"""

import logging

from flask import current_app

from gather.models import db
from gather.models.auth import User
from gather.models.event import Event

logger = logging.getLogger(__name__)

PAID_STATUSES = frozenset({"TRIALING", "ACTIVE"})


def _free_tier_limit() -> int:
    return current_app.config.get("FREE_TIER_EVENT_LIMIT", 1)


def count_gated_events(user_id: int) -> int:
    """Hosted events that count against the free tier."""
    return (
        Event.query
        .filter(
            Event.host_id == user_id,
            Event.is_legacy.is_(False),
            Event.archived.is_(False),
        )
        .count()
    )


def can_create_event(user_id: int) -> bool:
    user = db.session.get(User, user_id)
    if user is None:
        return False
    if user.billing_status in PAID_STATUSES:
        return True
    if user.billing_status == "FREE":
        return count_gated_events(user.id) < _free_tier_limit()
    return False


def can_edit_event(event: Event) -> bool:
    """Legacy events always pass; others follow the host's billing status.

    A FREE host keeps editing events inside the free-tier allowance; the
    event itself is one of the counted events, hence ``<=``.
    """
    if event.is_legacy:
        return True
    host = db.session.get(User, event.host_id) if event.host_id else None
    if host is None:
        return False
    if host.billing_status in PAID_STATUSES:
        return True
    if host.billing_status == "FREE":
        return count_gated_events(host.id) <= _free_tier_limit()
    logger.info("Edit blocked for event %s: host billing_status=%s", event.id, host.billing_status)
    return False


def get_event_limit(user_id: int) -> int | None:
    """Maximum gated events for the user; None means unlimited."""
    user = db.session.get(User, user_id)
    if user is None:
        return 0
    if user.billing_status in PAID_STATUSES:
        return None
    if user.billing_status == "FREE":
        return _free_tier_limit()
    return 0


def get_remaining_events(user_id: int) -> int | None:
    limit = get_event_limit(user_id)
    if limit is None:
        return None
    return max(0, limit - count_gated_events(user_id))
