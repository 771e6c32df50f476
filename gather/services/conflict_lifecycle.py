"""
Conflict lifecycle manager.

State machine:
    OPEN         → ACKNOWLEDGED | DELEGATED | DISMISSED | RESOLVED
    ACKNOWLEDGED → ACKNOWLEDGED (re-ack supersedes) | DELEGATED | DISMISSED | RESOLVED
    DELEGATED    → DELEGATED | DISMISSED | RESOLVED

Re-applying the action that produced the current state overwrites its
stamp (resolved_at, dismissed_at, delegated_at). Moving between the two
terminal states is rejected.

Who may act is decided at the route:
    resolve, delegate, acknowledge   HOST
    dismiss                          HOST or COORDINATOR

Every operation first checks that the conflict exists (404) and belongs
to the route's event (403), before any write.

Usage:
    from gather.services.conflict_lifecycle import resolve_conflict

    conflict = resolve_conflict(event_id=4, conflict_id=9, resolved_by="user:2")
"""

import logging
import re

from gather.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from gather.models import db
from gather.models.audit import write_audit
from gather.models.base import as_utc, utcnow
from gather.models.conflict import (
    ACK_ACTIVE,
    ACK_SUPERSEDED,
    ACTIVE_CONFLICT_STATUSES,
    MITIGATION_PLAN_TYPES,
    SEVERITY_RANK,
    TERMINAL_CONFLICT_STATUSES,
    Acknowledgement,
    Conflict,
)

logger = logging.getLogger(__name__)


CONFLICT_TRANSITIONS = {
    "acknowledge": {"from": ["OPEN", "ACKNOWLEDGED"], "to": "ACKNOWLEDGED"},
    "delegate": {"from": ["OPEN", "ACKNOWLEDGED", "DELEGATED"], "to": "DELEGATED"},
    "dismiss": {"from": ["OPEN", "ACKNOWLEDGED", "DELEGATED", "DISMISSED"], "to": "DISMISSED"},
    "resolve": {"from": ["OPEN", "ACKNOWLEDGED", "DELEGATED", "RESOLVED"], "to": "RESOLVED"},
}

_AUDIT_ACTION = {
    "acknowledge": "ACKNOWLEDGE_CONFLICT",
    "delegate": "DELEGATE_CONFLICT",
    "dismiss": "DISMISS_CONFLICT",
    "resolve": "RESOLVE_CONFLICT",
}

IMPACT_MIN_LENGTH = 10
_PARTY_PATTERN = re.compile(
    r"guest|vegetarian|vegan|gluten|dairy|participant|coordinator|person|people", re.I,
)
_ACTION_PATTERN = re.compile(
    r"communicate|notify|inform|substitute|replace|reassign|provide|bring|cater|accept|gap|external",
    re.I,
)

LIST_FILTERS = {
    "active": ACTIVE_CONFLICT_STATUSES,
    "resolved": ("RESOLVED",),
    "dismissed": ("DISMISSED",),
    "all": None,
}


# ── Lookup ──────────────────────────────────────────────────────────────────


def get_conflict_for_event(event_id: int, conflict_id: int) -> Conflict:
    """404 when missing, 403 when it belongs to another event."""
    conflict = db.session.get(Conflict, conflict_id)
    if conflict is None:
        raise NotFoundError(resource="Conflict", resource_id=conflict_id)
    if conflict.event_id != event_id:
        logger.warning(
            "Conflict %s (event %s) addressed through event %s",
            conflict_id, conflict.event_id, event_id,
        )
        raise ForbiddenError("Conflict does not belong to this event")
    return conflict


def validate_conflict_transition(conflict: Conflict, action: str) -> dict:
    """Validate whether an action is valid for the conflict's current state."""
    rule = CONFLICT_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": conflict.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if conflict.status not in rule["from"]:
        if conflict.status in TERMINAL_CONFLICT_STATUSES:
            reason = f"Conflict is already {conflict.status}"
        else:
            reason = f"Cannot '{action}' from status '{conflict.status}'"
        return {"valid": False, "from": conflict.status, "to": rule["to"], "reason": reason}

    if action == "delegate" and not conflict.can_delegate:
        return {"valid": False, "from": conflict.status, "to": rule["to"],
                "reason": "Conflict cannot be delegated"}

    return {"valid": True, "from": conflict.status, "to": rule["to"], "reason": None}


def _apply(conflict: Conflict, action: str, actor_id: str, details: str | None = None) -> None:
    check = validate_conflict_transition(conflict, action)
    if not check["valid"]:
        raise InvalidTransitionError("Conflict", conflict.status, check["to"] or action, check["reason"])

    previous = conflict.status
    conflict.status = check["to"]
    write_audit(
        event_id=conflict.event_id,
        actor_id=actor_id,
        action_type=_AUDIT_ACTION[action],
        target_type="Conflict",
        target_id=conflict.id,
        details=details or f"{previous} → {conflict.status}",
    )


# ═════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════


def resolve_conflict(event_id: int, conflict_id: int, resolved_by: str) -> Conflict:
    conflict = get_conflict_for_event(event_id, conflict_id)
    _apply(conflict, "resolve", resolved_by)
    conflict.resolved_by = resolved_by
    conflict.resolved_at = utcnow()
    db.session.commit()
    logger.info("Conflict %s resolved by %s", conflict.id, resolved_by)
    return conflict


def dismiss_conflict(event_id: int, conflict_id: int, actor_id: str) -> Conflict:
    conflict = get_conflict_for_event(event_id, conflict_id)
    _apply(conflict, "dismiss", actor_id)
    conflict.dismissed_at = utcnow()
    db.session.commit()
    logger.info("Conflict %s dismissed by %s", conflict.id, actor_id)
    return conflict


def delegate_conflict(
    event_id: int, conflict_id: int, actor_id: str, delegate_to: str = "COORDINATOR",
) -> Conflict:
    conflict = get_conflict_for_event(event_id, conflict_id)
    _apply(conflict, "delegate", actor_id, details=f"Delegated to {delegate_to}")
    conflict.delegated_to = delegate_to
    conflict.delegated_at = utcnow()
    db.session.commit()
    logger.info("Conflict %s delegated to %s by %s", conflict.id, delegate_to, actor_id)
    return conflict


def validate_acknowledgement(conflict: Conflict, data: dict) -> dict:
    """Return a field → message dict; empty when the payload is acceptable."""
    errors = {}
    if conflict.severity != "CRITICAL":
        errors["conflict"] = "Only CRITICAL conflicts can be acknowledged"

    statement = (data.get("impact_statement") or "").strip()
    if len(statement) < IMPACT_MIN_LENGTH:
        errors["impact_statement"] = f"Impact statement must be at least {IMPACT_MIN_LENGTH} characters"
    elif not (_PARTY_PATTERN.search(statement) or _ACTION_PATTERN.search(statement)):
        errors["impact_statement"] = (
            "Impact statement must reference affected parties or mitigation action"
        )

    if data.get("impact_understood") is not True:
        errors["impact_understood"] = "You must confirm that you understand the impact"

    if data.get("mitigation_plan_type") not in MITIGATION_PLAN_TYPES:
        errors["mitigation_plan_type"] = (
            f"Must be one of: {', '.join(sorted(MITIGATION_PLAN_TYPES))}"
        )
    return errors


def acknowledge_conflict(event_id: int, conflict_id: int, actor_id: str, data: dict) -> dict:
    """Record an ACTIVE acknowledgement, superseding the previous one.

    Returns:
        {"acknowledgement": {...}, "conflict": {...}}
    """
    conflict = get_conflict_for_event(event_id, conflict_id)
    errors = validate_acknowledgement(conflict, data)
    if errors:
        raise ValidationError("Validation failed", details=errors)

    previous = conflict.active_acknowledgement()
    _apply(conflict, "acknowledge", actor_id)

    if previous is not None:
        previous.status = ACK_SUPERSEDED
        previous.superseded_at = utcnow()

    ack = Acknowledgement(
        conflict_id=conflict.id,
        event_id=conflict.event_id,
        acknowledged_by=data.get("acknowledged_by") or actor_id,
        impact_statement=data["impact_statement"].strip(),
        impact_understood=True,
        mitigation_plan_type=data["mitigation_plan_type"],
        mitigation_note=data.get("mitigation_note"),
        supersedes_id=previous.id if previous is not None else None,
        status=ACK_ACTIVE,
    )
    db.session.add(ack)
    db.session.commit()
    logger.info(
        "Conflict %s acknowledged by %s (supersedes=%s)",
        conflict.id, actor_id, ack.supersedes_id,
    )
    return {"acknowledgement": ack.to_dict(), "conflict": conflict.to_dict()}


# ═════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════


def sort_conflicts(conflicts):
    """CRITICAL first, then newest first."""
    return sorted(
        conflicts,
        key=lambda c: (c.severity_rank, -(as_utc(c.created_at).timestamp() if c.created_at else 0), -c.id),
    )


def list_conflicts(event_id: int, status_filter: str = "active") -> dict:
    """Conflicts for an event plus a by-status / by-severity summary.

    ``status_filter``: active (default) | all | resolved | dismissed
    """
    if status_filter not in LIST_FILTERS:
        raise ValidationError(
            "Invalid status filter", details={"status": f"Must be one of: {', '.join(LIST_FILTERS)}"},
        )

    all_rows = Conflict.query_for_event(event_id).all()
    statuses = LIST_FILTERS[status_filter]
    rows = [c for c in all_rows if statuses is None or c.status in statuses]

    by_status: dict[str, int] = {}
    for c in all_rows:
        by_status[c.status] = by_status.get(c.status, 0) + 1
    by_severity = {sev: 0 for sev in SEVERITY_RANK}
    for c in rows:
        by_severity[c.severity] = by_severity.get(c.severity, 0) + 1

    return {
        "conflicts": [c.to_dict() for c in sort_conflicts(rows)],
        "summary": {
            "total": len(rows),
            "byStatus": by_status,
            "bySeverity": by_severity,
        },
    }


def list_dismissed(event_id: int) -> list[dict]:
    rows = (
        Conflict.query_for_event(event_id)
        .filter_by(status="DISMISSED")
        .order_by(Conflict.dismissed_at.desc(), Conflict.id.desc())
        .all()
    )
    return [c.to_dict() for c in rows]
