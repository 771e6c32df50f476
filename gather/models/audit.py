"""
Audit domain model.

Models:
    - AuditEntry: immutable, append-only trail of plan and workflow actions.
"""

import logging

from gather.models import db
from gather.models.base import isoformat, utcnow

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_TARGET_TYPES = {"Event", "Team", "Item", "Assignment", "Person", "Conflict", "PlanRevision"}

AUDIT_ACTIONS = {
    # Workflow
    "TRANSITION_TO_PLANNING",
    "TRANSITION_TO_CONFIRMING",
    "TRANSITION_TO_FROZEN",
    "TRANSITION_TO_COMPLETE",
    "UNFREEZE_OVERRIDE",
    "ARCHIVE_EVENT",
    "RESTORE_EVENT",
    "CONFIRM_INVITES_SENT",
    # Plan edits
    "CREATE_EVENT",
    "UPDATE_EVENT",
    "CREATE_TEAM",
    "ADD_PERSON",
    "CREATE_ITEM",
    "UPDATE_ITEM",
    "DELETE_ITEM",
    "DELETE_TEAM",
    "ASSIGN_ITEM",
    "UNASSIGN_ITEM",
    "REMOVE_PERSON",
    "MARK_FOR_REVIEW",
    "RESPOND_ASSIGNMENT",
    # Conflicts
    "ACKNOWLEDGE_CONFLICT",
    "DELEGATE_CONFLICT",
    "DISMISS_CONFLICT",
    "RESOLVE_CONFLICT",
    "REOPEN_CONFLICT",
    "CREATE_REVISION",
}


class AuditEntry(db.Model):
    """One row per action; ``details`` carries free-form context."""

    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_event_ts", "event_id", "created_at"),
        db.Index("ix_audit_entries_target", "target_type", "target_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    actor_id = db.Column(db.String(150), nullable=False, default="system")
    action_type = db.Column(db.String(60), nullable=False)
    target_type = db.Column(db.String(30), nullable=False)
    target_id = db.Column(db.String(36), nullable=False)
    details = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "actor_id": self.actor_id,
            "action_type": self.action_type,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "details": self.details,
            "created_at": isoformat(self.created_at),
        }


def write_audit(
    *,
    event_id: int,
    action_type: str,
    target_type: str,
    target_id,
    actor_id="system",
    details: str | None = None,
) -> AuditEntry:
    """
    Append a single audit row. Uses ``flush`` so callers keep
    transaction control.
    """
    if action_type not in AUDIT_ACTIONS:
        logger.warning("Unregistered audit action %s", action_type)
    entry = AuditEntry(
        event_id=event_id,
        actor_id=str(actor_id or "system"),
        action_type=action_type,
        target_type=target_type,
        target_id=str(target_id),
        details=details,
    )
    db.session.add(entry)
    db.session.flush()
    return entry
