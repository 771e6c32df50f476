"""
Conflict domain models.

Models:
    - Conflict: a detected inconsistency in an event plan
    - Acknowledgement: host sign-off that a CRITICAL conflict is understood

A Conflict is identified within its event by ``fingerprint``: re-running
detection for the same underlying cause hits the same row instead of
creating a new one.
"""

from gather.models import db
from gather.models.base import EventScopedModel, isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

CONFLICT_TYPES = {
    "CRITICAL_ITEM_UNASSIGNED",
    "QUANTITY_MISSING",
    "TIMING",
    "DIETARY_GAP",
    "COVERAGE_GAP",
    "DOUBLE_BOOKED",
    "UNCONFIRMED_SUGGESTION",
}

# Lower rank sorts first
SEVERITY_RANK = {"CRITICAL": 0, "WARNING": 1, "INFO": 2}

CONFLICT_STATUSES = ("OPEN", "ACKNOWLEDGED", "DELEGATED", "DISMISSED", "RESOLVED")
ACTIVE_CONFLICT_STATUSES = ("OPEN", "ACKNOWLEDGED", "DELEGATED")
TERMINAL_CONFLICT_STATUSES = ("DISMISSED", "RESOLVED")

RESOLUTION_CLASSES = {"FIX_IN_PLAN", "DECISION_REQUIRED", "INFORMATIONAL"}

ACK_ACTIVE = "ACTIVE"
ACK_SUPERSEDED = "SUPERSEDED"

MITIGATION_PLAN_TYPES = {
    "SUBSTITUTE", "REASSIGN", "COMMUNICATE", "ACCEPT_GAP",
    "EXTERNAL_CATERING", "BRING_OWN", "OTHER",
}


class Conflict(EventScopedModel):
    """A plan problem found by the detector, with its lifecycle stamps."""

    __tablename__ = "conflicts"
    __table_args__ = (
        db.UniqueConstraint("event_id", "fingerprint", name="uq_conflicts_event_fingerprint"),
        db.Index("ix_conflicts_event_status", "event_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    fingerprint = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(40), nullable=False)
    severity = db.Column(db.String(20), nullable=False, default="WARNING")
    status = db.Column(db.String(20), nullable=False, default="OPEN")
    resolution_class = db.Column(db.String(30), nullable=False, default="FIX_IN_PLAN")
    can_delegate = db.Column(db.Boolean, nullable=False, default=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    affected_items = db.Column(db.JSON, nullable=True, default=list)
    affected_parties = db.Column(db.JSON, nullable=True, default=list)
    suggestion = db.Column(db.JSON, nullable=True)
    inputs_referenced = db.Column(
        db.JSON, nullable=True, default=list,
        comment="[{type, id, field, value}] observed when detected",
    )

    delegated_to = db.Column(db.String(30), nullable=True)
    delegated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by = db.Column(db.String(150), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    dismissed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reopened_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    acknowledgements = db.relationship(
        "Acknowledgement", backref="conflict", lazy="dynamic", cascade="all, delete-orphan",
        order_by="Acknowledgement.created_at.desc()",
    )

    @property
    def severity_rank(self):
        return SEVERITY_RANK.get(self.severity, len(SEVERITY_RANK))

    def active_acknowledgement(self):
        return self.acknowledgements.filter_by(status=ACK_ACTIVE).first()

    def to_dict(self, include_acknowledgements=False):
        d = {
            "id": self.id,
            "event_id": self.event_id,
            "fingerprint": self.fingerprint,
            "type": self.type,
            "severity": self.severity,
            "status": self.status,
            "resolution_class": self.resolution_class,
            "can_delegate": self.can_delegate,
            "title": self.title,
            "description": self.description,
            "affected_items": self.affected_items or [],
            "affected_parties": self.affected_parties or [],
            "suggestion": self.suggestion,
            "delegated_to": self.delegated_to,
            "delegated_at": isoformat(self.delegated_at),
            "resolved_by": self.resolved_by,
            "resolved_at": isoformat(self.resolved_at),
            "dismissed_at": isoformat(self.dismissed_at),
            "reopened_at": isoformat(self.reopened_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if include_acknowledgements:
            d["acknowledgements"] = [a.to_dict() for a in self.acknowledgements]
        return d

    def __repr__(self):
        return f"<Conflict {self.id}: {self.type} [{self.severity}/{self.status}]>"


class Acknowledgement(db.Model):
    """Host confirmation that a CRITICAL conflict's impact is understood.

    Only one ACTIVE row per conflict; a newer acknowledgement moves the
    previous one to SUPERSEDED.
    """

    __tablename__ = "acknowledgements"
    __table_args__ = (
        db.Index("ix_acknowledgements_conflict_status", "conflict_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    conflict_id = db.Column(
        db.Integer, db.ForeignKey("conflicts.id", ondelete="CASCADE"), nullable=False,
    )
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    acknowledged_by = db.Column(db.String(150), nullable=False)
    impact_statement = db.Column(db.Text, nullable=False)
    impact_understood = db.Column(db.Boolean, nullable=False, default=True)
    mitigation_plan_type = db.Column(db.String(30), nullable=False)
    mitigation_note = db.Column(db.Text, nullable=True)
    supersedes_id = db.Column(
        db.Integer, db.ForeignKey("acknowledgements.id", ondelete="SET NULL"), nullable=True,
    )
    status = db.Column(db.String(20), nullable=False, default=ACK_ACTIVE)
    superseded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "conflict_id": self.conflict_id,
            "event_id": self.event_id,
            "acknowledged_by": self.acknowledged_by,
            "impact_statement": self.impact_statement,
            "impact_understood": self.impact_understood,
            "mitigation_plan_type": self.mitigation_plan_type,
            "mitigation_note": self.mitigation_note,
            "supersedes_id": self.supersedes_id,
            "status": self.status,
            "superseded_at": isoformat(self.superseded_at),
            "created_at": isoformat(self.created_at),
        }
