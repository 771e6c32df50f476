"""
PlanRevision: immutable point-in-time copy of an event plan.

Teams, items, days, conflicts and acknowledgements are stored as owned
JSON value copies, never as foreign keys, so a revision still reads the
same after the live rows change or disappear.
"""

from gather.models import db
from gather.models.base import EventScopedModel, isoformat, utcnow


class PlanRevision(EventScopedModel):
    """Snapshot of an event plan. Never updated after insert."""

    __tablename__ = "plan_revisions"
    __table_args__ = (
        db.UniqueConstraint("event_id", "revision_number", name="uq_plan_revisions_event_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    revision_number = db.Column(db.Integer, nullable=False)
    created_by = db.Column(db.String(150), nullable=False)
    reason = db.Column(db.String(300), nullable=True)
    event_status = db.Column(db.String(20), nullable=True)
    teams = db.Column(db.JSON, nullable=False, default=list)
    items = db.Column(db.JSON, nullable=False, default=list)
    days = db.Column(db.JSON, nullable=False, default=list)
    conflicts = db.Column(db.JSON, nullable=False, default=list)
    acknowledgements = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_summary(self):
        return {
            "id": self.id,
            "revision_number": self.revision_number,
            "created_at": isoformat(self.created_at),
            "created_by": self.created_by,
            "reason": self.reason,
        }

    def to_dict(self):
        d = self.to_summary()
        d.update({
            "event_id": self.event_id,
            "event_status": self.event_status,
            "teams": self.teams or [],
            "items": self.items or [],
            "days": self.days or [],
            "conflicts": self.conflicts or [],
            "acknowledgements": self.acknowledgements or [],
        })
        return d
