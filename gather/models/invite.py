"""
InviteEvent: side-channel trail of invite lifecycle actions.

Written best-effort by ``gather.services.invite_events``; a missing row
never means the underlying action failed.
"""

from gather.models import db
from gather.models.base import EventScopedModel, isoformat, utcnow

INVITE_EVENT_TYPES = {
    "INVITE_SEND_CONFIRMED",
    "MANUAL_OVERRIDE_MARKED",
    "LINK_OPENED",
    "RESPONSE_SUBMITTED",
    "NUDGE_SENT_24H",
    "NUDGE_SENT_48H",
}


class InviteEvent(EventScopedModel):
    __tablename__ = "invite_events"
    __table_args__ = (
        db.Index("ix_invite_events_event_created", "event_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    type = db.Column(db.String(40), nullable=False)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "person_id": self.person_id,
            "type": self.type,
            "metadata": self.metadata_json or {},
            "created_at": isoformat(self.created_at),
        }
