"""
Shared model plumbing.

  - EventScopedModel: abstract base for tables owned by one Event
  - ArchivableMixin: reversible archive flag (soft delete for events)
  - utcnow / as_utc: timestamp helpers that survive SQLite's naive datetimes
"""

from datetime import datetime, timezone

from gather.models import db


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value):
    value = as_utc(value)
    return value.isoformat() if value else None


class EventScopedModel(db.Model):
    """Abstract base for event-scoped tables."""
    __abstract__ = True

    event_id = db.Column(
        db.Integer,
        db.ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_event(cls, event_id):
        """Return a query filtered by event_id."""
        return cls.query.filter_by(event_id=event_id)


class ArchivableMixin:
    """Adds a reversible ``archived`` flag plus the time it was set.

    Usage:
        event.archive()
        db.session.commit()

        Event.query_unarchived().all()

        event.restore()
        db.session.commit()
    """

    archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None)

    def archive(self):
        self.archived = True
        self.archived_at = utcnow()

    def restore(self):
        self.archived = False
        self.archived_at = None

    @classmethod
    def query_unarchived(cls):
        """Return a query that excludes archived records."""
        return cls.query.filter(cls.archived.is_(False))
