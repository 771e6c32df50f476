"""
Event plan domain models.

Models:
    - Event: one gathering, owned by a host User; carries workflow status
    - Day: a calendar day inside a multi-day event
    - Team: a group of items with an optional coordinator
    - Item: a thing someone has to bring or do
    - Assignment: links one Item to one Person, carries the RSVP response
    - Person: a participant, may belong to several events
    - PersonEvent: membership of a Person in an Event (role + team)
"""

from gather.models import db
from gather.models.base import ArchivableMixin, EventScopedModel, isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

EVENT_STATUSES = ("DRAFT", "PLANNING", "CONFIRMING", "FROZEN", "COMPLETE")

OCCASION_TYPES = {"CHRISTMAS", "THANKSGIVING", "BIRTHDAY", "WEDDING", "OTHER"}

TEAM_DOMAINS = {
    "PROTEINS", "VEGETARIAN_MAINS", "SIDES", "SALADS", "STARTERS",
    "DESSERTS", "DRINKS", "LATER_FOOD", "SETUP", "CLEANUP", "CUSTOM",
}

QUANTITY_STATES = {"SPECIFIED", "PLACEHOLDER", "NOT_APPLICABLE"}

ASSIGNMENT_RESPONSES = ("PENDING", "ACCEPTED", "DECLINED")

MEMBER_ROLES = {"HOST", "COORDINATOR", "PARTICIPANT"}


class Event(ArchivableMixin, db.Model):
    """A multi-day gathering and the root of its plan graph."""

    __tablename__ = "events"
    __table_args__ = (
        db.Index("ix_events_host_archived", "host_id", "archived"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    occasion_type = db.Column(db.String(30), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="DRAFT")
    host_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    is_legacy = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="Created before billing; permanently exempt from entitlement gating",
    )
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    guest_count = db.Column(db.Integer, nullable=True)
    dietary_vegetarian = db.Column(db.Integer, nullable=False, default=0)
    dietary_gluten_free = db.Column(db.Integer, nullable=False, default=0)
    venue_oven_count = db.Column(db.Integer, nullable=False, default=1)
    invite_send_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    host = db.relationship("User", foreign_keys=[host_id])
    days = db.relationship(
        "Day", backref="event", lazy="dynamic", cascade="all, delete-orphan",
        order_by="Day.date",
    )
    teams = db.relationship(
        "Team", backref="event", lazy="dynamic", cascade="all, delete-orphan",
        order_by="Team.name",
    )
    memberships = db.relationship(
        "PersonEvent", backref="event", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "occasion_type": self.occasion_type,
            "status": self.status,
            "host_id": self.host_id,
            "is_legacy": self.is_legacy,
            "archived": self.archived,
            "archived_at": isoformat(self.archived_at),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "guest_count": self.guest_count,
            "dietary_vegetarian": self.dietary_vegetarian,
            "dietary_gluten_free": self.dietary_gluten_free,
            "venue_oven_count": self.venue_oven_count,
            "invite_send_confirmed_at": isoformat(self.invite_send_confirmed_at),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Event {self.id}: {self.name} [{self.status}]>"


class Day(EventScopedModel):
    """A day within the event; items may be pinned to one."""

    __tablename__ = "days"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    date = db.Column(db.Date, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "date": self.date.isoformat() if self.date else None,
        }


class Team(EventScopedModel):
    """A group of items, optionally run by a coordinator."""

    __tablename__ = "teams"
    __table_args__ = (
        db.Index("ix_teams_event_name", "event_id", "name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    scope = db.Column(db.Text, nullable=True)
    domain = db.Column(db.String(30), nullable=True)
    coordinator_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    coordinator = db.relationship("Person", foreign_keys=[coordinator_id])
    items = db.relationship(
        "Item", backref="team", lazy="dynamic", cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "event_id": self.event_id,
            "name": self.name,
            "scope": self.scope,
            "domain": self.domain,
            "coordinator_id": self.coordinator_id,
            "created_at": isoformat(self.created_at),
        }
        if include_counts:
            d["coordinator"] = (
                {"id": self.coordinator.id, "name": self.coordinator.name}
                if self.coordinator else None
            )
            d["item_count"] = self.items.count()
        return d


class Item(db.Model):
    """Something to bring or do. At most one Assignment."""

    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_team_critical", "team_id", "critical"),
    )

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    day_id = db.Column(
        db.Integer, db.ForeignKey("days.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    quantity_text = db.Column(db.String(100), nullable=True)
    quantity_state = db.Column(db.String(20), nullable=False, default="SPECIFIED")
    placeholder_acknowledged = db.Column(db.Boolean, nullable=False, default=False)
    critical = db.Column(db.Boolean, nullable=False, default=False)
    critical_reason = db.Column(db.String(300), nullable=True)
    serve_time = db.Column(db.String(20), nullable=True, comment="HH:MM slot label")
    needs_oven = db.Column(db.Boolean, nullable=False, default=False)
    vegetarian = db.Column(db.Boolean, nullable=False, default=False)
    gluten_free = db.Column(db.Boolean, nullable=False, default=False)
    ai_generated = db.Column(db.Boolean, nullable=False, default=False)
    user_confirmed = db.Column(db.Boolean, nullable=False, default=True)
    previously_assigned_to = db.Column(
        db.Text, nullable=True,
        comment="Comma-separated names of people removed from this item",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    day = db.relationship("Day")
    assignment = db.relationship(
        "Assignment", backref="item", uselist=False, cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "team_id": self.team_id,
            "day_id": self.day_id,
            "name": self.name,
            "description": self.description,
            "quantity_text": self.quantity_text,
            "quantity_state": self.quantity_state,
            "placeholder_acknowledged": self.placeholder_acknowledged,
            "critical": self.critical,
            "critical_reason": self.critical_reason,
            "serve_time": self.serve_time,
            "needs_oven": self.needs_oven,
            "vegetarian": self.vegetarian,
            "gluten_free": self.gluten_free,
            "ai_generated": self.ai_generated,
            "user_confirmed": self.user_confirmed,
            "previously_assigned_to": self.previously_assigned_to,
            "assignment": self.assignment.to_dict() if self.assignment else None,
        }

    def __repr__(self):
        return f"<Item {self.id}: {self.name}>"


class Assignment(db.Model):
    """One Item given to one Person, with that person's RSVP."""

    __tablename__ = "assignments"
    __table_args__ = (
        db.UniqueConstraint("item_id", name="uq_assignments_item"),
        db.Index("ix_assignments_person_response", "person_id", "response"),
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="CASCADE"), nullable=False)
    response = db.Column(db.String(20), nullable=False, default="PENDING")
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    person = db.relationship("Person", backref=db.backref("assignments", lazy="dynamic"))

    def to_dict(self):
        return {
            "id": self.id,
            "item_id": self.item_id,
            "person_id": self.person_id,
            "person_name": self.person.name if self.person else None,
            "response": self.response,
            "responded_at": isoformat(self.responded_at),
            "created_at": isoformat(self.created_at),
        }


class Person(db.Model):
    """A participant. Identity is global; membership is per event."""

    __tablename__ = "people"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=True, index=True)
    phone_number = db.Column(db.String(40), nullable=True)
    sms_opted_out = db.Column(db.Boolean, nullable=False, default=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    invite_anchor_at = db.Column(
        db.DateTime(timezone=True), nullable=True,
        comment="First time invites were confirmed sent; never overwritten",
    )
    nudge_24h_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    nudge_48h_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    memberships = db.relationship(
        "PersonEvent", backref="person", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "has_phone": bool(self.phone_number),
            "sms_opted_out": self.sms_opted_out,
            "invite_anchor_at": isoformat(self.invite_anchor_at),
            "nudge_24h_sent_at": isoformat(self.nudge_24h_sent_at),
            "nudge_48h_sent_at": isoformat(self.nudge_48h_sent_at),
        }


class PersonEvent(EventScopedModel):
    """Membership of a Person in an Event."""

    __tablename__ = "person_events"
    __table_args__ = (
        db.UniqueConstraint("person_id", "event_id", name="uq_person_events_person_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="CASCADE"), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="PARTICIPANT")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    team = db.relationship("Team")

    def to_dict(self):
        return {
            "id": self.id,
            "person_id": self.person_id,
            "event_id": self.event_id,
            "team_id": self.team_id,
            "role": self.role,
        }
