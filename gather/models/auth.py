"""
Identity, credential and billing-mirror models.

Models:
    - User: an account that can host events; carries billing_status
    - AuthSession: cookie-backed login session
    - MagicLink: single-use passwordless login token
    - AccessToken: bearer capability bound to one event and one scope
    - EventRole: a User's role on an Event (HOST / COHOST / COORDINATOR)
    - Subscription: local mirror of the billing provider's subscription
"""

from gather.models import db
from gather.models.base import as_utc, isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

BILLING_STATUSES = ("FREE", "TRIALING", "ACTIVE", "PAST_DUE", "CANCELED")

TOKEN_SCOPES = ("HOST", "COORDINATOR", "PARTICIPANT")

EVENT_ROLES = ("HOST", "COHOST", "COORDINATOR")


class User(db.Model):
    """Account holder. ``billing_status`` is written only by provider sync."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    billing_status = db.Column(db.String(20), nullable=False, default="FREE")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    subscription = db.relationship(
        "Subscription", backref="user", uselist=False, cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "billing_status": self.billing_status,
            "created_at": isoformat(self.created_at),
        }


class AuthSession(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User")

    def is_expired(self, now=None):
        return as_utc(self.expires_at) <= (now or utcnow())


class MagicLink(db.Model):
    __tablename__ = "magic_links"
    __table_args__ = (
        db.Index("ix_magic_links_email_created", "email", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class AccessToken(db.Model):
    """Opaque bearer capability: possession grants ``scope`` on ``event_id``."""

    __tablename__ = "access_tokens"
    __table_args__ = (
        db.Index("ix_access_tokens_event_scope", "event_id", "scope"),
    )

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), nullable=False, unique=True, index=True)
    scope = db.Column(db.String(20), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id", ondelete="CASCADE"), nullable=True)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    event = db.relationship("Event")
    person = db.relationship("Person")
    team = db.relationship("Team")

    def is_expired(self, now=None):
        return self.expires_at is not None and as_utc(self.expires_at) <= (now or utcnow())

    def to_dict(self):
        return {
            "id": self.id,
            "scope": self.scope,
            "event_id": self.event_id,
            "person_id": self.person_id,
            "team_id": self.team_id,
            "expires_at": isoformat(self.expires_at),
            "opened_at": isoformat(self.opened_at),
        }


class EventRole(db.Model):
    __tablename__ = "event_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "event_id", name="uq_event_roles_user_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="HOST")
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class Subscription(db.Model):
    """Mirror of the provider subscription. Never edited by user actions."""

    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    provider_customer_id = db.Column(db.String(100), nullable=True, unique=True)
    provider_subscription_id = db.Column(db.String(100), nullable=True, unique=True)
    provider_price_id = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="FREE")
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    trial_start = db.Column(db.DateTime(timezone=True), nullable=True)
    trial_end = db.Column(db.DateTime(timezone=True), nullable=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "status": self.status,
            "cancel_at_period_end": self.cancel_at_period_end,
            "current_period_start": isoformat(self.current_period_start),
            "current_period_end": isoformat(self.current_period_end),
            "trial_end": isoformat(self.trial_end),
            "provider_subscription_id": self.provider_subscription_id,
            "provider_price_id": self.provider_price_id,
        }
