"""
Authorization resolver.

Maps the caller's credential to an ``ActorContext`` bound to one event.

Two credential kinds, resolved on separate paths and checked through one
surface (``require_event_role``):

  - SessionCredential: the ``session`` cookie of a logged-in User; the
    scope comes from event ownership or an EventRole row.
  - TokenCredential: an opaque AccessToken from the ``X-Access-Token``
    header or ``?token=``; possession is authorization at the token's scope.

Resolution fails softly (``None``). Only ``require_event_role`` turns a
failed resolution into UnauthorizedError / ForbiddenError, and it does so
before any mutation happens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gather.core.exceptions import ForbiddenError, UnauthorizedError
from gather.models import db
from gather.models.auth import AccessToken, AuthSession, EventRole, User
from gather.models.event import Event, Person, PersonEvent, Team

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
TOKEN_HEADER = "X-Access-Token"

# "at least" ordering; COHOST is folded into HOST
SCOPE_RANK = {"PARTICIPANT": 1, "COORDINATOR": 2, "HOST": 3}
ROLE_TO_SCOPE = {"HOST": "HOST", "COHOST": "HOST", "COORDINATOR": "COORDINATOR"}


# ── Credential sum type ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class SessionCredential:
    token: str


@dataclass(frozen=True)
class TokenCredential:
    token: str


@dataclass
class ActorContext:
    """Who is acting, on which event, at which scope."""

    event: Event
    scope: str
    person: Person | None = None
    team: Team | None = None
    user: User | None = None
    access_token_id: int | None = None

    @property
    def actor_id(self) -> str:
        """Stable label for audit columns."""
        if self.user is not None:
            return f"user:{self.user.id}"
        if self.person is not None:
            return f"person:{self.person.id}"
        return f"token:{self.access_token_id}"

    @property
    def is_host(self) -> bool:
        return self.scope == "HOST"


def _mask(token: str) -> str:
    return f"{token[:6]}…" if token else "<empty>"


def credentials_from_request(req) -> list:
    """Collect every credential the request carries, token first."""
    creds: list = []
    token = req.headers.get(TOKEN_HEADER) or req.args.get("token")
    if token:
        creds.append(TokenCredential(token.strip()))
    cookie = req.cookies.get(SESSION_COOKIE)
    if cookie:
        creds.append(SessionCredential(cookie))
    return creds


# ═════════════════════════════════════════════════════════════════════════
# Token path
# ═════════════════════════════════════════════════════════════════════════


def resolve_token(token: str) -> ActorContext | None:
    """Resolve an opaque access token to its event-bound actor.

    Returns None for unknown or expired tokens, and for COORDINATOR
    tokens whose team no longer matches the holder's membership.
    """
    if not token:
        return None

    row = AccessToken.query.filter_by(token=token).first()
    if row is None:
        return None
    if row.is_expired():
        logger.info("Expired access token %s for event %s", _mask(token), row.event_id)
        return None
    if row.event is None:
        return None

    team = None
    if row.scope == "COORDINATOR":
        if not row.team_id:
            logger.warning("Coordinator token %s has no team", _mask(token))
            return None
        membership = PersonEvent.query.filter_by(
            person_id=row.person_id, event_id=row.event_id,
        ).first()
        if membership is None or membership.team_id != row.team_id:
            logger.warning(
                "Coordinator token %s team mismatch (token team=%s)", _mask(token), row.team_id,
            )
            return None
        team = row.team

    return ActorContext(
        event=row.event,
        scope=row.scope,
        person=row.person,
        team=team,
        access_token_id=row.id,
    )


# ═════════════════════════════════════════════════════════════════════════
# Session path
# ═════════════════════════════════════════════════════════════════════════


def resolve_session(token: str) -> User | None:
    """Return the User behind an unexpired session token, else None."""
    if not token:
        return None
    row = AuthSession.query.filter_by(token=token).first()
    if row is None or row.is_expired():
        return None
    return row.user


def resolve_session_actor(user: User, event_id: int) -> ActorContext | None:
    """Scope a logged-in user to one event via ownership or EventRole."""
    event = db.session.get(Event, event_id)
    if event is None:
        return None

    person = Person.query.filter_by(user_id=user.id).first()
    if event.host_id == user.id:
        return ActorContext(event=event, scope="HOST", person=person, user=user)

    role = EventRole.query.filter_by(user_id=user.id, event_id=event_id).first()
    if role is None:
        return None
    scope = ROLE_TO_SCOPE.get(role.role)
    if scope is None:
        return None
    team = db.session.get(Team, role.team_id) if role.team_id else None
    return ActorContext(event=event, scope=scope, person=person, team=team, user=user)


def current_user(credentials) -> User | None:
    for cred in credentials:
        if isinstance(cred, SessionCredential):
            return resolve_session(cred.token)
    return None


# ═════════════════════════════════════════════════════════════════════════
# Unified check
# ═════════════════════════════════════════════════════════════════════════


def require_event_role(event_id: int, allowed_scopes, credentials) -> ActorContext:
    """Authorize the caller for ``event_id`` at one of ``allowed_scopes``.

    Raises:
        UnauthorizedError: no credential, or none of them resolves.
        ForbiddenError: a credential resolves, but to another event or to
            a scope outside ``allowed_scopes``.
    """
    allowed = set(allowed_scopes)
    resolved_any = False

    for cred in credentials:
        if isinstance(cred, TokenCredential):
            ctx = resolve_token(cred.token)
            if ctx is None:
                continue
            resolved_any = True
            if ctx.event.id != event_id:
                logger.warning(
                    "Token %s for event %s replayed against event %s",
                    _mask(cred.token), ctx.event.id, event_id,
                )
                continue
        elif isinstance(cred, SessionCredential):
            user = resolve_session(cred.token)
            if user is None:
                continue
            resolved_any = True
            ctx = resolve_session_actor(user, event_id)
            if ctx is None:
                continue
        else:
            continue

        if ctx.scope in allowed:
            return ctx
        logger.warning(
            "Scope %s not in %s for event %s", ctx.scope, sorted(allowed), event_id,
        )

    if not resolved_any:
        raise UnauthorizedError("Unauthorized")
    raise ForbiddenError("Forbidden")


def require_team_access(ctx: ActorContext, team_id: int) -> None:
    """Hosts touch every team; coordinators only their own."""
    if has_scope_at_least(ctx, "HOST"):
        return
    if ctx.scope == "COORDINATOR" and ctx.team is not None and ctx.team.id == team_id:
        return
    raise ForbiddenError("Not authorized for this team")


def has_scope_at_least(ctx: ActorContext, minimum: str) -> bool:
    return SCOPE_RANK.get(ctx.scope, 0) >= SCOPE_RANK.get(minimum, 99)
