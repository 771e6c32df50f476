"""
Access-token issuing and invite links.

``ensure_event_tokens`` is idempotent: it creates only the tokens that
are missing and removes coordinator tokens whose (team, person) pair no
longer matches the plan.

Issued per event:
    HOST         the host's Person
    COORDINATOR  each team coordinator (team-bound), and every member with
                 role COORDINATOR
    PARTICIPANT  every PARTICIPANT member who coordinates nothing

Tokens are 64 hex chars (32 random bytes) and expire after
ACCESS_TOKEN_TTL_DAYS.
"""

import logging
import secrets
from datetime import timedelta

from flask import current_app

from gather.models import db
from gather.models.auth import AccessToken
from gather.models.base import utcnow
from gather.models.event import Person, PersonEvent, Team
from gather.services.workflow import get_event

logger = logging.getLogger(__name__)

URL_PREFIX = {"HOST": "h", "COORDINATOR": "c", "PARTICIPANT": "p"}
_SCOPE_ORDER = {"HOST": 0, "COORDINATOR": 1, "PARTICIPANT": 2}


def generate_token() -> str:
    return secrets.token_hex(32)


def _key(person_id, scope, team_id) -> tuple:
    return (person_id, scope, team_id)


def ensure_event_tokens(event_id: int) -> dict:
    """Create missing tokens and drop orphaned coordinator tokens.

    Returns:
        {"created": n, "removed": m}
    """
    event = get_event(event_id)
    teams = Team.query_for_event(event_id).all()
    memberships = PersonEvent.query_for_event(event_id).all()

    valid_coordinator = {(t.id, t.coordinator_id) for t in teams if t.coordinator_id}
    valid_coordinator.update(
        (m.team_id, m.person_id) for m in memberships if m.role == "COORDINATOR" and m.team_id
    )

    removed = 0
    for token in AccessToken.query.filter_by(event_id=event_id, scope="COORDINATOR").all():
        if not token.team_id or (token.team_id, token.person_id) not in valid_coordinator:
            db.session.delete(token)
            removed += 1
    db.session.flush()

    existing = {
        _key(t.person_id, t.scope, t.team_id)
        for t in AccessToken.query.filter_by(event_id=event_id).all()
    }
    wanted = []

    host_membership = next((m for m in memberships if m.role == "HOST"), None)
    if host_membership is None and event.host_id:
        host_person = Person.query.filter_by(user_id=event.host_id).first()
        host_person_id = host_person.id if host_person else None
    else:
        host_person_id = host_membership.person_id if host_membership else None
    if host_person_id:
        wanted.append(_key(host_person_id, "HOST", None))

    wanted.extend(_key(person_id, "COORDINATOR", team_id) for team_id, person_id in valid_coordinator)

    coordinator_ids = {person_id for _, person_id in valid_coordinator}
    coordinator_ids.update(m.person_id for m in memberships if m.role == "COORDINATOR")
    wanted.extend(
        _key(m.person_id, "PARTICIPANT", None)
        for m in memberships
        if m.role == "PARTICIPANT" and m.person_id not in coordinator_ids
    )

    expires_at = utcnow() + timedelta(days=current_app.config.get("ACCESS_TOKEN_TTL_DAYS", 90))
    created = 0
    for person_id, scope, team_id in sorted(set(wanted) - existing, key=lambda k: (k[1], k[0], k[2] or 0)):
        db.session.add(AccessToken(
            token=generate_token(),
            scope=scope,
            event_id=event_id,
            person_id=person_id,
            team_id=team_id,
            expires_at=expires_at,
        ))
        created += 1

    db.session.commit()
    if created or removed:
        logger.info("Tokens for event %s: %d created, %d removed", event_id, created, removed)
    return {"created": created, "removed": removed}


def list_invite_links(event_id: int) -> list[dict]:
    """Every token of the event as a shareable link, HOST first."""
    get_event(event_id)
    base_url = current_app.config.get("APP_URL", "").rstrip("/")
    tokens = AccessToken.query.filter_by(event_id=event_id).all()
    tokens.sort(key=lambda t: (
        _SCOPE_ORDER.get(t.scope, 9), t.person.name if t.person else "", t.id,
    ))
    return [
        {
            "person_id": t.person_id,
            "person_name": t.person.name if t.person else None,
            "role": t.scope.title(),
            "scope": t.scope,
            "team_id": t.team_id,
            "team_name": t.team.name if t.team else None,
            "token": t.token,
            "url": f"{base_url}/{URL_PREFIX[t.scope]}/{t.token}",
            "opened_at": t.to_dict()["opened_at"],
        }
        for t in tokens
    ]
