"""
Shared pytest fixtures for the Gather test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make: ORM factory for users, events, teams, items, people and tokens
    - host: a FREE user hosting one DRAFT event, with a HOST token
"""

import secrets
from datetime import timedelta

import pytest

from gather import create_app
from gather.models import db as _db
from gather.models.auth import AccessToken, AuthSession, EventRole, User
from gather.models.base import utcnow
from gather.models.event import Assignment, Event, Item, Person, PersonEvent, Team


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── ORM factory ──────────────────────────────────────────────────────────


class PlanFactory:
    """Builds plan rows directly, bypassing the API, and commits each one."""

    def user(self, email="host@example.com", billing_status="FREE") -> User:
        u = User(email=email, billing_status=billing_status)
        _db.session.add(u)
        _db.session.commit()
        return u

    def login(self, user: User) -> str:
        s = AuthSession(
            user_id=user.id,
            token=secrets.token_hex(32),
            expires_at=utcnow() + timedelta(days=30),
        )
        _db.session.add(s)
        _db.session.commit()
        return s.token

    def event(self, host: User | None = None, name="Family Christmas", status="DRAFT", **fields) -> Event:
        e = Event(name=name, status=status, host_id=host.id if host else None, **fields)
        _db.session.add(e)
        _db.session.flush()
        if host is not None:
            _db.session.add(EventRole(user_id=host.id, event_id=e.id, role="HOST"))
            person = Person.query.filter_by(user_id=host.id).first()
            if person is None:
                person = Person(name="Host", email=host.email, user_id=host.id)
                _db.session.add(person)
                _db.session.flush()
            _db.session.add(PersonEvent(event_id=e.id, person_id=person.id, role="HOST"))
        _db.session.commit()
        return e

    def team(self, event: Event, name="Mains", domain=None, coordinator: Person | None = None) -> Team:
        t = Team(event_id=event.id, name=name, domain=domain,
                 coordinator_id=coordinator.id if coordinator else None)
        _db.session.add(t)
        _db.session.commit()
        if coordinator is not None:
            membership = PersonEvent.query.filter_by(event_id=event.id, person_id=coordinator.id).first()
            membership.team_id = t.id
            membership.role = "COORDINATOR"
            _db.session.commit()
        return t

    def item(self, team: Team, name="Turkey", **fields) -> Item:
        i = Item(team_id=team.id, name=name, **fields)
        _db.session.add(i)
        _db.session.commit()
        return i

    def person(self, event: Event, name="Alex", role="PARTICIPANT", team: Team | None = None, **fields) -> Person:
        p = Person(name=name, **fields)
        _db.session.add(p)
        _db.session.flush()
        _db.session.add(PersonEvent(
            event_id=event.id, person_id=p.id, role=role, team_id=team.id if team else None,
        ))
        _db.session.commit()
        return p

    def assign(self, item: Item, person: Person, response="PENDING") -> Assignment:
        a = Assignment(item_id=item.id, person_id=person.id, response=response)
        _db.session.add(a)
        _db.session.commit()
        return a

    def token(self, event: Event, scope="HOST", person: Person | None = None,
              team: Team | None = None, expires_in_days=90) -> AccessToken:
        t = AccessToken(
            token=secrets.token_hex(32),
            scope=scope,
            event_id=event.id,
            person_id=person.id if person else None,
            team_id=team.id if team else None,
            expires_at=utcnow() + timedelta(days=expires_in_days),
        )
        _db.session.add(t)
        _db.session.commit()
        return t


@pytest.fixture()
def make():
    return PlanFactory()


@pytest.fixture()
def host(make):
    """A FREE host with one DRAFT event and a HOST token header."""
    user = make.user()
    event = make.event(user)
    host_person = Person.query.filter_by(user_id=user.id).first()
    token = make.token(event, "HOST", person=host_person)
    return {
        "user": user,
        "event": event,
        "person": host_person,
        "token": token,
        "headers": {"X-Access-Token": token.token},
    }
