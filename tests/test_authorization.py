"""Credential resolution and the event-role check."""

import pytest

from gather.core.exceptions import ForbiddenError, UnauthorizedError
from gather.models import db
from gather.models.auth import EventRole
from gather.services.authorization import (
    SessionCredential,
    TokenCredential,
    has_scope_at_least,
    require_event_role,
    require_team_access,
    resolve_token,
)


class TestTokenPath:
    def test_host_token_resolves(self, host):
        ctx = resolve_token(host["token"].token)

        assert ctx.scope == "HOST"
        assert ctx.event.id == host["event"].id
        assert ctx.actor_id == f"person:{host['person'].id}"

    def test_unknown_and_expired_tokens(self, make, host):
        expired = make.token(host["event"], "PARTICIPANT", expires_in_days=-1)

        assert resolve_token("nope") is None
        assert resolve_token("") is None
        assert resolve_token(expired.token) is None

    def test_coordinator_token_needs_matching_team(self, make, host):
        event = host["event"]
        coord = make.person(event, "Casey")
        mains = make.team(event, "Mains", coordinator=coord)
        desserts = make.team(event, "Desserts")
        good = make.token(event, "COORDINATOR", person=coord, team=mains)
        stale = make.token(event, "COORDINATOR", person=coord, team=desserts)
        teamless = make.token(event, "COORDINATOR", person=coord)

        ctx = resolve_token(good.token)
        assert ctx.scope == "COORDINATOR"
        assert ctx.team.id == mains.id
        assert resolve_token(stale.token) is None
        assert resolve_token(teamless.token) is None


class TestRequireEventRole:
    def test_no_credentials_is_unauthorized(self, host):
        with pytest.raises(UnauthorizedError):
            require_event_role(host["event"].id, ["HOST"], [])

    def test_unresolvable_credential_is_unauthorized(self, host):
        with pytest.raises(UnauthorizedError):
            require_event_role(host["event"].id, ["HOST"], [TokenCredential("bogus")])

    def test_token_of_other_event_is_forbidden(self, make, host):
        other = make.event(make.user("b@example.com"), name="Other")

        with pytest.raises(ForbiddenError):
            require_event_role(other.id, ["HOST"], [TokenCredential(host["token"].token)])

    def test_scope_outside_allowed_is_forbidden(self, make, host):
        alex = make.person(host["event"], "Alex")
        participant = make.token(host["event"], "PARTICIPANT", person=alex)

        with pytest.raises(ForbiddenError):
            require_event_role(host["event"].id, ["HOST", "COORDINATOR"],
                               [TokenCredential(participant.token)])

    def test_session_of_event_owner_is_host(self, make, host):
        session_token = make.login(host["user"])

        ctx = require_event_role(host["event"].id, ["HOST"], [SessionCredential(session_token)])

        assert ctx.scope == "HOST"
        assert ctx.actor_id == f"user:{host['user'].id}"

    def test_session_with_event_role(self, make, host):
        cohost = make.user("cohost@example.com")
        db.session.add(EventRole(user_id=cohost.id, event_id=host["event"].id, role="COHOST"))
        db.session.commit()

        ctx = require_event_role(host["event"].id, ["HOST"], [SessionCredential(make.login(cohost))])

        assert ctx.scope == "HOST"

    def test_session_without_role_is_forbidden(self, make, host):
        stranger = make.user("stranger@example.com")

        with pytest.raises(ForbiddenError):
            require_event_role(host["event"].id, ["HOST"], [SessionCredential(make.login(stranger))])

    def test_second_credential_can_succeed(self, make, host):
        other = make.event(make.user("b@example.com"), name="Other")
        other_token = make.token(other, "HOST")

        ctx = require_event_role(
            host["event"].id, ["HOST"],
            [TokenCredential(other_token.token), SessionCredential(make.login(host["user"]))],
        )
        assert ctx.event.id == host["event"].id


class TestTeamAccess:
    def test_host_reaches_every_team(self, make, host):
        team = make.team(host["event"])
        ctx = resolve_token(host["token"].token)

        require_team_access(ctx, team.id)

    def test_coordinator_limited_to_own_team(self, make, host):
        event = host["event"]
        coord = make.person(event, "Casey")
        mains = make.team(event, "Mains", coordinator=coord)
        sides = make.team(event, "Sides")
        ctx = resolve_token(make.token(event, "COORDINATOR", person=coord, team=mains).token)

        require_team_access(ctx, mains.id)
        with pytest.raises(ForbiddenError):
            require_team_access(ctx, sides.id)

    def test_scope_ordering(self, make, host):
        ctx = resolve_token(host["token"].token)
        assert has_scope_at_least(ctx, "COORDINATOR")
        ctx.scope = "PARTICIPANT"
        assert not has_scope_at_least(ctx, "COORDINATOR")

    def test_participant_reaches_no_team(self, make, host):
        event = host["event"]
        alex = make.person(event, "Alex")
        team = make.team(event, "Mains")
        ctx = resolve_token(make.token(event, "PARTICIPANT", person=alex).token)

        with pytest.raises(ForbiddenError):
            require_team_access(ctx, team.id)
