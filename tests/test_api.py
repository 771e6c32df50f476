"""
HTTP surface: routing, credentials, status codes and error bodies.

Service rules are covered in their own modules; these tests check that
each blueprint wires them to the right codes and payloads.
"""

import pytest

from gather.models import db
from gather.models.auth import MagicLink
from gather.models.conflict import Conflict
from gather.models.event import Item
from gather.services import revision_service


# ═════════════════════════════════════════════════════════════════════════
# Health & app-level handlers
# ═════════════════════════════════════════════════════════════════════════


class TestHealth:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok", "app": "gather"}
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in res.headers

    def test_live_checks_database(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["sms"]["status"] == "disabled"

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nowhere"

    def test_non_json_body_is_415(self, client):
        res = client.post("/api/v1/auth/magic-link", data="email=x", content_type="text/plain")
        assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════
# Login
# ═════════════════════════════════════════════════════════════════════════


class TestAuth:
    def test_magic_link_round_trip(self, client):
        res = client.post("/api/v1/auth/magic-link", json={"email": "sam@example.com"})
        assert res.status_code == 200
        assert res.get_json() == {"ok": True}

        token = MagicLink.query.filter_by(email="sam@example.com").one().token
        res = client.post("/api/v1/auth/verify", json={"token": token})
        assert res.status_code == 200
        assert res.get_json()["user"]["email"] == "sam@example.com"
        cookie = res.headers["Set-Cookie"]
        assert cookie.startswith("session=")
        assert "HttpOnly" in cookie

        again = client.post("/api/v1/auth/verify", json={"token": token})
        assert again.status_code == 400
        assert again.get_json()["error"] == "Link already used"

    def test_bad_email_is_400(self, client):
        res = client.post("/api/v1/auth/magic-link", json={"email": "nope"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_me_requires_session(self, client, make):
        assert client.get("/api/v1/auth/me").status_code == 401

        user = make.user()
        client.set_cookie("session", make.login(user))
        res = client.get("/api/v1/auth/me")
        assert res.status_code == 200
        assert res.get_json()["user"]["id"] == user.id

    def test_logout(self, client, make):
        token = make.login(make.user())

        client.set_cookie("session", token)
        res = client.post("/api/v1/auth/logout")
        assert res.status_code == 200

        # the session row is gone even if the client replays the old cookie
        client.set_cookie("session", token)
        assert client.get("/api/v1/auth/me").status_code == 401


# ═════════════════════════════════════════════════════════════════════════
# Events
# ═════════════════════════════════════════════════════════════════════════


class TestEvents:
    def test_create_and_list(self, client, make):
        client.set_cookie("session", make.login(make.user()))

        res = client.post("/api/v1/events", json={
            "name": "Beach Christmas", "start_date": "2026-12-24", "end_date": "2026-12-26",
        })
        assert res.status_code == 201
        event = res.get_json()["event"]
        assert event["status"] == "DRAFT"

        listed = client.get("/api/v1/events").get_json()["events"]
        assert [e["id"] for e in listed] == [event["id"]]

        detail = client.get(f"/api/v1/events/{event['id']}").get_json()["event"]
        assert len(detail["days"]) == 3

    def test_free_limit_blocks_second_event(self, client, host, make):
        client.set_cookie("session", make.login(host["user"]))

        res = client.post("/api/v1/events", json={"name": "Another"})
        assert res.status_code == 403

        check = client.get("/api/v1/entitlements/check-create").get_json()
        assert check == {"canCreate": False, "limit": 1, "remaining": 0}

    def test_no_credentials_is_401(self, client, host):
        res = client.get(f"/api/v1/events/{host['event'].id}")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_participant_token_cannot_read_event(self, client, make, host):
        alex = make.person(host["event"], "Alex")
        token = make.token(host["event"], "PARTICIPANT", person=alex)

        res = client.get(f"/api/v1/events/{host['event'].id}", headers={"X-Access-Token": token.token})
        assert res.status_code == 403

    def test_token_in_query_string(self, client, host):
        res = client.get(f"/api/v1/events/{host['event'].id}?token={host['token'].token}")
        assert res.status_code == 200

    def test_gate_blocked_transition(self, client, host):
        res = client.post(
            f"/api/v1/events/{host['event'].id}/transition",
            json={"status": "CONFIRMING"}, headers=host["headers"],
        )
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_TRANSITION"
        codes = {b["code"] for b in body["details"]["blocks"]}
        assert {"STRUCTURAL_MINIMUM_TEAMS", "STRUCTURAL_MINIMUM_ITEMS"} <= codes

    def test_transition_after_gate_passes(self, client, make, host):
        event = host["event"]
        team = make.team(event)
        make.assign(make.item(team, "Turkey", critical=True), make.person(event, "Alex"))

        res = client.post(f"/api/v1/events/{event.id}/transition",
                          json={"status": "CONFIRMING"}, headers=host["headers"])
        assert res.status_code == 200
        body = res.get_json()
        assert body["event"]["status"] == "CONFIRMING"
        assert body["revision"]["revision_number"] == 1

        readiness = client.post(f"/api/v1/events/{event.id}/freeze-check", headers=host["headers"])
        assert readiness.get_json()["canFreeze"] is False

    def test_people_and_tokens(self, client, host):
        eid = host["event"].id
        res = client.post(f"/api/v1/events/{eid}/people",
                          json={"name": "Blair", "phone_number": "021 555 0101"}, headers=host["headers"])
        assert res.status_code == 201

        issued = client.post(f"/api/v1/events/{eid}/tokens", headers=host["headers"]).get_json()
        assert issued["created"] == 1
        scopes = [link["scope"] for link in issued["inviteLinks"]]
        assert scopes == ["HOST", "PARTICIPANT"]


# ═════════════════════════════════════════════════════════════════════════
# Plan
# ═════════════════════════════════════════════════════════════════════════


class TestPlan:
    def test_team_and_item_crud(self, client, host):
        eid = host["event"].id
        team = client.post(f"/api/v1/events/{eid}/teams", json={"name": "Desserts", "domain": "DESSERTS"},
                           headers=host["headers"])
        assert team.status_code == 201
        team_id = team.get_json()["team"]["id"]

        item = client.post(f"/api/v1/events/{eid}/items", json={"team_id": team_id, "name": "Pavlova"},
                           headers=host["headers"])
        assert item.status_code == 201

        res = client.delete(f"/api/v1/events/{eid}/teams/{team_id}", headers=host["headers"])
        assert res.status_code == 200
        assert res.get_json()["itemsDeleted"] == 1
        assert Item.query.count() == 0

    def test_item_requires_team(self, client, host):
        res = client.post(f"/api/v1/events/{host['event'].id}/items", json={"name": "Pavlova"},
                          headers=host["headers"])
        assert res.status_code == 400

    def test_item_of_other_event_is_403(self, client, make, host):
        other = make.event(make.user("b@example.com"), name="Other")
        foreign = make.item(make.team(other), "Ham")

        res = client.patch(f"/api/v1/events/{host['event'].id}/items/{foreign.id}",
                           json={"name": "Stolen ham"}, headers=host["headers"])
        assert res.status_code == 403
        assert db.session.get(Item, foreign.id).name == "Ham"

    def test_coordinator_limited_to_own_team(self, client, make, host):
        event = host["event"]
        casey = make.person(event, "Casey")
        mains = make.team(event, "Mains", coordinator=casey)
        sides = make.team(event, "Sides")
        token = make.token(event, "COORDINATOR", person=casey, team=mains)
        headers = {"X-Access-Token": token.token}

        own = client.post(f"/api/v1/events/{event.id}/items", json={"team_id": mains.id, "name": "Lamb"},
                          headers=headers)
        assert own.status_code == 201
        other = client.post(f"/api/v1/events/{event.id}/items", json={"team_id": sides.id, "name": "Salad"},
                            headers=headers)
        assert other.status_code == 403

    def test_frozen_event_rejects_edits(self, client, make, host):
        event = host["event"]
        team = make.team(event)
        event.status = "FROZEN"
        db.session.commit()

        res = client.post(f"/api/v1/events/{event.id}/items", json={"team_id": team.id, "name": "Late"},
                          headers=host["headers"])
        assert res.status_code == 400
        assert Item.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════
# Conflicts & revisions
# ═════════════════════════════════════════════════════════════════════════


class TestConflictsAndRevisions:
    def test_check_and_dismiss(self, client, host):
        event = host["event"]
        event.dietary_vegetarian = 2
        db.session.commit()

        res = client.post(f"/api/v1/events/{event.id}/check", headers=host["headers"])
        assert res.status_code == 200
        body = res.get_json()
        assert body["check"]["summary"]["created"] == 1
        cid = body["conflicts"][0]["id"]

        dismissed = client.post(f"/api/v1/events/{event.id}/conflicts/{cid}/dismiss", headers=host["headers"])
        assert dismissed.get_json()["conflict"]["status"] == "DISMISSED"

        again = client.post(f"/api/v1/events/{event.id}/conflicts/{cid}/resolve", headers=host["headers"])
        assert again.status_code == 400

        listed = client.get(f"/api/v1/events/{event.id}/conflicts?status=dismissed", headers=host["headers"])
        assert [c["id"] for c in listed.get_json()["conflicts"]] == [cid]

    def test_conflict_of_other_event_is_403(self, client, make, host):
        other_user = make.user("b@example.com")
        other = make.event(other_user, name="Other", dietary_vegetarian=1)
        other_token = make.token(other, "HOST")
        client.post(f"/api/v1/events/{other.id}/check", headers={"X-Access-Token": other_token.token})
        cid = Conflict.query_for_event(other.id).first().id

        res = client.post(f"/api/v1/events/{host['event'].id}/conflicts/{cid}/resolve", headers=host["headers"])
        assert res.status_code == 403

    def test_acknowledge_validation_is_400(self, client, host):
        event = host["event"]
        event.dietary_vegetarian = 2
        db.session.commit()
        cid = client.post(f"/api/v1/events/{event.id}/check", headers=host["headers"]).get_json()["conflicts"][0]["id"]

        res = client.post(f"/api/v1/events/{event.id}/conflicts/{cid}/acknowledge",
                          json={"impact_statement": "short"}, headers=host["headers"])
        assert res.status_code == 400
        assert "impact_statement" in res.get_json()["details"]

        ok = client.post(f"/api/v1/events/{event.id}/conflicts/{cid}/acknowledge", json={
            "impact_statement": "Vegetarian guests will bring a dish",
            "impact_understood": True,
            "mitigation_plan_type": "BRING_OWN",
        }, headers=host["headers"])
        assert ok.status_code == 201

    def test_revisions(self, client, make, host):
        eid = host["event"].id
        created = client.post(f"/api/v1/events/{eid}/revisions", json={"reason": "checkpoint"},
                              headers=host["headers"])
        assert created.status_code == 201
        rid = created.get_json()["revision"]["id"]

        listed = client.get(f"/api/v1/events/{eid}/revisions", headers=host["headers"]).get_json()
        assert [r["revision_number"] for r in listed["revisions"]] == [1]

        other = make.event(make.user("b@example.com"), name="Other")
        other_token = make.token(other, "HOST")
        res = client.get(f"/api/v1/events/{other.id}/revisions/{rid}",
                         headers={"X-Access-Token": other_token.token})
        assert res.status_code == 403

    def test_revision_number_race_is_409(self, client, monkeypatch, host):
        eid = host["event"].id
        client.post(f"/api/v1/events/{eid}/revisions", json={}, headers=host["headers"])
        monkeypatch.setattr(revision_service, "next_revision_number", lambda event_id: 1)

        res = client.post(f"/api/v1/events/{eid}/revisions", json={}, headers=host["headers"])
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"


# ═════════════════════════════════════════════════════════════════════════
# Participant links & cron
# ═════════════════════════════════════════════════════════════════════════


class TestParticipantAndCron:
    def test_participant_link_flow(self, client, make, host):
        event = host["event"]
        alex = make.person(event, "Alex")
        assignment = make.assign(make.item(make.team(event), "Pavlova"), alex)
        token = make.token(event, "PARTICIPANT", person=alex).token

        view = client.get(f"/api/v1/t/{token}")
        assert view.status_code == 200
        assert view.get_json()["assignments"][0]["id"] == assignment.id

        res = client.post(f"/api/v1/t/{token}/assignments/{assignment.id}/respond", json={"response": "ACCEPTED"})
        assert res.status_code == 200
        assert res.get_json()["assignment"]["response"] == "ACCEPTED"

    def test_unknown_link_is_401(self, client):
        assert client.get("/api/v1/t/deadbeef").status_code == 401

    @pytest.mark.parametrize("header", [None, "Bearer wrong"])
    def test_cron_requires_secret(self, client, header):
        headers = {"Authorization": header} if header else {}
        assert client.post("/api/v1/cron/nudges", headers=headers).status_code == 401

    def test_cron_runs_scheduler(self, client):
        res = client.post("/api/v1/cron/nudges", headers={"Authorization": "Bearer test-cron-secret"})
        assert res.status_code == 200
        assert res.get_json()["smsEnabled"] is False
