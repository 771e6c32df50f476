"""
Conflict detection, reconciliation and lifecycle.

Covers fingerprint stability, the dismissal reset rule (a dismissed
conflict returns only when its inputs change), auto-resolution,
acknowledgement validation / supersession and cross-event addressing.
"""

import pytest

from gather.core.exceptions import ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from gather.models import db
from gather.models.audit import AuditEntry
from gather.models.conflict import Acknowledgement, Conflict
from gather.services import conflict_detector
from gather.services import conflict_lifecycle as lifecycle
from gather.services.conflict_detector import run_conflict_check
from gather.services.readiness import run_gate_check

GOOD_ACK = {
    "impact_statement": "Vegetarian guests will bring their own main dish",
    "impact_understood": True,
    "mitigation_plan_type": "BRING_OWN",
}


def _veg_event(make, host, guests=2):
    event = host["event"]
    event.dietary_vegetarian = guests
    db.session.commit()
    make.item(make.team(event, "Mains"), "Roast beef")
    return event


def _only(event_id, **filters):
    return Conflict.query_for_event(event_id).filter_by(**filters).one()


# ── Detection ────────────────────────────────────────────────────────────


def test_detects_expected_conflict_types(make, host):
    event = host["event"]
    event.occasion_type = "CHRISTMAS"
    event.dietary_gluten_free = 1
    event.venue_oven_count = 1
    db.session.commit()
    team = make.team(event, "Mains", domain="PROTEINS")
    make.item(team, "Turkey", critical=True, needs_oven=True, serve_time="13:00")
    make.item(team, "Ham", needs_oven=True, serve_time="13:00", ai_generated=True, user_confirmed=False)

    result = run_conflict_check(event.id, "user:1")

    types = {c.type for c in Conflict.query_for_event(event.id)}
    assert types == {
        "CRITICAL_ITEM_UNASSIGNED", "DIETARY_GAP", "TIMING", "COVERAGE_GAP", "UNCONFIRMED_SUGGESTION",
    }
    assert result["summary"]["created"] == 5


def test_double_booked_person(make, host):
    event = host["event"]
    team = make.team(event)
    alex = make.person(event, "Alex")
    make.assign(make.item(team, "Gravy", serve_time="18:00"), alex)
    make.assign(make.item(team, "Stuffing", serve_time="18:00"), alex)

    run_conflict_check(event.id)

    conflict = _only(event.id, type="DOUBLE_BOOKED")
    assert conflict.affected_parties == ["Alex"]


def test_rerun_is_stable(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)

    result = run_conflict_check(event.id)

    assert result["summary"]["created"] == 0
    assert result["summary"]["updated"] == 1
    assert Conflict.query_for_event(event.id).count() == 1


def test_fixed_cause_is_auto_resolved(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    make.item(make.team(event, "Veg"), "Nut roast", vegetarian=True)

    result = run_conflict_check(event.id)

    assert result["summary"]["auto_resolved"] == 1
    conflict = _only(event.id, type="DIETARY_GAP")
    assert conflict.status == "RESOLVED"
    assert conflict.resolved_by == "system"


def test_auto_resolved_conflict_reopens_when_cause_returns(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    nut_roast = make.item(make.team(event, "Veg"), "Nut roast", vegetarian=True)
    run_conflict_check(event.id)
    assert _only(event.id, type="DIETARY_GAP").status == "RESOLVED"

    db.session.delete(nut_roast)
    db.session.commit()
    result = run_conflict_check(event.id)

    assert result["summary"]["reopened"] == 1
    conflict = _only(event.id, type="DIETARY_GAP")
    assert conflict.status == "OPEN"
    assert conflict.resolved_by is None
    assert conflict.resolved_at is None
    assert conflict.reopened_at is not None
    assert AuditEntry.query.filter_by(
        action_type="REOPEN_CONFLICT", target_id=str(conflict.id),
    ).count() == 1

    codes = [b["code"] for b in run_gate_check(event.id)["blocks"]]
    assert "CRITICAL_CONFLICT_UNACKNOWLEDGED" in codes


def test_user_resolved_conflict_is_not_reopened(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")
    lifecycle.resolve_conflict(event.id, conflict.id, "user:1")

    result = run_conflict_check(event.id)

    assert result["summary"]["reopened"] == 0
    row = db.session.get(Conflict, conflict.id)
    assert row.status == "RESOLVED"
    assert row.resolved_by == "user:1"


def test_rule_with_unknown_type_is_rejected(monkeypatch, host):
    def bogus_rule(graph):
        return [{
            "fingerprint": "bogus-1", "type": "WEATHER", "severity": "CRITICAL",
            "resolution_class": "FIX_IN_PLAN",
        }]

    monkeypatch.setattr(conflict_detector, "RULES", [bogus_rule])

    with pytest.raises(ValueError, match="bogus-1"):
        conflict_detector.run_conflict_check(host["event"].id)


# ── Dismissal reset ──────────────────────────────────────────────────────


def test_dismissed_conflict_stays_dismissed_when_nothing_changed(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")
    lifecycle.dismiss_conflict(event.id, conflict.id, "user:1")

    result = run_conflict_check(event.id)

    assert result["summary"]["reopened"] == 0
    assert db.session.get(Conflict, conflict.id).status == "DISMISSED"


def test_dismissed_conflict_reopens_when_inputs_change(make, host):
    event = _veg_event(make, host, guests=2)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")
    lifecycle.dismiss_conflict(event.id, conflict.id, "user:1")

    event.dietary_vegetarian = 3
    db.session.commit()
    result = run_conflict_check(event.id)

    assert result["summary"]["reopened"] == 1
    reopened = db.session.get(Conflict, conflict.id)
    assert reopened.status == "OPEN"
    assert reopened.dismissed_at is None
    assert reopened.reopened_at is not None
    assert "3 vegetarian guest(s)" in reopened.description


# ── Transitions ──────────────────────────────────────────────────────────


def test_resolve_then_dismiss_is_rejected(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")

    lifecycle.resolve_conflict(event.id, conflict.id, "user:1")
    with pytest.raises(InvalidTransitionError, match="already RESOLVED"):
        lifecycle.dismiss_conflict(event.id, conflict.id, "user:1")


def test_delegate_requires_delegatable_conflict(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    dietary = _only(event.id, type="DIETARY_GAP")

    with pytest.raises(InvalidTransitionError):
        lifecycle.delegate_conflict(event.id, dietary.id, "user:1")

    make.item(make.team(event, "Mains 2"), "Turkey", critical=True)
    run_conflict_check(event.id)
    unassigned = _only(event.id, type="CRITICAL_ITEM_UNASSIGNED")
    delegated = lifecycle.delegate_conflict(event.id, unassigned.id, "user:1")
    assert delegated.status == "DELEGATED"
    assert delegated.delegated_to == "COORDINATOR"


def test_validate_conflict_transition_reports_reason(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")

    check = lifecycle.validate_conflict_transition(conflict, "explode")
    assert check["valid"] is False
    assert "Unknown action" in check["reason"]


# ── Acknowledgements ─────────────────────────────────────────────────────


def test_acknowledgement_validation_errors(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")

    with pytest.raises(ValidationError) as exc:
        lifecycle.acknowledge_conflict(event.id, conflict.id, "user:1", {
            "impact_statement": "ok fine whatever",
            "impact_understood": False,
            "mitigation_plan_type": "PRAY",
        })
    assert set(exc.value.details) == {"impact_statement", "impact_understood", "mitigation_plan_type"}


def test_acknowledgement_only_for_critical(make, host):
    event = host["event"]
    make.item(make.team(event), "Ham", ai_generated=True, user_confirmed=False)
    run_conflict_check(event.id)
    info = _only(event.id, type="UNCONFIRMED_SUGGESTION")

    with pytest.raises(ValidationError) as exc:
        lifecycle.acknowledge_conflict(event.id, info.id, "user:1", GOOD_ACK)
    assert "conflict" in exc.value.details


def test_new_acknowledgement_supersedes_previous(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")

    first = lifecycle.acknowledge_conflict(event.id, conflict.id, "user:1", GOOD_ACK)
    second = lifecycle.acknowledge_conflict(event.id, conflict.id, "user:1", {
        **GOOD_ACK, "mitigation_plan_type": "EXTERNAL_CATERING",
        "impact_statement": "We will cater vegetarian food externally",
    })

    assert second["conflict"]["status"] == "ACKNOWLEDGED"
    assert second["acknowledgement"]["supersedes_id"] == first["acknowledgement"]["id"]
    old = db.session.get(Acknowledgement, first["acknowledgement"]["id"])
    assert old.status == "SUPERSEDED"
    assert Acknowledgement.query.filter_by(conflict_id=conflict.id, status="ACTIVE").count() == 1


# ── Scoping and listing ──────────────────────────────────────────────────


def test_conflict_of_other_event_is_forbidden(make, host):
    event = _veg_event(make, host)
    run_conflict_check(event.id)
    conflict = _only(event.id, type="DIETARY_GAP")
    other = make.event(make.user("other@example.com"), name="Other")

    with pytest.raises(ForbiddenError):
        lifecycle.resolve_conflict(other.id, conflict.id, "user:2")
    assert db.session.get(Conflict, conflict.id).status == "OPEN"

    with pytest.raises(NotFoundError):
        lifecycle.resolve_conflict(event.id, 9999, "user:1")


def test_list_sorts_critical_first_and_filters(make, host):
    event = _veg_event(make, host)
    make.item(make.team(event, "Extras"), "Dips", ai_generated=True, user_confirmed=False)
    run_conflict_check(event.id)
    dietary = _only(event.id, type="DIETARY_GAP")

    listing = lifecycle.list_conflicts(event.id)
    assert [c["severity"] for c in listing["conflicts"]] == ["CRITICAL", "INFO"]
    assert listing["summary"]["bySeverity"]["CRITICAL"] == 1

    lifecycle.dismiss_conflict(event.id, dietary.id, "user:1")
    assert len(lifecycle.list_conflicts(event.id)["conflicts"]) == 1
    assert [c["id"] for c in lifecycle.list_dismissed(event.id)] == [dietary.id]
    assert lifecycle.list_conflicts(event.id, "all")["summary"]["byStatus"] == {"OPEN": 1, "DISMISSED": 1}

    with pytest.raises(ValidationError):
        lifecycle.list_conflicts(event.id, "weird")
