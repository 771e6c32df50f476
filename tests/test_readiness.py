"""Freeze readiness (advisory) and gate check (blocking)."""

import pytest

from gather.models import db
from gather.models.conflict import Acknowledgement, Conflict
from gather.services.readiness import (
    check_freeze_readiness,
    compliance_rate,
    meets_threshold,
    run_gate_check,
)


def _assignments(make, event, responses):
    team = make.team(event, "Sides")
    for n, response in enumerate(responses):
        person = make.person(event, f"Guest {n}")
        make.assign(make.item(team, f"Dish {n}"), person, response=response)
    return team


# ── Compliance threshold ─────────────────────────────────────────────────


def test_threshold_is_inclusive_at_exactly_eighty_percent():
    assert meets_threshold(4, 5, 0.8)
    assert not meets_threshold(3, 4, 0.8)
    assert meets_threshold(8, 10, 0.8)
    assert not meets_threshold(0, 0, 0.8)
    assert compliance_rate(0, 0) == 0.0


def test_four_of_five_accepted_can_freeze(make, host):
    _assignments(make, host["event"], ["ACCEPTED"] * 4 + ["PENDING"])

    result = check_freeze_readiness(host["event"].id)

    assert result["canFreeze"] is True
    assert result["complianceRate"] == pytest.approx(0.8)
    assert "1 of 5 assignments still awaiting a response" in result["warnings"]


def test_declined_does_not_count_as_compliant(make, host):
    _assignments(make, host["event"], ["ACCEPTED"] * 3 + ["DECLINED", "DECLINED"])

    result = check_freeze_readiness(host["event"].id)

    assert result["canFreeze"] is False
    assert result["complianceRate"] == pytest.approx(0.6)
    assert any("declined" in w for w in result["warnings"])


def test_no_assignments_warns_and_blocks_freeze(host):
    result = check_freeze_readiness(host["event"].id)
    assert result["canFreeze"] is False
    assert result["complianceRate"] == 0.0
    assert "No assignments yet" in result["warnings"]


def test_critical_gaps_listed(make, host):
    team = make.team(host["event"], "Mains")
    turkey = make.item(team, "Turkey", critical=True)

    result = check_freeze_readiness(host["event"].id)

    assert result["criticalGaps"] == [{
        "type": "UNASSIGNED_CRITICAL_ITEM",
        "item_id": turkey.id,
        "item_name": "Turkey",
        "team_name": "Mains",
    }]


# ── Gate check ───────────────────────────────────────────────────────────


def test_empty_plan_fails_structural_minimums(host):
    result = run_gate_check(host["event"].id)
    assert result["passed"] is False
    assert [b["code"] for b in result["blocks"]] == [
        "STRUCTURAL_MINIMUM_TEAMS", "STRUCTURAL_MINIMUM_ITEMS",
    ]


def test_unassigned_turkey_blocks_the_gate(make, host):
    team = make.team(host["event"], "Mains")
    turkey = make.item(team, "Turkey", critical=True)
    make.item(team, "Crackers")

    result = run_gate_check(host["event"].id)

    assert result["passed"] is False
    assert len(result["blocks"]) == 1
    block = result["blocks"][0]
    assert block["code"] == "CRITICAL_ITEM_UNASSIGNED"
    assert block["item_id"] == turkey.id
    assert "Turkey" in block["description"]


def test_assigning_the_turkey_clears_the_gate(make, host):
    team = make.team(host["event"], "Mains")
    turkey = make.item(team, "Turkey", critical=True)
    make.assign(turkey, make.person(host["event"], "Alex"))

    assert run_gate_check(host["event"].id) == {"passed": True, "blocks": []}


def test_gate_check_is_idempotent(make, host):
    team = make.team(host["event"], "Mains")
    make.item(team, "Turkey", critical=True)

    first = run_gate_check(host["event"].id)
    second = run_gate_check(host["event"].id)

    assert first == second
    assert db.session.get(type(host["event"]), host["event"].id).status == "DRAFT"


def test_unacknowledged_placeholder_blocks(make, host):
    team = make.team(host["event"], "Mains")
    ham = make.item(team, "Ham", critical=True, quantity_state="PLACEHOLDER")
    make.assign(ham, make.person(host["event"], "Alex"))

    codes = [b["code"] for b in run_gate_check(host["event"].id)["blocks"]]
    assert codes == ["CRITICAL_PLACEHOLDER_UNACKNOWLEDGED"]

    ham.placeholder_acknowledged = True
    db.session.commit()
    assert run_gate_check(host["event"].id)["passed"] is True


def test_critical_conflict_needs_active_acknowledgement(make, host):
    event = host["event"]
    team = make.team(event, "Mains")
    make.assign(make.item(team, "Turkey", critical=True), make.person(event, "Alex"))
    conflict = Conflict(
        event_id=event.id, fingerprint="dietary-vegetarian-x", type="DIETARY_GAP",
        severity="CRITICAL", status="OPEN", title="No vegetarian options",
    )
    db.session.add(conflict)
    db.session.commit()

    blocks = run_gate_check(event.id)["blocks"]
    assert [b["code"] for b in blocks] == ["CRITICAL_CONFLICT_UNACKNOWLEDGED"]
    assert blocks[0]["conflict_id"] == conflict.id

    db.session.add(Acknowledgement(
        conflict_id=conflict.id, event_id=event.id, acknowledged_by="user:1",
        impact_statement="Vegetarian guests will bring their own dish",
        mitigation_plan_type="BRING_OWN", status="ACTIVE",
    ))
    db.session.commit()
    assert run_gate_check(event.id)["passed"] is True
