"""
Event workflow: state machine, mutation locks, team status, people removal,
invite confirmation, manual override and bulk review flagging.
"""

import pytest

from gather.core.exceptions import ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from gather.models import db
from gather.models.audit import AuditEntry
from gather.models.auth import AccessToken
from gather.models.event import Assignment, Item, Person, PersonEvent, Team
from gather.models.invite import InviteEvent
from gather.models.revision import PlanRevision
from gather.services import workflow


def _ready_plan(make, event):
    """One team, one critical item with an owner: passes the gate."""
    team = make.team(event, "Mains", domain="PROTEINS")
    item = make.item(team, "Turkey", critical=True)
    alex = make.person(event, "Alex")
    make.assign(item, alex)
    return team, item, alex


# ── Pure rules ───────────────────────────────────────────────────────────


@pytest.mark.parametrize("src,dst,ok", [
    ("DRAFT", "PLANNING", True),
    ("DRAFT", "CONFIRMING", True),
    ("PLANNING", "CONFIRMING", True),
    ("CONFIRMING", "FROZEN", True),
    ("FROZEN", "CONFIRMING", True),
    ("FROZEN", "COMPLETE", True),
    ("PLANNING", "FROZEN", False),
    ("CONFIRMING", "PLANNING", False),
    ("COMPLETE", "FROZEN", False),
    ("DRAFT", "DRAFT", True),
])
def test_can_transition(src, dst, ok):
    assert workflow.can_transition(src, dst) is ok


def test_can_mutate_rules():
    assert workflow.can_mutate("DRAFT", "delete_item", item_critical=True)
    assert workflow.can_mutate("PLANNING", "assign_item")
    assert workflow.can_mutate("CONFIRMING", "delete_item", item_critical=False)
    assert not workflow.can_mutate("CONFIRMING", "delete_item", item_critical=True)
    assert workflow.can_mutate("CONFIRMING", "create_item")
    assert not workflow.can_mutate("FROZEN", "create_item")
    assert not workflow.can_mutate("COMPLETE", "update_item")


def test_can_mutate_unknown_action_raises():
    with pytest.raises(ValueError):
        workflow.can_mutate("DRAFT", "teleport_item")


def test_compute_team_status(make, host):
    team = make.team(host["event"])
    alex = make.person(host["event"], "Alex")
    plain = make.item(team, "Napkins")
    critical = make.item(team, "Gravy", critical=True)

    assert workflow.compute_team_status([plain]) == "GAP"
    assert workflow.compute_team_status([plain, critical]) == "CRITICAL_GAP"

    make.assign(plain, alex)
    make.assign(critical, alex)
    db.session.refresh(plain)
    db.session.refresh(critical)
    assert workflow.compute_team_status([plain, critical]) == "SORTED"
    assert workflow.compute_team_status([]) == "SORTED"


# ── Transitions ──────────────────────────────────────────────────────────


def test_transition_blocked_by_gate_carries_blocks(host):
    with pytest.raises(InvalidTransitionError) as exc:
        workflow.transition_event(host["event"].id, "CONFIRMING", "user:1")
    codes = {b["code"] for b in exc.value.blocks}
    assert "STRUCTURAL_MINIMUM_TEAMS" in codes
    assert "STRUCTURAL_MINIMUM_ITEMS" in codes
    assert db.session.get(type(host["event"]), host["event"].id).status == "DRAFT"
    assert PlanRevision.query.count() == 0


def test_transition_to_confirming_snapshots_before_change(make, host):
    _ready_plan(make, host["event"])

    result = workflow.transition_event(host["event"].id, "CONFIRMING", "user:1")

    assert result["previousStatus"] == "DRAFT"
    assert result["event"]["status"] == "CONFIRMING"
    rev = db.session.get(PlanRevision, result["revision"]["id"])
    assert rev.revision_number == 1
    assert rev.reason == "Transition to CONFIRMING"
    assert rev.event_status == "DRAFT"
    assert AuditEntry.query.filter_by(action_type="TRANSITION_TO_CONFIRMING").count() == 1


def test_freeze_attaches_readiness(make, host):
    _ready_plan(make, host["event"])
    workflow.transition_event(host["event"].id, "CONFIRMING", "user:1")

    result = workflow.transition_event(host["event"].id, "FROZEN", "user:1")

    assert result["event"]["status"] == "FROZEN"
    assert result["readiness"]["canFreeze"] is False
    assert result["revision"]["revision_number"] == 2


def test_unfreeze_is_audited_as_override(make, host):
    _ready_plan(make, host["event"])
    workflow.transition_event(host["event"].id, "CONFIRMING", "user:1")
    workflow.transition_event(host["event"].id, "FROZEN", "user:1")

    result = workflow.transition_event(host["event"].id, "CONFIRMING", "user:1")

    assert result["previousStatus"] == "FROZEN"
    assert AuditEntry.query.filter_by(action_type="UNFREEZE_OVERRIDE").count() == 1


def test_same_state_is_noop(host):
    result = workflow.transition_event(host["event"].id, "DRAFT", "user:1")
    assert result["revision"] is None
    assert PlanRevision.query.count() == 0


def test_illegal_and_unknown_targets(host):
    with pytest.raises(InvalidTransitionError):
        workflow.transition_event(host["event"].id, "FROZEN", "user:1")
    with pytest.raises(ValidationError):
        workflow.transition_event(host["event"].id, "PARTY", "user:1")


def test_archived_event_cannot_transition(make, host):
    _ready_plan(make, host["event"])
    workflow.archive_event(host["event"].id, "user:1")
    with pytest.raises(InvalidTransitionError):
        workflow.transition_event(host["event"].id, "CONFIRMING", "user:1")

    restored = workflow.restore_event(host["event"].id, "user:1")
    assert restored.archived is False


def test_transition_refused_when_billing_blocks_edit(make):
    lapsed = make.user("lapsed@example.com", billing_status="CANCELED")
    event = make.event(lapsed)
    _ready_plan(make, event)
    with pytest.raises(ForbiddenError):
        workflow.transition_event(event.id, "CONFIRMING", "user:9")


# ── Mutation guards ──────────────────────────────────────────────────────


def test_frozen_plan_rejects_mutation(make, host):
    event = host["event"]
    event.status = "FROZEN"
    db.session.commit()
    with pytest.raises(ValidationError) as exc:
        workflow.ensure_mutable(event, "create_item")
    assert exc.value.details["status"] == "FROZEN"


# ── People ───────────────────────────────────────────────────────────────


def test_remove_person_releases_items_and_tokens(make, host):
    event = host["event"]
    team = make.team(event)
    sam = make.person(event, "Sam")
    first = make.item(team, "Ham")
    second = make.item(team, "Pavlova")
    make.assign(first, sam)
    make.assign(second, sam)
    make.token(event, "PARTICIPANT", person=sam)

    result = workflow.remove_person(event.id, sam.id, "user:1")

    assert result == {"success": True, "assignmentsRemoved": 2}
    assert Assignment.query.count() == 0
    assert AccessToken.query.filter_by(person_id=sam.id).count() == 0
    assert PersonEvent.query.filter_by(person_id=sam.id).count() == 0
    assert db.session.get(Item, first.id).previously_assigned_to == "Sam"
    assert AuditEntry.query.filter_by(action_type="UNASSIGN_ITEM").count() == 2


def test_remove_person_clears_team_coordinator(make, host):
    event = host["event"]
    kim = make.person(event, "Kim")
    team = make.team(event, "Desserts", coordinator=kim)

    workflow.remove_person(event.id, kim.id, "user:1")

    assert db.session.get(Team, team.id).coordinator_id is None


def test_remove_unknown_person_is_404(host):
    with pytest.raises(NotFoundError):
        workflow.remove_person(host["event"].id, 999, "user:1")


# ── Invites ──────────────────────────────────────────────────────────────


def test_confirm_invites_requires_confirming(host):
    with pytest.raises(ValidationError):
        workflow.confirm_invites_sent(host["event"].id, "user:1")


def test_confirm_invites_anchor_first_write_wins(make, host):
    event = host["event"]
    event.status = "CONFIRMING"
    db.session.commit()
    alex = make.person(event, "Alex")

    first = workflow.confirm_invites_sent(event.id, "user:1")
    anchor = db.session.get(Person, alex.id).invite_anchor_at
    second = workflow.confirm_invites_sent(event.id, "user:1")

    assert first["peopleAnchored"] == 2
    assert first["totalPeople"] == 2
    assert second["peopleAnchored"] == 0
    assert db.session.get(Person, alex.id).invite_anchor_at == anchor
    log = InviteEvent.query.filter_by(type="INVITE_SEND_CONFIRMED").order_by(InviteEvent.id).all()
    assert [row.metadata_json["newAnchorsSet"] for row in log] == [2, 0]


def test_manual_override_updates_only_differing_rows(make, host):
    event = host["event"]
    team = make.team(event)
    jo = make.person(event, "Jo")
    make.assign(make.item(team, "Salad"), jo, response="PENDING")
    make.assign(make.item(team, "Bread"), jo, response="DECLINED")
    make.assign(make.item(team, "Wine"), jo, response="ACCEPTED")

    result = workflow.manual_override(event.id, jo.id, "ACCEPTED", "user:1")

    assert result["assignmentsUpdated"] == 2
    assert result["message"] == "Marked 2 assignment(s) as ACCEPTED"
    assert {a.response for a in Assignment.query.all()} == {"ACCEPTED"}
    row = InviteEvent.query.filter_by(type="MANUAL_OVERRIDE_MARKED").one()
    assert row.metadata_json["reason"] == "Confirmed outside the app"
    assert row.metadata_json["previousResponses"] == {"PENDING": 1, "DECLINED": 1, "ACCEPTED": 1}


def test_manual_override_ignores_other_events(make, host):
    event = host["event"]
    other = make.event(make.user("other@example.com"), name="Other")
    jo = make.person(event, "Jo")
    db.session.add(PersonEvent(event_id=other.id, person_id=jo.id, role="PARTICIPANT"))
    db.session.commit()
    make.assign(make.item(make.team(event), "Salad"), jo)
    foreign = make.assign(make.item(make.team(other), "Cake"), jo)

    result = workflow.manual_override(event.id, jo.id, "DECLINED", "user:1")

    assert result["assignmentsUpdated"] == 1
    assert db.session.get(Assignment, foreign.id).response == "PENDING"


def test_manual_override_rejects_pending(host):
    with pytest.raises(ValidationError):
        workflow.manual_override(host["event"].id, host["person"].id, "PENDING", "user:1")


def test_mark_for_review_flags_every_item(make, host):
    event = host["event"]
    team = make.team(event)
    make.item(team, "Ham")
    make.item(make.team(event, "Drinks"), "Punch")
    other_item = make.item(make.team(make.event(make.user("x@example.com"), name="X")), "Cake")

    result = workflow.mark_for_review(event.id, "user:1")

    assert result == {"success": True, "markedCount": 2}
    flagged = Item.query.filter_by(ai_generated=True, user_confirmed=False).all()
    assert len(flagged) == 2
    assert db.session.get(Item, other_item.id).ai_generated is False
