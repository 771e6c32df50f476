"""
Freeze-readiness and gate-check evaluators.

Both are pure reads: neither touches event status nor any other row,
so calling them twice without an intervening change gives the same
answer.

  check_freeze_readiness   advisory; compliance rate + warnings.
                           ``canFreeze`` is the UI unlock at the
                           FREEZE_COMPLIANCE_THRESHOLD (inclusive).
  run_gate_check           authoritative; itemised hard blocks.
                           ``passed`` iff there are no blocks.

Gate block codes:
    STRUCTURAL_MINIMUM_TEAMS
    STRUCTURAL_MINIMUM_ITEMS
    CRITICAL_ITEM_UNASSIGNED
    CRITICAL_PLACEHOLDER_UNACKNOWLEDGED
    CRITICAL_CONFLICT_UNACKNOWLEDGED
"""

import logging
from fractions import Fraction

from flask import current_app

from gather.core.exceptions import NotFoundError
from gather.models import db
from gather.models.conflict import ACTIVE_CONFLICT_STATUSES, Acknowledgement, Conflict
from gather.models.event import Assignment, Event, Item, Team

logger = logging.getLogger(__name__)

# Conflict types already covered by a direct item check in the gate
_GATE_COVERED_TYPES = frozenset({"CRITICAL_ITEM_UNASSIGNED", "QUANTITY_MISSING"})


def _get_event(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)
    return event


def _event_items(event_id: int) -> list[Item]:
    return (
        Item.query.join(Team, Item.team_id == Team.id)
        .filter(Team.event_id == event_id)
        .order_by(Team.name, Item.name, Item.id)
        .all()
    )


def _unassigned_critical(items) -> list[Item]:
    return [i for i in items if i.critical and i.assignment is None]


def compliance_rate(accepted: int, total: int) -> float:
    if total == 0:
        return 0.0
    return accepted / total


def meets_threshold(accepted: int, total: int, threshold: float) -> bool:
    """Exact comparison, so 4/5 against 0.8 is never lost to float rounding."""
    if total == 0:
        return False
    return Fraction(accepted, total) >= Fraction(str(threshold))


# ═════════════════════════════════════════════════════════════════════════
# Freeze readiness (advisory)
# ═════════════════════════════════════════════════════════════════════════


def check_freeze_readiness(event_id: int) -> dict:
    """Advisory go/no-go for freezing.

    Returns:
        {canFreeze, warnings[], complianceRate, criticalGaps[]}
    """
    _get_event(event_id)
    threshold = current_app.config.get("FREEZE_COMPLIANCE_THRESHOLD", 0.8)

    responses = [
        r for (r,) in (
            db.session.query(Assignment.response)
            .join(Item, Assignment.item_id == Item.id)
            .join(Team, Item.team_id == Team.id)
            .filter(Team.event_id == event_id)
            .all()
        )
    ]
    total = len(responses)
    accepted = sum(1 for r in responses if r == "ACCEPTED")
    pending = sum(1 for r in responses if r == "PENDING")
    declined = sum(1 for r in responses if r == "DECLINED")

    items = _event_items(event_id)
    critical_gaps = [
        {
            "type": "UNASSIGNED_CRITICAL_ITEM",
            "item_id": i.id,
            "item_name": i.name,
            "team_name": i.team.name,
        }
        for i in _unassigned_critical(items)
    ]
    open_critical = (
        Conflict.query_for_event(event_id)
        .filter(Conflict.severity == "CRITICAL", Conflict.status.in_(ACTIVE_CONFLICT_STATUSES))
        .order_by(Conflict.id)
        .all()
    )
    critical_gaps.extend(
        {
            "type": "UNRESOLVED_CRITICAL_CONFLICT",
            "conflict_id": c.id,
            "title": c.title,
            "status": c.status,
        }
        for c in open_critical
    )

    rate = compliance_rate(accepted, total)
    warnings = []
    if total == 0:
        warnings.append("No assignments yet")
    if pending:
        warnings.append(f"{pending} of {total} assignments still awaiting a response")
    if declined:
        warnings.append(f"{declined} assignment(s) declined and need a new owner")
    if total and not meets_threshold(accepted, total, threshold):
        warnings.append(
            f"Confirmation rate {rate:.0%} is below the {threshold:.0%} freeze threshold"
        )
    if critical_gaps:
        warnings.append(f"{len(critical_gaps)} critical gap(s) outstanding")

    return {
        "canFreeze": meets_threshold(accepted, total, threshold),
        "warnings": warnings,
        "complianceRate": rate,
        "criticalGaps": critical_gaps,
    }


# ═════════════════════════════════════════════════════════════════════════
# Gate check (blocking)
# ═════════════════════════════════════════════════════════════════════════


def _block(code: str, description: str, **refs) -> dict:
    block = {"code": code, "description": description}
    block.update(refs)
    return block


def run_gate_check(event_id: int) -> dict:
    """Hard pre-transition validation.

    Returns:
        {passed: bool, blocks: [{code, description, ...refs}]}
    """
    _get_event(event_id)
    cfg = current_app.config
    min_teams = cfg.get("GATE_MIN_TEAMS", 1)
    min_items = cfg.get("GATE_MIN_ITEMS", 1)

    blocks = []

    team_count = Team.query_for_event(event_id).count()
    if team_count < min_teams:
        blocks.append(_block(
            "STRUCTURAL_MINIMUM_TEAMS",
            f"Plan needs at least {min_teams} team(s); it has {team_count}",
        ))

    items = _event_items(event_id)
    if len(items) < min_items:
        blocks.append(_block(
            "STRUCTURAL_MINIMUM_ITEMS",
            f"Plan needs at least {min_items} item(s); it has {len(items)}",
        ))

    for item in _unassigned_critical(items):
        blocks.append(_block(
            "CRITICAL_ITEM_UNASSIGNED",
            f'Critical item "{item.name}" in team {item.team.name} has no one assigned',
            item_id=item.id,
            item_name=item.name,
        ))

    for item in items:
        if item.critical and item.quantity_state == "PLACEHOLDER" and not item.placeholder_acknowledged:
            blocks.append(_block(
                "CRITICAL_PLACEHOLDER_UNACKNOWLEDGED",
                f'Critical item "{item.name}" has a placeholder quantity that was not acknowledged',
                item_id=item.id,
                item_name=item.name,
            ))

    acknowledged_ids = {
        cid for (cid,) in (
            db.session.query(Acknowledgement.conflict_id)
            .filter(Acknowledgement.event_id == event_id, Acknowledgement.status == "ACTIVE")
            .all()
        )
    }
    critical_conflicts = (
        Conflict.query_for_event(event_id)
        .filter(Conflict.severity == "CRITICAL", Conflict.status.in_(("OPEN", "DELEGATED")))
        .order_by(Conflict.id)
        .all()
    )
    for conflict in critical_conflicts:
        if conflict.type in _GATE_COVERED_TYPES or conflict.id in acknowledged_ids:
            continue
        blocks.append(_block(
            "CRITICAL_CONFLICT_UNACKNOWLEDGED",
            f"Critical conflict not acknowledged: {conflict.title}",
            conflict_id=conflict.id,
        ))

    if blocks:
        logger.info("Gate check event=%s blocked: %s", event_id, [b["code"] for b in blocks])
    return {"passed": not blocks, "blocks": blocks}
