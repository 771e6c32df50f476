"""
Conflict detector.

Scans an event's plan graph (teams, items, assignments, days) and
reconciles the findings into Conflict rows.

Rules (one function each, all pure reads of the loaded graph):
    critical item unassigned       CRITICAL  FIX_IN_PLAN        delegatable
    critical placeholder quantity  CRITICAL  DECISION_REQUIRED
    dietary gap (veg / GF)         CRITICAL  FIX_IN_PLAN
    oven capacity exceeded         WARNING   FIX_IN_PLAN        delegatable
    person double-booked           WARNING   FIX_IN_PLAN        delegatable
    occasion coverage gap          WARNING   FIX_IN_PLAN
    unconfirmed suggested items    INFO      INFORMATIONAL

Reconciliation (``save_conflicts``) keys on ``fingerprint``:
    new fingerprint          → create OPEN
    existing OPEN            → refresh text / affected items / inputs
    existing DISMISSED       → reopened only if an input it referenced
                               now has a different value
    existing RESOLVED by "system" → reopened (the cause came back)
    existing RESOLVED by a user, or ACKNOWLEDGED / DELEGATED → untouched
    active conflict no longer detected → RESOLVED by "system"

Usage:
    from gather.services.conflict_detector import run_conflict_check

    result = run_conflict_check(event_id=12, actor_id="user:3")
"""

import logging
from collections import defaultdict

from sqlalchemy.exc import IntegrityError

from gather.core.exceptions import NotFoundError
from gather.models import db
from gather.models.audit import write_audit
from gather.models.base import utcnow
from gather.models.conflict import (
    ACTIVE_CONFLICT_STATUSES,
    CONFLICT_TYPES,
    RESOLUTION_CLASSES,
    SEVERITY_RANK,
    Conflict,
)
from gather.models.event import Event, Item, Team

logger = logging.getLogger(__name__)

EXPECTED_DOMAINS = {
    "CHRISTMAS": ["PROTEINS", "SIDES", "DESSERTS", "DRINKS"],
    "THANKSGIVING": ["PROTEINS", "SIDES", "DESSERTS", "DRINKS"],
    "BIRTHDAY": ["DESSERTS", "DRINKS"],
    "WEDDING": ["PROTEINS", "SIDES", "DESSERTS", "DRINKS", "STARTERS"],
}

SYSTEM_RESOLVER = "system"

# Fields refreshed on an OPEN conflict when it is detected again
_REFRESHABLE = (
    "title", "description", "severity", "affected_items",
    "affected_parties", "suggestion", "inputs_referenced",
)


# ═════════════════════════════════════════════════════════════════════════
# Plan graph + input references
# ═════════════════════════════════════════════════════════════════════════


class PlanGraph:
    """The event plan loaded once per detection pass."""

    def __init__(self, event: Event):
        self.event = event
        self.teams = Team.query_for_event(event.id).order_by(Team.name, Team.id).all()
        self.items = (
            Item.query.join(Team, Item.team_id == Team.id)
            .filter(Team.event_id == event.id)
            .order_by(Item.id)
            .all()
        )
        self.teams_by_id = {t.id: t for t in self.teams}
        self.items_by_id = {i.id: i for i in self.items}


_EVENT_DERIVED = {
    "vegetarian_item_count": lambda g: sum(1 for i in g.items if i.vegetarian),
    "gluten_free_item_count": lambda g: sum(1 for i in g.items if i.gluten_free),
    "team_domains": lambda g: sorted({t.domain for t in g.teams if t.domain}),
}

_ITEM_DERIVED = {
    "assigned_person_id": lambda item: item.assignment.person_id if item.assignment else None,
}


def _ref(kind: str, ref_id, field: str, value) -> dict:
    return {"type": kind, "id": ref_id, "field": field, "value": value}


def current_input_value(graph: PlanGraph, ref: dict):
    """Read the live value an input reference points at (None if gone)."""
    kind, field = ref.get("type"), ref.get("field")
    if kind == "event":
        if field in _EVENT_DERIVED:
            return _EVENT_DERIVED[field](graph)
        return getattr(graph.event, field, None)
    if kind == "item":
        item = graph.items_by_id.get(ref.get("id"))
        if item is None:
            return None
        if field in _ITEM_DERIVED:
            return _ITEM_DERIVED[field](item)
        return getattr(item, field, None)
    if kind == "team":
        team = graph.teams_by_id.get(ref.get("id"))
        return getattr(team, field, None) if team is not None else None
    return None


def inputs_changed(graph: PlanGraph, refs) -> bool:
    for ref in refs or []:
        if current_input_value(graph, ref) != ref.get("value"):
            return True
    return False


# ═════════════════════════════════════════════════════════════════════════
# Detection rules
# ═════════════════════════════════════════════════════════════════════════


def _rule_critical_unassigned(g: PlanGraph) -> list[dict]:
    out = []
    for item in g.items:
        if not item.critical or item.assignment is not None:
            continue
        team = g.teams_by_id.get(item.team_id)
        out.append({
            "fingerprint": f"critical-unassigned-{item.id}",
            "type": "CRITICAL_ITEM_UNASSIGNED",
            "severity": "CRITICAL",
            "resolution_class": "FIX_IN_PLAN",
            "can_delegate": True,
            "title": f'Critical item "{item.name}" is unassigned',
            "description": (
                f'"{item.name}" in team {team.name if team else "?"} is marked critical '
                "but nobody is bringing it."
            ),
            "affected_items": [item.id],
            "affected_parties": [team.name] if team else [],
            "suggestion": {"action": "assign_item", "item_id": item.id},
            "inputs_referenced": [
                _ref("item", item.id, "critical", True),
                _ref("item", item.id, "assigned_person_id", None),
            ],
        })
    return out


def _rule_placeholder_quantities(g: PlanGraph) -> list[dict]:
    items = [
        i for i in g.items
        if i.critical and i.quantity_state == "PLACEHOLDER" and not i.placeholder_acknowledged
    ]
    if not items:
        return []
    return [{
        "fingerprint": f"placeholder-quantities-{g.event.id}",
        "type": "QUANTITY_MISSING",
        "severity": "CRITICAL",
        "resolution_class": "DECISION_REQUIRED",
        "can_delegate": False,
        "title": "Critical items have placeholder quantities",
        "description": (
            f"{len(items)} critical item(s) have placeholder quantities that need to be "
            "specified or acknowledged before confirming."
        ),
        "affected_items": [i.id for i in items],
        "affected_parties": [],
        "suggestion": {
            "action": "specify_quantities",
            "items": [{"id": i.id, "name": i.name, "current": i.quantity_text} for i in items],
        },
        "inputs_referenced": [_ref("item", i.id, "quantity_state", "PLACEHOLDER") for i in items],
    }]


def _rule_oven_capacity(g: PlanGraph) -> list[dict]:
    capacity = g.event.venue_oven_count or 1
    slots = defaultdict(list)
    for item in g.items:
        if item.needs_oven and item.serve_time:
            slots[(item.day_id, item.serve_time)].append(item)

    out = []
    for (day_id, slot), items in sorted(slots.items(), key=lambda kv: (kv[0][0] or 0, kv[0][1])):
        if len(items) <= capacity:
            continue
        out.append({
            "fingerprint": f"timing-oven-{g.event.id}-{day_id or 'any'}-{slot}",
            "type": "TIMING",
            "severity": "WARNING",
            "resolution_class": "FIX_IN_PLAN",
            "can_delegate": True,
            "title": "Oven capacity exceeded",
            "description": (
                f"{len(items)} items need the oven at {slot}, "
                f"but only {capacity} oven(s) available."
            ),
            "affected_items": [i.id for i in items],
            "affected_parties": [],
            "suggestion": {
                "action": "adjust_timing",
                "options": [
                    "Stagger cooking times",
                    "Use another cooking method",
                    "Prepare some items in advance",
                ],
            },
            "inputs_referenced": [_ref("event", g.event.id, "venue_oven_count", capacity)],
        })
    return out


def _rule_dietary_gaps(g: PlanGraph) -> list[dict]:
    out = []
    checks = (
        ("vegetarian", "dietary_vegetarian", "vegetarian_item_count", "No vegetarian options"),
        ("gluten-free", "dietary_gluten_free", "gluten_free_item_count", "No gluten-free options"),
    )
    for label, guest_field, count_field, title in checks:
        guests = getattr(g.event, guest_field) or 0
        if guests <= 0 or _EVENT_DERIVED[count_field](g) > 0:
            continue
        out.append({
            "fingerprint": f"dietary-{label}-{g.event.id}",
            "type": "DIETARY_GAP",
            "severity": "CRITICAL",
            "resolution_class": "FIX_IN_PLAN",
            "can_delegate": False,
            "title": title,
            "description": f"Event has {guests} {label} guest(s) but no {label} items in the plan.",
            "affected_items": [],
            "affected_parties": [f"{label} guests"],
            "suggestion": {"action": "add_items", "dietary_type": label, "minimum_needed": 1},
            "inputs_referenced": [
                _ref("event", g.event.id, guest_field, guests),
                _ref("event", g.event.id, count_field, 0),
            ],
        })
    return out


def _rule_coverage_gaps(g: PlanGraph) -> list[dict]:
    expected = EXPECTED_DOMAINS.get(g.event.occasion_type or "")
    if not expected:
        return []
    present = _EVENT_DERIVED["team_domains"](g)
    missing = [d for d in expected if d not in present]
    if not missing:
        return []
    return [{
        "fingerprint": f"coverage-domains-{g.event.id}",
        "type": "COVERAGE_GAP",
        "severity": "WARNING",
        "resolution_class": "FIX_IN_PLAN",
        "can_delegate": False,
        "title": "Missing expected food categories",
        "description": (
            f"For a {g.event.occasion_type} event you would usually have: "
            f"{', '.join(missing)}. Currently missing from the plan."
        ),
        "affected_items": [],
        "affected_parties": [],
        "suggestion": {"action": "add_teams", "missing_domains": missing},
        "inputs_referenced": [
            _ref("event", g.event.id, "occasion_type", g.event.occasion_type),
            _ref("event", g.event.id, "team_domains", present),
        ],
    }]


def _rule_double_booked(g: PlanGraph) -> list[dict]:
    slots = defaultdict(list)
    for item in g.items:
        a = item.assignment
        if a is None or a.response == "DECLINED" or not item.serve_time:
            continue
        slots[(a.person_id, item.day_id, item.serve_time)].append(item)

    out = []
    for (person_id, day_id, slot), items in sorted(
        slots.items(), key=lambda kv: (kv[0][0], kv[0][1] or 0, kv[0][2]),
    ):
        if len(items) < 2:
            continue
        person = items[0].assignment.person
        name = person.name if person else f"Person {person_id}"
        out.append({
            "fingerprint": f"double-booked-{person_id}-{day_id or 'any'}-{slot}",
            "type": "DOUBLE_BOOKED",
            "severity": "WARNING",
            "resolution_class": "FIX_IN_PLAN",
            "can_delegate": True,
            "title": f"{name} is double-booked at {slot}",
            "description": (
                f"{name} is down for {len(items)} items served at {slot}: "
                f"{', '.join(i.name for i in items)}."
            ),
            "affected_items": [i.id for i in items],
            "affected_parties": [name],
            "suggestion": {"action": "reassign_item", "person_id": person_id},
            "inputs_referenced": [
                _ref("item", i.id, "assigned_person_id", person_id) for i in items
            ],
        })
    return out


def _rule_unconfirmed_suggestions(g: PlanGraph) -> list[dict]:
    items = [i for i in g.items if i.ai_generated and not i.user_confirmed]
    if not items:
        return []
    return [{
        "fingerprint": f"unconfirmed-suggestions-{g.event.id}",
        "type": "UNCONFIRMED_SUGGESTION",
        "severity": "INFO",
        "resolution_class": "INFORMATIONAL",
        "can_delegate": False,
        "title": "Suggested items awaiting review",
        "description": f"{len(items)} suggested item(s) have not been confirmed by the host.",
        "affected_items": [i.id for i in items],
        "affected_parties": [],
        "suggestion": {"action": "review_items"},
        "inputs_referenced": [],
    }]


RULES = (
    _rule_critical_unassigned,
    _rule_placeholder_quantities,
    _rule_dietary_gaps,
    _rule_oven_capacity,
    _rule_double_booked,
    _rule_coverage_gaps,
    _rule_unconfirmed_suggestions,
)


def detect_conflicts(graph: PlanGraph) -> list[dict]:
    """Run every rule; returns candidate dicts (no writes)."""
    candidates = []
    for rule in RULES:
        for cand in rule(graph):
            if (
                cand["type"] not in CONFLICT_TYPES
                or cand["severity"] not in SEVERITY_RANK
                or cand["resolution_class"] not in RESOLUTION_CLASSES
            ):
                raise ValueError(f"{rule.__name__} produced an unknown conflict shape: {cand['fingerprint']}")
            candidates.append(cand)
    return candidates


# ═════════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════════


def _reopen(row: Conflict, cand: dict, now, actor_id: str, details: str) -> None:
    row.status = "OPEN"
    row.dismissed_at = None
    row.resolved_by = None
    row.resolved_at = None
    row.reopened_at = now
    for field in _REFRESHABLE:
        setattr(row, field, cand[field])
    write_audit(
        event_id=row.event_id, actor_id=actor_id, action_type="REOPEN_CONFLICT",
        target_type="Conflict", target_id=row.id, details=details,
    )


def save_conflicts(graph: PlanGraph, candidates: list[dict], actor_id: str = "system") -> dict:
    """Reconcile candidates into Conflict rows (flush only, no commit)."""
    event_id = graph.event.id
    existing = {c.fingerprint: c for c in Conflict.query_for_event(event_id).all()}
    seen = set()
    summary = {"created": 0, "updated": 0, "reopened": 0, "auto_resolved": 0, "unchanged": 0}
    now = utcnow()

    for cand in candidates:
        fp = cand["fingerprint"]
        seen.add(fp)
        row = existing.get(fp)

        if row is None:
            db.session.add(Conflict(event_id=event_id, status="OPEN", **cand))
            summary["created"] += 1
        elif row.status == "OPEN":
            for field in _REFRESHABLE:
                setattr(row, field, cand[field])
            summary["updated"] += 1
        elif row.status == "DISMISSED" and inputs_changed(graph, row.inputs_referenced):
            _reopen(row, cand, now, actor_id, f"Inputs changed since dismissal: {cand['title']}")
            summary["reopened"] += 1
        elif row.status == "RESOLVED" and row.resolved_by == SYSTEM_RESOLVER:
            _reopen(row, cand, now, actor_id, f"Detected again after auto-resolve: {cand['title']}")
            summary["reopened"] += 1
        else:
            summary["unchanged"] += 1

    for fp, row in existing.items():
        if fp in seen or row.status not in ACTIVE_CONFLICT_STATUSES:
            continue
        row.status = "RESOLVED"
        row.resolved_by = SYSTEM_RESOLVER
        row.resolved_at = now
        summary["auto_resolved"] += 1

    db.session.flush()
    return summary


def run_conflict_check(event_id: int, actor_id: str = "system") -> dict:
    """Detect and reconcile conflicts for one event, then commit.

    A concurrent pass can insert the same fingerprint first; the unique
    (event_id, fingerprint) constraint turns that into one retry.
    """
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)

    for attempt in (1, 2):
        graph = PlanGraph(event)
        candidates = detect_conflicts(graph)
        try:
            summary = save_conflicts(graph, candidates, actor_id=actor_id)
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            if attempt == 2:
                raise
            logger.info("Concurrent conflict check on event %s, retrying", event_id)

    logger.info(
        "Conflict check event=%s created=%d updated=%d reopened=%d auto_resolved=%d",
        event_id, summary["created"], summary["updated"],
        summary["reopened"], summary["auto_resolved"],
    )
    return {"summary": summary, "detected": len(candidates)}
