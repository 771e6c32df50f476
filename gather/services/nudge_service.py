"""
Nudge scheduler: SMS reminders for people who have not reacted to their
invite.

Called by an external cron trigger. Each run is idempotent within its
window: a person's ``nudge_24h_sent_at`` / ``nudge_48h_sent_at`` is
stamped as soon as a send succeeds, and a stamped nudge is never sent
again.

    24h nudge  anchor ≥ 24h ago, participant link never opened
    48h nudge  anchor ≥ 48h ago, no assignment answered yet

Nothing is sent during quiet hours (NUDGE_QUIET_START_HOUR to
NUDGE_QUIET_END_HOUR in NUDGE_TIMEZONE); the whole run is deferred.
"""

import logging
from collections import Counter
from datetime import timedelta
from zoneinfo import ZoneInfo

from flask import current_app

from gather.models import db
from gather.models.auth import AccessToken
from gather.models.base import as_utc, utcnow
from gather.models.event import Assignment, Event, Item, Person, PersonEvent, Team
from gather.services.invite_events import log_invite_event
from gather.services.sms_service import is_enabled, normalize_phone_number, send_sms

logger = logging.getLogger(__name__)

NUDGE_24H = "24h"
NUDGE_48H = "48h"

_TEMPLATES = {
    NUDGE_24H: "{host} is waiting for your response for {event}. Tap to view: {link} - Reply STOP to opt out",
    NUDGE_48H: "Reminder: {host} needs your response for {event}. Please confirm: {link} - Reply STOP to opt out",
}
_STAMP_FIELD = {NUDGE_24H: "nudge_24h_sent_at", NUDGE_48H: "nudge_48h_sent_at"}
_INVITE_EVENT = {NUDGE_24H: "NUDGE_SENT_24H", NUDGE_48H: "NUDGE_SENT_48H"}


def is_quiet_hours(now=None) -> bool:
    cfg = current_app.config
    local = (now or utcnow()).astimezone(ZoneInfo(cfg.get("NUDGE_TIMEZONE", "Pacific/Auckland")))
    start = cfg.get("NUDGE_QUIET_START_HOUR", 21)
    end = cfg.get("NUDGE_QUIET_END_HOUR", 8)
    return local.hour >= start or local.hour < end


def _host_name(event: Event) -> str:
    host = Person.query.filter_by(user_id=event.host_id).first() if event.host_id else None
    return host.name if host else "The host"


def _has_responded(person_id: int, event_id: int) -> bool:
    return (
        db.session.query(Assignment.id)
        .join(Item, Assignment.item_id == Item.id)
        .join(Team, Item.team_id == Team.id)
        .filter(
            Team.event_id == event_id,
            Assignment.person_id == person_id,
            Assignment.response != "PENDING",
        )
        .first()
        is not None
    )


def find_nudge_candidates(now=None) -> dict:
    """People in CONFIRMING events who are due a nudge.

    Returns:
        {"eligible24h": [...], "eligible48h": [...], "skipped": {reason: n}}
    """
    now = now or utcnow()
    rows = (
        db.session.query(PersonEvent, Person, Event)
        .join(Person, PersonEvent.person_id == Person.id)
        .join(Event, PersonEvent.event_id == Event.id)
        .filter(
            Event.status == "CONFIRMING",
            Event.archived.is_(False),
            Person.invite_anchor_at.isnot(None),
            Person.phone_number.isnot(None),
        )
        .order_by(Event.id, Person.id)
        .all()
    )

    eligible_24h, eligible_48h = [], []
    skipped = Counter()
    for _membership, person, event in rows:
        token = AccessToken.query.filter_by(
            event_id=event.id, person_id=person.id, scope="PARTICIPANT",
        ).first()
        if token is None:
            skipped["No participant token"] += 1
            continue
        if normalize_phone_number(person.phone_number) is None:
            skipped["Invalid/non-NZ phone"] += 1
            continue
        if person.sms_opted_out:
            skipped["Opted out"] += 1
            continue

        anchor = as_utc(person.invite_anchor_at)
        candidate = {"person": person, "event": event, "token": token}
        if (
            anchor <= now - timedelta(hours=24)
            and token.opened_at is None
            and person.nudge_24h_sent_at is None
        ):
            eligible_24h.append(candidate)
        if (
            anchor <= now - timedelta(hours=48)
            and person.nudge_48h_sent_at is None
            and not _has_responded(person.id, event.id)
        ):
            eligible_48h.append(candidate)

    return {"eligible24h": eligible_24h, "eligible48h": eligible_48h, "skipped": dict(skipped)}


def send_nudge(candidate: dict, nudge_type: str) -> dict | None:
    """Send one nudge; None when this person was already nudged this run."""
    person, event, token = candidate["person"], candidate["event"], candidate["token"]
    stamp_field = _STAMP_FIELD[nudge_type]
    if getattr(person, stamp_field) is not None:
        return None

    base_url = current_app.config.get("APP_URL", "").rstrip("/")
    message = _TEMPLATES[nudge_type].format(
        host=_host_name(event), event=event.name, link=f"{base_url}/p/{token.token}",
    )
    result = send_sms(person.phone_number, message)
    if not result.ok:
        logger.warning("Nudge %s to person %s failed: %s", nudge_type, person.id, result.error)
        return {"person_id": person.id, "type": nudge_type, "success": False, "error": result.error}

    setattr(person, stamp_field, utcnow())
    db.session.commit()
    log_invite_event(
        event.id,
        _INVITE_EVENT[nudge_type],
        person_id=person.id,
        metadata={"messageId": result.message_id, "messageLength": len(message)},
    )
    return {"person_id": person.id, "type": nudge_type, "success": True}


def run_nudge_scheduler(now=None) -> dict:
    """One scheduler pass. Failures are counted, never raised."""
    now = now or utcnow()
    summary = {
        "timestamp": now.isoformat(),
        "smsEnabled": is_enabled(),
        "candidates": {"eligible24h": 0, "eligible48h": 0, "skipped": {}},
        "results": {"sent": 0, "succeeded": 0, "failed": 0, "deferred": 0},
        "errors": [],
    }
    if not summary["smsEnabled"]:
        logger.info("Nudge scheduler: SMS not configured, skipping")
        summary["errors"].append("SMS not configured")
        return summary

    candidates = find_nudge_candidates(now)
    summary["candidates"] = {
        "eligible24h": len(candidates["eligible24h"]),
        "eligible48h": len(candidates["eligible48h"]),
        "skipped": candidates["skipped"],
    }

    if is_quiet_hours(now):
        deferred = len(candidates["eligible24h"]) + len(candidates["eligible48h"])
        summary["results"]["deferred"] = deferred
        logger.info("Nudge scheduler: quiet hours, %d nudge(s) deferred", deferred)
        return summary

    for nudge_type, key in ((NUDGE_24H, "eligible24h"), (NUDGE_48H, "eligible48h")):
        for candidate in candidates[key]:
            outcome = send_nudge(candidate, nudge_type)
            if outcome is None:
                continue
            summary["results"]["sent"] += 1
            if outcome["success"]:
                summary["results"]["succeeded"] += 1
            else:
                summary["results"]["failed"] += 1
                summary["errors"].append(f"person {outcome['person_id']}: {outcome['error']}")

    logger.info(
        "Nudge scheduler: sent=%d succeeded=%d failed=%d",
        summary["results"]["sent"], summary["results"]["succeeded"], summary["results"]["failed"],
    )
    return summary
