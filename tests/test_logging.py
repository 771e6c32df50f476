"""Log records carry the request's event and actor."""

import json
import logging

from flask import g

from gather.middleware.logging_config import JSONFormatter, ReadableFormatter, RequestContextFilter
from gather.services.authorization import resolve_token


def _record(msg="Plan saved", **extra):
    record = logging.LogRecord("gather.services.plan_service", logging.WARNING, __file__, 10, msg, (), None)
    for key, val in extra.items():
        setattr(record, key, val)
    return record


def test_filter_stamps_actor_inside_a_request(app, host):
    event_id = host["event"].id
    with app.test_request_context(f"/api/v1/events/{event_id}"):
        g.actor = resolve_token(host["token"].token)
        g.request_id = "abc123"
        expected_actor = g.actor.actor_id
        record = _record()

        assert RequestContextFilter().filter(record) is True

    assert record.event_id == event_id
    assert record.actor_id == expected_actor
    assert record.scope == "HOST"
    assert record.request_id == "abc123"


def test_filter_keeps_explicit_extra(app, host):
    with app.test_request_context("/api/v1/health"):
        g.actor = resolve_token(host["token"].token)
        record = _record(actor_id="user:9")
        RequestContextFilter().filter(record)

    assert record.actor_id == "user:9"


def test_filter_is_a_no_op_outside_requests():
    record = _record()
    assert RequestContextFilter().filter(record) is True
    assert getattr(record, "actor_id", None) is None


def test_json_formatter_includes_context():
    line = JSONFormatter().format(_record(event_id=4, actor_id="user:2", scope="HOST", status=200))
    entry = json.loads(line)

    assert entry["msg"] == "Plan saved"
    assert entry["level"] == "WARNING"
    assert entry["event_id"] == 4
    assert entry["actor_id"] == "user:2"
    assert entry["scope"] == "HOST"
    assert entry["status"] == 200
    assert "method" not in entry


def test_readable_formatter_tags_actor():
    line = ReadableFormatter().format(_record(event_id=4, actor_id="person:7", scope="PARTICIPANT", duration_ms=12.4))

    assert line.endswith("Plan saved [event=4 actor=person:7@PARTICIPANT] (12ms)")
