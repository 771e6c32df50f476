"""
Logging setup for the Gather API.

Every record emitted while a request is active carries the request's
``request_id``, ``event_id``, ``actor_id`` and ``scope`` (see
``RequestContextFilter``), so a service-layer warning can be traced back
to the caller without each service passing them through ``extra=``.

Output is JSON lines outside DEBUG/TESTING and a one-line readable form
otherwise. LOG_LEVEL overrides the level in either mode.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

CONTEXT_FIELDS = ("request_id", "event_id", "actor_id", "scope")
ACCESS_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


class RequestContextFilter(logging.Filter):
    """Stamp the active request's actor and event onto each record.

    Values already passed through ``extra=`` win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        actor = getattr(g, "actor", None)
        stamped = {
            "request_id": getattr(g, "request_id", None),
            "event_id": (request.view_args or {}).get("event_id"),
            "actor_id": actor.actor_id if actor is not None else None,
            "scope": actor.scope if actor is not None else None,
        }
        for key, val in stamped.items():
            if getattr(record, key, None) is None and val is not None:
                setattr(record, key, val)
        return True


def _context_of(record: logging.LogRecord) -> dict:
    out = {}
    for key in CONTEXT_FIELDS + ACCESS_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            out[key] = val
    return out


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context_of(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [event=.. actor=..@SCOPE] (12ms)``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = []
        event_id = getattr(record, "event_id", None)
        if event_id is not None:
            tags.append(f"event={event_id}")
        actor_id = getattr(record, "actor_id", None)
        if actor_id is not None:
            scope = getattr(record, "scope", None)
            tags.append(f"actor={actor_id}@{scope}" if scope else f"actor={actor_id}")
        line = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        if tags:
            line += f" [{' '.join(tags)}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for this app."""
    verbose = app.config.get("DEBUG", False) or app.config.get("TESTING", False)
    level_name = os.getenv("LOG_LEVEL", "DEBUG" if verbose else "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ReadableFormatter() if verbose else JSONFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    # the factory runs once per test; replace rather than stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING", False):
        app.logger.info("Logging ready: level=%s json=%s", level_name, not verbose)
