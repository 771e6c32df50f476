"""
Route decorators for event-scoped authorization.

Usage:
    @conflict_bp.route("/events/<int:event_id>/conflicts/<int:conflict_id>/resolve", methods=["POST"])
    @require_event_role("HOST")
    def resolve_conflict(event_id, conflict_id):
        actor = g.actor            # ActorContext
        ...

    @event_bp.route("/events", methods=["POST"])
    @require_session
    def create_event():
        user = g.current_user
        ...

The view must take an ``event_id`` keyword argument for
``require_event_role``. Failures answer with the standard JSON error body
and never reach the view.
"""

import functools
import logging

from flask import g, request

from gather.core.exceptions import ForbiddenError, UnauthorizedError
from gather.services.authorization import (
    credentials_from_request,
    require_event_role as _require_event_role,
    resolve_session,
    SESSION_COOKIE,
)
from gather.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_event_role(*scopes: str):
    """
    Decorator: require a session or token bound to the route's event
    at one of ``scopes``.

    Sets g.actor to the resolved ActorContext.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            event_id = kwargs.get("event_id")
            try:
                g.actor = _require_event_role(
                    event_id, scopes, credentials_from_request(request),
                )
            except UnauthorizedError as exc:
                return api_error(E.UNAUTHORIZED, str(exc))
            except ForbiddenError as exc:
                logger.warning(
                    "Access denied: %s %s requires %s", request.method, request.path, "/".join(scopes),
                )
                return api_error(E.FORBIDDEN, str(exc))
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_session(f):
    """
    Decorator: require a logged-in user (``session`` cookie).

    Sets g.current_user.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = resolve_session(request.cookies.get(SESSION_COOKIE, ""))
        if user is None:
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        g.current_user = user
        return f(*args, **kwargs)

    return decorated
