"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in gather/__init__.py with no default limits; this
module applies granular limits per route category.

Usage:
    from gather.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

AUTH_LIMIT = "10/minute"
PARTICIPANT_LIMIT = "60/minute"
WRITE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:        10/minute  (magic links send email)
        - Participant links:     60/minute  (token guessing)
        - Event, plan, conflict: 120/minute
        - Health, cron:          exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(AUTH_LIMIT)(bp)

    bp = app.blueprints.get("participant")
    if bp:
        limiter.limit(PARTICIPANT_LIMIT)(bp)

    for bp_name in ("event", "plan", "conflict", "revision", "billing"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("health", "cron"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: auth=%s participant=%s api=%s",
        AUTH_LIMIT, PARTICIPANT_LIMIT, WRITE_LIMIT,
    )
