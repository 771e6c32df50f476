"""
Startup diagnostics: runs once when the Flask app starts.

Checks critical dependencies and logs a summary banner.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from gather.models import db

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        table_count = "?"
        try:
            db.session.execute(db.text("SELECT 1"))
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found, run 'flask db upgrade'")
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        limiter_storage = app.config.get("REDIS_URL", "memory://")
        if limiter_storage.startswith("memory"):
            issues.append("Rate limiter uses in-memory storage; limits are per process")

        logger.info(
            "Startup: python=%s debug=%s database=%s (%s) tables=%s limiter=%s "
            "mail=%s sms=%s cron_secret=%s",
            py,
            app.debug,
            db_type,
            db_status,
            table_count,
            limiter_storage.split("://", 1)[0],
            "smtp" if app.config.get("MAIL_SERVER") else "log-only",
            "gateway" if app.config.get("SMS_GATEWAY_URL") else "disabled",
            "set" if app.config.get("CRON_SECRET") else "NOT SET",
        )

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  %s", issue)
        else:
            logger.info("All startup checks passed")
