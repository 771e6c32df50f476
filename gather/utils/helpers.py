"""Shared parsing helpers for services and blueprints.

parse_date:        returns None on empty or bad input
parse_date_input:  raises ValidationError on bad input
normalize_email:   email_validator normalisation, ValidationError on bad input
parse_bool:        tolerant truthiness for JSON and query-string values
"""
import logging
from datetime import date, datetime

from email_validator import EmailNotValidError, validate_email

from gather.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse an ISO date (or datetime) string to a date, or None."""
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field: str):
    """Like parse_date but a non-empty unparseable value is an error."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid date for {field}", details={field: "Use YYYY-MM-DD"})
    return parsed


def normalize_email(email: str, field: str = "email") -> str:
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={field: str(e)})
    return valid.normalized.lower()


def parse_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_non_negative_int(value, field: str):
    if value in (None, ""):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "Not an integer"})
    if number < 0:
        raise ValidationError(f"{field} must not be negative", details={field: "Negative value"})
    return number
