"""
Passwordless login: magic links and cookie sessions.

    request_magic_link  → always {"ok": True} for a well-formed email;
                          silently drops the request once an address has
                          MAGIC_LINK_MAX_REQUESTS links inside the window,
                          so callers cannot probe which addresses exist.
    verify_magic_link   → ("ok" | "invalid" | "expired" | "used", session)
    logout              → deletes the session row
"""

import logging
import secrets
from datetime import timedelta

from flask import current_app

from gather.core.exceptions import ValidationError
from gather.models import db
from gather.models.auth import AuthSession, MagicLink, User
from gather.models.base import as_utc, utcnow
from gather.services.email_service import EmailService
from gather.utils.helpers import normalize_email

logger = logging.getLogger(__name__)


def _token() -> str:
    return secrets.token_hex(32)


def recent_request_count(email: str, now=None) -> int:
    window = timedelta(minutes=current_app.config.get("MAGIC_LINK_WINDOW_MINUTES", 15))
    return MagicLink.query.filter(
        MagicLink.email == email,
        MagicLink.created_at >= (now or utcnow()) - window,
    ).count()


def request_magic_link(email: str) -> dict:
    if not email:
        raise ValidationError("Invalid email address", details={"email": "Required"})
    email = normalize_email(email)
    cfg = current_app.config

    if recent_request_count(email) >= cfg.get("MAGIC_LINK_MAX_REQUESTS", 3):
        logger.info("Magic link rate limit reached for %s…", email[:3])
        return {"ok": True}

    now = utcnow()
    link = MagicLink(
        email=email,
        token=_token(),
        created_at=now,
        expires_at=now + timedelta(minutes=cfg.get("MAGIC_LINK_TTL_MINUTES", 15)),
    )
    db.session.add(link)
    db.session.commit()

    EmailService.send_from_template(
        to_email=email,
        template_name="magic_link",
        context={
            "url": f"{cfg.get('APP_URL', '').rstrip('/')}/auth/verify?token={link.token}",
            "ttl_minutes": cfg.get("MAGIC_LINK_TTL_MINUTES", 15),
        },
    )
    return {"ok": True}


def create_session(user: User) -> AuthSession:
    session = AuthSession(
        user_id=user.id,
        token=_token(),
        expires_at=utcnow() + timedelta(days=current_app.config.get("SESSION_TTL_DAYS", 30)),
    )
    db.session.add(session)
    return session


def verify_magic_link(token: str):
    """Consume a magic link.

    Returns:
        (outcome, AuthSession | None) where outcome is one of
        "ok", "invalid", "expired", "used".
    """
    if not token:
        return "invalid", None
    link = MagicLink.query.filter_by(token=token).first()
    if link is None:
        return "invalid", None
    now = utcnow()
    if as_utc(link.expires_at) < now:
        return "expired", None
    if link.used_at is not None:
        return "used", None

    link.used_at = now
    user = User.query.filter_by(email=link.email).first()
    if user is None:
        user = User(email=link.email, billing_status="FREE")
        db.session.add(user)
        db.session.flush()
        logger.info("New user %s created from magic link", user.id)

    session = create_session(user)
    db.session.commit()
    return "ok", session


def logout(session_token: str) -> bool:
    if not session_token:
        return False
    deleted = AuthSession.query.filter_by(token=session_token).delete()
    db.session.commit()
    return bool(deleted)
