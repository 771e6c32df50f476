"""
SMS gateway client.

Posts JSON to SMS_GATEWAY_URL with a bearer token. Never raises: every
outcome is captured in an ``SmsResult``. Without SMS_GATEWAY_URL the
gateway counts as disabled and callers skip sending.

Phone numbers are normalised to E.164 for New Zealand:
    021 123 4567  → +64211234567
    64211234567   → +64211234567
    211234567     → +64211234567
"""

from __future__ import annotations

import logging
import re

import requests
from flask import current_app

logger = logging.getLogger(__name__)

_NZ_E164 = re.compile(r"^\+64\d{8,10}$")
_SEGMENT_GSM = 160
_SEGMENT_UNICODE = 70


class SmsResult:
    """Typed result of one send. Check .ok before reading .message_id."""

    __slots__ = ("ok", "status_code", "message_id", "error")

    def __init__(self, *, ok: bool, status_code: int | None = None,
                 message_id: str | None = None, error: str | None = None) -> None:
        self.ok = ok
        self.status_code = status_code
        self.message_id = message_id
        self.error = error

    def to_log_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status_code": self.status_code,
            "message_id": self.message_id,
            "error": self.error,
        }


def normalize_phone_number(phone: str | None) -> str | None:
    """E.164 form of an NZ number, or None when it is not one."""
    if not phone:
        return None
    cleaned = re.sub(r"[^\d+]", "", phone)
    if cleaned.startswith("0"):
        cleaned = "+64" + cleaned[1:]
    elif cleaned.startswith("64"):
        cleaned = "+" + cleaned
    elif re.fullmatch(r"\d{9,10}", cleaned):
        cleaned = "+64" + cleaned
    return cleaned if _NZ_E164.match(cleaned) else None


def message_segments(message: str) -> int:
    per_segment = _SEGMENT_UNICODE if re.search(r"[^\x00-\x7F]", message) else _SEGMENT_GSM
    return max(1, -(-len(message) // per_segment))


def is_enabled() -> bool:
    return bool(current_app.config.get("SMS_GATEWAY_URL"))


def send_sms(to: str, message: str) -> SmsResult:
    cfg = current_app.config
    number = normalize_phone_number(to)
    if number is None:
        return SmsResult(ok=False, error="Invalid or non-NZ phone number")

    if not is_enabled():
        logger.info("SMS (dev mode): to=%s segments=%d", number[:6] + "…", message_segments(message))
        return SmsResult(ok=False, error="SMS gateway not configured")

    headers = {"Content-Type": "application/json"}
    if cfg.get("SMS_GATEWAY_TOKEN"):
        headers["Authorization"] = f"Bearer {cfg['SMS_GATEWAY_TOKEN']}"

    try:
        resp = requests.post(
            cfg["SMS_GATEWAY_URL"],
            json={"to": number, "from": cfg.get("SMS_FROM"), "body": message},
            headers=headers,
            timeout=cfg.get("SMS_TIMEOUT_SECONDS", 10),
        )
    except requests.Timeout:
        logger.warning("SMS gateway timeout for %s", number[:6] + "…")
        return SmsResult(ok=False, error="Gateway timeout")
    except requests.RequestException as exc:
        logger.error("SMS gateway error: %s", exc)
        return SmsResult(ok=False, error=str(exc))

    if resp.status_code >= 400:
        logger.error("SMS gateway rejected message: HTTP %s", resp.status_code)
        return SmsResult(ok=False, status_code=resp.status_code, error=f"HTTP {resp.status_code}")

    try:
        message_id = (resp.json() or {}).get("id")
    except ValueError:
        message_id = None
    return SmsResult(ok=True, status_code=resp.status_code, message_id=message_id)
