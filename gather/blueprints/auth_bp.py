"""
Auth blueprint: passwordless login.

    POST /api/v1/auth/magic-link   {email} → {ok: true}
    POST /api/v1/auth/verify       {token} → sets the session cookie
    POST /api/v1/auth/logout       clears the session cookie
    GET  /api/v1/auth/me           current user
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from gather.auth import require_session
from gather.services.authorization import SESSION_COOKIE
from gather.services.magic_link_service import logout, request_magic_link, verify_magic_link
from gather.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)

_VERIFY_ERRORS = {
    "invalid": "Invalid link",
    "expired": "Link expired",
    "used": "Link already used",
}


def _secure_cookie() -> bool:
    return not (current_app.config.get("DEBUG") or current_app.config.get("TESTING"))


@auth_bp.route("/magic-link", methods=["POST"])
def magic_link():
    data = request.get_json(silent=True) or {}
    return jsonify(request_magic_link(data.get("email", ""))), 200


@auth_bp.route("/verify", methods=["POST"])
def verify():
    data = request.get_json(silent=True) or {}
    outcome, session = verify_magic_link(data.get("token", ""))
    if outcome != "ok":
        return api_error(E.VALIDATION_INVALID, _VERIFY_ERRORS[outcome])

    resp = jsonify({"success": True, "user": session.user.to_dict()})
    resp.set_cookie(
        SESSION_COOKIE,
        session.token,
        max_age=current_app.config.get("SESSION_TTL_DAYS", 30) * 86400,
        httponly=True,
        secure=_secure_cookie(),
        samesite="Lax",
        path="/",
    )
    return resp, 200


@auth_bp.route("/logout", methods=["POST"])
def do_logout():
    logout(request.cookies.get(SESSION_COOKIE, ""))
    resp = jsonify({"success": True})
    resp.delete_cookie(SESSION_COOKIE, path="/")
    return resp, 200


@auth_bp.route("/me", methods=["GET"])
@require_session
def me():
    return jsonify({"user": g.current_user.to_dict()}), 200
