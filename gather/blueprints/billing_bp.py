"""
Billing and entitlement blueprint.

    GET /api/v1/entitlements/check-create   {canCreate, limit, remaining}
    GET /api/v1/billing/status              {billingStatus, subscription}
"""

from flask import Blueprint, g, jsonify

from gather.auth import require_session
from gather.services.billing_sync import get_billing_status
from gather.services.entitlement_service import can_create_event, get_event_limit, get_remaining_events
from gather.utils.errors import register_error_handlers

billing_bp = Blueprint("billing", __name__, url_prefix="/api/v1")
register_error_handlers(billing_bp)


@billing_bp.route("/entitlements/check-create", methods=["GET"])
@require_session
def check_create():
    user_id = g.current_user.id
    return jsonify({
        "canCreate": can_create_event(user_id),
        "limit": get_event_limit(user_id),
        "remaining": get_remaining_events(user_id),
    }), 200


@billing_bp.route("/billing/status", methods=["GET"])
@require_session
def billing_status():
    return jsonify(get_billing_status(g.current_user.id)), 200
