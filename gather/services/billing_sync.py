"""
Billing mirror sync.

The billing provider is the source of truth. Its webhook handler (outside
this service) hands the provider subscription payload to
``sync_subscription``, which updates the local Subscription row and the
owner's ``User.billing_status`` in one transaction. Nothing else writes
either field.

Payload keys read (provider naming):
    id, customer, status, cancel_at_period_end, trial_start, trial_end,
    items.data[0].price.id, items.data[0].current_period_start/end
"""

import logging
from datetime import datetime, timezone

from gather.core.exceptions import NotFoundError
from gather.models import db
from gather.models.auth import Subscription, User
from gather.models.base import utcnow

logger = logging.getLogger(__name__)

PROVIDER_STATUS_MAP = {
    "trialing": "TRIALING",
    "active": "ACTIVE",
    "past_due": "PAST_DUE",
    "canceled": "CANCELED",
    "unpaid": "CANCELED",
    "incomplete": "FREE",
    "incomplete_expired": "FREE",
}


def map_provider_status(status: str | None) -> str:
    """Map a provider subscription status to our billing status enum."""
    mapped = PROVIDER_STATUS_MAP.get((status or "").lower())
    if mapped is None:
        logger.warning("Unknown provider subscription status %r, defaulting to FREE", status)
        return "FREE"
    return mapped


def _ts(value):
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def sync_subscription(payload: dict) -> dict:
    """Mirror a provider subscription onto Subscription + User.

    Returns:
        {"user_id", "status", "status_changed"}

    Raises:
        NotFoundError: no local Subscription for the provider customer.
    """
    customer_id = payload.get("customer")
    sub = Subscription.query.filter_by(provider_customer_id=customer_id).first()
    if sub is None:
        raise NotFoundError(resource="Subscription", resource_id=customer_id)

    status = map_provider_status(payload.get("status"))
    items = (payload.get("items") or {}).get("data") or []
    first = items[0] if items else {}

    status_changed = sub.status != status
    sub.provider_subscription_id = payload.get("id")
    sub.provider_price_id = (first.get("price") or {}).get("id")
    sub.status = status
    if status_changed:
        sub.status_changed_at = utcnow()
    sub.current_period_start = _ts(first.get("current_period_start"))
    sub.current_period_end = _ts(first.get("current_period_end"))
    sub.cancel_at_period_end = bool(payload.get("cancel_at_period_end"))
    sub.trial_start = _ts(payload.get("trial_start"))
    sub.trial_end = _ts(payload.get("trial_end"))

    user = db.session.get(User, sub.user_id)
    user.billing_status = status
    db.session.commit()

    logger.info(
        "Subscription synced user=%s status=%s changed=%s", user.id, status, status_changed,
    )
    return {"user_id": user.id, "status": status, "status_changed": status_changed}


def mark_subscription_deleted(customer_id: str) -> dict:
    """Provider deleted the subscription: mirror as CANCELED."""
    sub = Subscription.query.filter_by(provider_customer_id=customer_id).first()
    if sub is None:
        raise NotFoundError(resource="Subscription", resource_id=customer_id)

    status_changed = sub.status != "CANCELED"
    sub.status = "CANCELED"
    sub.cancel_at_period_end = False
    if status_changed:
        sub.status_changed_at = utcnow()
    user = db.session.get(User, sub.user_id)
    user.billing_status = "CANCELED"
    db.session.commit()

    logger.info("Subscription deleted user=%s", user.id)
    return {"user_id": user.id, "status": "CANCELED", "status_changed": status_changed}


def get_billing_status(user_id: int) -> dict:
    """Billing status plus the subscription mirror for one user."""
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return {
        "billingStatus": user.billing_status,
        "subscription": user.subscription.to_dict() if user.subscription else None,
    }
