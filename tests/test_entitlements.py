"""Entitlement rules and the billing mirror."""

import pytest

from gather.core.exceptions import NotFoundError
from gather.models import db
from gather.models.auth import Subscription
from gather.services.billing_sync import (
    get_billing_status,
    map_provider_status,
    mark_subscription_deleted,
    sync_subscription,
)
from gather.services.entitlement_service import (
    can_create_event,
    can_edit_event,
    get_event_limit,
    get_remaining_events,
)


# ── Entitlements ─────────────────────────────────────────────────────────


def test_free_user_gets_one_event(make):
    user = make.user()
    assert can_create_event(user.id)
    assert get_remaining_events(user.id) == 1

    event = make.event(user)

    assert not can_create_event(user.id)
    assert can_edit_event(event)
    assert get_remaining_events(user.id) == 0


def test_archived_and_legacy_events_do_not_count(make):
    user = make.user()
    make.event(user, name="Old", archived=True)
    make.event(user, name="Legacy", is_legacy=True)

    assert can_create_event(user.id)


def test_free_user_over_limit_cannot_edit(make):
    user = make.user()
    first = make.event(user, name="One")
    make.event(user, name="Two")

    assert not can_edit_event(first)


@pytest.mark.parametrize("status", ["TRIALING", "ACTIVE"])
def test_paid_users_are_unlimited(make, status):
    user = make.user(billing_status=status)
    for n in range(3):
        make.event(user, name=f"E{n}")

    assert can_create_event(user.id)
    assert get_event_limit(user.id) is None
    assert get_remaining_events(user.id) is None


@pytest.mark.parametrize("status", ["PAST_DUE", "CANCELED"])
def test_lapsed_users_keep_only_legacy(make, status):
    user = make.user(billing_status=status)
    legacy = make.event(user, name="Legacy", is_legacy=True)
    current = make.event(user, name="Current")

    assert not can_create_event(user.id)
    assert can_edit_event(legacy)
    assert not can_edit_event(current)
    assert get_event_limit(user.id) == 0


# ── Billing mirror ───────────────────────────────────────────────────────


@pytest.mark.parametrize("raw,expected", [
    ("trialing", "TRIALING"),
    ("active", "ACTIVE"),
    ("past_due", "PAST_DUE"),
    ("canceled", "CANCELED"),
    ("unpaid", "CANCELED"),
    ("incomplete_expired", "FREE"),
    ("something_new", "FREE"),
    (None, "FREE"),
])
def test_map_provider_status(raw, expected):
    assert map_provider_status(raw) == expected


def _subscribed_user(make):
    user = make.user()
    db.session.add(Subscription(user_id=user.id, provider_customer_id="cus_123"))
    db.session.commit()
    return user


def test_sync_subscription_mirrors_provider(make):
    user = _subscribed_user(make)
    payload = {
        "id": "sub_1",
        "customer": "cus_123",
        "status": "active",
        "cancel_at_period_end": False,
        "items": {"data": [{
            "price": {"id": "price_annual"},
            "current_period_start": 1767225600,
            "current_period_end": 1798761600,
        }]},
    }

    result = sync_subscription(payload)

    assert result == {"user_id": user.id, "status": "ACTIVE", "status_changed": True}
    sub = Subscription.query.filter_by(provider_customer_id="cus_123").one()
    assert sub.provider_price_id == "price_annual"
    assert sub.current_period_end.year == 2027
    assert user.billing_status == "ACTIVE"

    again = sync_subscription(payload)
    assert again["status_changed"] is False


def test_sync_unknown_customer(make):
    with pytest.raises(NotFoundError):
        sync_subscription({"customer": "cus_missing", "status": "active"})


def test_deleted_subscription_cancels_user(make):
    user = _subscribed_user(make)
    sync_subscription({"customer": "cus_123", "status": "active"})

    result = mark_subscription_deleted("cus_123")

    assert result["status"] == "CANCELED"
    status = get_billing_status(user.id)
    assert status["billingStatus"] == "CANCELED"
    assert status["subscription"]["status"] == "CANCELED"


def test_billing_status_without_subscription(make):
    user = make.user()
    assert get_billing_status(user.id) == {"billingStatus": "FREE", "subscription": None}
