import json
from types import SimpleNamespace

import pytest

from services.billing_service import BillingService, subscription_plans
from storage.billing_store import CheckoutSessionStore, PaymentStore
from storage.local_store import LocalTableFactory
from storage.user_store import UserStore
from utils.errors import NotFoundError, ValidationError

PRICE_IDS = {"basic": "price_basic", "professional": "price_pro", "enterprise": "price_ent"}


@pytest.fixture
def tables():
    return LocalTableFactory()


@pytest.fixture
def billing(tables, fake_stripe):
    return BillingService(
        UserStore(tables),
        PaymentStore(tables),
        CheckoutSessionStore(tables),
        stripe_module=fake_stripe,
        api_key="sk_test_123",
        webhook_secret="whsec_test",
        plans=subscription_plans(PRICE_IDS),
    )


def _event(event_type, obj):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


def test_plans_catalog():
    plans = {p.id: p for p in subscription_plans(PRICE_IDS)}

    assert [plans[k].price for k in ("basic", "professional", "enterprise")] == [99, 199, 499], "monthly prices"
    assert plans["enterprise"].limits["ai_requests"] == -1, "-1 marks unlimited"
    assert plans["professional"].price_id == "price_pro", "price ids come from configuration"


def test_checkout_creates_customer_once(billing, fake_stripe, tables):
    billing.users.update("u1", {"email": "agent@example.com"})

    first = billing.create_checkout_session("u1", "professional", "https://app/ok", "https://app/cancel")
    billing.create_checkout_session("u1", "basic", "https://app/ok", "https://app/cancel")

    assert first == {"session_id": "cs_1", "url": "https://checkout.example/cs_1"}, "session id and url expected"
    assert len(fake_stripe.customers) == 1, "customer should be created only once"
    assert billing.users.get("u1")["stripe_customer_id"] == "cus_1", "customer id should be stored"
    line = fake_stripe.sessions[0]["line_items"][0]
    assert line == {"price": "price_pro", "quantity": 1}, "plan price should be used"
    assert fake_stripe.sessions[0]["metadata"] == {"user_id": "u1", "plan_id": "professional"}, "metadata expected"
    row = tables("checkout_sessions", ("session_id",)).get(session_id="cs_1")
    assert row["status"] == "pending", "checkout should be recorded as pending"


def test_checkout_rejects_unknown_plan(billing, fake_stripe):
    with pytest.raises(ValidationError):
        billing.create_checkout_session("u1", "platinum", "https://app/ok", "https://app/cancel")
    assert fake_stripe.customers == [], "no Stripe call for an invalid plan"


def test_checkout_completed_webhook_activates_subscription(billing, fake_stripe):
    billing.create_checkout_session("u1", "professional", "https://app/ok", "https://app/cancel")
    fake_stripe.subscriptions["sub_1"] = SimpleNamespace(
        id="sub_1",
        status="active",
        current_period_start=1700000000,
        current_period_end=1702592000,
        metadata={"user_id": "u1"},
    )

    outcome = billing.handle_event(_event("checkout.session.completed", {
        "id": "cs_1",
        "subscription": "sub_1",
        "client_reference_id": "u1",
        "metadata": {"user_id": "u1", "plan_id": "professional"},
    }))

    user = billing.users.get("u1")
    assert outcome == "handled", "checkout completion is a handled event"
    assert user["stripe_subscription_id"] == "sub_1", "subscription id should be stored"
    assert user["subscription_plan_id"] == "professional", "plan id should come from metadata"
    assert billing.has_active_subscription("u1"), "active status should count as subscribed"
    assert billing.checkouts.complete("cs_1")["status"] == "completed", "checkout row should exist"


def test_subscription_updated_resolves_plan_from_price(billing):
    billing.handle_event(_event("customer.subscription.updated", {
        "id": "sub_9",
        "status": "trialing",
        "metadata": {"user_id": "u2"},
        "items": {"data": [{"price": {"id": "price_ent"}}]},
    }))

    user = billing.users.get("u2")
    assert user["subscription_plan_id"] == "enterprise", "plan should be matched by price id"
    assert billing.has_active_subscription("u2"), "trialing counts as active"


def test_subscription_deleted_clears_subscription(billing):
    billing.users.update("u1", {"stripe_subscription_id": "sub_1", "subscription_status": "active"})

    billing.handle_event(_event("customer.subscription.deleted", {"id": "sub_1", "metadata": {"user_id": "u1"}}))

    user = billing.users.get("u1")
    assert user["subscription_status"] == "canceled", "status should be canceled"
    assert user["stripe_subscription_id"] is None, "subscription id should be cleared"
    assert not billing.has_active_subscription("u1"), "canceled is not active"


def test_payment_failed_records_payment(billing, fake_stripe):
    fake_stripe.subscriptions["sub_1"] = {"id": "sub_1", "metadata": {"user_id": "u1"}}

    billing.handle_event(_event("invoice.payment_failed", {
        "id": "in_1",
        "subscription": "sub_1",
        "amount_due": 19900,
        "currency": "usd",
        "attempt_count": 2,
    }))

    payments = billing.payments.list("u1")
    assert len(payments) == 1 and payments[0]["status"] == "failed", "failed payment should be recorded"
    assert payments[0]["amount"] == 19900, "amount due should be recorded"
    assert billing.users.get("u1")["payment_status"] == "past_due", "user should be past due"


def test_payment_succeeded_marks_current(billing, fake_stripe):
    fake_stripe.subscriptions["sub_1"] = {"id": "sub_1", "metadata": {"user_id": "u1"}}

    billing.handle_event(_event("invoice.payment_succeeded", {
        "id": "in_2",
        "subscription": "sub_1",
        "amount_paid": 9900,
        "currency": "usd",
        "status_transitions": {"paid_at": 1700000000},
    }))

    assert billing.payments.list("u1")[0]["paid_at"] == "2023-11-14T22:13:20.000000Z", "paid_at from epoch"
    assert billing.users.get("u1")["payment_status"] == "current", "user should be current"


def test_unknown_event_is_ignored(billing):
    assert billing.handle_event(_event("charge.refunded", {})) == "ignored", "unknown events are acknowledged"


def test_webhook_signature_checks(billing):
    payload = json.dumps(_event("charge.refunded", {})).encode("utf-8")

    assert billing.construct_event(payload, "good-signature")["type"] == "charge.refunded", "valid signature"
    with pytest.raises(ValidationError):
        billing.construct_event(payload, "forged")
    with pytest.raises(ValidationError):
        billing.construct_event(payload, None)


def test_cancel_subscription(billing, fake_stripe):
    with pytest.raises(NotFoundError):
        billing.cancel_subscription("u1")

    billing.users.update("u1", {"stripe_subscription_id": "sub_1", "subscription_status": "active"})
    result = billing.cancel_subscription("u1")

    assert result == {"subscription_id": "sub_1", "status": "canceling"}, "cancel result expected"
    assert fake_stripe.modified == [("sub_1", {"cancel_at_period_end": True})], "cancel at period end"
    assert billing.users.get("u1")["subscription_status"] == "canceling", "status should be canceling"
