from __future__ import annotations

from typing import Any, Dict, List, Optional

import stripe

import config
from config import log
from schemas.billing import ACTIVE_STATUSES, SubscriptionPlan
from storage.billing_store import CheckoutSessionStore, PaymentStore
from storage.user_store import UserStore
from utils.errors import ConfigError, NotFoundError, UpstreamError, ValidationError
from utils.observability import log_event
from utils.time_helpers import from_epoch_seconds, now_iso


def subscription_plans(price_ids: Optional[Dict[str, str]] = None) -> List[SubscriptionPlan]:
    price_ids = price_ids or {
        "basic": config.STRIPE_PRICE_BASIC,
        "professional": config.STRIPE_PRICE_PROFESSIONAL,
        "enterprise": config.STRIPE_PRICE_ENTERPRISE,
    }
    return [
        SubscriptionPlan(
            id="basic",
            name="Basic",
            price=99,
            price_id=price_ids.get("basic", ""),
            features=[
                "Up to 100 contacts",
                "500 AI requests/month",
                "Basic CRM integration",
                "Email support",
            ],
            limits={"contacts": 100, "properties": 50, "ai_requests": 500},
        ),
        SubscriptionPlan(
            id="professional",
            name="Professional",
            price=199,
            price_id=price_ids.get("professional", ""),
            features=[
                "Unlimited contacts",
                "2000 AI requests/month",
                "All CRM integrations",
                "Smart reminders",
                "Priority support",
                "Advanced analytics",
            ],
            limits={"contacts": -1, "properties": -1, "ai_requests": 2000},
        ),
        SubscriptionPlan(
            id="enterprise",
            name="Enterprise",
            price=499,
            price_id=price_ids.get("enterprise", ""),
            features=[
                "Everything in Professional",
                "Unlimited AI requests",
                "Custom integrations",
                "Dedicated account manager",
                "API access",
                "White-label options",
            ],
            limits={"contacts": -1, "properties": -1, "ai_requests": -1},
        ),
    ]


def _get(obj: Any, key: str) -> Any:
    """Read a field from a Stripe object or a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


class BillingService:
    def __init__(
        self,
        users: UserStore,
        payments: PaymentStore,
        checkouts: CheckoutSessionStore,
        *,
        stripe_module: Any = stripe,
        api_key: str = config.STRIPE_SECRET_KEY,
        webhook_secret: str = config.STRIPE_WEBHOOK_SECRET,
        plans: Optional[List[SubscriptionPlan]] = None,
    ):
        self.users = users
        self.payments = payments
        self.checkouts = checkouts
        self.stripe = stripe_module
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.plans = plans if plans is not None else subscription_plans()

    def _require_key(self) -> None:
        if not self.api_key:
            raise ConfigError("Stripe is not configured.")
        self.stripe.api_key = self.api_key

    def get_plan(self, plan_id: Optional[str]) -> Optional[SubscriptionPlan]:
        return next((p for p in self.plans if p.id == plan_id), None)

    def _plan_for_price(self, price_id: Optional[str]) -> Optional[SubscriptionPlan]:
        if not price_id:
            return None
        return next((p for p in self.plans if p.price_id == price_id), None)

    # =========================
    # Customer / checkout
    # =========================
    def get_or_create_customer(self, user_id: str) -> str:
        user = self.users.get(user_id) or {}
        if user.get("stripe_customer_id"):
            return user["stripe_customer_id"]

        self._require_key()
        try:
            customer = self.stripe.Customer.create(
                email=user.get("email") or None,
                name=user.get("display_name") or None,
                metadata={"user_id": user_id},
            )
        except self.stripe.StripeError as e:
            log.warning("Stripe customer create failed for %s: %s", user_id, e)
            raise UpstreamError("Failed to create customer account") from e

        self.users.update(user_id, {
            "stripe_customer_id": _get(customer, "id"),
            "stripe_customer_created": now_iso(),
        })
        return _get(customer, "id")

    def create_checkout_session(
        self,
        user_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        plan = self.get_plan(plan_id)
        if plan is None:
            raise ValidationError("Invalid subscription plan")
        if not plan.price_id:
            raise ConfigError(f"No Stripe price configured for plan {plan_id}")
        if not success_url or not cancel_url:
            raise ValidationError("Missing success_url or cancel_url")

        customer_id = self.get_or_create_customer(user_id)
        self._require_key()
        metadata = {"user_id": user_id, "plan_id": plan_id}
        try:
            session = self.stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": plan.price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=user_id,
                metadata=metadata,
                subscription_data={"metadata": metadata},
                allow_promotion_codes=True,
            )
        except self.stripe.StripeError as e:
            log.warning("Stripe checkout create failed for %s: %s", user_id, e)
            raise UpstreamError("Failed to create checkout session") from e

        self.checkouts.create(user_id, _get(session, "id"), plan_id)
        return {"session_id": _get(session, "id"), "url": _get(session, "url")}

    def create_portal_session(self, user_id: str, return_url: str) -> Dict[str, Any]:
        if not return_url:
            raise ValidationError("Missing return_url")
        customer_id = self.get_or_create_customer(user_id)
        self._require_key()
        try:
            session = self.stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)
        except self.stripe.StripeError as e:
            raise UpstreamError("Failed to create billing portal session") from e
        return {"url": _get(session, "url")}

    def cancel_subscription(self, user_id: str) -> Dict[str, Any]:
        user = self.users.get(user_id) or {}
        subscription_id = user.get("stripe_subscription_id")
        if not subscription_id:
            raise NotFoundError("No active subscription found")

        self._require_key()
        try:
            self.stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
        except self.stripe.StripeError as e:
            raise UpstreamError("Failed to cancel subscription") from e

        self.users.update(user_id, {
            "subscription_status": "canceling",
            "subscription_canceled_at": now_iso(),
        })
        return {"subscription_id": subscription_id, "status": "canceling"}

    def has_active_subscription(self, user_id: str) -> bool:
        user = self.users.get(user_id) or {}
        return user.get("subscription_status") in ACTIVE_STATUSES

    def get_subscription_details(self, user_id: str) -> Optional[Dict[str, Any]]:
        user = self.users.get(user_id) or {}
        subscription_id = user.get("stripe_subscription_id")
        if not subscription_id:
            return None

        self._require_key()
        try:
            sub = self.stripe.Subscription.retrieve(subscription_id)
        except self.stripe.StripeError as e:
            raise UpstreamError("Failed to load subscription") from e

        plan = self.get_plan(user.get("subscription_plan_id"))
        return {
            "status": _get(sub, "status"),
            "plan": plan.to_dict() if plan else None,
            "current_period_end": from_epoch_seconds(_get(sub, "current_period_end")),
            "cancel_at_period_end": bool(_get(sub, "cancel_at_period_end")),
            "trial_end": from_epoch_seconds(_get(sub, "trial_end")),
        }

    # =========================
    # Webhooks
    # =========================
    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        if not self.webhook_secret:
            raise ConfigError("Stripe webhook secret is not configured.")
        if not signature:
            raise ValidationError("Missing Stripe-Signature header")
        try:
            return self.stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, self.stripe.SignatureVerificationError) as e:
            log.warning("Stripe webhook verification failed: %s", e)
            raise ValidationError("Invalid webhook signature") from e

    def handle_event(self, event: Any) -> str:
        event_type = _get(event, "type")
        obj = _get(_get(event, "data"), "object")
        handlers = {
            "checkout.session.completed": self._checkout_completed,
            "customer.subscription.created": self._subscription_updated,
            "customer.subscription.updated": self._subscription_updated,
            "customer.subscription.deleted": self._subscription_deleted,
            "invoice.payment_succeeded": self._payment_succeeded,
            "invoice.payment_failed": self._payment_failed,
        }
        handler = handlers.get(event_type)
        if handler is None:
            log_event("billing", "unhandled webhook event", data={"type": event_type})
            return "ignored"
        handler(obj)
        log_event("billing", "webhook handled", data={"type": event_type, "id": _get(event, "id")})
        return "handled"

    def _user_from_subscription_id(self, subscription_id: Optional[str]) -> Optional[str]:
        if not subscription_id:
            return None
        self._require_key()
        sub = self.stripe.Subscription.retrieve(subscription_id)
        return _get(_get(sub, "metadata"), "user_id")

    def _checkout_completed(self, session: Any) -> None:
        metadata = _get(session, "metadata")
        user_id = _get(metadata, "user_id") or _get(session, "client_reference_id")
        subscription_id = _get(session, "subscription")
        if not user_id or not subscription_id:
            return

        self._require_key()
        sub = self.stripe.Subscription.retrieve(subscription_id)
        self.users.update(user_id, {
            "stripe_subscription_id": _get(sub, "id"),
            "subscription_status": _get(sub, "status"),
            "subscription_plan_id": _get(metadata, "plan_id"),
            "subscription_start": from_epoch_seconds(_get(sub, "current_period_start")),
            "subscription_end": from_epoch_seconds(_get(sub, "current_period_end")),
        })
        self.checkouts.complete(_get(session, "id"))

    def _subscription_updated(self, sub: Any) -> None:
        metadata = _get(sub, "metadata")
        user_id = _get(metadata, "user_id")
        if not user_id:
            return

        plan = None
        for item in _get(_get(sub, "items"), "data") or []:
            plan = self._plan_for_price(_get(_get(item, "price"), "id"))
            if plan:
                break

        self.users.update(user_id, {
            "stripe_subscription_id": _get(sub, "id"),
            "subscription_status": _get(sub, "status"),
            "subscription_plan_id": plan.id if plan else _get(metadata, "plan_id"),
            "subscription_start": from_epoch_seconds(_get(sub, "current_period_start")),
            "subscription_end": from_epoch_seconds(_get(sub, "current_period_end")),
        })

    def _subscription_deleted(self, sub: Any) -> None:
        user_id = _get(_get(sub, "metadata"), "user_id")
        if not user_id:
            return
        self.users.update(user_id, {
            "subscription_status": "canceled",
            "subscription_ended_at": now_iso(),
            "stripe_subscription_id": None,
        })

    def _payment_succeeded(self, invoice: Any) -> None:
        user_id = self._user_from_subscription_id(_get(invoice, "subscription"))
        if not user_id:
            return
        transitions = _get(invoice, "status_transitions")
        self.payments.record(user_id, {
            "invoice_id": _get(invoice, "id"),
            "amount": _get(invoice, "amount_paid"),
            "currency": _get(invoice, "currency"),
            "status": "succeeded",
            "paid_at": from_epoch_seconds(_get(transitions, "paid_at")),
            "period_start": from_epoch_seconds(_get(invoice, "period_start")),
            "period_end": from_epoch_seconds(_get(invoice, "period_end")),
        })
        self.users.update(user_id, {"last_payment_date": now_iso(), "payment_status": "current"})

    def _payment_failed(self, invoice: Any) -> None:
        user_id = self._user_from_subscription_id(_get(invoice, "subscription"))
        if not user_id:
            return
        self.payments.record(user_id, {
            "invoice_id": _get(invoice, "id"),
            "amount": _get(invoice, "amount_due"),
            "currency": _get(invoice, "currency"),
            "status": "failed",
            "failed_at": now_iso(),
            "attempt_count": _get(invoice, "attempt_count"),
        })
        self.users.update(user_id, {"payment_status": "past_due", "last_payment_failure": now_iso()})
