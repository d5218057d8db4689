"""Keeps local subscription rows in step with the payment gateway.

The gateway is the source of truth. Local rows are only written after the
corresponding gateway call succeeded, and every operation re-reads the row
from the repository instead of holding state between calls. Webhook handling
and user requests may touch the same row concurrently; the last committed
write wins and the next ``get_status`` pulls the gateway's view again.
"""
import hashlib
import logging
import datetime as dt
from dataclasses import dataclass
from typing import Optional

from . import config
from .access import FREE_PLAN, PAID_PLANS
from .errors import AlreadySubscribed, NoSubscription, ValidationError
from .events import (
    WebhookEvent, SubscriptionUpdated, SubscriptionDeleted,
    PaymentSucceeded, PaymentFailed, UnknownEvent, parse_event,
)
from .gateway import GatewaySubscription
from .models import Subscription, User
from .repository import SubscriptionRepository, UserRepository

logger = logging.getLogger(__name__)

ACTIVE = "active"
PAST_DUE = "past_due"
CANCELED = "canceled"


@dataclass(frozen=True)
class SubscriptionHandle:
    subscription_id: str
    client_secret: Optional[str]


@dataclass(frozen=True)
class SubscriptionStatus:
    plan: str
    status: str
    current_period_end: Optional[dt.datetime] = None
    cancel_at_period_end: bool = False


FREE_STATUS = SubscriptionStatus(plan=FREE_PLAN, status=ACTIVE)


def idempotency_key(user_id: int, customer_id: str, price_id: str, previous: Optional[str]) -> str:
    """Key for the gateway's create-subscription call.

    Stable until a new subscription row is recorded for the user, so retrying
    after a failure between the gateway call and the local insert gets the
    already-created gateway object back instead of a second one.
    """
    base = "_".join(["create-subscription", str(user_id), customer_id, price_id, previous or "none"])
    return hashlib.sha256(base.encode()).hexdigest()[:40]


def mirrored_fields(remote: GatewaySubscription) -> dict:
    return {
        "status": remote.status,
        "current_period_start": remote.current_period_start,
        "current_period_end": remote.current_period_end,
        "cancel_at_period_end": remote.cancel_at_period_end,
    }


class ReconciliationEngine:
    def __init__(self, subscriptions: SubscriptionRepository, users: UserRepository, gateway, plan_prices: Optional[dict] = None):
        self.subscriptions = subscriptions
        self.users = users
        self.gateway = gateway
        self.plan_prices = config.PLAN_PRICES if plan_prices is None else plan_prices

    def create_subscription(self, user: User, plan: str, price_id: str) -> SubscriptionHandle:
        self._check_plan(plan, price_id)
        current = self.subscriptions.get_by_user(user.id)
        if current is not None and current.status == ACTIVE:
            raise AlreadySubscribed()

        customer_id = self._ensure_customer(user)
        key = idempotency_key(user.id, customer_id, price_id, current.external_subscription_id if current else None)
        remote = self.gateway.create_subscription(customer_id, price_id, idempotency_key=key)

        if self.subscriptions.get_by_external_id(remote.id) is None:
            self.subscriptions.create(
                user.id, remote.id,
                external_price_id=price_id,
                plan=plan,
                **mirrored_fields(remote),
            )
        else:
            logger.info("gateway replayed subscription %s for user %s", remote.id, user.id)
        self.users.set_external_ids(user.id, customer_id, remote.id)
        return SubscriptionHandle(subscription_id=remote.id, client_secret=remote.client_secret)

    def get_status(self, user: User) -> SubscriptionStatus:
        sub = self.subscriptions.get_by_user(user.id)
        if sub is None:
            return FREE_STATUS
        remote = self.gateway.retrieve_subscription(sub.external_subscription_id)
        self.subscriptions.update_by_external_id(sub.external_subscription_id, **mirrored_fields(remote))
        return SubscriptionStatus(
            plan=sub.plan,
            status=remote.status,
            current_period_end=remote.current_period_end,
            cancel_at_period_end=remote.cancel_at_period_end,
        )

    def cancel(self, user: User) -> SubscriptionStatus:
        sub = self.subscriptions.get_by_user(user.id)
        if sub is None:
            raise NoSubscription()
        if sub.cancel_at_period_end or sub.status == CANCELED:
            return self._status_of(sub)
        remote = self.gateway.update_subscription(sub.external_subscription_id, cancel_at_period_end=True)
        row = self.subscriptions.update_by_external_id(sub.external_subscription_id, **mirrored_fields(remote))
        logger.info("subscription %s set to cancel at period end", sub.external_subscription_id)
        return self._status_of(row or sub)

    def handle_webhook_event(self, raw_payload: bytes, signature_header: Optional[str]) -> WebhookEvent:
        payload = self.gateway.verify_webhook_signature(raw_payload, signature_header)
        event = parse_event(payload)
        self.apply_event(event)
        return event

    def apply_event(self, event: WebhookEvent) -> Optional[Subscription]:
        if isinstance(event, (SubscriptionUpdated, SubscriptionDeleted)):
            remote = event.subscription
            row = self.subscriptions.update_by_external_id(remote.id, **mirrored_fields(remote))
            ref = remote.id
        elif isinstance(event, PaymentSucceeded):
            ref = event.subscription_id
            row = self.subscriptions.update_by_external_id(ref, status=ACTIVE) if ref else None
        elif isinstance(event, PaymentFailed):
            ref = event.subscription_id
            row = self.subscriptions.update_by_external_id(ref, status=PAST_DUE) if ref else None
        elif isinstance(event, UnknownEvent):
            logger.debug("ignoring webhook event %s of type %s", event.event_id, event.type)
            return None
        else:
            raise TypeError(f"unhandled webhook event {event!r}")

        if row is None:
            logger.info("webhook %s: no local subscription for %s", event.event_id, ref)
        return row

    def _ensure_customer(self, user: User) -> str:
        fresh = self.users.get(user.id) or user
        if fresh.external_customer_id:
            return fresh.external_customer_id
        customer = self.gateway.create_customer(fresh.email, fresh.name)
        self.users.set_external_ids(user.id, customer.id)
        logger.info("created gateway customer %s for user %s", customer.id, user.id)
        return customer.id

    def _check_plan(self, plan: str, price_id: str):
        if plan not in PAID_PLANS:
            raise ValidationError(f"Unknown plan: {plan}")
        if not price_id:
            raise ValidationError("priceId is required")
        expected = self.plan_prices.get(plan)
        if expected and expected != price_id:
            raise ValidationError(f"priceId does not match plan {plan}")

    @staticmethod
    def _status_of(sub: Subscription) -> SubscriptionStatus:
        return SubscriptionStatus(
            plan=sub.plan,
            status=sub.status,
            current_period_end=sub.current_period_end,
            cancel_at_period_end=bool(sub.cancel_at_period_end),
        )
