"""Webhook events the billing flow reacts to.

``parse_event`` turns a verified Stripe event payload into exactly one of the
variants below. Anything not listed becomes ``UnknownEvent`` so new event
types never break delivery.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .gateway import GatewaySubscription, subscription_from_stripe

SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
PAYMENT_FAILED = "invoice.payment_failed"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: str
    subscription: GatewaySubscription


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    subscription: GatewaySubscription


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str
    invoice_id: Optional[str]
    subscription_id: Optional[str]


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    invoice_id: Optional[str]
    subscription_id: Optional[str]


@dataclass(frozen=True)
class UnknownEvent:
    event_id: str
    type: str


WebhookEvent = Union[SubscriptionUpdated, SubscriptionDeleted, PaymentSucceeded, PaymentFailed, UnknownEvent]


def invoice_subscription_id(invoice: dict) -> Optional[str]:
    sub = invoice.get("subscription")
    if sub is None:
        # 2025-03 API versions moved the reference under parent.subscription_details
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        sub = details.get("subscription")
    if isinstance(sub, dict):
        sub = sub.get("id")
    return sub or None


def parse_event(event: dict) -> WebhookEvent:
    event_id = event.get("id") or ""
    kind = event.get("type") or ""
    obj = (event.get("data") or {}).get("object") or {}

    if kind in (SUBSCRIPTION_UPDATED, SUBSCRIPTION_DELETED):
        if not obj.get("id") or not obj.get("status"):
            logger.warning("event %s (%s) has no subscription id or status, ignoring", event_id, kind)
            return UnknownEvent(event_id, kind)
        variant = SubscriptionUpdated if kind == SUBSCRIPTION_UPDATED else SubscriptionDeleted
        return variant(event_id, subscription_from_stripe(obj))
    if kind == PAYMENT_SUCCEEDED:
        return PaymentSucceeded(event_id, obj.get("id"), invoice_subscription_id(obj))
    if kind == PAYMENT_FAILED:
        return PaymentFailed(event_id, obj.get("id"), invoice_subscription_id(obj))
    return UnknownEvent(event_id, kind)
