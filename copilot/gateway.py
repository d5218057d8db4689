"""Typed, single-attempt wrapper over the Stripe SDK.

Only the five calls the billing flow needs are exposed. Nothing here retries:
a call either happened once or raised, so callers can reason about the
external side effects of each call.
"""
import json
import logging
import datetime as dt
from dataclasses import dataclass
from typing import Optional

import stripe

from .errors import GatewayError, GatewayUnavailable, InvalidSignature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayCustomer:
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class GatewaySubscription:
    id: str
    status: str
    current_period_start: Optional[dt.datetime]
    current_period_end: Optional[dt.datetime]
    cancel_at_period_end: bool = False
    client_secret: Optional[str] = None


def from_timestamp(value) -> Optional[dt.datetime]:
    if value is None:
        return None
    return dt.datetime.fromtimestamp(int(value), dt.timezone.utc).replace(tzinfo=None)


def _period(obj, key):
    # newer API versions carry the billing period on the subscription items
    if obj.get(key) is not None:
        return obj.get(key)
    items = (obj.get("items") or {}).get("data") or []
    return items[0].get(key) if items else None


def _client_secret(obj) -> Optional[str]:
    invoice = obj.get("latest_invoice")
    if not invoice or isinstance(invoice, str):
        return None
    intent = invoice.get("payment_intent")
    if intent and not isinstance(intent, str) and intent.get("client_secret"):
        return intent.get("client_secret")
    confirmation = invoice.get("confirmation_secret")
    if confirmation:
        return confirmation.get("client_secret")
    return None


def subscription_from_stripe(obj) -> GatewaySubscription:
    return GatewaySubscription(
        id=obj["id"],
        status=obj["status"],
        current_period_start=from_timestamp(_period(obj, "current_period_start")),
        current_period_end=from_timestamp(_period(obj, "current_period_end")),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        client_secret=_client_secret(obj),
    )


class StripeGateway:
    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str] = None, api_version: Optional[str] = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version
        stripe.max_network_retries = 0

    def _call(self, fn, *args, **kwargs):
        if not self.api_key:
            raise GatewayError("Stripe not configured")
        kwargs["api_key"] = self.api_key
        if self.api_version:
            kwargs["stripe_version"] = self.api_version
        try:
            return fn(*args, **kwargs)
        except stripe.APIConnectionError as e:
            logger.warning("stripe unreachable: %s", e)
            raise GatewayUnavailable(e.user_message or str(e)) from e
        except stripe.StripeError as e:
            logger.error("stripe call failed: %s", e)
            raise GatewayError(e.user_message or str(e)) from e

    def create_customer(self, email: str, name: Optional[str] = None) -> GatewayCustomer:
        customer = self._call(stripe.Customer.create, email=email, name=name)
        return GatewayCustomer(id=customer["id"], email=customer.get("email"))

    def create_subscription(self, customer_id: str, price_id: str, idempotency_key: Optional[str] = None) -> GatewaySubscription:
        params = dict(
            customer=customer_id,
            items=[{"price": price_id}],
            payment_behavior="default_incomplete",
            payment_settings={"save_default_payment_method": "on_subscription"},
            expand=["latest_invoice.payment_intent"],
        )
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        return subscription_from_stripe(self._call(stripe.Subscription.create, **params))

    def retrieve_subscription(self, subscription_id: str) -> GatewaySubscription:
        return subscription_from_stripe(self._call(stripe.Subscription.retrieve, subscription_id))

    def update_subscription(self, subscription_id: str, cancel_at_period_end: bool) -> GatewaySubscription:
        obj = self._call(stripe.Subscription.modify, subscription_id, cancel_at_period_end=cancel_at_period_end)
        return subscription_from_stripe(obj)

    def verify_webhook_signature(self, payload: bytes, signature_header: Optional[str]) -> dict:
        if not self.webhook_secret:
            raise InvalidSignature("Webhook secret not configured")
        if not signature_header:
            raise InvalidSignature("Missing stripe-signature header")
        try:
            stripe.Webhook.construct_event(payload, signature_header, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise InvalidSignature(f"Webhook signature verification failed: {e}") from e
        return json.loads(payload)
