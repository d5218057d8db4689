import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from .access import effective_plan, features_for
from .deps import get_current_user, get_engine, get_subscription_repo
from .models import User
from .reconciliation import ReconciliationEngine, SubscriptionStatus
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["billing"])


class CreateSubscriptionIn(BaseModel):
    priceId: str
    plan: str


def status_body(status: SubscriptionStatus) -> dict:
    return {
        "plan": status.plan,
        "status": status.status,
        "currentPeriodEnd": status.current_period_end.isoformat() if status.current_period_end else None,
        "cancelAtPeriodEnd": status.cancel_at_period_end,
    }


@router.post("/create-subscription")
def create_subscription(payload: CreateSubscriptionIn, user: User = Depends(get_current_user), engine: ReconciliationEngine = Depends(get_engine)):
    handle = engine.create_subscription(user, payload.plan, payload.priceId)
    return {"subscriptionId": handle.subscription_id, "clientSecret": handle.client_secret}


@router.get("/subscription/status")
def subscription_status(user: User = Depends(get_current_user), engine: ReconciliationEngine = Depends(get_engine)):
    return status_body(engine.get_status(user))


@router.post("/subscription/cancel")
def cancel_subscription(user: User = Depends(get_current_user), engine: ReconciliationEngine = Depends(get_engine)):
    engine.cancel(user)
    return {"message": "Subscription will be canceled at the end of the current period"}


@router.get("/features")
def features(user: User = Depends(get_current_user), subscriptions: SubscriptionRepository = Depends(get_subscription_repo)):
    plan = effective_plan(subscriptions, user)
    return {"plan": plan, "features": sorted(features_for(plan))}


@router.post("/webhook/stripe")
async def stripe_webhook(request: Request, engine: ReconciliationEngine = Depends(get_engine)):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    event = await run_in_threadpool(engine.handle_webhook_event, payload, signature)
    logger.info("webhook %s processed", event.event_id)
    return {"received": True}
