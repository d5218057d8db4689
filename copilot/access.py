"""Feature gating by plan.

Everything here reads the subscription repository as it stands, so gating
reflects the last reconciliation rather than the gateway's current instant.
"""
import datetime as dt
from typing import FrozenSet, Optional

from .errors import FeatureNotAvailable
from .models import User, utcnow
from .repository import SubscriptionRepository, SessionRepository

FREE_PLAN = "free"
PAID_PLANS = ("pro", "enterprise")

FREE_FEATURES = frozenset({
    "ai_sessions",
    "basic_screen_analysis",
    "community_support",
})
PRO_FEATURES = FREE_FEATURES | {
    "unlimited_sessions",
    "advanced_screen_analysis",
    "unlimited_session_time",
    "priority_support",
    "custom_ai_training",
    "session_recordings",
}
ENTERPRISE_FEATURES = PRO_FEATURES | {
    "team_management",
    "advanced_analytics",
    "sso",
    "dedicated_support",
    "custom_integrations",
}

PLAN_FEATURES = {
    FREE_PLAN: FREE_FEATURES,
    "pro": PRO_FEATURES,
    "enterprise": ENTERPRISE_FEATURES,
}

FREE_MONTHLY_SESSIONS = 5
FREE_SESSION_MINUTES = 30


def effective_plan(subscriptions: SubscriptionRepository, user: User) -> str:
    sub = subscriptions.get_by_user(user.id)
    return sub.plan if sub is not None else FREE_PLAN


def features_for(plan: str) -> FrozenSet[str]:
    return PLAN_FEATURES.get(plan, FREE_FEATURES)


def has_feature(subscriptions: SubscriptionRepository, user: User, feature: str) -> bool:
    return feature in features_for(effective_plan(subscriptions, user))


def month_start(now: Optional[dt.datetime] = None) -> dt.datetime:
    now = now or utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def check_session_allowed(subscriptions: SubscriptionRepository, sessions: SessionRepository, user: User, duration: Optional[int]):
    """Raise FeatureNotAvailable when logging this session exceeds the user's plan."""
    features = features_for(effective_plan(subscriptions, user))
    if duration and duration > FREE_SESSION_MINUTES and "unlimited_session_time" not in features:
        raise FeatureNotAvailable(f"Sessions longer than {FREE_SESSION_MINUTES} minutes require a paid plan")
    if "unlimited_sessions" not in features:
        if sessions.count_since(user.id, month_start()) >= FREE_MONTHLY_SESSIONS:
            raise FeatureNotAvailable(f"Free plan is limited to {FREE_MONTHLY_SESSIONS} sessions per month")
