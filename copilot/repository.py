"""Repositories over the SQLAlchemy session.

Every write commits immediately: there is no unit of work spanning a gateway
call, so whatever the repository last committed is what other requests see.
"""
import logging
import datetime as dt
from typing import List, Optional

from sqlalchemy.orm import Session

from .models import User, Subscription, ApiToken, AssistSession, utcnow

logger = logging.getLogger(__name__)

SUBSCRIPTION_FIELDS = {
    "status", "plan", "external_price_id", "current_period_start",
    "current_period_end", "cancel_at_period_end",
}
PROFILE_FIELDS = {"name", "job_role", "company", "resume_name", "resume_url"}


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, subscription_id: int) -> Optional[Subscription]:
        return self.db.get(Subscription, subscription_id)

    def get_by_user(self, user_id: int) -> Optional[Subscription]:
        """The user's authoritative subscription: the most recently created row."""
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )

    def get_by_external_id(self, external_subscription_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.external_subscription_id == external_subscription_id)
            .first()
        )

    def create(self, user_id: int, external_subscription_id: str, **fields) -> Subscription:
        sub = Subscription(user_id=user_id, external_subscription_id=external_subscription_id)
        self._apply(sub, fields)
        self.db.add(sub)
        self.db.commit()
        self.db.refresh(sub)
        logger.info("subscription %s recorded for user %s", external_subscription_id, user_id)
        return sub

    def update(self, subscription_id: int, **fields) -> Optional[Subscription]:
        sub = self.get(subscription_id)
        if sub is None:
            return None
        return self._save(sub, fields)

    def update_by_external_id(self, external_subscription_id: str, **fields) -> Optional[Subscription]:
        sub = self.get_by_external_id(external_subscription_id)
        if sub is None:
            return None
        return self._save(sub, fields)

    def _save(self, sub: Subscription, fields: dict) -> Subscription:
        self._apply(sub, fields)
        sub.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(sub)
        return sub

    @staticmethod
    def _apply(sub: Subscription, fields: dict):
        unknown = set(fields) - SUBSCRIPTION_FIELDS
        if unknown:
            raise TypeError(f"unknown subscription fields: {sorted(unknown)}")
        for key, value in fields.items():
            setattr(sub, key, value)


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def create(self, email: str, password_hash: str, name: str, **profile) -> User:
        user = User(email=email.strip().lower(), password_hash=password_hash, name=name)
        for key, value in profile.items():
            if key in PROFILE_FIELDS:
                setattr(user, key, value)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_profile(self, user_id: int, **changes) -> Optional[User]:
        user = self.get(user_id)
        if user is None:
            return None
        for key, value in changes.items():
            if key in PROFILE_FIELDS:
                setattr(user, key, value)
        self.db.commit()
        self.db.refresh(user)
        return user

    def set_external_ids(self, user_id: int, customer_id: str, subscription_id: Optional[str] = None) -> Optional[User]:
        user = self.get(user_id)
        if user is None:
            return None
        user.external_customer_id = customer_id
        if subscription_id is not None:
            user.external_subscription_id = subscription_id
        self.db.commit()
        self.db.refresh(user)
        return user


class ApiTokenRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: int) -> List[ApiToken]:
        return (
            self.db.query(ApiToken)
            .filter(ApiToken.user_id == user_id)
            .order_by(ApiToken.created_at.desc(), ApiToken.id.desc())
            .all()
        )

    def get_by_token(self, token: str) -> Optional[ApiToken]:
        return self.db.query(ApiToken).filter(ApiToken.token == token).first()

    def create(self, user_id: int, token: str, name: str) -> ApiToken:
        row = ApiToken(user_id=user_id, token=token, name=name)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def touch(self, token: str):
        self.db.query(ApiToken).filter(ApiToken.token == token).update({"last_used": utcnow()})
        self.db.commit()

    def delete(self, token_id: int, user_id: int) -> bool:
        deleted = (
            self.db.query(ApiToken)
            .filter(ApiToken.id == token_id, ApiToken.user_id == user_id)
            .delete()
        )
        self.db.commit()
        return bool(deleted)


class SessionRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: int) -> List[AssistSession]:
        return (
            self.db.query(AssistSession)
            .filter(AssistSession.user_id == user_id)
            .order_by(AssistSession.created_at.desc(), AssistSession.id.desc())
            .all()
        )

    def count_since(self, user_id: int, since: dt.datetime) -> int:
        return (
            self.db.query(AssistSession)
            .filter(AssistSession.user_id == user_id, AssistSession.created_at >= since)
            .count()
        )

    def create(self, user_id: int, session_type: str, status: str, duration: Optional[int] = None) -> AssistSession:
        row = AssistSession(user_id=user_id, session_type=session_type, status=status, duration=duration)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row
