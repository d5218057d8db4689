import logging

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from . import config
from .access import has_feature
from .credentials import CredentialService
from .db import get_db
from .errors import AuthError, FeatureNotAvailable
from .gateway import StripeGateway
from .models import User
from .reconciliation import ReconciliationEngine
from .repository import SubscriptionRepository, UserRepository, ApiTokenRepository, SessionRepository

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_gateway() -> StripeGateway:
    return StripeGateway(config.STRIPE_SECRET_KEY, config.STRIPE_WEBHOOK_SECRET, config.STRIPE_API_VERSION)


def get_user_repo(db: Session = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_subscription_repo(db: Session = Depends(get_db)) -> SubscriptionRepository:
    return SubscriptionRepository(db)


def get_token_repo(db: Session = Depends(get_db)) -> ApiTokenRepository:
    return ApiTokenRepository(db)


def get_session_repo(db: Session = Depends(get_db)) -> SessionRepository:
    return SessionRepository(db)


def get_credentials(users: UserRepository = Depends(get_user_repo)) -> CredentialService:
    return CredentialService(users)


def get_engine(
    subscriptions: SubscriptionRepository = Depends(get_subscription_repo),
    users: UserRepository = Depends(get_user_repo),
    gateway=Depends(get_gateway),
) -> ReconciliationEngine:
    return ReconciliationEngine(subscriptions, users, gateway)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    credentials: CredentialService = Depends(get_credentials),
    tokens: ApiTokenRepository = Depends(get_token_repo),
) -> User:
    if not token:
        raise AuthError("Access token required")
    user_id = credentials.verify_token(token)
    if user_id is None:
        # companion clients authenticate with a long-lived API token instead
        api_token = tokens.get_by_token(token)
        if api_token is not None:
            tokens.touch(token)
            user_id = api_token.user_id
    user = credentials.users.get(user_id) if user_id is not None else None
    if not user:
        raise AuthError("Invalid token")
    return user


def require_feature(feature: str):
    def dependency(
        user: User = Depends(get_current_user),
        subscriptions: SubscriptionRepository = Depends(get_subscription_repo),
    ) -> User:
        if not has_feature(subscriptions, user, feature):
            logger.info("user %s denied feature %s", user.id, feature)
            raise FeatureNotAvailable("Subscription required")
        return user
    return dependency
