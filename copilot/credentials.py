import logging
import datetime as dt
from typing import Optional

import jwt
from passlib.context import CryptContext

from . import config
from .repository import UserRepository

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt_sha256", "bcrypt"], default="pbkdf2_sha256", deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password[:72])


class CredentialService:
    """Password check plus issuing/validating signed session tokens."""

    algorithm = "HS256"

    def __init__(self, users: UserRepository, secret: Optional[str] = None, ttl_days: Optional[int] = None):
        self.users = users
        self.secret = secret or config.JWT_SECRET
        self.ttl = dt.timedelta(days=config.TOKEN_TTL_DAYS if ttl_days is None else ttl_days)

    def verify_credentials(self, email: str, password: str) -> Optional[int]:
        user = self.users.get_by_email(email)
        if not user or not pwd_context.verify(password[:72], user.password_hash):
            return None
        return user.id

    def issue_token(self, user_id: int) -> str:
        now = dt.datetime.now(dt.timezone.utc)
        return jwt.encode({"sub": str(user_id), "iat": now, "exp": now + self.ttl}, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[int]:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
            return int(payload["sub"])
        except (jwt.PyJWTError, KeyError, TypeError, ValueError) as e:
            logger.debug("rejected session token: %s", e)
            return None
