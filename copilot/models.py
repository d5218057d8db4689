import datetime as dt

from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey

Base = declarative_base()


def utcnow():
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    job_role = Column(String, nullable=True)
    company = Column(String, nullable=True)
    resume_name = Column(String, nullable=True)
    resume_url = Column(String, nullable=True)
    external_customer_id = Column(String, nullable=True)
    external_subscription_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    subscriptions = relationship("Subscription", back_populates="user")


class Subscription(Base):
    __tablename__ = "subscriptions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    external_subscription_id = Column(String, unique=True, nullable=False, index=True)
    external_price_id = Column(String, nullable=False)
    status = Column(String, nullable=False)
    plan = Column(String, nullable=False)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="subscriptions")


class ApiToken(Base):
    __tablename__ = "api_tokens"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    token = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    last_used = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class AssistSession(Base):
    """One logged AI-assist session (interview, meeting, sales call...)."""
    __tablename__ = "sessions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_type = Column(String, nullable=False)
    duration = Column(Integer, nullable=True)
    status = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)
