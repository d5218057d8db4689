from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from .access import check_session_allowed
from .deps import get_current_user, get_session_repo, get_subscription_repo, require_feature
from .models import AssistSession, User
from .repository import SessionRepository, SubscriptionRepository

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class SessionIn(BaseModel):
    sessionType: str = Field(min_length=1)
    status: str = Field(min_length=1)
    duration: Optional[int] = Field(default=None, ge=0)


def session_body(row: AssistSession) -> dict:
    return {
        "id": row.id,
        "userId": row.user_id,
        "sessionType": row.session_type,
        "duration": row.duration,
        "status": row.status,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }


@router.get("")
def list_sessions(user: User = Depends(get_current_user), sessions: SessionRepository = Depends(get_session_repo)):
    return [session_body(s) for s in sessions.list_for_user(user.id)]


@router.post("", status_code=201)
def create_session(
    payload: SessionIn,
    user: User = Depends(get_current_user),
    sessions: SessionRepository = Depends(get_session_repo),
    subscriptions: SubscriptionRepository = Depends(get_subscription_repo),
):
    check_session_allowed(subscriptions, sessions, user, payload.duration)
    row = sessions.create(user.id, payload.sessionType, payload.status, payload.duration)
    return session_body(row)


@router.get("/stats")
def session_stats(user: User = Depends(require_feature("advanced_analytics")), sessions: SessionRepository = Depends(get_session_repo)):
    rows = sessions.list_for_user(user.id)
    by_type = {}
    for row in rows:
        entry = by_type.setdefault(row.session_type, {"count": 0, "minutes": 0})
        entry["count"] += 1
        entry["minutes"] += row.duration or 0
    return {
        "total": len(rows),
        "totalMinutes": sum(e["minutes"] for e in by_type.values()),
        "byType": by_type,
    }
