from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .auth import public_user
from .deps import get_current_user, get_subscription_repo, get_user_repo
from .errors import NotFound
from .models import User
from .repository import SubscriptionRepository, UserRepository

router = APIRouter(prefix="/api/user", tags=["profile"])


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    jobRole: Optional[str] = None
    company: Optional[str] = None
    resumeName: Optional[str] = None
    resumeUrl: Optional[str] = None


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user), subscriptions: SubscriptionRepository = Depends(get_subscription_repo)):
    sub = subscriptions.get_by_user(user.id)
    return {
        "name": user.name,
        "email": user.email,
        "jobRole": user.job_role,
        "company": user.company,
        "resumeName": user.resume_name,
        "resumeUrl": user.resume_url,
        "subscription": {
            "plan": sub.plan,
            "status": sub.status,
            "currentPeriodEnd": sub.current_period_end.isoformat() if sub.current_period_end else None,
            "cancelAtPeriodEnd": sub.cancel_at_period_end,
        } if sub else None,
    }


@router.patch("/profile")
def update_profile(payload: ProfileUpdate, user: User = Depends(get_current_user), users: UserRepository = Depends(get_user_repo)):
    changes = payload.model_dump(exclude_unset=True)
    updated = users.update_profile(
        user.id,
        **{
            {"jobRole": "job_role", "resumeName": "resume_name", "resumeUrl": "resume_url"}.get(k, k): v
            for k, v in changes.items()
        },
    )
    if not updated:
        raise NotFound("User not found")
    return public_user(updated)
