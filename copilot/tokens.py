import secrets
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .deps import get_current_user, get_token_repo
from .errors import NotFound
from .models import User
from .repository import ApiTokenRepository

router = APIRouter(prefix="/api/tokens", tags=["tokens"])

DEFAULT_TOKEN_NAME = "Desktop App Token"


class TokenIn(BaseModel):
    name: Optional[str] = None


def _ts(value):
    return value.isoformat() if value else None


@router.get("")
def list_tokens(user: User = Depends(get_current_user), tokens: ApiTokenRepository = Depends(get_token_repo)):
    return [
        {"id": t.id, "name": t.name, "lastUsed": _ts(t.last_used), "createdAt": _ts(t.created_at)}
        for t in tokens.list_for_user(user.id)
    ]


@router.post("")
def create_token(payload: TokenIn, user: User = Depends(get_current_user), tokens: ApiTokenRepository = Depends(get_token_repo)):
    row = tokens.create(user.id, secrets.token_hex(32), payload.name or DEFAULT_TOKEN_NAME)
    # the secret is only ever shown here
    return {"id": row.id, "name": row.name, "token": row.token, "createdAt": _ts(row.created_at)}


@router.delete("/{token_id}")
def delete_token(token_id: int, user: User = Depends(get_current_user), tokens: ApiTokenRepository = Depends(get_token_repo)):
    if not tokens.delete(token_id, user.id):
        raise NotFound("Token not found")
    return {"message": "Token deleted"}
