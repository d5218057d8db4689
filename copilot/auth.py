from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from .credentials import CredentialService, hash_password
from .deps import get_credentials
from .errors import AlreadyExists, AuthError, ValidationError
from .models import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignupIn(BaseModel):
    name: str
    email: EmailStr
    password: str
    jobRole: Optional[str] = None
    company: Optional[str] = None


class LoginIn(BaseModel):
    email: str
    password: str


def public_user(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "jobRole": user.job_role,
        "company": user.company,
        "resumeName": user.resume_name,
        "resumeUrl": user.resume_url,
    }


@router.post("/signup", status_code=201)
def signup(payload: SignupIn, credentials: CredentialService = Depends(get_credentials)):
    if not payload.password:
        raise ValidationError("Password required")
    if credentials.users.get_by_email(payload.email):
        raise AlreadyExists("User already exists")
    user = credentials.users.create(
        email=payload.email,
        password_hash=hash_password(payload.password),
        name=payload.name,
        job_role=payload.jobRole,
        company=payload.company,
    )
    return {"user": public_user(user), "token": credentials.issue_token(user.id)}


@router.post("/login")
def login(payload: LoginIn, credentials: CredentialService = Depends(get_credentials)):
    if not payload.email or not payload.password:
        raise ValidationError("Email and password required")
    user_id = credentials.verify_credentials(payload.email, payload.password)
    if user_id is None:
        raise AuthError("Invalid credentials")
    user = credentials.users.get(user_id)
    return {"user": public_user(user), "token": credentials.issue_token(user_id)}
