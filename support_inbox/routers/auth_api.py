import datetime as dt
import logging
import uuid
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.limiter import LOGIN_RATE_LIMIT, limiter
from ..models import User
from ..security import create_access_token, get_current_user, verify_password
from ..security.auth import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

SessionDep = Annotated[Session, Depends(get_db_session)]
UserDep = Annotated[User, Depends(get_current_user)]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class UserPayload(BaseModel):
    id: uuid.UUID
    email: EmailStr
    name: str
    role: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int = Field(..., description="Seconds until the access token expires")
    user: UserPayload


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def user_payload(user: User) -> UserPayload:
    return UserPayload(id=user.id, email=user.email, name=user.name, role=user.role)


@router.post("/token", response_model=TokenResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login(request: Request, payload: LoginRequest, session: SessionDep) -> TokenResponse:
    """Exchange e-mail and password for a bearer access token."""

    email = _normalize_email(payload.email)
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login attempt for %s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials."
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="User is inactive."
        )

    token, expires_at = create_access_token(user)
    now = dt.datetime.now(dt.timezone.utc)
    return TokenResponse(
        access_token=token,
        expires_in=max(int((expires_at - now).total_seconds()), 0),
        user=user_payload(user),
    )


@router.get("/me", response_model=UserPayload)
async def me(user: UserDep) -> UserPayload:
    return user_payload(user)
