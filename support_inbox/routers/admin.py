"""Administrative routes: audit trail, triage rules and dashboard users."""

from __future__ import annotations

import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..audit.schemas import AuditLogList
from ..conversations.models import Role
from ..core.services import get_classifier
from ..core.services import request_services as _service_context
from ..models import User
from ..security import hash_password
from ..security.auth import get_db_session, require_permission
from ..security.passwords import MIN_PASSWORD_LENGTH
from ..security.permissions import Permissions
from .auth_api import UserPayload, user_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["admin"])

SessionDep = Annotated[Session, Depends(get_db_session)]
AuditViewerDep = Annotated[User, Depends(require_permission(Permissions.can_view_audit_logs))]
UserManagerDep = Annotated[User, Depends(require_permission(Permissions.can_manage_users))]


class UserCreateRequest(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)
    role: Role = Role.VIEWER


class UserUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    role: Role | None = None
    is_active: bool | None = None
    password: str | None = Field(default=None, min_length=MIN_PASSWORD_LENGTH, max_length=128)


class AdminUserPayload(UserPayload):
    is_active: bool


def _admin_payload(user: User) -> AdminUserPayload:
    return AdminUserPayload(**user_payload(user).model_dump(), is_active=user.is_active)


@router.get("/audit-logs", response_model=AuditLogList)
def list_audit_logs(
    _: AuditViewerDep,
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    user_id: str | None = Query(default=None, alias="userId"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> AuditLogList:
    with _service_context() as services:
        if conversation_id:
            items = services.audit.for_conversation(conversation_id)[offset : offset + limit]
        elif user_id:
            items = services.audit.for_user(user_id, limit + offset)[offset:]
        else:
            items = services.audit.list_all(limit, offset)
    return AuditLogList(items=items, limit=limit, offset=offset)


@router.get("/admin/triage-rules")
def triage_rules(_: AuditViewerDep) -> dict[str, Any]:
    return get_classifier().rules.as_dict()


@router.get("/admin/users", response_model=list[AdminUserPayload])
def list_users(_: UserManagerDep, session: SessionDep) -> list[AdminUserPayload]:
    users = session.execute(select(User).order_by(User.email)).scalars().all()
    return [_admin_payload(user) for user in users]


@router.post(
    "/admin/users",
    response_model=AdminUserPayload,
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: UserCreateRequest, admin: UserManagerDep, session: SessionDep
) -> AdminUserPayload:
    email = payload.email.strip().lower()
    existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="E-mail already registered."
        )
    user = User(
        email=email,
        name=payload.name.strip(),
        password_hash=hash_password(payload.password),
        role=payload.role.value,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="E-mail already registered."
        ) from exc
    session.refresh(user)
    logger.info("User %s created %s with role %s", admin.id, user.email, user.role)
    return _admin_payload(user)


@router.patch("/admin/users/{user_id}", response_model=AdminUserPayload)
def update_user(
    user_id: uuid.UUID,
    payload: UserUpdateRequest,
    admin: UserManagerDep,
    session: SessionDep,
) -> AdminUserPayload:
    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    if user.id == admin.id and (
        payload.is_active is False
        or (payload.role is not None and payload.role is not Role.ADMIN)
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Administrators cannot demote or deactivate themselves.",
        )

    if payload.name is not None:
        user.name = payload.name.strip()
    if payload.role is not None:
        user.role = payload.role.value
    if payload.is_active is not None:
        user.is_active = payload.is_active
    if payload.password is not None:
        user.password_hash = hash_password(payload.password)
    session.commit()
    session.refresh(user)
    logger.info("User %s updated %s", admin.id, user.email)
    return _admin_payload(user)
