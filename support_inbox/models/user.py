"""Dashboard user accounts.

Agents and administrators sign in with e-mail and password; their role
decides which conversation operations they may perform.
"""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..conversations.models import Role
from . import Base


def _utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class User(Base):
    """Represents a person working the support inbox.

    Attributes:
        id: Primary key, a random UUID.
        email: Unique e-mail address used for authentication.
        name: Friendly name shown in the UI and logs.
        password_hash: Argon2 hash of the user's password.
        role: One of :class:`~support_inbox.conversations.models.Role`.
        is_active: Inactive users cannot authenticate.
    """

    __tablename__ = "users"
    __table_args__ = (Index("ix_users_email_unique", "email", unique=True),)

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(String(length=320), nullable=False)
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(length=255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default=Role.VIEWER.value,
    )
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    @property
    def role_enum(self) -> Role:
        return Role(self.role)
