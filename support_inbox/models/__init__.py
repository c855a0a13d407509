"""SQLAlchemy declarative base and account models.

This package hosts the SQLAlchemy models used across the backend. It exposes a
single declarative ``Base`` class that other modules can import when creating
tables. Conversation data itself is stored through psycopg repositories; only
user accounts are mapped here.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export models for convenience so callers can import them via
# ``from support_inbox.models import User``.
from .user import User


__all__ = [
    "Base",
    "User",
]
