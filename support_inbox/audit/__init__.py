"""Audit trail of user actions on conversations."""

from .repository import AuditRepository, InMemoryAuditRepository, PostgresAuditRepository
from .schemas import AuditAction, AuditChanges, AuditLog, ClientInfo

__all__ = [
    "AuditAction",
    "AuditChanges",
    "AuditLog",
    "AuditRepository",
    "ClientInfo",
    "InMemoryAuditRepository",
    "PostgresAuditRepository",
]
