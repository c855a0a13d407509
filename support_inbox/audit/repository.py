"""Persistence for audit log entries."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from .schemas import AuditChanges, AuditLog


class AuditRepository(Protocol):
    def append(
        self,
        conversation_id: Optional[str],
        user_id: str,
        changes: AuditChanges,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog: ...

    def for_conversation(self, conversation_id: str) -> List[AuditLog]: ...

    def for_user(self, user_id: str, limit: int = 100) -> List[AuditLog]: ...

    def list_all(self, limit: int = 100, offset: int = 0) -> List[AuditLog]: ...


class PostgresAuditRepository:
    """PostgreSQL implementation of :class:`AuditRepository`."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    def append(
        self,
        conversation_id: Optional[str],
        user_id: str,
        changes: AuditChanges,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO audit_logs
                    (conversation_id, user_id, action, changes, ip_address, user_agent)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    conversation_id,
                    user_id,
                    changes.action,
                    Jsonb(changes.model_dump(mode="json")),
                    ip_address,
                    user_agent,
                ),
            )
            row = cur.fetchone()
        return AuditLog(**row)

    def for_conversation(self, conversation_id: str) -> List[AuditLog]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT * FROM audit_logs WHERE conversation_id = %s
                ORDER BY created_at DESC
                """,
                (conversation_id,),
            )
            rows = cur.fetchall()
        return [AuditLog(**row) for row in rows]

    def for_user(self, user_id: str, limit: int = 100) -> List[AuditLog]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM audit_logs WHERE user_id = %s ORDER BY created_at DESC LIMIT %s",
                (user_id, limit),
            )
            rows = cur.fetchall()
        return [AuditLog(**row) for row in rows]

    def list_all(self, limit: int = 100, offset: int = 0) -> List[AuditLog]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM audit_logs ORDER BY created_at DESC LIMIT %s OFFSET %s",
                (limit, offset),
            )
            rows = cur.fetchall()
        return [AuditLog(**row) for row in rows]


class InMemoryAuditRepository:
    """List-backed audit storage used by tests and local sandboxes."""

    def __init__(self) -> None:
        self.entries: List[AuditLog] = []

    def append(
        self,
        conversation_id: Optional[str],
        user_id: str,
        changes: AuditChanges,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            user_id=user_id,
            action=changes.action,
            changes=changes,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.now(timezone.utc),
        )
        self.entries.append(entry)
        return entry

    def _newest_first(self) -> List[AuditLog]:
        return list(reversed(self.entries))

    def for_conversation(self, conversation_id: str) -> List[AuditLog]:
        return [e for e in self._newest_first() if e.conversation_id == conversation_id]

    def for_user(self, user_id: str, limit: int = 100) -> List[AuditLog]:
        return [e for e in self._newest_first() if e.user_id == user_id][:limit]

    def list_all(self, limit: int = 100, offset: int = 0) -> List[AuditLog]:
        return self._newest_first()[offset : offset + limit]


__all__ = ["AuditRepository", "InMemoryAuditRepository", "PostgresAuditRepository"]
