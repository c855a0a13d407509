"""Database repository for contacts, conversations and messages."""
from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from . import schemas
from .models import ACTIVE_STATUSES, ConversationFilters, Direction, Status
from .status import needs_action

if TYPE_CHECKING:  # pragma: no cover
    from .tags import InMemoryTagRepository

_TRIAGE_COLUMNS = ("priority", "urgency", "is_complaint", "complaint_type")

# NOW first, then TODAY, THIS_WEEK, ANYTIME.
_URGENCY_ORDER = (
    "CASE c.urgency WHEN 'NOW' THEN 0 WHEN 'TODAY' THEN 1 "
    "WHEN 'THIS_WEEK' THEN 2 ELSE 3 END"
)

_SUMMARY_SELECT = """
    SELECT c.*, ct.display_name AS contact_display_name,
           COALESCE((
               SELECT json_agg(
                   json_build_object('id', t.id, 'name', t.name, 'color', t.color)
                   ORDER BY t.name
               )
               FROM conversation_tags l JOIN tags t ON t.id = l.tag_id
               WHERE l.conversation_id = c.id
           ), '[]'::json) AS tags
    FROM conversations c
    JOIN contacts ct ON ct.id = c.contact_id
"""


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class ConversationRepository(Protocol):
    """Abstraction for persisting contacts, conversations and messages."""

    def savepoint(self) -> Any:
        """Context manager; writes inside it are undone if it exits with an error."""
        ...

    # Contacts
    def get_contact(self, contact_id: str) -> Optional[schemas.Contact]: ...

    def get_contact_by_line_user_id(self, line_user_id: str) -> Optional[schemas.Contact]: ...

    def create_contact(
        self,
        line_user_id: str,
        *,
        display_name: Optional[str] = None,
        picture_url: Optional[str] = None,
        followed_at: Optional[datetime] = None,
    ) -> schemas.Contact: ...

    def set_contact_blocked(
        self,
        contact_id: str,
        is_blocked: bool,
        *,
        followed_at: Optional[datetime] = None,
    ) -> Optional[schemas.Contact]: ...

    def update_contact_memo(
        self, contact_id: str, memo: Optional[str]
    ) -> Optional[schemas.Contact]: ...

    # Conversations
    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]: ...

    def find_open_conversation(self, contact_id: str) -> Optional[schemas.Conversation]: ...

    def create_conversation(self, contact_id: str) -> schemas.Conversation: ...

    def update_triage(
        self, conversation_id: str, changes: Dict[str, Any]
    ) -> Optional[schemas.Conversation]: ...

    def update_status(
        self, conversation_id: str, status: Status, expected_version: int
    ) -> Optional[schemas.Conversation]: ...

    def bulk_update_status(
        self, conversation_ids: Sequence[str], status: Status
    ) -> List[str]: ...

    def set_assignee(
        self, conversation_id: str, user_id: Optional[str]
    ) -> Optional[schemas.Conversation]: ...

    def touch_inbound(self, conversation_id: str, at: datetime, preview: Optional[str]) -> None: ...

    def touch_outbound(self, conversation_id: str, at: datetime, preview: Optional[str]) -> None: ...

    def list_conversations(
        self, filters: ConversationFilters, *, offset: int = 0, limit: int = 50
    ) -> Tuple[List[schemas.ConversationSummary], int]: ...

    def list_active(self, limit: int = 50) -> List[schemas.ConversationSummary]: ...

    def count_by_status(self) -> Dict[Status, int]: ...

    def count_needs_action(self) -> int: ...

    # Messages
    def add_message(
        self,
        conversation_id: str,
        direction: Direction,
        text: Optional[str],
        *,
        timestamp: datetime,
        line_message_id: Optional[str] = None,
        raw_payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[schemas.Message]: ...

    def list_messages(self, conversation_id: str) -> List[schemas.Message]: ...

    def recent_inbound_texts(self, conversation_id: str, limit: int) -> List[Optional[str]]: ...


class PostgresConversationRepository:
    """PostgreSQL implementation of :class:`ConversationRepository`."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    # Utility -----------------------------------------------------------------
    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        # Nested inside the request transaction, psycopg issues SAVEPOINT.
        with self._conn.transaction():
            yield

    def _fetch_one(self, query: str, params: Sequence[Any]) -> Optional[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(query, params)
            return cur.fetchone()

    # Contacts ----------------------------------------------------------------
    def get_contact(self, contact_id: str) -> Optional[schemas.Contact]:
        row = self._fetch_one("SELECT * FROM contacts WHERE id = %s", (contact_id,))
        return schemas.Contact(**row) if row else None

    def get_contact_by_line_user_id(self, line_user_id: str) -> Optional[schemas.Contact]:
        row = self._fetch_one(
            "SELECT * FROM contacts WHERE line_user_id = %s", (line_user_id,)
        )
        return schemas.Contact(**row) if row else None

    def create_contact(
        self,
        line_user_id: str,
        *,
        display_name: Optional[str] = None,
        picture_url: Optional[str] = None,
        followed_at: Optional[datetime] = None,
    ) -> schemas.Contact:
        row = self._fetch_one(
            """
            INSERT INTO contacts (line_user_id, display_name, picture_url, followed_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (line_user_id) DO UPDATE SET updated_at = now()
            RETURNING *
            """,
            (line_user_id, display_name, picture_url, followed_at),
        )
        return schemas.Contact(**row)

    def set_contact_blocked(
        self,
        contact_id: str,
        is_blocked: bool,
        *,
        followed_at: Optional[datetime] = None,
    ) -> Optional[schemas.Contact]:
        row = self._fetch_one(
            """
            UPDATE contacts
            SET is_blocked = %s, followed_at = COALESCE(%s, followed_at), updated_at = now()
            WHERE id = %s
            RETURNING *
            """,
            (is_blocked, followed_at, contact_id),
        )
        return schemas.Contact(**row) if row else None

    def update_contact_memo(
        self, contact_id: str, memo: Optional[str]
    ) -> Optional[schemas.Contact]:
        row = self._fetch_one(
            "UPDATE contacts SET memo = %s, updated_at = now() WHERE id = %s RETURNING *",
            (memo, contact_id),
        )
        return schemas.Contact(**row) if row else None

    # Conversations -----------------------------------------------------------
    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]:
        row = self._fetch_one(
            "SELECT * FROM conversations WHERE id = %s", (conversation_id,)
        )
        return schemas.Conversation(**row) if row else None

    def find_open_conversation(self, contact_id: str) -> Optional[schemas.Conversation]:
        row = self._fetch_one(
            """
            SELECT * FROM conversations
            WHERE contact_id = %s AND status NOT IN ('CLOSED', 'RESOLVED')
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            (contact_id,),
        )
        return schemas.Conversation(**row) if row else None

    def create_conversation(self, contact_id: str) -> schemas.Conversation:
        row = self._fetch_one(
            "INSERT INTO conversations (contact_id) VALUES (%s) RETURNING *",
            (contact_id,),
        )
        return schemas.Conversation(**row)

    def update_triage(
        self, conversation_id: str, changes: Dict[str, Any]
    ) -> Optional[schemas.Conversation]:
        unknown = set(changes) - set(_TRIAGE_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported triage fields: {', '.join(sorted(unknown))}")
        if not changes:
            return self.get_conversation(conversation_id)
        columns = [column for column in _TRIAGE_COLUMNS if column in changes]
        assignments = ", ".join(f"{column} = %s" for column in columns)
        values: List[Any] = [_db_value(changes[column]) for column in columns]
        values.append(conversation_id)
        row = self._fetch_one(
            f"UPDATE conversations SET {assignments}, updated_at = now() "
            "WHERE id = %s RETURNING *",
            values,
        )
        return schemas.Conversation(**row) if row else None

    def update_status(
        self, conversation_id: str, status: Status, expected_version: int
    ) -> Optional[schemas.Conversation]:
        row = self._fetch_one(
            """
            UPDATE conversations
            SET status = %s, version = version + 1, updated_at = now()
            WHERE id = %s AND version = %s
            RETURNING *
            """,
            (_db_value(status), conversation_id, expected_version),
        )
        return schemas.Conversation(**row) if row else None

    def bulk_update_status(
        self, conversation_ids: Sequence[str], status: Status
    ) -> List[str]:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE conversations SET status = %s, updated_at = now()
                WHERE id = ANY(%s)
                RETURNING id
                """,
                (_db_value(status), list(conversation_ids)),
            )
            return [row["id"] for row in cur.fetchall()]

    def set_assignee(
        self, conversation_id: str, user_id: Optional[str]
    ) -> Optional[schemas.Conversation]:
        row = self._fetch_one(
            """
            UPDATE conversations SET assigned_user_id = %s, updated_at = now()
            WHERE id = %s RETURNING *
            """,
            (user_id, conversation_id),
        )
        return schemas.Conversation(**row) if row else None

    def touch_inbound(self, conversation_id: str, at: datetime, preview: Optional[str]) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE conversations
                SET last_inbound_at = %s, last_message_preview = %s, updated_at = now()
                WHERE id = %s
                """,
                (at, preview, conversation_id),
            )

    def touch_outbound(self, conversation_id: str, at: datetime, preview: Optional[str]) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE conversations
                SET last_outbound_at = %s, last_message_preview = %s, updated_at = now()
                WHERE id = %s
                """,
                (at, preview, conversation_id),
            )

    def list_conversations(
        self, filters: ConversationFilters, *, offset: int = 0, limit: int = 50
    ) -> Tuple[List[schemas.ConversationSummary], int]:
        clauses: List[str] = []
        params: List[Any] = []
        if filters.status is not None:
            clauses.append("c.status = %s")
            params.append(_db_value(filters.status))
        if filters.assigned_user_id:
            clauses.append("c.assigned_user_id = %s")
            params.append(filters.assigned_user_id)
        if filters.priority is not None:
            clauses.append("c.priority = %s")
            params.append(_db_value(filters.priority))
        if filters.urgency is not None:
            clauses.append("c.urgency = %s")
            params.append(_db_value(filters.urgency))
        if filters.complaints_only:
            clauses.append("c.is_complaint")
        if filters.tag_id:
            clauses.append(
                "EXISTS (SELECT 1 FROM conversation_tags l "
                "WHERE l.conversation_id = c.id AND l.tag_id = %s)"
            )
            params.append(filters.tag_id)
        if filters.search:
            clauses.append("(ct.display_name ILIKE %s OR ct.memo ILIKE %s)")
            pattern = f"%{filters.search}%"
            params.extend((pattern, pattern))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._cursor() as cur:
            cur.execute(
                f"""
                {_SUMMARY_SELECT}
                {where}
                ORDER BY {_URGENCY_ORDER}, c.last_inbound_at DESC NULLS LAST
                LIMIT %s OFFSET %s
                """,
                (*params, limit, offset),
            )
            rows = cur.fetchall()
            cur.execute(
                "SELECT COUNT(*) AS total FROM conversations c "
                f"JOIN contacts ct ON ct.id = c.contact_id {where}",
                params,
            )
            count_row = cur.fetchone() or {"total": 0}
        return [schemas.ConversationSummary(**row) for row in rows], int(count_row["total"])

    def list_active(self, limit: int = 50) -> List[schemas.ConversationSummary]:
        with self._cursor() as cur:
            cur.execute(
                f"""
                {_SUMMARY_SELECT}
                WHERE c.status = ANY(%s)
                ORDER BY {_URGENCY_ORDER}, c.last_inbound_at DESC NULLS LAST
                LIMIT %s
                """,
                ([status.value for status in ACTIVE_STATUSES], limit),
            )
            rows = cur.fetchall()
        return [schemas.ConversationSummary(**row) for row in rows]

    def count_by_status(self) -> Dict[Status, int]:
        with self._cursor() as cur:
            cur.execute("SELECT status, COUNT(*) AS total FROM conversations GROUP BY status")
            rows = cur.fetchall()
        counts = {status: 0 for status in Status}
        for row in rows:
            counts[Status(row["status"])] = int(row["total"])
        return counts

    def count_needs_action(self) -> int:
        row = self._fetch_one(
            """
            SELECT COUNT(*) AS total FROM conversations
            WHERE status NOT IN ('CLOSED', 'NO_ACTION_NEEDED')
              AND last_inbound_at IS NOT NULL
              AND (last_outbound_at IS NULL OR last_inbound_at > last_outbound_at)
            """,
            (),
        )
        return int(row["total"]) if row else 0

    # Messages ----------------------------------------------------------------
    def add_message(
        self,
        conversation_id: str,
        direction: Direction,
        text: Optional[str],
        *,
        timestamp: datetime,
        line_message_id: Optional[str] = None,
        raw_payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[schemas.Message]:
        row = self._fetch_one(
            """
            INSERT INTO messages
                (conversation_id, direction, text, line_message_id, timestamp, raw_payload)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (line_message_id) DO NOTHING
            RETURNING *
            """,
            (
                conversation_id,
                _db_value(direction),
                text,
                line_message_id,
                timestamp,
                Jsonb(raw_payload or {}),
            ),
        )
        return schemas.Message(**row) if row else None

    def list_messages(self, conversation_id: str) -> List[schemas.Message]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM messages WHERE conversation_id = %s ORDER BY timestamp ASC",
                (conversation_id,),
            )
            rows = cur.fetchall()
        return [schemas.Message(**row) for row in rows]

    def recent_inbound_texts(self, conversation_id: str, limit: int) -> List[Optional[str]]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT text FROM messages
                WHERE conversation_id = %s AND direction = 'INBOUND'
                ORDER BY timestamp DESC
                LIMIT %s
                """,
                (conversation_id, limit),
            )
            rows = cur.fetchall()
        return [row["text"] for row in rows]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _list_order(item: schemas.Conversation) -> Tuple[int, bool, float]:
    inbound = item.last_inbound_at
    return (
        -item.urgency.rank,
        inbound is None,
        -inbound.timestamp() if inbound is not None else 0.0,
    )


class InMemoryConversationRepository:
    """Dictionary-backed repository used by tests and local sandboxes.

    Pass the in-memory tag repository to make tag filters and conversation
    summaries aware of tag links.
    """

    def __init__(self, tags: "InMemoryTagRepository | None" = None) -> None:
        self.contacts: Dict[str, schemas.Contact] = {}
        self.conversations: Dict[str, schemas.Conversation] = {}
        self.messages: Dict[str, schemas.Message] = {}
        self._tags = tags

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        snapshot = (dict(self.contacts), dict(self.conversations), dict(self.messages))
        try:
            yield
        except Exception:
            self.contacts, self.conversations, self.messages = snapshot
            raise

    # Contacts ----------------------------------------------------------------
    def get_contact(self, contact_id: str) -> Optional[schemas.Contact]:
        return self.contacts.get(contact_id)

    def get_contact_by_line_user_id(self, line_user_id: str) -> Optional[schemas.Contact]:
        for contact in self.contacts.values():
            if contact.line_user_id == line_user_id:
                return contact
        return None

    def create_contact(
        self,
        line_user_id: str,
        *,
        display_name: Optional[str] = None,
        picture_url: Optional[str] = None,
        followed_at: Optional[datetime] = None,
    ) -> schemas.Contact:
        existing = self.get_contact_by_line_user_id(line_user_id)
        if existing is not None:
            return existing
        now = _utcnow()
        contact = schemas.Contact(
            id=_new_id(),
            line_user_id=line_user_id,
            display_name=display_name,
            picture_url=picture_url,
            followed_at=followed_at,
            created_at=now,
            updated_at=now,
        )
        self.contacts[contact.id] = contact
        return contact

    def set_contact_blocked(
        self,
        contact_id: str,
        is_blocked: bool,
        *,
        followed_at: Optional[datetime] = None,
    ) -> Optional[schemas.Contact]:
        contact = self.contacts.get(contact_id)
        if contact is None:
            return None
        update: Dict[str, Any] = {"is_blocked": is_blocked, "updated_at": _utcnow()}
        if followed_at is not None:
            update["followed_at"] = followed_at
        contact = contact.model_copy(update=update)
        self.contacts[contact_id] = contact
        return contact

    def update_contact_memo(
        self, contact_id: str, memo: Optional[str]
    ) -> Optional[schemas.Contact]:
        contact = self.contacts.get(contact_id)
        if contact is None:
            return None
        contact = contact.model_copy(update={"memo": memo, "updated_at": _utcnow()})
        self.contacts[contact_id] = contact
        return contact

    # Conversations -----------------------------------------------------------
    def _replace(self, conversation_id: str, **update: Any) -> Optional[schemas.Conversation]:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return None
        update.setdefault("updated_at", _utcnow())
        conversation = conversation.model_copy(update=update)
        self.conversations[conversation_id] = conversation
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[schemas.Conversation]:
        return self.conversations.get(conversation_id)

    def find_open_conversation(self, contact_id: str) -> Optional[schemas.Conversation]:
        candidates = [
            conversation
            for conversation in self.conversations.values()
            if conversation.contact_id == contact_id
            and conversation.status not in (Status.CLOSED, Status.RESOLVED)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda item: item.updated_at or _EPOCH)

    def create_conversation(self, contact_id: str) -> schemas.Conversation:
        now = _utcnow()
        conversation = schemas.Conversation(
            id=_new_id(), contact_id=contact_id, created_at=now, updated_at=now
        )
        self.conversations[conversation.id] = conversation
        return conversation

    def update_triage(
        self, conversation_id: str, changes: Dict[str, Any]
    ) -> Optional[schemas.Conversation]:
        unknown = set(changes) - set(_TRIAGE_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported triage fields: {', '.join(sorted(unknown))}")
        return self._replace(conversation_id, **changes)

    def update_status(
        self, conversation_id: str, status: Status, expected_version: int
    ) -> Optional[schemas.Conversation]:
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation.version != expected_version:
            return None
        return self._replace(
            conversation_id, status=Status(status), version=conversation.version + 1
        )

    def bulk_update_status(
        self, conversation_ids: Sequence[str], status: Status
    ) -> List[str]:
        updated: List[str] = []
        for conversation_id in dict.fromkeys(conversation_ids):
            if self._replace(conversation_id, status=Status(status)) is not None:
                updated.append(conversation_id)
        return updated

    def set_assignee(
        self, conversation_id: str, user_id: Optional[str]
    ) -> Optional[schemas.Conversation]:
        return self._replace(conversation_id, assigned_user_id=user_id)

    def touch_inbound(self, conversation_id: str, at: datetime, preview: Optional[str]) -> None:
        self._replace(conversation_id, last_inbound_at=at, last_message_preview=preview)

    def touch_outbound(self, conversation_id: str, at: datetime, preview: Optional[str]) -> None:
        self._replace(conversation_id, last_outbound_at=at, last_message_preview=preview)

    def _summary(self, conversation: schemas.Conversation) -> schemas.ConversationSummary:
        contact = self.contacts.get(conversation.contact_id)
        tags = self._tags.tags_for_conversation(conversation.id) if self._tags else []
        return schemas.ConversationSummary(
            **conversation.model_dump(),
            contact_display_name=contact.display_name if contact else None,
            tags=tags,
        )

    def _matches(self, conversation: schemas.Conversation, filters: ConversationFilters) -> bool:
        if filters.status is not None and conversation.status != filters.status:
            return False
        if filters.assigned_user_id and conversation.assigned_user_id != filters.assigned_user_id:
            return False
        if filters.priority is not None and conversation.priority != filters.priority:
            return False
        if filters.urgency is not None and conversation.urgency != filters.urgency:
            return False
        if filters.complaints_only and not conversation.is_complaint:
            return False
        if filters.tag_id:
            if self._tags is None:
                return False
            linked = {tag.id for tag in self._tags.tags_for_conversation(conversation.id)}
            if filters.tag_id not in linked:
                return False
        if filters.search:
            contact = self.contacts.get(conversation.contact_id)
            needle = filters.search.lower()
            haystacks = [contact.display_name, contact.memo] if contact else []
            if not any(value and needle in value.lower() for value in haystacks):
                return False
        return True

    def list_conversations(
        self, filters: ConversationFilters, *, offset: int = 0, limit: int = 50
    ) -> Tuple[List[schemas.ConversationSummary], int]:
        matching = sorted(
            (c for c in self.conversations.values() if self._matches(c, filters)),
            key=_list_order,
        )
        page = matching[offset : offset + limit]
        return [self._summary(c) for c in page], len(matching)

    def list_active(self, limit: int = 50) -> List[schemas.ConversationSummary]:
        active = sorted(
            (c for c in self.conversations.values() if c.status in ACTIVE_STATUSES),
            key=_list_order,
        )
        return [self._summary(c) for c in active[:limit]]

    def count_by_status(self) -> Dict[Status, int]:
        counts = {status: 0 for status in Status}
        for conversation in self.conversations.values():
            counts[conversation.status] += 1
        return counts

    def count_needs_action(self) -> int:
        return sum(1 for c in self.conversations.values() if needs_action(c))

    # Messages ----------------------------------------------------------------
    def add_message(
        self,
        conversation_id: str,
        direction: Direction,
        text: Optional[str],
        *,
        timestamp: datetime,
        line_message_id: Optional[str] = None,
        raw_payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[schemas.Message]:
        if line_message_id is not None and any(
            message.line_message_id == line_message_id for message in self.messages.values()
        ):
            return None
        message = schemas.Message(
            id=_new_id(),
            conversation_id=conversation_id,
            direction=Direction(direction),
            text=text,
            line_message_id=line_message_id,
            timestamp=timestamp,
            raw_payload=raw_payload or {},
            created_at=_utcnow(),
        )
        self.messages[message.id] = message
        return message

    def list_messages(self, conversation_id: str) -> List[schemas.Message]:
        return sorted(
            (m for m in self.messages.values() if m.conversation_id == conversation_id),
            key=lambda m: m.timestamp,
        )

    def recent_inbound_texts(self, conversation_id: str, limit: int) -> List[Optional[str]]:
        inbound = [
            m
            for m in self.list_messages(conversation_id)
            if m.direction is Direction.INBOUND
        ]
        inbound.reverse()
        return [m.text for m in inbound[:limit]]


__all__ = [
    "ConversationRepository",
    "InMemoryConversationRepository",
    "PostgresConversationRepository",
]
