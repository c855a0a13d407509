"""Tag catalogue and conversation/tag links."""

from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Optional, Protocol, Set, Tuple

import psycopg
from psycopg.rows import dict_row

from . import schemas
from .errors import TagNotFoundError

logger = logging.getLogger(__name__)


class TagRepository(Protocol):
    def list_tags(self) -> List[schemas.Tag]: ...

    def get_tag(self, tag_id: str) -> Optional[schemas.Tag]: ...

    def get_tag_by_name(self, name: str) -> Optional[schemas.Tag]: ...

    def create_tag(self, name: str, color: Optional[str] = None) -> schemas.Tag: ...

    def update_tag(
        self, tag_id: str, *, name: Optional[str] = None, color: Optional[str] = None
    ) -> Optional[schemas.Tag]: ...

    def delete_tag(self, tag_id: str) -> bool: ...

    def link(self, conversation_id: str, tag_id: str) -> bool: ...

    def unlink(self, conversation_id: str, tag_id: str) -> bool: ...

    def tags_for_conversation(self, conversation_id: str) -> List[schemas.Tag]: ...


class PostgresTagRepository:
    """PostgreSQL implementation of :class:`TagRepository`."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def _cursor(self):
        return self._conn.cursor(row_factory=dict_row)

    def list_tags(self) -> List[schemas.Tag]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, color FROM tags ORDER BY name")
            rows = cur.fetchall()
        return [schemas.Tag(**row) for row in rows]

    def get_tag(self, tag_id: str) -> Optional[schemas.Tag]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, color FROM tags WHERE id = %s", (tag_id,))
            row = cur.fetchone()
        return schemas.Tag(**row) if row else None

    def get_tag_by_name(self, name: str) -> Optional[schemas.Tag]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, color FROM tags WHERE name = %s", (name,))
            row = cur.fetchone()
        return schemas.Tag(**row) if row else None

    def create_tag(self, name: str, color: Optional[str] = None) -> schemas.Tag:
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO tags (name, color) VALUES (%s, %s) RETURNING id, name, color",
                (name, color),
            )
            row = cur.fetchone()
        return schemas.Tag(**row)

    def update_tag(
        self, tag_id: str, *, name: Optional[str] = None, color: Optional[str] = None
    ) -> Optional[schemas.Tag]:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE tags SET name = COALESCE(%s, name), color = COALESCE(%s, color)
                WHERE id = %s
                RETURNING id, name, color
                """,
                (name, color, tag_id),
            )
            row = cur.fetchone()
        return schemas.Tag(**row) if row else None

    def delete_tag(self, tag_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM tags WHERE id = %s", (tag_id,))
            return cur.rowcount > 0

    def link(self, conversation_id: str, tag_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO conversation_tags (conversation_id, tag_id)
                VALUES (%s, %s)
                ON CONFLICT DO NOTHING
                """,
                (conversation_id, tag_id),
            )
            return cur.rowcount > 0

    def unlink(self, conversation_id: str, tag_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM conversation_tags WHERE conversation_id = %s AND tag_id = %s",
                (conversation_id, tag_id),
            )
            return cur.rowcount > 0

    def tags_for_conversation(self, conversation_id: str) -> List[schemas.Tag]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT t.id, t.name, t.color
                FROM conversation_tags l JOIN tags t ON t.id = l.tag_id
                WHERE l.conversation_id = %s
                ORDER BY t.name
                """,
                (conversation_id,),
            )
            rows = cur.fetchall()
        return [schemas.Tag(**row) for row in rows]


class InMemoryTagRepository:
    """Dictionary-backed tag storage used by tests and local sandboxes."""

    def __init__(self) -> None:
        self.tags: Dict[str, schemas.Tag] = {}
        self.links: Set[Tuple[str, str]] = set()

    def list_tags(self) -> List[schemas.Tag]:
        return sorted(self.tags.values(), key=lambda tag: tag.name)

    def get_tag(self, tag_id: str) -> Optional[schemas.Tag]:
        return self.tags.get(tag_id)

    def get_tag_by_name(self, name: str) -> Optional[schemas.Tag]:
        for tag in self.tags.values():
            if tag.name == name:
                return tag
        return None

    def create_tag(self, name: str, color: Optional[str] = None) -> schemas.Tag:
        tag = schemas.Tag(id=str(uuid.uuid4()), name=name, color=color)
        self.tags[tag.id] = tag
        return tag

    def update_tag(
        self, tag_id: str, *, name: Optional[str] = None, color: Optional[str] = None
    ) -> Optional[schemas.Tag]:
        tag = self.tags.get(tag_id)
        if tag is None:
            return None
        update = {
            key: value
            for key, value in (("name", name), ("color", color))
            if value is not None
        }
        tag = tag.model_copy(update=update)
        self.tags[tag_id] = tag
        return tag

    def delete_tag(self, tag_id: str) -> bool:
        if self.tags.pop(tag_id, None) is None:
            return False
        self.links = {link for link in self.links if link[1] != tag_id}
        return True

    def link(self, conversation_id: str, tag_id: str) -> bool:
        key = (conversation_id, tag_id)
        if key in self.links:
            return False
        self.links.add(key)
        return True

    def unlink(self, conversation_id: str, tag_id: str) -> bool:
        key = (conversation_id, tag_id)
        if key not in self.links:
            return False
        self.links.discard(key)
        return True

    def tags_for_conversation(self, conversation_id: str) -> List[schemas.Tag]:
        tags = [
            self.tags[tag_id]
            for convo_id, tag_id in self.links
            if convo_id == conversation_id and tag_id in self.tags
        ]
        return sorted(tags, key=lambda tag: tag.name)


class TagService:
    """Manage the tag catalogue shared by all conversations."""

    def __init__(self, repository: TagRepository) -> None:
        self._repository = repository

    def list_tags(self) -> List[schemas.Tag]:
        return self._repository.list_tags()

    def get_tag(self, tag_id: str) -> schemas.Tag:
        tag = self._repository.get_tag(tag_id)
        if tag is None:
            raise TagNotFoundError(f"Tag {tag_id} not found")
        return tag

    def create_tag(self, name: str, color: Optional[str] = None) -> schemas.Tag:
        name = name.strip()
        if not name:
            raise ValueError("Tag name must be non-empty.")
        if self._repository.get_tag_by_name(name) is not None:
            raise ValueError(f"Tag {name!r} already exists")
        tag = self._repository.create_tag(name, color)
        logger.info("Created tag %s (%s)", tag.id, tag.name)
        return tag

    def update_tag(
        self, tag_id: str, *, name: Optional[str] = None, color: Optional[str] = None
    ) -> schemas.Tag:
        if name is not None:
            name = name.strip()
            existing = self._repository.get_tag_by_name(name)
            if existing is not None and existing.id != tag_id:
                raise ValueError(f"Tag {name!r} already exists")
        tag = self._repository.update_tag(tag_id, name=name, color=color)
        if tag is None:
            raise TagNotFoundError(f"Tag {tag_id} not found")
        return tag

    def delete_tag(self, tag_id: str) -> None:
        if not self._repository.delete_tag(tag_id):
            raise TagNotFoundError(f"Tag {tag_id} not found")
        logger.info("Deleted tag %s", tag_id)


__all__ = [
    "InMemoryTagRepository",
    "PostgresTagRepository",
    "TagRepository",
    "TagService",
]
