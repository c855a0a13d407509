"""Request-scoped wiring of repositories and services."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache

import psycopg
from fastapi import HTTPException

from ..audit.repository import AuditRepository, PostgresAuditRepository
from ..channels.line_client import LineApiError, LineClient
from ..conversations.errors import (
    BulkUpdateError,
    ContactNotFoundError,
    ConversationConflictError,
    ConversationNotFoundError,
    InvalidTransitionError,
    TagNotFoundError,
)
from ..conversations.repository import PostgresConversationRepository
from ..conversations.service import ConversationService
from ..conversations.tags import PostgresTagRepository, TagService
from ..triage.classifier import MessageClassifier
from ..triage.rules import load_rules
from .db import connect
from .settings import InboxSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class InboxServices:
    conversations: ConversationService
    tags: TagService
    audit: AuditRepository


@lru_cache(maxsize=4)
def _classifier_for(rules_path: str | None) -> MessageClassifier:
    return MessageClassifier(load_rules(rules_path))


def get_classifier(settings: InboxSettings | None = None) -> MessageClassifier:
    """Return the classifier configured by ``TRIAGE_RULES_PATH``."""

    settings = settings or get_settings()
    return _classifier_for(settings.triage_rules_path)


def build_services(
    conn: psycopg.Connection, settings: InboxSettings | None = None
) -> InboxServices:
    settings = settings or get_settings()
    tag_repo = PostgresTagRepository(conn)
    audit_repo = PostgresAuditRepository(conn)
    conversations = ConversationService(
        PostgresConversationRepository(conn),
        audit=audit_repo,
        tags=tag_repo,
        classifier=get_classifier(settings),
        line_client=LineClient.from_settings(settings),
        settings=settings,
    )
    return InboxServices(
        conversations=conversations, tags=TagService(tag_repo), audit=audit_repo
    )


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map workflow exceptions onto HTTP errors."""

    try:
        yield
    except (ConversationNotFoundError, TagNotFoundError, ContactNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConversationConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={
                "error": str(exc),
                "current_version": exc.current_version,
                "current_status": exc.current_status.value,
            },
        ) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(
            status_code=400,
            detail={
                "error": str(exc),
                "requested_status": exc.requested_status.value,
                "current_status": exc.current_status.value,
            },
        ) from exc
    except LineApiError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except (BulkUpdateError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@contextmanager
def request_services() -> Iterator[InboxServices]:
    """Yield services for one HTTP request, mapping failures to HTTP errors."""

    try:
        conn = connect()
    except Exception as exc:  # pragma: no cover
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    try:
        with translate_errors():
            yield build_services(conn)
        conn.commit()
    except HTTPException:
        conn.rollback()
        raise
    except Exception as exc:  # pragma: no cover
        conn.rollback()
        logger.exception("Inbox request failed")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    finally:
        conn.close()


@contextmanager
def open_services(settings: InboxSettings | None = None) -> Iterator[InboxServices]:
    """Open a connection, yield the services and commit or roll back.

    Used outside HTTP requests (background webhook processing, scripts).
    """

    settings = settings or get_settings()
    conn = connect(settings.database_url)
    try:
        yield build_services(conn, settings)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


__all__ = [
    "InboxServices",
    "build_services",
    "get_classifier",
    "open_services",
    "request_services",
    "translate_errors",
]
