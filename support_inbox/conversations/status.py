"""Conversation status state machine."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Mapping

from .models import QUIET_STATUSES, Status

logger = logging.getLogger(__name__)

# CLOSED can be reopened, so the graph has no sink state.
TRANSITIONS: Mapping[Status, frozenset[Status]] = MappingProxyType(
    {
        Status.NEW: frozenset({Status.WORKING, Status.NO_ACTION_NEEDED, Status.CLOSED}),
        Status.WORKING: frozenset(
            {Status.PENDING, Status.RESOLVED, Status.CLOSED, Status.NO_ACTION_NEEDED}
        ),
        Status.PENDING: frozenset({Status.WORKING, Status.RESOLVED, Status.CLOSED}),
        Status.RESOLVED: frozenset({Status.WORKING, Status.CLOSED}),
        Status.CLOSED: frozenset({Status.WORKING}),
        Status.NO_ACTION_NEEDED: frozenset({Status.WORKING, Status.CLOSED}),
    }
)

DISPLAY_NAMES: Mapping[Status, str] = MappingProxyType(
    {
        Status.NEW: "新規",
        Status.WORKING: "対応中",
        Status.PENDING: "保留",
        Status.RESOLVED: "解決済み",
        Status.CLOSED: "クローズ",
        Status.NO_ACTION_NEEDED: "対応不要",
    }
)

COLORS: Mapping[Status, str] = MappingProxyType(
    {
        Status.NEW: "#3B82F6",
        Status.WORKING: "#F59E0B",
        Status.PENDING: "#8B5CF6",
        Status.RESOLVED: "#10B981",
        Status.CLOSED: "#6B7280",
        Status.NO_ACTION_NEEDED: "#64748B",
    }
)

for _table in (TRANSITIONS, DISPLAY_NAMES, COLORS):
    if set(_table) != set(Status):
        raise RuntimeError("Status lookup tables must cover every Status member")


def is_valid_transition(current: Status, requested: Status) -> bool:
    """Return whether a conversation may move from ``current`` to ``requested``."""

    if current == requested:
        return True
    return requested in TRANSITIONS[Status(current)]


def available_transitions(current: Status) -> list[Status]:
    """Statuses reachable from ``current``, including ``current`` itself."""

    return [status for status in Status if is_valid_transition(current, status)]


def display_name(status: Status) -> str:
    return DISPLAY_NAMES[Status(status)]


def status_color(status: Status) -> str:
    return COLORS[Status(status)]


def needs_action(conversation: Any) -> bool:
    """Return whether the latest inbound message still awaits a reply."""

    if Status(conversation.status) in QUIET_STATUSES:
        return False
    if conversation.last_inbound_at is None:
        return False
    if conversation.last_outbound_at is None:
        return True
    return conversation.last_inbound_at > conversation.last_outbound_at


def on_status_change(conversation_id: str, new_status: Status, old_status: Status) -> None:
    """Default post-transition hook.

    Only logs for now. SLA deadlines, RESOLVED->CLOSED auto-closing and
    assignee notifications attach here.
    """

    logger.info(
        "Status changed for conversation %s: %s -> %s",
        conversation_id,
        Status(old_status).value,
        Status(new_status).value,
    )


__all__ = [
    "COLORS",
    "DISPLAY_NAMES",
    "TRANSITIONS",
    "available_transitions",
    "display_name",
    "is_valid_transition",
    "needs_action",
    "on_status_change",
    "status_color",
]
