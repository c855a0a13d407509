"""Domain events emitted by the conversation workflow."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol, Union

from .models import ClassificationResult, Status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageClassified:
    conversation_id: str
    result: ClassificationResult


@dataclass(frozen=True)
class TriageApplied:
    conversation_id: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TriageUnchanged:
    conversation_id: str


@dataclass(frozen=True)
class TriageTargetMissing:
    conversation_id: str


@dataclass(frozen=True)
class TransitionApplied:
    conversation_id: str
    from_status: Status
    to_status: Status
    version: int
    actor_id: str | None = None


@dataclass(frozen=True)
class TransitionRejected:
    conversation_id: str
    from_status: Status
    to_status: Status


InboxEvent = Union[
    MessageClassified,
    TriageApplied,
    TriageUnchanged,
    TriageTargetMissing,
    TransitionApplied,
    TransitionRejected,
]


class EventSink(Protocol):
    def emit(self, event: InboxEvent) -> None: ...


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    return value


class LoggingEventSink:
    """Write one structured log line per event."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def emit(self, event: InboxEvent) -> None:
        name = type(event).__name__
        payload = {"type": name, **_jsonable(asdict(event))}
        level = logging.WARNING if isinstance(event, TriageTargetMissing) else logging.INFO
        self._log.log(
            level,
            "%s for conversation %s",
            name,
            event.conversation_id,
            extra={"event": payload},
        )


__all__ = [
    "EventSink",
    "InboxEvent",
    "LoggingEventSink",
    "MessageClassified",
    "TransitionApplied",
    "TransitionRejected",
    "TriageApplied",
    "TriageTargetMissing",
    "TriageUnchanged",
]
