"""Domain enums and value objects used by the conversation workflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union


class Status(str, Enum):
    """Workflow status of a conversation."""

    NEW = "NEW"
    WORKING = "WORKING"
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    NO_ACTION_NEEDED = "NO_ACTION_NEEDED"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


class Urgency(str, Enum):
    ANYTIME = "ANYTIME"
    THIS_WEEK = "THIS_WEEK"
    TODAY = "TODAY"
    NOW = "NOW"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


class ComplaintType(str, Enum):
    """Complaint categories, declared in classifier evaluation order."""

    BILLING = "BILLING"
    QUALITY = "QUALITY"
    DELAY = "DELAY"
    ATTITUDE = "ATTITUDE"
    OTHER = "OTHER"


class Role(str, Enum):
    ADMIN = "ADMIN"
    AGENT = "AGENT"
    VIEWER = "VIEWER"


class Direction(str, Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


_PRIORITY_RANK: dict[Priority, int] = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
}

_URGENCY_RANK: dict[Urgency, int] = {
    Urgency.ANYTIME: 0,
    Urgency.THIS_WEEK: 1,
    Urgency.TODAY: 2,
    Urgency.NOW: 3,
}

if set(_PRIORITY_RANK) != set(Priority) or set(_URGENCY_RANK) != set(Urgency):
    raise RuntimeError("Rank tables must cover every Priority and Urgency member")

# Statuses in which a contact's conversation is no longer reused for new
# inbound messages.
FINISHED_STATUSES = frozenset({Status.CLOSED, Status.RESOLVED})
# Statuses that never require an agent response.
QUIET_STATUSES = frozenset({Status.CLOSED, Status.NO_ACTION_NEEDED})
ACTIVE_STATUSES = (Status.NEW, Status.WORKING, Status.PENDING)


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of running the keyword classifier over a message text."""

    priority: Priority
    urgency: Urgency
    is_complaint: bool
    complaint_type: ComplaintType | None
    confidence: float
    matched_keywords: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "urgency": self.urgency.value,
            "is_complaint": self.is_complaint,
            "complaint_type": self.complaint_type.value if self.complaint_type else None,
            "confidence": self.confidence,
            "matched_keywords": list(self.matched_keywords),
        }


@dataclass(frozen=True)
class TriageState:
    """The triage-relevant slice of a conversation."""

    priority: Priority = Priority.MEDIUM
    urgency: Urgency = Urgency.ANYTIME
    is_complaint: bool = False
    complaint_type: ComplaintType | None = None


UNSET: Any = object()


@dataclass
class TriageUpdate:
    """Fields of a triage state that must change.

    Unset fields are left untouched by the repository; ``complaint_type`` may
    be explicitly set to ``None`` to clear it.
    """

    priority: Priority | None = None
    urgency: Urgency | None = None
    is_complaint: bool | None = None
    complaint_type: ComplaintType | None = UNSET

    def changes(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.priority is not None:
            result["priority"] = self.priority
        if self.urgency is not None:
            result["urgency"] = self.urgency
        if self.is_complaint is not None:
            result["is_complaint"] = self.is_complaint
        if self.complaint_type is not UNSET:
            result["complaint_type"] = self.complaint_type
        return result

    def __bool__(self) -> bool:
        return bool(self.changes())

    def apply(self, state: TriageState) -> TriageState:
        values = {
            "priority": state.priority,
            "urgency": state.urgency,
            "is_complaint": state.is_complaint,
            "complaint_type": state.complaint_type,
        }
        values.update(self.changes())
        return TriageState(**values)


@dataclass
class InboundMessage:
    """A text message received from a messaging-platform user."""

    line_user_id: str
    text: str
    line_message_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reply_token: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class ContactEvent:
    """A follow/unfollow notification for a messaging-platform user."""

    kind: Literal["follow", "unfollow"]
    line_user_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


ChannelEvent = Union[InboundMessage, ContactEvent]


@dataclass(frozen=True)
class StatusChangeResult:
    ok: bool
    status: Status
    version: int


@dataclass(frozen=True)
class BulkUpdateResult:
    updated: int
    requested_count: int
    skipped: tuple[str, ...] = ()


@dataclass
class ConversationFilters:
    """Query filters for conversation listings."""

    status: Status | None = None
    assigned_user_id: str | None = None
    priority: Priority | None = None
    urgency: Urgency | None = None
    complaints_only: bool = False
    tag_id: str | None = None
    search: str | None = None
