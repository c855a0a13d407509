"""Pydantic schemas for conversation management APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .models import (
    ComplaintType,
    Direction,
    Priority,
    Status,
    TriageState,
    Urgency,
)


class Contact(BaseModel):
    id: str
    line_user_id: str
    display_name: str | None = None
    picture_url: str | None = None
    memo: str | None = None
    is_blocked: bool = False
    followed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Message(BaseModel):
    id: str
    conversation_id: str
    direction: Direction
    text: str | None = None
    line_message_id: str | None = None
    timestamp: datetime
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class Tag(BaseModel):
    id: str
    name: str
    color: str | None = None


class Conversation(BaseModel):
    id: str
    contact_id: str
    status: Status = Status.NEW
    priority: Priority = Priority.MEDIUM
    urgency: Urgency = Urgency.ANYTIME
    is_complaint: bool = False
    complaint_type: ComplaintType | None = None
    assigned_user_id: str | None = None
    version: int = 0
    last_inbound_at: datetime | None = None
    last_outbound_at: datetime | None = None
    last_message_preview: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def triage_state(self) -> TriageState:
        return TriageState(
            priority=self.priority,
            urgency=self.urgency,
            is_complaint=self.is_complaint,
            complaint_type=self.complaint_type,
        )


class ConversationSummary(Conversation):
    contact_display_name: str | None = None
    needs_action: bool = False
    tags: list[Tag] = Field(default_factory=list)


class ConversationDetail(ConversationSummary):
    contact: Contact | None = None
    messages: list[Message] = Field(default_factory=list)
    available_transitions: list[Status] = Field(default_factory=list)


class ConversationList(BaseModel):
    items: list[ConversationSummary]
    total: int
    page: int = 1
    limit: int = 50


class ConversationStats(BaseModel):
    by_status: dict[Status, int]
    needs_action: int
    total: int


class StatusUpdateRequest(BaseModel):
    status: Status
    version: int | None = Field(default=None, ge=0)


class StatusChangeResponse(BaseModel):
    success: bool
    status: Status
    version: int


class TransitionOption(BaseModel):
    status: Status
    label: str
    color: str


class TransitionsResponse(BaseModel):
    current: Status
    version: int
    options: list[TransitionOption]


class TriageOverrideRequest(BaseModel):
    """Manual triage change; an explicit ``complaint_type: null`` clears it."""

    priority: Priority | None = None
    urgency: Urgency | None = None
    is_complaint: bool | None = None
    complaint_type: ComplaintType | None = None


class PriorityUpdateRequest(BaseModel):
    priority: Priority | None = None
    urgency: Urgency | None = None


class ReplyRequest(BaseModel):
    text: str = Field(min_length=1, max_length=5000)


class AssignRequest(BaseModel):
    user_id: str | None = None


class TagLinkRequest(BaseModel):
    tag_id: str


class BulkUpdateRequest(BaseModel):
    conversation_ids: list[str]
    status: Status


class BulkUpdateResponse(BaseModel):
    success: bool = True
    updated: int
    requested_count: int
    skipped: list[str] = Field(default_factory=list)


class ClassificationResponse(BaseModel):
    priority: Priority
    urgency: Urgency
    is_complaint: bool
    complaint_type: ComplaintType | None = None
    confidence: float
    matched_keywords: list[str] = Field(default_factory=list)


class RetriageResponse(BaseModel):
    conversation: Conversation
    classification: ClassificationResponse | None = None


class TagCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class TagUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class ContactMemoRequest(BaseModel):
    memo: str | None = Field(default=None, max_length=2000)
