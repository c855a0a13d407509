"""Typed audit payloads.

Each audit row stores one of the ``*Changes`` models below as JSON. The
``action`` field doubles as the discriminator, so a stored payload always
parses back into the model it was written from.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from ..conversations.models import ComplaintType, Priority, Status, Urgency


class AuditAction(str, Enum):
    STATUS_CHANGED = "STATUS_CHANGED"
    STATUS_BULK_CHANGED = "STATUS_BULK_CHANGED"
    OVERRIDE_TRIAGE = "OVERRIDE_TRIAGE"
    UPDATE_PRIORITY = "UPDATE_PRIORITY"
    ASSIGNED = "ASSIGNED"
    SELF_ASSIGNED = "SELF_ASSIGNED"
    REPLY_SENT = "REPLY_SENT"
    TAG_ADDED = "TAG_ADDED"
    TAG_REMOVED = "TAG_REMOVED"
    CONTACT_MEMO_UPDATED = "CONTACT_MEMO_UPDATED"


class StatusChanged(BaseModel):
    action: Literal["STATUS_CHANGED"] = "STATUS_CHANGED"
    from_status: Status
    to_status: Status


class StatusBulkChanged(BaseModel):
    action: Literal["STATUS_BULK_CHANGED"] = "STATUS_BULK_CHANGED"
    to_status: Status
    bulk_operation: bool = True
    total_count: int


class TriageOverridden(BaseModel):
    action: Literal["OVERRIDE_TRIAGE"] = "OVERRIDE_TRIAGE"
    old_priority: Priority
    new_priority: Priority
    old_urgency: Urgency
    new_urgency: Urgency
    old_is_complaint: bool
    new_is_complaint: bool
    old_complaint_type: ComplaintType | None = None
    new_complaint_type: ComplaintType | None = None


class PriorityUpdated(BaseModel):
    action: Literal["UPDATE_PRIORITY"] = "UPDATE_PRIORITY"
    old_priority: Priority
    new_priority: Priority
    old_urgency: Urgency
    new_urgency: Urgency


class Assigned(BaseModel):
    action: Literal["ASSIGNED"] = "ASSIGNED"
    from_user_id: str | None = None
    to_user_id: str | None = None


class SelfAssigned(BaseModel):
    action: Literal["SELF_ASSIGNED"] = "SELF_ASSIGNED"


class ReplySent(BaseModel):
    action: Literal["REPLY_SENT"] = "REPLY_SENT"
    message_id: str
    text: str = Field(max_length=100)


class TagAdded(BaseModel):
    action: Literal["TAG_ADDED"] = "TAG_ADDED"
    tag_id: str


class TagRemoved(BaseModel):
    action: Literal["TAG_REMOVED"] = "TAG_REMOVED"
    tag_id: str


class ContactMemoUpdated(BaseModel):
    action: Literal["CONTACT_MEMO_UPDATED"] = "CONTACT_MEMO_UPDATED"
    contact_id: str


AuditChanges = Annotated[
    Union[
        StatusChanged,
        StatusBulkChanged,
        TriageOverridden,
        PriorityUpdated,
        Assigned,
        SelfAssigned,
        ReplySent,
        TagAdded,
        TagRemoved,
        ContactMemoUpdated,
    ],
    Field(discriminator="action"),
]

audit_changes_adapter: TypeAdapter[AuditChanges] = TypeAdapter(AuditChanges)


class ClientInfo(BaseModel):
    """Request metadata recorded alongside an audit entry."""

    ip_address: str | None = None
    user_agent: str | None = None


class AuditLog(BaseModel):
    id: str
    conversation_id: str | None = None
    user_id: str
    action: AuditAction
    changes: AuditChanges
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime


class AuditLogList(BaseModel):
    items: list[AuditLog]
    limit: int
    offset: int = 0


__all__ = [
    "Assigned",
    "AuditAction",
    "AuditChanges",
    "AuditLog",
    "AuditLogList",
    "ClientInfo",
    "ContactMemoUpdated",
    "PriorityUpdated",
    "ReplySent",
    "SelfAssigned",
    "StatusBulkChanged",
    "StatusChanged",
    "TagAdded",
    "TagRemoved",
    "TriageOverridden",
    "audit_changes_adapter",
]
