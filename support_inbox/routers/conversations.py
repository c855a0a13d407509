"""Conversation management API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from ..audit.schemas import AuditLog, ClientInfo
from ..conversations import schemas as convo_schemas
from ..conversations.models import (
    UNSET,
    ConversationFilters,
    Priority,
    Status,
    Urgency,
)
from ..conversations.status import display_name, status_color
from ..core.limiter import get_client_ip
from ..core.services import request_services as _service_context
from ..models import User
from ..security.auth import require_permission
from ..security.permissions import Permissions

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


def client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("", response_model=convo_schemas.ConversationList)
def list_conversations(
    status: Status | None = None,
    assigned_user_id: str | None = Query(default=None, alias="assignedUserId"),
    priority: Priority | None = None,
    urgency: Urgency | None = None,
    is_complaint: bool = Query(default=False, alias="isComplaint"),
    tag_id: str | None = Query(default=None, alias="tagId"),
    search: str | None = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(require_permission(Permissions.can_view_conversation)),
) -> convo_schemas.ConversationList:
    filters = ConversationFilters(
        status=status,
        assigned_user_id=assigned_user_id,
        priority=priority,
        urgency=urgency,
        complaints_only=is_complaint,
        tag_id=tag_id,
        search=search,
    )
    with _service_context() as services:
        return services.conversations.list_conversations(filters, page=page, limit=limit)


@router.get("/stats", response_model=convo_schemas.ConversationStats)
def conversation_stats(
    user: User = Depends(require_permission(Permissions.can_view_conversation)),
) -> convo_schemas.ConversationStats:
    with _service_context() as services:
        return services.conversations.stats()


@router.get("/needs-action", response_model=list[convo_schemas.ConversationSummary])
def needs_action_conversations(
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(require_permission(Permissions.can_view_conversation)),
) -> list[convo_schemas.ConversationSummary]:
    with _service_context() as services:
        return services.conversations.list_needs_action(limit)


@router.post("/bulk-update", response_model=convo_schemas.BulkUpdateResponse)
def bulk_update(
    payload: convo_schemas.BulkUpdateRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_update_status)),
) -> convo_schemas.BulkUpdateResponse:
    with _service_context() as services:
        result = services.conversations.bulk_update_status(
            payload.conversation_ids,
            payload.status,
            actor_id=str(user.id),
            client=client_info(request),
        )
    return convo_schemas.BulkUpdateResponse(
        updated=result.updated,
        requested_count=result.requested_count,
        skipped=list(result.skipped),
    )


@router.get("/{conversation_id}", response_model=convo_schemas.ConversationDetail)
def get_conversation(
    conversation_id: str,
    user: User = Depends(require_permission(Permissions.can_view_conversation)),
) -> convo_schemas.ConversationDetail:
    with _service_context() as services:
        return services.conversations.get_conversation(conversation_id)


@router.get(
    "/{conversation_id}/transitions", response_model=convo_schemas.TransitionsResponse
)
def conversation_transitions(
    conversation_id: str,
    user: User = Depends(require_permission(Permissions.can_view_conversation)),
) -> convo_schemas.TransitionsResponse:
    with _service_context() as services:
        detail = services.conversations.get_conversation(conversation_id)
    return convo_schemas.TransitionsResponse(
        current=detail.status,
        version=detail.version,
        options=[
            convo_schemas.TransitionOption(
                status=option, label=display_name(option), color=status_color(option)
            )
            for option in detail.available_transitions
        ],
    )


@router.patch(
    "/{conversation_id}/status", response_model=convo_schemas.StatusChangeResponse
)
def update_status(
    conversation_id: str,
    payload: convo_schemas.StatusUpdateRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_update_status)),
) -> convo_schemas.StatusChangeResponse:
    with _service_context() as services:
        result = services.conversations.change_status(
            conversation_id,
            payload.status,
            payload.version,
            actor_id=str(user.id),
            client=client_info(request),
        )
    return convo_schemas.StatusChangeResponse(
        success=result.ok, status=result.status, version=result.version
    )


@router.patch("/{conversation_id}/triage", response_model=convo_schemas.Conversation)
def override_triage(
    conversation_id: str,
    payload: convo_schemas.TriageOverrideRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_update_status)),
) -> convo_schemas.Conversation:
    complaint_type = (
        payload.complaint_type if "complaint_type" in payload.model_fields_set else UNSET
    )
    with _service_context() as services:
        return services.conversations.override_triage(
            conversation_id,
            actor_id=str(user.id),
            priority=payload.priority,
            urgency=payload.urgency,
            is_complaint=payload.is_complaint,
            complaint_type=complaint_type,
            client=client_info(request),
        )


@router.patch("/{conversation_id}/priority", response_model=convo_schemas.Conversation)
def update_priority(
    conversation_id: str,
    payload: convo_schemas.PriorityUpdateRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_update_status)),
) -> convo_schemas.Conversation:
    with _service_context() as services:
        return services.conversations.update_priority(
            conversation_id,
            actor_id=str(user.id),
            priority=payload.priority,
            urgency=payload.urgency,
            client=client_info(request),
        )


@router.post("/{conversation_id}/retriage", response_model=convo_schemas.RetriageResponse)
def retriage(
    conversation_id: str,
    user: User = Depends(require_permission(Permissions.can_update_status)),
) -> convo_schemas.RetriageResponse:
    with _service_context() as services:
        result = services.conversations.retriage(conversation_id)
        detail = services.conversations.get_conversation(conversation_id)
    classification = (
        convo_schemas.ClassificationResponse(**result.to_dict()) if result else None
    )
    return convo_schemas.RetriageResponse(
        conversation=convo_schemas.Conversation(
            **detail.model_dump(include=set(convo_schemas.Conversation.model_fields))
        ),
        classification=classification,
    )


@router.post("/{conversation_id}/reply", response_model=convo_schemas.Message)
def reply(
    conversation_id: str,
    payload: convo_schemas.ReplyRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_reply)),
) -> convo_schemas.Message:
    with _service_context() as services:
        return services.conversations.reply(
            conversation_id,
            payload.text,
            actor_id=str(user.id),
            client=client_info(request),
        )


@router.patch("/{conversation_id}/assign", response_model=convo_schemas.Conversation)
def assign(
    conversation_id: str,
    payload: convo_schemas.AssignRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_assign)),
) -> convo_schemas.Conversation:
    with _service_context() as services:
        return services.conversations.assign(
            conversation_id,
            payload.user_id,
            actor_id=str(user.id),
            client=client_info(request),
        )


@router.post("/{conversation_id}/assign-me", response_model=convo_schemas.Conversation)
def assign_to_me(
    conversation_id: str,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_reply)),
) -> convo_schemas.Conversation:
    with _service_context() as services:
        return services.conversations.assign_to_self(
            conversation_id, actor_id=str(user.id), client=client_info(request)
        )


@router.post("/{conversation_id}/tags", response_model=list[convo_schemas.Tag])
def add_tag(
    conversation_id: str,
    payload: convo_schemas.TagLinkRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_manage_tags)),
) -> list[convo_schemas.Tag]:
    with _service_context() as services:
        return services.conversations.add_tag(
            conversation_id,
            payload.tag_id,
            actor_id=str(user.id),
            client=client_info(request),
        )


@router.delete(
    "/{conversation_id}/tags/{tag_id}", response_model=list[convo_schemas.Tag]
)
def remove_tag(
    conversation_id: str,
    tag_id: str,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_manage_tags)),
) -> list[convo_schemas.Tag]:
    with _service_context() as services:
        return services.conversations.remove_tag(
            conversation_id, tag_id, actor_id=str(user.id), client=client_info(request)
        )


@router.get("/{conversation_id}/audit-logs", response_model=list[AuditLog])
def conversation_audit_logs(
    conversation_id: str,
    user: User = Depends(require_permission(Permissions.can_view_audit_logs)),
) -> list[AuditLog]:
    with _service_context() as services:
        services.conversations.get_conversation(conversation_id)
        return services.audit.for_conversation(conversation_id)
