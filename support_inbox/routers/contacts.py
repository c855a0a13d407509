from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..conversations import schemas as convo_schemas
from ..core.services import request_services as _service_context
from ..models import User
from ..security.auth import require_permission
from ..security.permissions import Permissions
from .conversations import client_info

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


@router.patch("/{contact_id}/memo", response_model=convo_schemas.Contact)
def update_memo(
    contact_id: str,
    payload: convo_schemas.ContactMemoRequest,
    request: Request,
    user: User = Depends(require_permission(Permissions.can_reply)),
) -> convo_schemas.Contact:
    with _service_context() as services:
        return services.conversations.update_contact_memo(
            contact_id, payload.memo, actor_id=str(user.id), client=client_info(request)
        )
