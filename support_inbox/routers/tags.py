"""Tag catalogue routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..conversations import schemas as convo_schemas
from ..core.services import request_services as _service_context
from ..models import User
from ..security.auth import require_permission
from ..security.permissions import Permissions

router = APIRouter(prefix="/api/tags", tags=["tags"])


@router.get("", response_model=list[convo_schemas.Tag])
def list_tags(
    user: User = Depends(require_permission(Permissions.can_view_conversation)),
) -> list[convo_schemas.Tag]:
    with _service_context() as services:
        return services.tags.list_tags()


@router.post(
    "", response_model=convo_schemas.Tag, status_code=status.HTTP_201_CREATED
)
def create_tag(
    payload: convo_schemas.TagCreateRequest,
    user: User = Depends(require_permission(Permissions.can_manage_tags)),
) -> convo_schemas.Tag:
    with _service_context() as services:
        return services.tags.create_tag(payload.name, payload.color)


@router.patch("/{tag_id}", response_model=convo_schemas.Tag)
def update_tag(
    tag_id: str,
    payload: convo_schemas.TagUpdateRequest,
    user: User = Depends(require_permission(Permissions.can_manage_tags)),
) -> convo_schemas.Tag:
    with _service_context() as services:
        return services.tags.update_tag(tag_id, name=payload.name, color=payload.color)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tag(
    tag_id: str,
    user: User = Depends(require_permission(Permissions.can_manage_tags)),
) -> None:
    with _service_context() as services:
        services.tags.delete_tag(tag_id)
