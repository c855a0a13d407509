"""Exceptions raised by the conversation workflow."""

from __future__ import annotations

from .models import Status


class ConversationNotFoundError(LookupError):
    """Raised when a conversation does not exist."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ConversationConflictError(RuntimeError):
    """Raised when the stored version differs from the one the caller read."""

    def __init__(self, current_version: int, current_status: Status) -> None:
        super().__init__(
            "Conversation was modified by another user "
            f"(current version {current_version}, status {Status(current_status).value})"
        )
        self.current_version = current_version
        self.current_status = Status(current_status)


class InvalidTransitionError(ValueError):
    """Raised when the requested status is not reachable from the current one."""

    def __init__(self, requested_status: Status, current_status: Status) -> None:
        super().__init__(
            f"Invalid status transition: {Status(current_status).value} -> "
            f"{Status(requested_status).value}"
        )
        self.requested_status = Status(requested_status)
        self.current_status = Status(current_status)


class BulkUpdateError(ValueError):
    """Raised for bulk requests outside the accepted size range."""


class TagNotFoundError(LookupError):
    """Raised when a tag or a conversation/tag link does not exist."""


class ContactNotFoundError(LookupError):
    """Raised when a contact does not exist."""


__all__ = [
    "BulkUpdateError",
    "ContactNotFoundError",
    "ConversationConflictError",
    "ConversationNotFoundError",
    "InvalidTransitionError",
    "TagNotFoundError",
]
