"""Conversation workflow: models, status machine, persistence and services.

The service layer lives in :mod:`.service`; it is not re-exported here
because the triage package imports this package's models.
"""

from .errors import (
    BulkUpdateError,
    ContactNotFoundError,
    ConversationConflictError,
    ConversationNotFoundError,
    InvalidTransitionError,
    TagNotFoundError,
)
from .models import (
    ClassificationResult,
    ComplaintType,
    Direction,
    Priority,
    Role,
    Status,
    TriageState,
    TriageUpdate,
    Urgency,
)

__all__ = [
    "BulkUpdateError",
    "ClassificationResult",
    "ComplaintType",
    "ContactNotFoundError",
    "ConversationConflictError",
    "ConversationNotFoundError",
    "Direction",
    "InvalidTransitionError",
    "Priority",
    "Role",
    "Status",
    "TagNotFoundError",
    "TriageState",
    "TriageUpdate",
    "Urgency",
]
