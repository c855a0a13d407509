"""Merge classification results into a conversation's triage state."""

from __future__ import annotations

from ..conversations.models import (
    UNSET,
    ClassificationResult,
    ComplaintType,
    Priority,
    TriageState,
    TriageUpdate,
    Urgency,
)


def merge_triage(current: TriageState, result: ClassificationResult) -> TriageUpdate:
    """Return the automatic update implied by ``result``.

    Automatic updates only escalate: priority moves LOW to MEDIUM/HIGH or
    MEDIUM to HIGH, urgency only moves to a strictly higher rank, and the
    complaint flag is a latch that is never cleared here. An empty update
    means nothing has to be written.
    """

    update = TriageUpdate()

    if (current.priority is Priority.MEDIUM and result.priority is Priority.HIGH) or (
        current.priority is Priority.LOW and result.priority is not Priority.LOW
    ):
        update.priority = result.priority

    if result.urgency.rank > current.urgency.rank:
        update.urgency = result.urgency

    if result.is_complaint and not current.is_complaint:
        update.is_complaint = True
        if result.complaint_type is not None:
            update.complaint_type = result.complaint_type

    return update


def build_override(
    *,
    priority: Priority | None = None,
    urgency: Urgency | None = None,
    is_complaint: bool | None = None,
    complaint_type: ComplaintType | None = UNSET,
) -> TriageUpdate:
    """Build a manual triage update; no monotonicity rules apply.

    Clearing ``is_complaint`` clears ``complaint_type`` too, unless a
    complaint type is passed explicitly.
    """

    update = TriageUpdate(priority=priority, urgency=urgency, is_complaint=is_complaint)
    if is_complaint is False:
        update.complaint_type = None
    if complaint_type is not UNSET:
        update.complaint_type = complaint_type
    return update


__all__ = ["build_override", "merge_triage"]
