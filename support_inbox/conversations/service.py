"""High-level conversation workflow orchestration."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from ..audit.repository import AuditRepository
from ..audit.schemas import (
    Assigned,
    AuditChanges,
    ClientInfo,
    ContactMemoUpdated,
    PriorityUpdated,
    ReplySent,
    SelfAssigned,
    StatusBulkChanged,
    StatusChanged,
    TagAdded,
    TagRemoved,
    TriageOverridden,
)
from ..channels.line_client import LineApiError, LineClient
from ..core.settings import MAX_RETRIAGE_MESSAGES, InboxSettings, get_settings
from ..triage.classifier import MessageClassifier
from ..triage.merge import build_override, merge_triage
from . import schemas
from .errors import (
    BulkUpdateError,
    ContactNotFoundError,
    ConversationConflictError,
    ConversationNotFoundError,
    InvalidTransitionError,
    TagNotFoundError,
)
from .events import (
    EventSink,
    LoggingEventSink,
    MessageClassified,
    TransitionApplied,
    TransitionRejected,
    TriageApplied,
    TriageTargetMissing,
    TriageUnchanged,
)
from .models import (
    UNSET,
    BulkUpdateResult,
    ChannelEvent,
    ClassificationResult,
    ComplaintType,
    ContactEvent,
    ConversationFilters,
    Direction,
    InboundMessage,
    Priority,
    Status,
    StatusChangeResult,
    Urgency,
)
from .repository import ConversationRepository
from .status import available_transitions, is_valid_transition, needs_action, on_status_change
from .tags import TagRepository

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100

StatusHook = Callable[[str, Status, Status], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationService:
    """Coordinates triage, the status workflow, replies and the audit trail."""

    def __init__(
        self,
        repository: ConversationRepository,
        *,
        audit: AuditRepository,
        tags: TagRepository | None = None,
        classifier: MessageClassifier | None = None,
        events: EventSink | None = None,
        line_client: LineClient | None = None,
        settings: InboxSettings | None = None,
        status_hooks: Sequence[StatusHook] | None = None,
    ) -> None:
        self._repository = repository
        self._audit = audit
        self._tags = tags
        self._classifier = classifier or MessageClassifier()
        self._events = events or LoggingEventSink()
        self._line = line_client
        self._settings = settings or get_settings()
        self._status_hooks: list[StatusHook] = list(
            status_hooks if status_hooks is not None else [on_status_change]
        )

    # ------------------------------------------------------------------
    # Helpers

    def _require(self, conversation_id: str) -> schemas.Conversation:
        conversation = self._repository.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def _record(
        self,
        conversation_id: str | None,
        actor_id: str,
        changes: AuditChanges,
        client: ClientInfo | None,
    ) -> None:
        client = client or ClientInfo()
        self._audit.append(
            conversation_id,
            actor_id,
            changes,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )

    def _require_tags(self) -> TagRepository:
        if self._tags is None:
            raise RuntimeError("Tag repository is not configured")
        return self._tags

    # ------------------------------------------------------------------
    # Automatic triage

    def run_triage(self, conversation_id: str, text: str) -> ClassificationResult:
        """Classify ``text`` and escalate the conversation's triage state.

        A missing conversation is reported through the event sink and never
        raises, so webhook ingestion keeps going.
        """

        result = self._classifier.classify(text)
        self._events.emit(MessageClassified(conversation_id, result))

        conversation = self._repository.get_conversation(conversation_id)
        if conversation is None:
            self._events.emit(TriageTargetMissing(conversation_id))
            return result

        update = merge_triage(conversation.triage_state(), result)
        if not update:
            self._events.emit(TriageUnchanged(conversation_id))
            return result

        changes = update.changes()
        self._repository.update_triage(conversation_id, changes)
        self._events.emit(TriageApplied(conversation_id, changes))
        return result

    def run_triage_multiple(
        self, conversation_id: str, texts: Iterable[str]
    ) -> ClassificationResult:
        return self.run_triage(conversation_id, " ".join(texts))

    def retriage(self, conversation_id: str) -> ClassificationResult | None:
        """Re-run triage over the most recent inbound messages, newest first."""

        self._require(conversation_id)
        texts = [
            text
            for text in self._repository.recent_inbound_texts(
                conversation_id,
                min(self._settings.retriage_message_limit, MAX_RETRIAGE_MESSAGES),
            )
            if text
        ]
        if not texts:
            return None
        return self.run_triage_multiple(conversation_id, texts)

    # ------------------------------------------------------------------
    # Status workflow

    def available_transitions(self, status: Status) -> list[Status]:
        return available_transitions(status)

    def change_status(
        self,
        conversation_id: str,
        requested: Status,
        expected_version: int | None = None,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> StatusChangeResult:
        requested = Status(requested)
        conversation = self._require(conversation_id)
        current = conversation.status

        if expected_version is not None and expected_version != conversation.version:
            raise ConversationConflictError(conversation.version, current)

        if not is_valid_transition(current, requested):
            self._events.emit(TransitionRejected(conversation_id, current, requested))
            raise InvalidTransitionError(requested, current)

        updated = self._repository.update_status(
            conversation_id, requested, conversation.version
        )
        if updated is None:
            fresh = self._require(conversation_id)
            raise ConversationConflictError(fresh.version, fresh.status)

        self._record(
            conversation_id,
            actor_id,
            StatusChanged(from_status=current, to_status=requested),
            client,
        )
        self._events.emit(
            TransitionApplied(
                conversation_id, current, requested, updated.version, actor_id
            )
        )
        for hook in self._status_hooks:
            try:
                hook(conversation_id, requested, current)
            except Exception:
                logger.exception(
                    "Status hook %r failed for conversation %s", hook, conversation_id
                )
        return StatusChangeResult(ok=True, status=updated.status, version=updated.version)

    def bulk_update_status(
        self,
        conversation_ids: Sequence[str],
        status: Status,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> BulkUpdateResult:
        """Set ``status`` on many conversations at once.

        By default rows are written in one statement without version or
        transition checks. With ``BULK_UPDATE_STRICT`` enabled each row goes
        through :meth:`change_status` and failures are reported as skipped.
        """

        status = Status(status)
        unique_ids = list(dict.fromkeys(conversation_ids))
        limit = self._settings.bulk_update_max
        if not unique_ids or len(unique_ids) > limit:
            raise BulkUpdateError(f"Between 1 and {limit} conversation ids are required")

        if self._settings.bulk_update_strict:
            skipped: list[str] = []
            for conversation_id in unique_ids:
                try:
                    self.change_status(
                        conversation_id, status, actor_id=actor_id, client=client
                    )
                except (
                    ConversationNotFoundError,
                    ConversationConflictError,
                    InvalidTransitionError,
                ) as exc:
                    logger.info("Bulk update skipped %s: %s", conversation_id, exc)
                    skipped.append(conversation_id)
            return BulkUpdateResult(
                updated=len(unique_ids) - len(skipped),
                requested_count=len(unique_ids),
                skipped=tuple(skipped),
            )

        updated_ids = self._repository.bulk_update_status(unique_ids, status)
        updated_set = set(updated_ids)
        for conversation_id in updated_ids:
            self._record(
                conversation_id,
                actor_id,
                StatusBulkChanged(to_status=status, total_count=len(unique_ids)),
                client,
            )
        logger.info(
            "Bulk status update to %s: %s of %s conversations",
            status.value,
            len(updated_ids),
            len(unique_ids),
        )
        return BulkUpdateResult(
            updated=len(updated_ids),
            requested_count=len(unique_ids),
            skipped=tuple(cid for cid in unique_ids if cid not in updated_set),
        )

    # ------------------------------------------------------------------
    # Manual triage and assignment

    def override_triage(
        self,
        conversation_id: str,
        *,
        actor_id: str,
        priority: Priority | None = None,
        urgency: Urgency | None = None,
        is_complaint: bool | None = None,
        complaint_type: ComplaintType | None = UNSET,
        client: ClientInfo | None = None,
    ) -> schemas.Conversation:
        conversation = self._require(conversation_id)
        update = build_override(
            priority=priority,
            urgency=urgency,
            is_complaint=is_complaint,
            complaint_type=complaint_type,
        )
        if not update:
            raise ValueError("At least one triage field is required")

        old = conversation.triage_state()
        new = update.apply(old)
        updated = self._repository.update_triage(conversation_id, update.changes())
        if updated is None:
            raise ConversationNotFoundError(conversation_id)
        self._record(
            conversation_id,
            actor_id,
            TriageOverridden(
                old_priority=old.priority,
                new_priority=new.priority,
                old_urgency=old.urgency,
                new_urgency=new.urgency,
                old_is_complaint=old.is_complaint,
                new_is_complaint=new.is_complaint,
                old_complaint_type=old.complaint_type,
                new_complaint_type=new.complaint_type,
            ),
            client,
        )
        return updated

    def update_priority(
        self,
        conversation_id: str,
        *,
        actor_id: str,
        priority: Priority | None = None,
        urgency: Urgency | None = None,
        client: ClientInfo | None = None,
    ) -> schemas.Conversation:
        if priority is None and urgency is None:
            raise ValueError("priority or urgency is required")
        conversation = self._require(conversation_id)
        changes: dict[str, Any] = {}
        if priority is not None:
            changes["priority"] = Priority(priority)
        if urgency is not None:
            changes["urgency"] = Urgency(urgency)
        updated = self._repository.update_triage(conversation_id, changes)
        if updated is None:
            raise ConversationNotFoundError(conversation_id)
        self._record(
            conversation_id,
            actor_id,
            PriorityUpdated(
                old_priority=conversation.priority,
                new_priority=updated.priority,
                old_urgency=conversation.urgency,
                new_urgency=updated.urgency,
            ),
            client,
        )
        return updated

    def assign(
        self,
        conversation_id: str,
        assigned_user_id: str | None,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> schemas.Conversation:
        conversation = self._require(conversation_id)
        updated = self._repository.set_assignee(conversation_id, assigned_user_id)
        if updated is None:
            raise ConversationNotFoundError(conversation_id)
        self._record(
            conversation_id,
            actor_id,
            Assigned(
                from_user_id=conversation.assigned_user_id, to_user_id=assigned_user_id
            ),
            client,
        )
        return updated

    def assign_to_self(
        self,
        conversation_id: str,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> schemas.Conversation:
        self._require(conversation_id)
        updated = self._repository.set_assignee(conversation_id, actor_id)
        if updated is None:
            raise ConversationNotFoundError(conversation_id)
        self._record(conversation_id, actor_id, SelfAssigned(), client)
        return updated

    # ------------------------------------------------------------------
    # Tags and contacts

    def add_tag(
        self,
        conversation_id: str,
        tag_id: str,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> list[schemas.Tag]:
        tags = self._require_tags()
        self._require(conversation_id)
        if tags.get_tag(tag_id) is None:
            raise TagNotFoundError(f"Tag {tag_id} not found")
        if tags.link(conversation_id, tag_id):
            self._record(conversation_id, actor_id, TagAdded(tag_id=tag_id), client)
        return tags.tags_for_conversation(conversation_id)

    def remove_tag(
        self,
        conversation_id: str,
        tag_id: str,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> list[schemas.Tag]:
        tags = self._require_tags()
        self._require(conversation_id)
        if not tags.unlink(conversation_id, tag_id):
            raise TagNotFoundError(
                f"Tag {tag_id} is not attached to conversation {conversation_id}"
            )
        self._record(conversation_id, actor_id, TagRemoved(tag_id=tag_id), client)
        return tags.tags_for_conversation(conversation_id)

    def update_contact_memo(
        self,
        contact_id: str,
        memo: str | None,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> schemas.Contact:
        contact = self._repository.update_contact_memo(contact_id, memo)
        if contact is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found")
        self._record(None, actor_id, ContactMemoUpdated(contact_id=contact_id), client)
        return contact

    # ------------------------------------------------------------------
    # Replies

    def reply(
        self,
        conversation_id: str,
        text: str,
        *,
        actor_id: str,
        client: ClientInfo | None = None,
    ) -> schemas.Message:
        if not text or not text.strip():
            raise ValueError("Text is required")
        conversation = self._require(conversation_id)
        contact = self._repository.get_contact(conversation.contact_id)
        if contact is None:
            raise ContactNotFoundError(f"Contact {conversation.contact_id} not found")

        if self._line is not None:
            if contact.is_blocked:
                logger.warning(
                    "Contact %s has blocked the account; reply stored only", contact.id
                )
            else:
                self._line.push_text(contact.line_user_id, text)

        now = _utcnow()
        message = self._repository.add_message(
            conversation_id, Direction.OUTBOUND, text, timestamp=now
        )
        if message is None:  # pragma: no cover - outbound messages carry no dedupe key
            raise RuntimeError("Outbound message was not stored")
        self._repository.touch_outbound(conversation_id, now, text[:PREVIEW_LENGTH])
        self._record(
            conversation_id,
            actor_id,
            ReplySent(message_id=message.id, text=text[:PREVIEW_LENGTH]),
            client,
        )
        return message

    # ------------------------------------------------------------------
    # Webhook ingestion

    def handle_event(self, event: ChannelEvent) -> str | None:
        if isinstance(event, InboundMessage):
            return self.process_inbound(event)
        if isinstance(event, ContactEvent):
            if event.kind == "follow":
                self.handle_follow(event.line_user_id, followed_at=event.timestamp)
            else:
                self.handle_unfollow(event.line_user_id)
            return None
        raise TypeError(f"Unsupported channel event: {event!r}")

    def _get_or_create_contact(
        self, line_user_id: str, *, followed_at: datetime | None = None
    ) -> schemas.Contact:
        contact = self._repository.get_contact_by_line_user_id(line_user_id)
        if contact is not None:
            return contact
        profile: dict[str, Any] = {}
        if self._line is not None:
            try:
                profile = self._line.get_profile(line_user_id)
            except LineApiError:
                logger.warning(
                    "Could not fetch LINE profile for %s", line_user_id, exc_info=True
                )
        contact = self._repository.create_contact(
            line_user_id,
            display_name=profile.get("display_name"),
            picture_url=profile.get("picture_url"),
            followed_at=followed_at,
        )
        logger.info("Created contact %s for LINE user %s", contact.id, line_user_id)
        return contact

    def process_inbound(self, message: InboundMessage) -> str | None:
        """Store an inbound text and triage its conversation.

        Returns the conversation id, or ``None`` when the message was already
        stored under the same LINE message id.
        """

        contact = self._get_or_create_contact(message.line_user_id)
        conversation = self._repository.find_open_conversation(contact.id)
        if conversation is None:
            conversation = self._repository.create_conversation(contact.id)
            logger.info(
                "Opened conversation %s for contact %s", conversation.id, contact.id
            )

        stored = self._repository.add_message(
            conversation.id,
            Direction.INBOUND,
            message.text,
            timestamp=message.timestamp,
            line_message_id=message.line_message_id,
            raw_payload=message.raw_payload,
        )
        if stored is None:
            logger.info("Duplicate LINE message %s ignored", message.line_message_id)
            return None

        self._repository.touch_inbound(
            conversation.id, message.timestamp, message.text[:PREVIEW_LENGTH]
        )
        try:
            with self._repository.savepoint():
                self.run_triage(conversation.id, message.text)
        except Exception:
            logger.exception("Triage failed for conversation %s", conversation.id)
        return conversation.id

    def handle_follow(
        self, line_user_id: str, *, followed_at: datetime | None = None
    ) -> schemas.Contact:
        followed_at = followed_at or _utcnow()
        contact = self._get_or_create_contact(line_user_id, followed_at=followed_at)
        unblocked = self._repository.set_contact_blocked(
            contact.id, False, followed_at=followed_at
        )
        logger.info("LINE user %s followed the account", line_user_id)
        return unblocked or contact

    def handle_unfollow(self, line_user_id: str) -> schemas.Contact | None:
        contact = self._repository.get_contact_by_line_user_id(line_user_id)
        if contact is None:
            logger.info("Unfollow from unknown LINE user %s ignored", line_user_id)
            return None
        logger.info("LINE user %s unfollowed the account", line_user_id)
        return self._repository.set_contact_blocked(contact.id, True)

    # ------------------------------------------------------------------
    # Queries

    def get_conversation(self, conversation_id: str) -> schemas.ConversationDetail:
        conversation = self._require(conversation_id)
        contact = self._repository.get_contact(conversation.contact_id)
        tags = self._tags.tags_for_conversation(conversation_id) if self._tags else []
        return schemas.ConversationDetail(
            **conversation.model_dump(),
            contact_display_name=contact.display_name if contact else None,
            needs_action=needs_action(conversation),
            tags=tags,
            contact=contact,
            messages=self._repository.list_messages(conversation_id),
            available_transitions=available_transitions(conversation.status),
        )

    def list_conversations(
        self,
        filters: ConversationFilters | None = None,
        *,
        page: int = 1,
        limit: int = 50,
    ) -> schemas.ConversationList:
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")
        items, total = self._repository.list_conversations(
            filters or ConversationFilters(), offset=(page - 1) * limit, limit=limit
        )
        items = [
            item.model_copy(update={"needs_action": needs_action(item)}) for item in items
        ]
        return schemas.ConversationList(items=items, total=total, page=page, limit=limit)

    def list_needs_action(self, limit: int = 50) -> list[schemas.ConversationSummary]:
        return [
            item.model_copy(update={"needs_action": True})
            for item in self._repository.list_active(limit)
            if needs_action(item)
        ]

    def stats(self) -> schemas.ConversationStats:
        by_status = self._repository.count_by_status()
        return schemas.ConversationStats(
            by_status=by_status,
            needs_action=self._repository.count_needs_action(),
            total=sum(by_status.values()),
        )


__all__ = ["ConversationService", "PREVIEW_LENGTH"]
