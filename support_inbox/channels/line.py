"""LINE Messaging API channel adapter."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from ..conversations.models import ChannelEvent, ContactEvent, InboundMessage
from .base import ChannelAdapter

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-line-signature"


def compute_signature(secret: str, body: bytes) -> str:
    """Return the base64 HMAC-SHA256 digest LINE sends in ``x-line-signature``."""

    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def _event_time(event: Mapping[str, Any]) -> datetime:
    timestamp = event.get("timestamp")
    if timestamp:
        try:
            return datetime.fromtimestamp(int(timestamp) / 1000, tz=timezone.utc)
        except (ValueError, TypeError, OverflowError):
            pass
    return datetime.now(timezone.utc)


class LineAdapter(ChannelAdapter):
    channel_name = "line"
    signature_header = SIGNATURE_HEADER

    def is_configured(self) -> bool:
        return self.settings.line_configured

    def verify_signature(self, body: bytes, headers: Mapping[str, str]) -> bool:
        secret = self.settings.line_channel_secret
        if not secret:
            logger.error("LINE_CHANNEL_SECRET is not configured")
            return False
        received = headers.get(self.signature_header)
        if not received:
            return False
        return hmac.compare_digest(received, compute_signature(secret, body))

    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> Iterable[ChannelEvent]:
        for event in payload.get("events") or []:
            event_type = event.get("type")
            user_id = (event.get("source") or {}).get("userId")
            if not user_id:
                logger.info("Ignoring %s event without a userId", event_type)
                continue
            if event_type == "message":
                message = event.get("message") or {}
                if message.get("type") != "text":
                    logger.info("Non-text message ignored: %s", message.get("type"))
                    continue
                yield InboundMessage(
                    line_user_id=user_id,
                    text=message.get("text") or "",
                    line_message_id=message.get("id"),
                    timestamp=_event_time(event),
                    reply_token=event.get("replyToken"),
                    raw_payload=dict(event),
                )
            elif event_type in ("follow", "unfollow"):
                yield ContactEvent(
                    kind=event_type,
                    line_user_id=user_id,
                    timestamp=_event_time(event),
                )
            else:
                logger.info("Unhandled LINE event type: %s", event_type)
