"""Base abstractions for chat channel adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from ..conversations.models import ChannelEvent
from ..core.settings import InboxSettings


class ChannelAdapter(ABC):
    """Abstract base class encapsulating channel-specific behaviour."""

    #: Lowercase channel identifier used in routes and configuration.
    channel_name: str

    #: Header carrying the webhook signature, if the channel signs payloads.
    signature_header: str | None = None

    def __init__(self, *, settings: InboxSettings) -> None:
        self.settings = settings

    def is_configured(self) -> bool:
        """Whether the credentials needed to accept webhooks are present."""

        return True

    @abstractmethod
    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
    ) -> Iterable[ChannelEvent]:
        """Convert a webhook payload into inbound messages and contact events."""

    def verify_signature(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """Validate authenticity of the webhook payload.

        Adapters can override this to implement signature checks. The default
        implementation returns ``True``.
        """

        return True
