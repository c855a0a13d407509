"""Runtime configuration for the support inbox.

Values are read from the environment (``.env`` files are loaded by
``support_inbox.main`` through python-dotenv) into an immutable
:class:`InboxSettings` instance. The instance is cached; tests that tweak
environment variables should call :func:`reset_settings_cache` afterwards.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

# Batch re-triage never reads more than this many recent inbound messages.
MAX_RETRIAGE_MESSAGES = 10


def _to_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclasses.dataclass(frozen=True)
class InboxSettings:
    """Settings shared by the webhook, triage and workflow layers."""

    database_url: str | None = None
    line_channel_secret: str | None = None
    line_channel_access_token: str | None = None
    line_api_base_url: str = "https://api.line.me/v2/bot"
    retriage_message_limit: int = 10
    bulk_update_max: int = 100
    bulk_update_strict: bool = False
    triage_rules_path: str | None = None

    @property
    def line_configured(self) -> bool:
        return bool(self.line_channel_secret and self.line_channel_access_token)


@lru_cache(maxsize=1)
def get_settings() -> InboxSettings:
    """Load settings from the environment."""

    retriage_limit = int(os.getenv("RETRIAGE_MESSAGE_LIMIT", "10"))
    if not 1 <= retriage_limit <= MAX_RETRIAGE_MESSAGES:
        raise RuntimeError(
            f"RETRIAGE_MESSAGE_LIMIT must be between 1 and {MAX_RETRIAGE_MESSAGES}."
        )
    bulk_max = int(os.getenv("BULK_UPDATE_MAX", "100"))
    if bulk_max < 1:
        raise RuntimeError("BULK_UPDATE_MAX must be at least 1.")
    return InboxSettings(
        database_url=os.getenv("DATABASE_URL") or None,
        line_channel_secret=os.getenv("LINE_CHANNEL_SECRET") or None,
        line_channel_access_token=os.getenv("LINE_CHANNEL_ACCESS_TOKEN") or None,
        line_api_base_url=os.getenv(
            "LINE_API_BASE_URL", "https://api.line.me/v2/bot"
        ).rstrip("/"),
        retriage_message_limit=retriage_limit,
        bulk_update_max=bulk_max,
        bulk_update_strict=_to_bool(os.getenv("BULK_UPDATE_STRICT")),
        triage_rules_path=os.getenv("TRIAGE_RULES_PATH") or None,
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


__all__ = ["MAX_RETRIAGE_MESSAGES", "InboxSettings", "get_settings", "reset_settings_cache"]
