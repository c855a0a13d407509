"""Minimal LINE Messaging API client."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..core.settings import InboxSettings

logger = logging.getLogger(__name__)


class LineApiError(RuntimeError):
    """Raised when the LINE API rejects a request."""


class LineClient:
    """Call the LINE Messaging API with a channel access token."""

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = "https://api.line.me/v2/bot",
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})

    @classmethod
    def from_settings(cls, settings: InboxSettings) -> "LineClient | None":
        """Return a client when an access token is configured, else ``None``."""

        if not settings.line_channel_access_token:
            return None
        return cls(settings.line_channel_access_token, base_url=settings.line_api_base_url)

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self._timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise LineApiError(f"LINE API {method} {path} failed: {exc}") from exc
        return resp

    def get_profile(self, user_id: str) -> dict[str, Any]:
        """Return ``displayName``/``pictureUrl``/``statusMessage`` for ``user_id``."""

        data = self._request("GET", f"/profile/{user_id}").json()
        return {
            "display_name": data.get("displayName"),
            "picture_url": data.get("pictureUrl"),
            "status_message": data.get("statusMessage"),
        }

    def push_text(self, user_id: str, text: str) -> None:
        self._request(
            "POST",
            "/message/push",
            json={"to": user_id, "messages": [{"type": "text", "text": text}]},
        )
        logger.info("Pushed text message to %s", user_id)


__all__ = ["LineApiError", "LineClient"]
