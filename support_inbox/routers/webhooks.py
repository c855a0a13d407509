"""Webhook ingestion routes for external messaging channels."""

import json
import logging
from collections.abc import Sequence

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status

from ..channels import get_adapter
from ..conversations.models import ChannelEvent
from ..core.limiter import WEBHOOK_RATE_LIMIT, limiter
from ..core.services import open_services
from ..core.settings import InboxSettings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def process_events(events: Sequence[ChannelEvent], settings: InboxSettings) -> None:
    """Handle parsed webhook events, one transaction per event.

    Failures are logged and never propagate: the webhook has already been
    acknowledged.
    """

    for event in events:
        try:
            with open_services(settings) as services:
                services.conversations.handle_event(event)
        except Exception:
            logger.exception(
                "Failed to process %s event for %s",
                type(event).__name__,
                getattr(event, "line_user_id", "?"),
            )


@router.get("/api/webhooks/{channel}")
async def webhook_status(channel: str) -> dict[str, str]:
    try:
        get_adapter(channel)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "active", "channel": channel.lower()}


@router.post("/api/webhooks/{channel}")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def ingest_webhook(
    channel: str, request: Request, background_tasks: BackgroundTasks
) -> dict[str, bool]:
    try:
        adapter_cls = get_adapter(channel)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    settings = get_settings()
    adapter = adapter_cls(settings=settings)
    if not adapter.is_configured():
        logger.error("Webhook for %s received but the channel is not configured", channel)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Channel is not configured",
        )

    header = adapter.signature_header
    if header and not request.headers.get(header):
        raise HTTPException(status_code=400, detail="Missing signature")

    body_bytes = await request.body()
    if not adapter.verify_signature(body_bytes, request.headers):
        logger.warning("Rejected %s webhook with an invalid signature", channel)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    try:
        payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=400, detail=f"Invalid JSON payload: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    events = list(adapter.parse_incoming(payload, request.headers))
    logger.info("Accepted %s webhook with %d event(s)", channel, len(events))
    if events:
        background_tasks.add_task(process_events, events, settings)
    return {"success": True}
