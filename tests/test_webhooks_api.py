import json
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient

from support_inbox.channels.line import SIGNATURE_HEADER, compute_signature
from support_inbox.conversations.models import Urgency
from support_inbox.core.settings import reset_settings_cache

SECRET = "webhook-secret"


@pytest.fixture
def webhook_client(monkeypatch, tmp_path, inbox):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LINE_CHANNEL_SECRET", SECRET)
    monkeypatch.setenv("LINE_CHANNEL_ACCESS_TOKEN", "access-token")
    reset_settings_cache()

    import support_inbox.main as main
    from support_inbox.core.limiter import limiter
    from support_inbox.routers import webhooks

    @contextmanager
    def fake_open_services(settings=None):
        yield inbox.services

    monkeypatch.setattr(webhooks, "open_services", fake_open_services)
    limiter.reset()
    yield TestClient(main.app)
    reset_settings_cache()


def _signed(payload):
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    return body, {
        SIGNATURE_HEADER: compute_signature(SECRET, body),
        "Content-Type": "application/json",
    }


def _text_event(text, message_id="m-1", user_id="U-web"):
    return {
        "type": "message",
        "timestamp": 1714564800000,
        "source": {"type": "user", "userId": user_id},
        "message": {"id": message_id, "type": "text", "text": text},
    }


def test_get_reports_active_channel(webhook_client):
    resp = webhook_client.get("/api/webhooks/line")

    assert resp.status_code == 200
    assert resp.json() == {"status": "active", "channel": "line"}
    assert webhook_client.get("/api/webhooks/unknown").status_code == 404


def test_signed_message_is_stored_and_triaged(webhook_client, inbox):
    body, headers = _signed({"events": [_text_event("至急返金してください")]})

    resp = webhook_client.post("/api/webhooks/line", content=body, headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    (conversation,) = inbox.repository.conversations.values()
    assert conversation.urgency is Urgency.NOW
    assert conversation.is_complaint is True
    assert len(inbox.repository.messages) == 1


def test_redelivered_message_is_stored_once(webhook_client, inbox):
    body, headers = _signed({"events": [_text_event("こんにちは", message_id="dup")]})

    webhook_client.post("/api/webhooks/line", content=body, headers=headers)
    webhook_client.post("/api/webhooks/line", content=body, headers=headers)

    assert len(inbox.repository.messages) == 1


def test_missing_signature_is_rejected(webhook_client, inbox):
    resp = webhook_client.post("/api/webhooks/line", json={"events": []})

    assert resp.status_code == 400


def test_invalid_signature_is_rejected(webhook_client, inbox):
    body, _ = _signed({"events": [_text_event("hi")]})

    resp = webhook_client.post(
        "/api/webhooks/line", content=body, headers={SIGNATURE_HEADER: "bogus"}
    )

    assert resp.status_code == 401
    assert inbox.repository.messages == {}


def test_invalid_json_is_rejected(webhook_client):
    body = b"not-json"
    headers = {SIGNATURE_HEADER: compute_signature(SECRET, body)}

    resp = webhook_client.post("/api/webhooks/line", content=body, headers=headers)

    assert resp.status_code == 400


def test_unknown_channel_is_not_found(webhook_client):
    body, headers = _signed({"events": []})

    resp = webhook_client.post("/api/webhooks/telegram", content=body, headers=headers)

    assert resp.status_code == 404


def test_unconfigured_channel_fails(webhook_client, monkeypatch):
    monkeypatch.delenv("LINE_CHANNEL_SECRET")
    reset_settings_cache()
    body, headers = _signed({"events": []})

    resp = webhook_client.post("/api/webhooks/line", content=body, headers=headers)

    assert resp.status_code == 500


def test_processing_failure_still_acknowledges(webhook_client, inbox, monkeypatch):
    def explode(event):
        raise RuntimeError("database down")

    monkeypatch.setattr(inbox.service, "handle_event", explode)
    body, headers = _signed({"events": [_text_event("hello")]})

    resp = webhook_client.post("/api/webhooks/line", content=body, headers=headers)

    assert resp.status_code == 200


def test_follow_event_creates_contact(webhook_client, inbox):
    inbox.line.profiles["U-follow"] = {"display_name": "新規さん"}
    body, headers = _signed(
        {"events": [{"type": "follow", "source": {"userId": "U-follow"}}]}
    )

    webhook_client.post("/api/webhooks/line", content=body, headers=headers)

    contact = inbox.repository.get_contact_by_line_user_id("U-follow")
    assert contact.display_name == "新規さん"
    assert contact.is_blocked is False
