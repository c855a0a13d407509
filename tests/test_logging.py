import json
import logging
from logging.handlers import TimedRotatingFileHandler

import pytest
from starlette.testclient import TestClient

from support_inbox.app_logging import APP_LOGGER_NAME, JsonFormatter, TextFormatter, init_logging


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


@pytest.fixture
def log_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    yield tmp_path
    _clear_handlers(APP_LOGGER_NAME)
    _clear_handlers("uvicorn.access")


def _record(**extra):
    record = logging.LogRecord(
        APP_LOGGER_NAME, logging.INFO, __file__, 1, "TriageApplied for %s", ("c-1",), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_timed_rotating_handler_configuration(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_RETENTION_DAYS", "5")
    app_logger = _clear_handlers(APP_LOGGER_NAME)
    access_logger = _clear_handlers("uvicorn.access")

    init_logging()

    app_handler = next(
        h for h in app_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert app_handler.when == "MIDNIGHT"
    assert app_handler.backupCount == 5

    access_handler = next(
        h for h in access_logger.handlers if isinstance(h, TimedRotatingFileHandler)
    )
    assert access_handler.backupCount == 5


def test_log_files_and_redaction(log_dir, app_factory):
    _clear_handlers(APP_LOGGER_NAME)
    _clear_handlers("uvicorn.access")
    app = app_factory(log_dir, log_request_bodies=True)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.info("hello inbox")

    with TestClient(app) as client:
        resp = client.post(
            "/echo",
            json={"password": "secret", "value": 1},
            headers={"Authorization": "Bearer secret", "X-Line-Signature": "sig"},
        )
        assert resp.status_code == 200
        assert resp.headers["X-Request-Id"]

    for logger in (app_logger, logging.getLogger("uvicorn.access")):
        for handler in logger.handlers:
            handler.flush()

    assert "hello inbox" in (log_dir / "app.log").read_text(encoding="utf-8")

    access_line = (log_dir / "access.log").read_text(encoding="utf-8").splitlines()[-1]
    data = json.loads(access_line.split(": ", 1)[1])
    assert data["headers"]["authorization"] == "***"
    assert data["headers"]["x-line-signature"] == "***"
    assert data["body"]["password"] == "***"
    assert data["body"]["value"] == 1
    assert data["status"] == 200


def test_health_check_is_not_access_logged(log_dir, app_factory):
    app = app_factory(log_dir)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    with TestClient(app) as client:
        client.get("/api/health")

    for handler in logging.getLogger("uvicorn.access").handlers:
        handler.flush()
    assert (log_dir / "access.log").read_text(encoding="utf-8") == ""


def test_json_formatter_includes_event():
    line = JsonFormatter().format(_record(event={"type": "TriageApplied", "urgency": "今日中"}))

    data = json.loads(line)
    assert data["message"] == "TriageApplied for c-1"
    assert data["event"] == {"type": "TriageApplied", "urgency": "今日中"}


def test_text_formatter_appends_event():
    plain = TextFormatter().format(_record())
    structured = TextFormatter().format(_record(event={"type": "TriageApplied"}))

    assert plain.endswith("TriageApplied for c-1")
    assert structured.endswith('{"type": "TriageApplied"}')
