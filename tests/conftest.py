import pathlib
import sys
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi import FastAPI, Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from support_inbox.app_logging import init_logging
from support_inbox.audit import InMemoryAuditRepository
from support_inbox.conversations import schemas
from support_inbox.conversations.models import Direction, Role
from support_inbox.conversations.repository import InMemoryConversationRepository
from support_inbox.conversations.service import ConversationService
from support_inbox.conversations.tags import InMemoryTagRepository, TagService
from support_inbox.core.services import InboxServices, translate_errors
from support_inbox.core.settings import InboxSettings, reset_settings_cache
from support_inbox.models import Base, User
from support_inbox.security import create_access_token, hash_password, reset_jwt_settings_cache
from support_inbox.security.auth import reset_session_factory


@dataclass
class AuthContext:
    engine: object
    session_factory: sessionmaker[Session]
    users: dict[Role, uuid.UUID]
    tokens: dict[Role, str]
    password: str = "Secret123!"

    def header(self, role: Role) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[role]}"}

    def user_id(self, role: Role) -> str:
        return str(self.users[role])


class FakeLineClient:
    """Records LINE API calls instead of sending them."""

    def __init__(self, profiles: dict[str, dict[str, Any]] | None = None) -> None:
        self.profiles = profiles or {}
        self.pushed: list[tuple[str, str]] = []

    def get_profile(self, user_id: str) -> dict[str, Any]:
        return self.profiles.get(
            user_id, {"display_name": None, "picture_url": None, "status_message": None}
        )

    def push_text(self, user_id: str, text: str) -> None:
        self.pushed.append((user_id, text))


class RecordingEventSink:
    def __init__(self) -> None:
        self.events: list[Any] = []

    def emit(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


@dataclass
class InboxContext:
    repository: InMemoryConversationRepository
    tags: InMemoryTagRepository
    audit: InMemoryAuditRepository
    line: FakeLineClient
    events: RecordingEventSink
    service: ConversationService
    services: InboxServices
    settings: InboxSettings
    hook_calls: list[tuple[str, Any, Any]] = field(default_factory=list)

    def add_conversation(
        self,
        *,
        line_user_id: str | None = None,
        display_name: str | None = "山田太郎",
        inbound_texts: tuple[str, ...] = (),
        **fields: Any,
    ) -> schemas.Conversation:
        """Create a contact and conversation, optionally with inbound history."""

        contact = self.repository.create_contact(
            line_user_id or f"U{uuid.uuid4().hex}", display_name=display_name
        )
        conversation = self.repository.create_conversation(contact.id)
        base = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        for index, text in enumerate(inbound_texts):
            at = base + timedelta(minutes=index)
            self.repository.add_message(
                conversation.id, Direction.INBOUND, text, timestamp=at
            )
            self.repository.touch_inbound(conversation.id, at, text)
        if fields:
            self.repository.conversations[conversation.id] = self.repository.conversations[
                conversation.id
            ].model_copy(update=fields)
        return self.repository.conversations[conversation.id]

    def conversation(self, conversation_id: str) -> schemas.Conversation:
        return self.repository.conversations[conversation_id]


def build_inbox(settings: InboxSettings | None = None) -> InboxContext:
    settings = settings or InboxSettings()
    tags = InMemoryTagRepository()
    repository = InMemoryConversationRepository(tags=tags)
    audit = InMemoryAuditRepository()
    line = FakeLineClient()
    events = RecordingEventSink()
    hook_calls: list[tuple[str, Any, Any]] = []
    service = ConversationService(
        repository,
        audit=audit,
        tags=tags,
        events=events,
        line_client=line,
        settings=settings,
        status_hooks=[lambda cid, new, old: hook_calls.append((cid, new, old))],
    )
    return InboxContext(
        repository=repository,
        tags=tags,
        audit=audit,
        line=line,
        events=events,
        service=service,
        services=InboxServices(conversations=service, tags=TagService(tags), audit=audit),
        settings=settings,
        hook_calls=hook_calls,
    )


@pytest.fixture
def inbox() -> InboxContext:
    return build_inbox()


@pytest.fixture
def inbox_factory():
    return build_inbox


@pytest.fixture
def strict_inbox() -> InboxContext:
    return build_inbox(InboxSettings(bulk_update_strict=True))


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app


@pytest.fixture
def auth(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> AuthContext:
    db_path = tmp_path_factory.mktemp("inbox-auth") / "auth.db"
    db_url = f"sqlite+pysqlite:///{db_path}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("AUTH_TOKEN_SECRET", "super-secret-key")
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", "support-inbox")
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", "auth.support-inbox")
    monkeypatch.setenv("AUTH_TOKEN_ALGORITHM", "HS256")
    reset_jwt_settings_cache()
    reset_session_factory()
    reset_settings_cache()

    engine = create_engine(db_url, future=True)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    users: dict[Role, uuid.UUID] = {}
    user_objs: dict[Role, User] = {}
    with session_factory.begin() as session:
        for role in Role:
            user = User(
                email=f"{role.value.lower()}@example.com",
                name=role.value.title(),
                password_hash=hash_password("Secret123!"),
                role=role.value,
            )
            session.add(user)
            session.flush()
            users[role] = user.id
            user_objs[role] = user

    tokens = {role: create_access_token(user)[0] for role, user in user_objs.items()}

    yield AuthContext(
        engine=engine, session_factory=session_factory, users=users, tokens=tokens
    )

    Base.metadata.drop_all(engine)
    engine.dispose()
    reset_session_factory()
    reset_jwt_settings_cache()
    reset_settings_cache()


@pytest.fixture
def api_client(monkeypatch, tmp_path, auth, inbox):
    """A TestClient whose routers use the in-memory ``inbox`` services."""

    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))

    from fastapi.testclient import TestClient

    import support_inbox.main as main
    from support_inbox.core.limiter import limiter
    from support_inbox.routers import admin, contacts, conversations, tags

    @contextmanager
    def fake_context():
        with translate_errors():
            yield inbox.services

    for module in (admin, contacts, conversations, tags):
        monkeypatch.setattr(module, "_service_context", fake_context)

    limiter.reset()
    return TestClient(main.app)
