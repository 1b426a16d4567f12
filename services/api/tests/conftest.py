from collections.abc import Callable, Generator
from threading import Lock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import greenlight_api.models  # noqa: F401
from greenlight_api.core.config import Settings
from greenlight_api.db.session import get_db
from greenlight_api.main import create_app
from greenlight_api.models.base import Base
from greenlight_api.services.mailer import Mailer, MailMessage
from greenlight_api.services.permissions import PermissionCode, seed_permissions


class RecordingMailer(Mailer):
    """测试用投递实现：记录邮件，不做网络发送。"""

    def __init__(self) -> None:
        self.outbox: list[MailMessage] = []
        self._lock = Lock()

    def deliver(self, message: MailMessage) -> None:
        with self._lock:
            self.outbox.append(message)

    def last_to(self, recipient: str) -> MailMessage:
        with self._lock:
            matched = [item for item in self.outbox if item.recipient == recipient]
        assert matched, f"no mail sent to {recipient}"
        return matched[-1]


class FakeClock:
    """可手动推进的单调时钟。"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine) -> Callable[[], Session]:
    return sessionmaker(bind=sqlite_engine, autoflush=False, autocommit=False, class_=Session)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    seed_permissions(db, [code.value for code in PermissionCode])
    db.commit()
    try:
        yield db
    finally:
        db.close()


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+pysqlite://",
        "limiter_enabled": False,
        "password_hash_iterations": 1000,
        "mail_retry_delay_seconds": 0,
        "shutdown_timeout_seconds": 5,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def build_client(session_factory, db_session) -> Generator[Callable[..., TestClient], None, None]:
    """按需构造带独立配置的客户端；邮件通过 `client.mailer.outbox` 查看。"""
    clients: list[TestClient] = []

    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def _build(**overrides) -> TestClient:
        app = create_app(make_settings(**overrides))
        mailer = RecordingMailer()
        app.state.mailer = mailer
        app.state.session_factory = session_factory
        app.dependency_overrides[get_db] = override_get_db
        client = TestClient(app)
        client.__enter__()
        client.mailer = mailer
        clients.append(client)
        return client

    yield _build

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def api_client(build_client) -> TestClient:
    return build_client()
