"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import dataclasses
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src", ROOT_DIR.parent / "scripts"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from amora.realtime import (
    Connection,
    Entitlements,
    MessageRecord,
    RealtimeOptions,
    RealtimeServices,
    Unauthorized,
    build_realtime_services,
)

from app.config import Settings
from app.core.security import create_access_token, get_password_hash
from app.main import create_app
from app.models import Base, Like, User
from app.models.social import utcnow
from app.monitoring.registry import registry

ELITE_PRICE = "price_elite"
PREMIUM_PRICE = "price_premium"


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    registry.reset()
    yield
    registry.reset()


# ---------------------------------------------------------------------------
# Database and HTTP application
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def app_settings() -> Settings:
    return Settings(
        stripe_price_elite=ELITE_PRICE,
        stripe_price_premium=PREMIUM_PRICE,
        realtime_send_enabled=True,
    )


@pytest.fixture()
def api_app(session_factory, app_settings) -> FastAPI:
    return create_app(session_factory, app_settings)


@pytest.fixture()
def client(api_app) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient bound to the in-memory database."""

    with TestClient(api_app) as test_client:
        yield test_client


@pytest.fixture()
def make_user(session_factory) -> Callable[..., tuple[int, str]]:
    """Create a user directly in the database and return ``(id, token)``."""

    def _make(
        login: str,
        *,
        plan: str = "free",
        video_chat: bool = False,
        verified: bool = False,
        age_hours: float = 72,
    ) -> tuple[int, str]:
        price = {"elite": ELITE_PRICE, "premium": PREMIUM_PRICE}.get(plan)
        with session_factory() as session:
            user = User(
                login=login,
                hashed_password=get_password_hash("password123"),
                display_name=login.title(),
                subscription_price_id=price,
                video_chat=video_chat,
                verified_at=utcnow() if verified else None,
                created_at=utcnow() - timedelta(hours=age_hours),
            )
            session.add(user)
            session.commit()
            user_id = user.id
        return user_id, create_access_token({"sub": str(user_id)})

    return _make


@pytest.fixture()
def make_match(session_factory) -> Callable[[int, int], None]:
    def _match(user_a: int, user_b: int) -> None:
        with session_factory() as session:
            session.add_all([Like(liker_id=user_a, liked_id=user_b), Like(liker_id=user_b, liked_id=user_a)])
            session.commit()

    return _match


# ---------------------------------------------------------------------------
# In-memory realtime core
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryMessageStore:
    def __init__(self) -> None:
        self.messages: list[MessageRecord] = []
        self.base = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.fail_create = False
        self.fail_count = False

    async def create(self, sender_id: int, recipient_id: int, content: str) -> MessageRecord:
        if self.fail_create:
            raise RuntimeError("store offline")
        record = MessageRecord(
            id=len(self.messages) + 1,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            created_at=self.base + timedelta(seconds=len(self.messages)),
        )
        self.messages.append(record)
        return record

    async def count_unread(self, user_id: int) -> int:
        if self.fail_count:
            raise RuntimeError("store offline")
        return sum(1 for m in self.messages if m.recipient_id == user_id and not m.read)

    async def mark_read(self, reader_id: int, peer_id: int) -> datetime | None:
        latest = None
        for index, message in enumerate(self.messages):
            if message.sender_id != peer_id or message.recipient_id != reader_id:
                continue
            self.messages[index] = dataclasses.replace(message, read=True)
            latest = message.created_at if latest is None else max(latest, message.created_at)
        return latest


class MemoryNotificationStore:
    def __init__(self) -> None:
        self.unread: dict[int, int] = {}

    async def count_unread(self, user_id: int) -> int:
        return self.unread.get(user_id, 0)


class MemoryMatches:
    def __init__(self) -> None:
        self.pairs: set[frozenset[int]] = set()

    def add(self, user_a: int, user_b: int) -> None:
        self.pairs.add(frozenset((user_a, user_b)))

    async def is_mutual_match(self, user_a: int, user_b: int) -> bool:
        return frozenset((user_a, user_b)) in self.pairs


def _resolve_token(token: str) -> int:
    if token.startswith("user-") and token[5:].isdigit():
        return int(token[5:])
    raise Unauthorized("Could not validate credentials")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def stores() -> SimpleNamespace:
    return SimpleNamespace(
        messages=MemoryMessageStore(),
        notifications=MemoryNotificationStore(),
        matches=MemoryMatches(),
    )


@pytest.fixture()
def entitlements() -> dict[int, Entitlements]:
    """Entitlements returned by the handshake lookup, keyed by user id."""

    return {}


@pytest.fixture()
def realtime(stores, clock, entitlements) -> RealtimeServices:
    async def lookup(user_id: int) -> Entitlements | None:
        return entitlements.get(user_id)

    return build_realtime_services(
        messages=stores.messages,
        notifications=stores.notifications,
        matches=stores.matches,
        resolve_token=_resolve_token,
        lookup_entitlements=lookup,
        options=RealtimeOptions(send_enabled=True),
        clock=clock,
    )


@pytest.fixture()
def connect(realtime) -> Callable[..., Connection]:
    """Attach a connection for *user_id* to the gateway without a websocket."""

    def _connect(user_id: int, entitlements: Entitlements | None = None) -> Connection:
        connection = realtime.new_connection(user_id, entitlements or Entitlements())
        realtime.gateway.attach(connection)
        return connection

    return _connect
