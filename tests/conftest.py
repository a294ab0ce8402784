"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures/variables required for testing multiple layers.
"""

from typing import Iterator

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.db.memory_repository import InMemorySessionRepository
from src.db.schema import Base
from src.services.registry import SessionRegistry
from src.services.session_service import SessionService
from src.services.sync import Event

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)

START_MS = 1_700_000_000_000


class FakeClock:
    """Wall clock the tests move forward by hand."""

    def __init__(self, now_ms: int = START_MS) -> None:
        self.now = now_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingBroadcaster:
    """Mock the Broadcaster by remembering everything that was sent, per connection."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Event]] = []

    def send(self, handle: str, event: Event) -> None:
        self.sent.append((handle, event))

    def events_for(self, handle: str) -> list[Event]:
        return [event for to, event in self.sent if to == handle]

    def types_for(self, handle: str) -> list[str]:
        return [event.type.value for event in self.events_for(handle)]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def db_session_repo() -> Iterator[Session]:
    """Connection to a test database. Tables are removed at teardown to make unit tests of repository independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcaster() -> Iterator[RecordingBroadcaster]:
    recorder = RecordingBroadcaster()
    try:
        yield recorder
    finally:
        recorder.clear()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry(InMemorySessionRepository())


@pytest.fixture
def service(
    registry: SessionRegistry, broadcaster: RecordingBroadcaster, fake_clock: FakeClock
) -> SessionService:
    return SessionService(registry, broadcaster, now_ms=fake_clock)
