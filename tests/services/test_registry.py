"""Unit tests for src/services/registry.py"""

import random

import pytest

from src.core.exceptions import (
    InvalidRequestError,
    RegistryError,
    SessionNotFoundError,
)
from src.core.shared_types import OBSERVER, EndReason, Phase, Side, Variant
from src.db.memory_repository import InMemorySessionRepository
from src.services.registry import (
    MAX_CODE_ATTEMPTS,
    SessionConfig,
    SessionRegistry,
    build_start_position,
)
from src.game.session import Participant

ALICE = Participant("conn-alice", "Alice")
BOB = Participant("conn-bob", "Bob")
CAROL = Participant("conn-carol", "Carol")


class SequenceCodes:
    """Hand out room codes from a fixed list, to force collisions."""

    def __init__(self, codes: list[str]) -> None:
        self.codes = list(codes)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return self.codes.pop(0)


def test_create_stores_a_pending_session(registry: SessionRegistry) -> None:
    session = registry.create(SessionConfig(), ALICE, now_ms=0)

    assert len(session.id) == 4 and session.id.isdigit()
    assert 1000 <= int(session.id) <= 9999
    stored = registry.get(session.id)
    assert stored.phase == Phase.PENDING
    assert stored.participants == {Side.WHITE: ALICE}
    assert registry.sessions_of(ALICE.handle) == {session.id}


def test_code_collision_is_retried() -> None:
    codes = SequenceCodes(["1234", "1234", "1234", "5678"])
    registry = SessionRegistry(InMemorySessionRepository(), code_factory=codes)

    first = registry.create(SessionConfig(), ALICE, now_ms=0)
    second = registry.create(SessionConfig(), BOB, now_ms=0)

    assert first.id == "1234"
    assert second.id == "5678"
    assert codes.calls == 4


def test_no_free_code_left() -> None:
    codes = SequenceCodes(["1234"] * (MAX_CODE_ATTEMPTS + 1))
    registry = SessionRegistry(InMemorySessionRepository(), code_factory=codes)
    registry.create(SessionConfig(), ALICE, now_ms=0)

    with pytest.raises(RegistryError):
        registry.create(SessionConfig(), BOB, now_ms=0)


def test_get_unknown_session(registry: SessionRegistry) -> None:
    assert registry.find("0000") is None
    with pytest.raises(SessionNotFoundError):
        _ = registry.get("0000")


def test_join_starts_the_game_exactly_once(registry: SessionRegistry) -> None:
    """pending -> active happens on the join that fills the second side, and on no other join."""
    session = registry.create(SessionConfig(), ALICE, now_ms=0)

    joined = registry.join(session.id, BOB, now_ms=2_000)
    assert joined.started
    assert joined.role == Side.BLACK
    assert joined.session.phase == Phase.ACTIVE
    assert registry.get(session.id).clock.last_debit_ms == 2_000

    again = registry.join(session.id, BOB, now_ms=3_000)
    assert not again.started
    assert again.role == Side.BLACK
    # rejoining did not restart the clock
    assert registry.get(session.id).clock.last_debit_ms == 2_000


def test_creator_joining_own_game_keeps_white(registry: SessionRegistry) -> None:
    session = registry.create(SessionConfig(), ALICE, now_ms=0)
    joined = registry.join(session.id, ALICE, now_ms=0)
    assert joined.role == Side.WHITE
    assert not joined.started
    assert joined.session.phase == Phase.PENDING


def test_third_connection_becomes_observer(registry: SessionRegistry) -> None:
    session = registry.create(SessionConfig(), ALICE, now_ms=0)
    registry.join(session.id, BOB, now_ms=0)

    joined = registry.join(session.id, CAROL, now_ms=0)

    assert joined.role == OBSERVER
    assert not joined.started
    stored = registry.get(session.id)
    assert stored.observers == {CAROL.handle}
    assert len(stored.participants) == 2
    assert registry.sessions_of(CAROL.handle) == {session.id}


def test_join_unknown_session(registry: SessionRegistry) -> None:
    with pytest.raises(SessionNotFoundError):
        _ = registry.join("0000", BOB, now_ms=0)


def test_chess960_config() -> None:
    registry = SessionRegistry(InMemorySessionRepository(), rng=random.Random(1))
    session = registry.create(
        SessionConfig(variant=Variant.CHESS960, starting_index=518), ALICE, now_ms=0
    )
    assert session.start.position_number == 518
    assert session.start.fen.startswith("rnbqkbnr/")


def test_custom_config_needs_fen() -> None:
    with pytest.raises(InvalidRequestError):
        _ = build_start_position(SessionConfig(variant=Variant.CUSTOM))


def test_time_control_is_resolved(registry: SessionRegistry) -> None:
    session = registry.create(
        SessionConfig(time_limit_seconds=180, increment_seconds=2), ALICE, now_ms=0
    )
    assert session.time_limit_ms == 180_000
    assert session.clock.increment_ms == 2_000
    assert session.clock.as_dict() == {"white": 180_000, "black": 180_000}


def test_active_ids(registry: SessionRegistry) -> None:
    pending = registry.create(SessionConfig(), ALICE, now_ms=0)
    active = registry.create(SessionConfig(), CAROL, now_ms=0)
    registry.join(active.id, BOB, now_ms=0)

    assert registry.active_ids() == [active.id]
    assert pending.id not in registry.active_ids()


def test_reap_only_removes_old_finished_sessions() -> None:
    registry = SessionRegistry(InMemorySessionRepository(), retention_ms=1_000)
    pending = registry.create(SessionConfig(), ALICE, now_ms=0)
    active = registry.create(SessionConfig(), BOB, now_ms=0)
    registry.join(active.id, CAROL, now_ms=0)
    finished = registry.create(SessionConfig(), Participant("conn-dave", "Dave"), now_ms=0)
    registry.join(finished.id, Participant("conn-erin", "Erin"), now_ms=0)

    with registry.lock(finished.id):
        session = registry.get(finished.id)
        session.finish(Side.WHITE, EndReason.RESIGNATION, side_to_move=Side.WHITE)
        registry.save(session)

    # still inside the retention window
    assert registry.reap(now_ms=1_000) == []

    assert registry.reap(now_ms=5_000) == [finished.id]
    assert registry.find(finished.id) is None
    assert registry.find(pending.id) is not None
    assert registry.find(active.id) is not None
    assert registry.sessions_of("conn-dave") == set()


def test_forget_connection(registry: SessionRegistry) -> None:
    first = registry.create(SessionConfig(), ALICE, now_ms=0)
    second = registry.create(SessionConfig(), BOB, now_ms=0)
    registry.join(second.id, ALICE, now_ms=0)

    assert registry.forget_connection(ALICE.handle) == {first.id, second.id}
    assert registry.sessions_of(ALICE.handle) == set()
    assert registry.forget_connection(ALICE.handle) == set()
