"""Unit tests for src/db/memory_repository.py"""

import pytest

from src.core.exceptions import RepositoryError
from src.core.models import SessionModel
from src.db.memory_repository import InMemorySessionRepository


def mock_model(session_id: str = "4242") -> SessionModel:
    return SessionModel(
        session_id=session_id,
        variant="chess960",
        time_control="rapid",
        time_limit_ms=600_000,
        increment_ms=0,
        starting_fen="bbqnnrkr/pppppppp/8/8/8/8/PPPPPPPP/BBQNNRKR w KQkq - 0 1",
        position_number=0,
        participants={"white": {"handle": "conn-white", "name": "Alice"}},
        observers=[],
        moves=[],
        clocks={"white": 600_000, "black": 600_000},
        last_debit_ms=None,
        phase="pending",
        outcome=None,
        created_at_ms=0,
    )


def test_create_and_get() -> None:
    repo = InMemorySessionRepository()
    assert repo.create_session(mock_model()) == mock_model()
    assert repo.get_session("4242") == mock_model()
    assert repo.get_session("0000") is None


def test_duplicate_id() -> None:
    repo = InMemorySessionRepository()
    repo.create_session(mock_model())
    with pytest.raises(RepositoryError):
        repo.create_session(mock_model())


def test_callers_never_share_state_with_the_store() -> None:
    """Mutating a fetched model does nothing until it is written back with update_session."""
    repo = InMemorySessionRepository()
    repo.create_session(mock_model())

    fetched = repo.get_session("4242")
    assert fetched is not None
    fetched.observers.append("conn-eve")
    fetched.clocks["white"] = 1

    assert repo.get_session("4242") == mock_model()

    repo.update_session(fetched)
    stored = repo.get_session("4242")
    assert stored is not None
    assert stored.observers == ["conn-eve"]


def test_update_unknown() -> None:
    repo = InMemorySessionRepository()
    assert repo.update_session(mock_model()) is None


def test_delete_and_list() -> None:
    repo = InMemorySessionRepository()
    repo.create_session(mock_model("1111"))
    repo.create_session(mock_model("2222"))

    assert [model.session_id for model in repo.list_sessions()] == ["1111", "2222"]
    assert repo.delete_session("1111") is not None
    assert repo.delete_session("1111") is None
    assert [model.session_id for model in repo.list_sessions()] == ["2222"]
