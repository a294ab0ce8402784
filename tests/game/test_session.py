"""Unit tests for src/game/session.py"""

import chess
import pytest

from src.core.exceptions import GameOverError, SessionFullError
from src.core.shared_types import EndReason, Phase, Side, TimeControl
from src.game import rules
from src.game.position_generator import chess960_position, standard_position
from src.game.session import Participant, Session

ALICE = Participant(handle="conn-alice", name="Alice")
BOB = Participant(handle="conn-bob", name="Bob")


def new_session(start=None) -> Session:
    return Session.new(
        session_id="1234",
        start=start or standard_position(),
        time_control=TimeControl.BLITZ,
        time_limit_ms=300_000,
        increment_ms=0,
        creator=ALICE,
        now_ms=0,
    )


def test_new_session_is_pending_with_creator_as_white() -> None:
    session = new_session()
    assert session.phase == Phase.PENDING
    assert session.participants == {Side.WHITE: ALICE}
    assert session.open_side() == Side.BLACK
    assert session.side_to_move == Side.WHITE
    assert not session.clock.is_running


def test_second_player_starts_the_game() -> None:
    session = new_session()
    side = session.add_player(BOB, now_ms=5_000)

    assert side == Side.BLACK
    assert session.phase == Phase.ACTIVE
    assert session.clock.last_debit_ms == 5_000
    assert session.open_side() is None


def test_no_third_player() -> None:
    session = new_session()
    session.add_player(BOB, now_ms=0)
    with pytest.raises(SessionFullError):
        session.add_player(Participant("conn-carol", "Carol"), now_ms=0)


def test_members_lists_players_then_observers() -> None:
    session = new_session()
    session.add_player(BOB, now_ms=0)
    session.add_observer("conn-zed")
    session.add_observer("conn-eve")
    assert session.members() == ["conn-alice", "conn-bob", "conn-eve", "conn-zed"]
    assert session.side_of("conn-bob") == Side.BLACK
    assert session.side_of("conn-eve") is None


def test_finish_is_final() -> None:
    session = new_session()
    session.add_player(BOB, now_ms=0)
    outcome = session.finish(Side.BLACK, EndReason.RESIGNATION, side_to_move=Side.WHITE)

    assert session.phase == Phase.FINISHED
    assert outcome.to_dict() == {"winner": "black", "reason": "resignation"}
    with pytest.raises(GameOverError):
        session.finish(None, EndReason.AGREEMENT, side_to_move=Side.WHITE)


def test_board_is_replayed_from_the_move_log() -> None:
    session = new_session()
    session.add_player(BOB, now_ms=0)
    board = session.board()
    session.record_move(rules.apply_move(board, rules.MoveInput("e2", "e4")), now_ms=10)
    session.record_move(
        rules.apply_move(session.board(), rules.MoveInput("c7", "c5")), now_ms=20
    )

    expected = chess.Board()
    expected.push_uci("e2e4")
    expected.push_uci("c7c5")
    assert session.board().fen() == expected.fen()
    assert session.current_fen == expected.fen()
    assert session.side_to_move == Side.WHITE


def test_model_round_trip_keeps_everything() -> None:
    """A Session rebuilt from its model equals the original (this is what the registry relies on)."""
    session = new_session(start=chess960_position(518))
    session.add_player(BOB, now_ms=1_000)
    session.add_observer("conn-eve")
    session.record_move(
        rules.apply_move(session.board(), rules.MoveInput("d2", "d4")), now_ms=2_000
    )
    session.clock.debit(Side.WHITE, 2_000)
    session.draw_offer_by = Side.WHITE

    rebuilt = Session.from_model(session.to_model())

    assert rebuilt == session
    assert rebuilt.is_chess960
    assert rebuilt.board().fen() == session.board().fen()
