"""
Turn arbitration.

Decides whether a request coming from a connection may change the session, and if so, which transition it causes.
Everything here works on an already loaded Session; loading, locking and saving is up to the caller.

Order of checks for a move attempt:

1. Is the game still going (and did it start)?
2. Does the requester own a side, and is it that side's turn?   (no mutation when rejected)
3. Charge the elapsed time to the mover. Flag fell? -> game over by timeout, move refused.
4. Ask the rules engine. Refused? -> IllegalMoveError, nothing changes.
5. Commit the debit, credit the increment, append the move, map terminal states to an outcome.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.core.exceptions import (
    GameNotStartedError,
    GameOverError,
    IllegalMoveError,
    NoDrawOfferError,
    NotAPlayerError,
    NotYourTurnError,
    TimeRanOutError,
)
from src.core.shared_types import EndReason, Phase, Side
from src.game import rules
from src.game.session import MoveRecord, Outcome, Session

logger = logging.getLogger(__name__)

TERMINAL_REASONS: dict[rules.TerminalState, EndReason] = {
    rules.TerminalState.CHECKMATE: EndReason.CHECKMATE,
    rules.TerminalState.STALEMATE: EndReason.STALEMATE,
    rules.TerminalState.THREEFOLD_REPETITION: EndReason.REPETITION,
    rules.TerminalState.INSUFFICIENT_MATERIAL: EndReason.INSUFFICIENT_MATERIAL,
    rules.TerminalState.OTHER_DRAW: EndReason.DRAW,
}


@dataclass(frozen=True)
class AcceptedMove:
    record: MoveRecord
    side: Side
    clocks: dict[str, int]
    outcome: Optional[Outcome] = None


def submit_move(
    session: Session, handle: str, move: rules.MoveInput, now_ms: int
) -> AcceptedMove:
    """Gate a move attempt and apply it if allowed. See module docstring for the order of checks."""
    _assert_in_progress(session)
    side = _assert_player(session, handle)

    side_to_move = session.side_to_move
    if side != side_to_move:
        raise NotYourTurnError(
            f"It is not your turn. Waiting for {side_to_move} to make a move first."
        )

    # a flagged clock is checked before move legality
    if session.clock.preview(side, now_ms) <= 0:
        session.clock.debit(side, now_ms)
        session.finish(winner=side.other, reason=EndReason.TIMEOUT, side_to_move=side)
        logger.info("Game %s: %s ran out of time", session.id, side)
        raise TimeRanOutError(f"{side} ran out of time.")

    board = session.board()
    try:
        applied = rules.apply_move(board, move)
    except IllegalMoveError:
        raise
    except Exception as exc:
        # whatever the engine chokes on, the move is simply not acceptable
        raise IllegalMoveError(
            f"Move not allowed: {move.from_square}{move.to_square}"
        ) from exc

    session.clock.debit(side, now_ms)
    session.clock.credit(side)
    record = session.record_move(applied, now_ms)

    outcome = None
    terminal = rules.terminal_state(board)
    if terminal is not None:
        winner = side if terminal == rules.TerminalState.CHECKMATE else None
        outcome = session.finish(
            winner=winner, reason=TERMINAL_REASONS[terminal], side_to_move=side.other
        )
        logger.info("Game %s over: %s", session.id, outcome.reason)

    return AcceptedMove(
        record=record, side=side, clocks=session.clock.as_dict(), outcome=outcome
    )


def resign(session: Session, handle: str, now_ms: int) -> Outcome:
    """The other side wins, whatever the position looks like. A flag that already fell still loses on time."""
    _assert_in_progress(session)
    side = _assert_player(session, handle)
    timed_out = flag_if_expired(session, now_ms)
    if timed_out is not None:
        return timed_out

    session.clock.debit(session.side_to_move, now_ms)
    return session.finish(
        winner=side.other,
        reason=EndReason.RESIGNATION,
        side_to_move=session.side_to_move,
    )


def offer_draw(session: Session, handle: str, now_ms: int) -> Side:
    """Register a draw offer. Returns the side that has to answer it."""
    _assert_in_progress(session)
    side = _assert_player(session, handle)
    timed_out = flag_if_expired(session, now_ms)
    if timed_out is not None:
        raise TimeRanOutError(f"{session.side_to_move} ran out of time.")

    session.draw_offer_by = side
    return side.other


def accept_draw(session: Session, handle: str, now_ms: int) -> Outcome:
    """Only the opponent of whoever offered can turn the offer into a result."""
    _assert_in_progress(session)
    side = _assert_player(session, handle)
    timed_out = flag_if_expired(session, now_ms)
    if timed_out is not None:
        return timed_out

    if session.draw_offer_by != side.other:
        raise NoDrawOfferError("There is no draw offer from your opponent to accept.")
    session.clock.debit(session.side_to_move, now_ms)
    return session.finish(
        winner=None, reason=EndReason.AGREEMENT, side_to_move=session.side_to_move
    )


def abandon(session: Session, handle: str, now_ms: int) -> Optional[Outcome]:
    """
    A player's connection went away.
    ----

    Observers leaving (or anybody leaving a finished game) changes nothing. A player leaving a running game hands the win to
    the remaining side, unless the side to move had already run out of time. A creator leaving before anybody joined ends
    the game without a winner.
    """
    session.remove_observer(handle)
    side = session.side_of(handle)
    if side is None or session.is_finished:
        return None

    timed_out = flag_if_expired(session, now_ms)
    if timed_out is not None:
        return timed_out

    session.clock.debit(session.side_to_move, now_ms)
    winner = side.other if session.phase == Phase.ACTIVE else None
    outcome = session.finish(
        winner=winner, reason=EndReason.ABANDONMENT, side_to_move=session.side_to_move
    )
    logger.info("Game %s abandoned by %s", session.id, side)
    return outcome


def flag_if_expired(session: Session, now_ms: int) -> Optional[Outcome]:
    """Eager timeout check for the side to move. Used by the periodic sweep and before every direct transition."""
    if session.phase != Phase.ACTIVE:
        return None

    side = session.side_to_move
    if session.clock.preview(side, now_ms) > 0:
        return None

    session.clock.debit(side, now_ms)
    outcome = session.finish(winner=side.other, reason=EndReason.TIMEOUT, side_to_move=side)
    logger.info("Game %s: %s flagged", session.id, side)
    return outcome


# -- PRIVATE HELPERS ---
def _assert_in_progress(session: Session) -> None:
    if session.is_finished:
        raise GameOverError(f"Game {session.id} is over.")
    if session.phase == Phase.PENDING:
        raise GameNotStartedError(f"Game {session.id} is still waiting for an opponent.")


def _assert_player(session: Session, handle: str) -> Side:
    side = session.side_of(handle)
    if side is None:
        raise NotAPlayerError("Only the players of this game can do that.")
    return side
