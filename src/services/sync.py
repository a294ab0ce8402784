"""
Synchronization protocol.

Which event goes to which member of a session's room, and what it carries.

* game-start   full snapshot, to the creator who was waiting (the joiner gets it in its reply)
* move-made    {move, position, clocks, turn}, to everybody except the mover (the mover has its reply)
* draw-offered {by}, to everybody, the offerer included
* game-over    {winner, reason}, to everybody, the actor included

Late joiners never get deltas to catch up: they get a snapshot (`build_snapshot`).
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Iterable, Optional, Protocol

import chess

from src.api.models import (
    ConfigInfo,
    DrawOfferedPayload,
    FullState,
    GameOverPayload,
    MoveHistoryEntry,
    MoveInfo,
    MoveMadePayload,
    OutcomeInfo,
    PlayerInfo,
    StartPositionInfo,
)
from src.core.shared_types import EndReason, Side
from src.game import rules
from src.game.arbitrator import AcceptedMove
from src.game.export import export_pgn
from src.game.session import MoveRecord, Outcome, Session


class EventType(StrEnum):
    GAME_START = "game-start"
    MOVE_MADE = "move-made"
    DRAW_OFFERED = "draw-offered"
    GAME_OVER = "game-over"


@dataclass(frozen=True)
class Event:
    type: EventType
    payload: dict[str, Any]

    def to_message(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload}


class Broadcaster(Protocol):
    """Delivery to a single connection. Must only enqueue: it gets called while a session lock is held."""

    def send(self, handle: str, event: Event) -> None: ...


def deliver(broadcaster: Broadcaster, handles: Iterable[str], event: Event) -> None:
    for handle in handles:
        broadcaster.send(handle, event)


def room(session: Session, exclude: Optional[str] = None) -> list[str]:
    """Every member of the session's room, minus `exclude`."""
    return [handle for handle in session.members() if handle != exclude]


# --- SNAPSHOT ---
def config_info(session: Session) -> ConfigInfo:
    return ConfigInfo(
        variant=session.start.variant,
        time_control=session.time_control,
        time_limit=session.time_limit_ms // 1000,
        increment=session.clock.increment_ms // 1000,
    )


def start_position_info(session: Session) -> StartPositionInfo:
    return StartPositionInfo(
        fen=session.start.fen,
        variant=session.start.variant,
        position_number=session.start.position_number,
    )


def move_info(record: MoveRecord) -> MoveInfo:
    move = record.move
    return MoveInfo(
        uci=move.uci,
        san=move.san,
        from_square=move.from_square,
        to_square=move.to_square,
        promotion=move.promotion,
        piece=move.piece,
        captured=move.captured,
        color=Side(move.color),
    )


def outcome_info(outcome: Optional[Outcome]) -> Optional[OutcomeInfo]:
    if outcome is None:
        return None
    return OutcomeInfo(winner=outcome.winner, reason=outcome.reason)


def build_snapshot(session: Session, board: Optional[chess.Board] = None) -> FullState:
    board = board or session.board()
    outcome = session.outcome
    is_draw = (
        outcome is not None
        and outcome.winner is None
        and outcome.reason != EndReason.ABANDONMENT
    )
    return FullState(
        id=session.id,
        fen=rules.to_fen(board),
        pgn=export_pgn(session, board),
        turn=rules.side_to_move(board),
        move_history=[
            MoveHistoryEntry(move=move_info(record), fen=record.fen, timestamp=record.timestamp_ms)
            for record in session.moves
        ],
        players={side: PlayerInfo(name=p.name) for side, p in session.participants.items()},
        config=config_info(session),
        start_position=start_position_info(session),
        clocks=session.clock.as_dict(),
        phase=session.phase,
        game_over=session.is_finished,
        result=outcome_info(outcome),
        in_check=rules.side_in_check(board),
        is_checkmate=board.is_checkmate(),
        is_draw=is_draw,
        is_stalemate=board.is_stalemate(),
        draw_offer_by=session.draw_offer_by,
        observer_count=len(session.observers),
    )


# --- EVENTS ---
def game_start(snapshot: FullState) -> Event:
    return Event(EventType.GAME_START, snapshot.to_wire())


def move_made(accepted: AcceptedMove) -> Event:
    payload = MoveMadePayload(
        move=move_info(accepted.record),
        position=accepted.record.fen,
        clocks=accepted.clocks,
        turn=accepted.side.other,
    )
    return Event(EventType.MOVE_MADE, payload.to_wire())


def draw_offered(by: Side) -> Event:
    return Event(EventType.DRAW_OFFERED, DrawOfferedPayload(by=by).to_wire())


def game_over(outcome: Outcome) -> Event:
    payload = GameOverPayload(winner=outcome.winner, reason=outcome.reason)
    return Event(EventType.GAME_OVER, payload.to_wire())
