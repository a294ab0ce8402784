"""
The Session class is the domain layer's representation of a single game between two connections (plus observers).
It owns the authoritative state: who plays which side, the starting position, the append-only move log, the clock and the
phase/outcome. It does NOT decide whether a move is acceptable, that is the job of the arbitrator.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Self

import chess

from src.core.exceptions import GameOverError, SessionFullError
from src.core.models import SessionModel
from src.core.shared_types import (
    OBSERVER,
    EndReason,
    Phase,
    Side,
    TimeControl,
    Variant,
)
from src.game import rules
from src.game.clock import Clock
from src.game.position_generator import StartPosition


@dataclass(frozen=True)
class Participant:
    handle: str
    name: str


@dataclass(frozen=True)
class Outcome:
    winner: Optional[Side]
    reason: EndReason

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "winner": self.winner.value if self.winner else None,
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class MoveRecord:
    """An accepted move, the position it produced and when the server accepted it."""

    move: rules.AppliedMove
    timestamp_ms: int

    @property
    def fen(self) -> str:
        return self.move.fen

    def to_dict(self) -> dict[str, Any]:
        return {**self.move.to_dict(), "timestamp_ms": self.timestamp_ms}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        move_data = {k: v for k, v in data.items() if k != "timestamp_ms"}
        return cls(move=rules.AppliedMove(**move_data), timestamp_ms=data["timestamp_ms"])


@dataclass
class Session:
    id: str
    start: StartPosition
    time_control: TimeControl
    time_limit_ms: int
    clock: Clock
    created_at_ms: int
    participants: dict[Side, Participant] = field(default_factory=dict)
    observers: set[str] = field(default_factory=set)
    moves: list[MoveRecord] = field(default_factory=list)
    phase: Phase = Phase.PENDING
    outcome: Optional[Outcome] = None
    draw_offer_by: Optional[Side] = None

    @classmethod
    def new(
        cls,
        session_id: str,
        start: StartPosition,
        time_control: TimeControl,
        time_limit_ms: int,
        increment_ms: int,
        creator: Participant,
        now_ms: int,
    ) -> Self:
        """The creator always takes the first-mover side. The second side stays open until somebody joins."""
        return cls(
            id=session_id,
            start=start,
            time_control=time_control,
            time_limit_ms=time_limit_ms,
            clock=Clock.new(time_limit_ms, increment_ms),
            created_at_ms=now_ms,
            participants={Side.WHITE: creator},
        )

    @classmethod
    def from_model(cls, model: SessionModel) -> Self:
        """Rebuild the Session from what the store holds"""
        outcome = (
            Outcome(
                winner=Side(model.outcome["winner"]) if model.outcome["winner"] else None,
                reason=EndReason(model.outcome["reason"]),
            )
            if model.outcome
            else None
        )
        return cls(
            id=model.session_id,
            start=StartPosition(
                fen=model.starting_fen,
                variant=Variant(model.variant),
                position_number=model.position_number,
            ),
            time_control=TimeControl(model.time_control),
            time_limit_ms=model.time_limit_ms,
            clock=Clock(
                white_ms=model.clocks[Side.WHITE.value],
                black_ms=model.clocks[Side.BLACK.value],
                increment_ms=model.increment_ms,
                last_debit_ms=model.last_debit_ms,
            ),
            created_at_ms=model.created_at_ms,
            participants={
                Side(side): Participant(handle=data["handle"], name=data["name"])
                for side, data in model.participants.items()
            },
            observers=set(model.observers),
            moves=[MoveRecord.from_dict(move) for move in model.moves],
            phase=Phase(model.phase),
            outcome=outcome,
            draw_offer_by=Side(model.draw_offer_by) if model.draw_offer_by else None,
        )

    def to_model(self) -> SessionModel:
        """Encode back into the format the Registry stores"""
        return SessionModel(
            session_id=self.id,
            variant=self.start.variant.value,
            time_control=self.time_control.value,
            time_limit_ms=self.time_limit_ms,
            increment_ms=self.clock.increment_ms,
            starting_fen=self.start.fen,
            position_number=self.start.position_number,
            participants={
                side.value: {"handle": p.handle, "name": p.name}
                for side, p in self.participants.items()
            },
            observers=sorted(self.observers),
            moves=[move.to_dict() for move in self.moves],
            clocks=self.clock.as_dict(),
            last_debit_ms=self.clock.last_debit_ms,
            phase=self.phase.value,
            outcome=self.outcome.to_dict() if self.outcome else None,
            created_at_ms=self.created_at_ms,
            draw_offer_by=self.draw_offer_by.value if self.draw_offer_by else None,
        )

    # --- POSITION ---
    @property
    def is_chess960(self) -> bool:
        return self.start.variant == Variant.CHESS960

    def board(self) -> chess.Board:
        """Current position, replayed from the starting position and the move log."""
        return rules.replay(
            self.start.fen, [move.move.uci for move in self.moves], chess960=self.is_chess960
        )

    @property
    def current_fen(self) -> str:
        return self.moves[-1].fen if self.moves else self.start.fen

    @property
    def side_to_move(self) -> Side:
        # the active color is the second FEN field
        return Side.WHITE if self.current_fen.split(" ")[1] == "w" else Side.BLACK

    # --- MEMBERSHIP ---
    def side_of(self, handle: str) -> Optional[Side]:
        return next(
            (side for side, p in self.participants.items() if p.handle == handle), None
        )

    def open_side(self) -> Optional[Side]:
        return next((side for side in Side if side not in self.participants), None)

    def members(self) -> list[str]:
        """Every connection in this session's room: both players and the observers."""
        return [p.handle for p in self.participants.values()] + sorted(self.observers)

    def add_player(self, participant: Participant, now_ms: int) -> Side:
        """
        Seat the second player. Flips pending -> active and starts the clock.
        """
        side = self.open_side()
        if side is None or self.phase != Phase.PENDING:
            raise SessionFullError(f"Game {self.id} is full.")

        self.participants[side] = participant
        self.phase = Phase.ACTIVE
        self.clock.start(now_ms)
        return side

    def add_observer(self, handle: str) -> str:
        self.observers.add(handle)
        return OBSERVER

    def remove_observer(self, handle: str) -> None:
        self.observers.discard(handle)

    # --- LIFECYCLE ---
    @property
    def is_finished(self) -> bool:
        return self.phase == Phase.FINISHED

    def finish(self, winner: Optional[Side], reason: EndReason, side_to_move: Side) -> Outcome:
        """Terminal transition. There is no way out of FINISHED."""
        if self.is_finished:
            raise GameOverError(f"Game {self.id} is already over.")
        self.clock.stop(side_to_move)
        self.phase = Phase.FINISHED
        self.outcome = Outcome(winner=winner, reason=reason)
        self.draw_offer_by = None
        return self.outcome

    def record_move(self, move: rules.AppliedMove, now_ms: int) -> MoveRecord:
        record = MoveRecord(move=move, timestamp_ms=now_ms)
        self.moves.append(record)
        self.draw_offer_by = None
        return record
