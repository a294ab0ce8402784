"""Orchestration of communication from the transport layer to the session registry and game logic (and the reverse direction)."""

import logging
import time
from typing import Callable, Optional

from src.api.models import (
    CreateSessionRequest,
    CreateSessionResponse,
    FullState,
    JoinSessionRequest,
    JoinSessionResponse,
    LegalMovesRequest,
    LegalMovesResponse,
    MoveAcceptedResponse,
    SessionRequest,
    SubmitMoveRequest,
)
from src.core.exceptions import InternalError, TimeRanOutError
from src.core.shared_types import Side
from src.game import arbitrator, rules
from src.game.export import export_fen, export_pgn
from src.game.session import Outcome, Participant, Session
from src.services import sync
from src.services.registry import SessionConfig, SessionRegistry

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class SessionService:
    """Orchestration of layers for a relayed chess game."""

    def __init__(
        self,
        registry: SessionRegistry,
        broadcaster: sync.Broadcaster,
        now_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.now_ms = now_ms or wall_clock_ms

    # -- Transport requests ---
    def create_session(
        self, request: CreateSessionRequest, handle: str
    ) -> CreateSessionResponse:
        """First player requested to create a new game. They take the first-mover side and wait."""
        config = SessionConfig(
            variant=request.variant,
            time_control=request.time_control,
            time_limit_seconds=request.time_limit_seconds,
            increment_seconds=request.increment_seconds,
            starting_index=request.starting_index,
            starting_fen=request.starting_fen,
        )
        creator = Participant(handle=handle, name=request.player_name)
        session = self.registry.create(config, creator, self.now_ms())

        return CreateSessionResponse(
            session_id=session.id,
            side=Side.WHITE,
            config=sync.config_info(session),
            start_position=sync.start_position_info(session),
        )

    def join_session(
        self, request: JoinSessionRequest, handle: str
    ) -> JoinSessionResponse:
        """Second player (or an observer) requested to join a game."""
        participant = Participant(handle=handle, name=request.player_name)
        with self.registry.lock(request.session_id):
            joined = self.registry.join(request.session_id, participant, self.now_ms())
            snapshot = sync.build_snapshot(joined.session)

            # the creator has been waiting without a snapshot so far
            if joined.started:
                creator = joined.session.participants[Side.WHITE]
                self.broadcaster.send(creator.handle, sync.game_start(snapshot))

        return JoinSessionResponse(side=str(joined.role), game_state=snapshot)

    def submit_move(
        self, request: SubmitMoveRequest, handle: str
    ) -> MoveAcceptedResponse:
        """Make a move attempt."""
        move = rules.MoveInput(
            from_square=request.move.from_square,
            to_square=request.move.to_square,
            promotion=request.move.promotion,
        )
        with self.registry.lock(request.session_id):
            session = self._fetch_session(request.session_id)
            try:
                accepted = arbitrator.submit_move(session, handle, move, self.now_ms())
            except TimeRanOutError:
                # the flag fell: the session is over even though this move is refused
                self.registry.save(session)
                self._announce_game_over(session)
                raise

            self.registry.save(session)
            logger.debug("Game %s: %s played %s", session.id, accepted.side, accepted.record.move.san)

            # the mover gets its confirmation through the reply, not through the broadcast
            sync.deliver(self.broadcaster, sync.room(session, exclude=handle), sync.move_made(accepted))
            if accepted.outcome is not None:
                self._announce_game_over(session)

        return MoveAcceptedResponse(
            move=sync.move_info(accepted.record),
            fen=accepted.record.fen,
            clocks=accepted.clocks,
            result=sync.outcome_info(accepted.outcome),
        )

    def resign(self, request: SessionRequest, handle: str) -> None:
        with self.registry.lock(request.session_id):
            session = self._fetch_session(request.session_id)
            arbitrator.resign(session, handle, self.now_ms())
            self.registry.save(session)
            self._announce_game_over(session)

    def offer_draw(self, request: SessionRequest, handle: str) -> None:
        """Advisory only: announced to the whole room, the game goes on until the opponent accepts."""
        with self.registry.lock(request.session_id):
            session = self._fetch_session(request.session_id)
            try:
                opponent = arbitrator.offer_draw(session, handle, self.now_ms())
            except TimeRanOutError:
                self.registry.save(session)
                self._announce_game_over(session)
                raise

            self.registry.save(session)
            sync.deliver(self.broadcaster, sync.room(session), sync.draw_offered(by=opponent.other))

    def accept_draw(self, request: SessionRequest, handle: str) -> None:
        with self.registry.lock(request.session_id):
            session = self._fetch_session(request.session_id)
            arbitrator.accept_draw(session, handle, self.now_ms())
            self.registry.save(session)
            self._announce_game_over(session)

    def get_game_state(self, request: SessionRequest) -> FullState:
        """
        Full snapshot of a game.
        ----
        Used by late joiners and by clients that lost track (e.g. after a reconnect) to rebuild their view.
        """
        with self.registry.lock(request.session_id):
            session = self._fetch_session(request.session_id)
            return sync.build_snapshot(session)

    def legal_moves(self, request: LegalMovesRequest) -> LegalMovesResponse:
        """Legal moves in the current position (optionally from one square), for move hints in the client."""
        session = self._fetch_session(request.session_id)
        board = session.board()
        moves = [] if session.is_finished else rules.legal_moves(board, request.square)
        return LegalMovesResponse(session_id=session.id, moves=moves)

    def export_pgn(self, request: SessionRequest) -> str:
        return export_pgn(self._fetch_session(request.session_id))

    def export_fen(self, request: SessionRequest) -> str:
        return export_fen(self._fetch_session(request.session_id))

    # -- Lifecycle events ---
    def disconnect(self, handle: str) -> list[str]:
        """
        A connection went away.
        ----
        Every session it played in and that was still going ends by abandonment. Observers simply leave the room.
        Returns the IDs of the sessions that ended because of it.
        """
        ended: list[str] = []
        for session_id in self.registry.forget_connection(handle):
            with self.registry.lock(session_id):
                session = self.registry.find(session_id)
                if session is None:
                    continue
                outcome = arbitrator.abandon(session, handle, self.now_ms())
                self.registry.save(session)
                if outcome is not None:
                    ended.append(session_id)
                    self._announce_game_over(session, exclude=handle)
        logger.info("Client disconnected: %s", handle)
        return ended

    def sweep_timeouts(self) -> list[str]:
        """Eagerly end every active game whose side to move ran out of time."""
        flagged: list[str] = []
        for session_id in self.registry.active_ids():
            with self.registry.lock(session_id):
                session = self.registry.find(session_id)
                if session is None:
                    continue
                if arbitrator.flag_if_expired(session, self.now_ms()) is None:
                    continue
                self.registry.save(session)
                flagged.append(session_id)
                self._announce_game_over(session)
        return flagged

    def reap(self) -> list[str]:
        return self.registry.reap(self.now_ms())

    # -- Internal helpers --
    def _announce_game_over(self, session: Session, exclude: Optional[str] = None) -> None:
        outcome: Optional[Outcome] = session.outcome
        if outcome is None:
            raise InternalError(f"Game {session.id} has no outcome to announce.")
        sync.deliver(self.broadcaster, sync.room(session, exclude=exclude), sync.game_over(outcome))

    def _fetch_session(self, session_id: str) -> Session:
        """Attempt to find the session in the registry and raise error if it fails."""
        return self.registry.get(session_id)

