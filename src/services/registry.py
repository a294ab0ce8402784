"""
Session registry.

Hands out short room codes, keeps track of which sessions exist, which connection sits in which session, and throws
finished sessions away once they are old enough. The backing store is any SessionRepository.
"""

import logging
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from src.core.exceptions import (
    InvalidRequestError,
    RegistryError,
    SessionFullError,
    SessionNotFoundError,
)
from src.core.shared_types import Phase, Side, TimeControl, Variant
from src.db.repository import SessionRepository
from src.game import position_generator
from src.game.clock import resolve_time_control
from src.game.position_generator import StartPosition
from src.game.session import Participant, Session

logger = logging.getLogger(__name__)

RETENTION_MS = 24 * 60 * 60 * 1000
MAX_CODE_ATTEMPTS = 100


@dataclass(frozen=True)
class SessionConfig:
    variant: Variant = Variant.STANDARD
    time_control: TimeControl = TimeControl.BLITZ
    time_limit_seconds: Optional[int] = None
    increment_seconds: Optional[int] = None
    starting_index: Optional[int] = None
    starting_fen: Optional[str] = None


@dataclass(frozen=True)
class JoinResult:
    session: Session
    role: Side | str
    started: bool


def build_start_position(
    config: SessionConfig, rng: Optional[random.Random] = None
) -> StartPosition:
    if config.variant == Variant.CHESS960:
        return position_generator.chess960_position(config.starting_index, rng=rng)
    if config.variant == Variant.CUSTOM:
        if not config.starting_fen:
            raise InvalidRequestError("A custom game needs a starting FEN.")
        return position_generator.custom_position(config.starting_fen)
    return position_generator.standard_position()


class SessionRegistry:
    """Creates, finds, locks and reaps sessions."""

    def __init__(
        self,
        repository: SessionRepository,
        retention_ms: int = RETENTION_MS,
        code_factory: Optional[Callable[[], str]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.repo = repository
        self.retention_ms = retention_ms
        self._rng = rng or random.Random()
        self._new_code = code_factory or self._random_code
        # guards the id space, the lock table and the reverse index
        self._registry_lock = threading.Lock()
        self._session_locks: dict[str, threading.RLock] = {}
        self._sessions_by_handle: dict[str, set[str]] = {}

    # --- LOOKUP ---
    def find(self, session_id: str) -> Session | None:
        model = self.repo.get_session(session_id)
        return Session.from_model(model) if model else None

    def get(self, session_id: str) -> Session:
        session = self.find(session_id)
        if session is None:
            # lock() may have registered a lock for a code that was never handed out
            with self._registry_lock:
                self._session_locks.pop(session_id, None)
            raise SessionNotFoundError(f"Game {session_id!r} not found.")
        return session

    def sessions_of(self, handle: str) -> set[str]:
        with self._registry_lock:
            return set(self._sessions_by_handle.get(handle, set()))

    def active_ids(self) -> list[str]:
        return [
            model.session_id
            for model in self.repo.list_sessions()
            if model.phase == Phase.ACTIVE
        ]

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """Serialize every mutation of one session. Never hold this while doing network I/O."""
        with self._registry_lock:
            session_lock = self._session_locks.setdefault(session_id, threading.RLock())
        with session_lock:
            yield

    # --- MUTATIONS ---
    def create(
        self, config: SessionConfig, creator: Participant, now_ms: int
    ) -> Session:
        """Allocate a free room code and store a new pending session with the creator on the first-mover side."""
        start = build_start_position(config, rng=self._rng)
        time_limit_ms, increment_ms = resolve_time_control(
            config.time_control, config.time_limit_seconds, config.increment_seconds
        )

        with self._registry_lock:
            session_id = self._allocate_code()
            session = Session.new(
                session_id=session_id,
                start=start,
                time_control=config.time_control,
                time_limit_ms=time_limit_ms,
                increment_ms=increment_ms,
                creator=creator,
                now_ms=now_ms,
            )
            self.repo.create_session(session.to_model())
            self._index(creator.handle, session_id)

        logger.info("Game created: %s (%s)", session_id, start.variant)
        return session

    def join(self, session_id: str, participant: Participant, now_ms: int) -> JoinResult:
        """
        Seat a connection in a session.
        ----

        * already a player in it -> keep the side (no transition)
        * pending with an open side -> take the side, pending -> active, clock starts
        * not pending -> observer
        * otherwise -> SessionFullError
        """
        with self.lock(session_id):
            session = self.get(session_id)
            existing = session.side_of(participant.handle)
            started = False

            if existing is not None:
                role: Side | str = existing
            elif session.phase == Phase.PENDING and session.open_side() is not None:
                role = session.add_player(participant, now_ms)
                started = True
            elif session.phase != Phase.PENDING:
                role = session.add_observer(participant.handle)
            else:
                raise SessionFullError(f"Game {session_id} is full.")

            self.save(session)
            with self._registry_lock:
                self._index(participant.handle, session_id)

        if started:
            logger.info("Game started: %s", session_id)
        return JoinResult(session=session, role=role, started=started)

    def save(self, session: Session) -> None:
        if self.repo.update_session(session.to_model()) is None:
            raise SessionNotFoundError(f"Game {session.id!r} not found.")

    def forget_connection(self, handle: str) -> set[str]:
        """Drop a connection from the reverse index. Returns the sessions it was part of."""
        with self._registry_lock:
            return self._sessions_by_handle.pop(handle, set())

    def remove(self, session_id: str) -> None:
        self.repo.delete_session(session_id)
        with self._registry_lock:
            self._session_locks.pop(session_id, None)
            for handle in list(self._sessions_by_handle):
                self._sessions_by_handle[handle].discard(session_id)
                if not self._sessions_by_handle[handle]:
                    del self._sessions_by_handle[handle]

    def reap(self, now_ms: int) -> list[str]:
        """Remove every finished session older than the retention window. Pending/active sessions are never touched."""
        reaped = [
            model.session_id
            for model in self.repo.list_sessions()
            if model.phase == Phase.FINISHED
            and now_ms - model.created_at_ms > self.retention_ms
        ]
        for session_id in reaped:
            self.remove(session_id)
            logger.info("Cleaned up old game: %s", session_id)
        return reaped

    # -- PRIVATE HELPERS ---
    def _random_code(self) -> str:
        return str(self._rng.randint(1000, 9999))

    def _allocate_code(self) -> str:
        """Caller holds the registry lock, so nobody else can grab the same code in between."""
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self._new_code()
            if self.repo.get_session(code) is None:
                return code
        raise RegistryError("Could not find a free room code. Try again later.")

    def _index(self, handle: str, session_id: str) -> None:
        self._sessions_by_handle.setdefault(handle, set()).add(session_id)

