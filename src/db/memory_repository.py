"""Implementation of (Session)Repository keeping everything in a dictionary for the lifetime of the process"""

from copy import deepcopy

from src.core.exceptions import RepositoryError
from src.core.models import SessionModel


class InMemorySessionRepository:
    """Data stored in a dict keyed by session ID. Stores copies so callers never share state with the store."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionModel] = {}

    def get_session(self, session_id: str) -> SessionModel | None:
        """Get session by ID, if record exists."""
        session = self._sessions.get(session_id)
        return deepcopy(session) if session else None

    def create_session(self, session: SessionModel) -> SessionModel:
        """Store a new session under its own (already allocated) ID."""
        if session.session_id in self._sessions:
            raise RepositoryError(f"Session {session.session_id!r} already exists.")
        self._sessions[session.session_id] = deepcopy(session)
        return deepcopy(session)

    def update_session(self, session: SessionModel) -> SessionModel | None:
        """Replace the stored record with this snapshot."""
        if session.session_id not in self._sessions:
            return None
        self._sessions[session.session_id] = deepcopy(session)
        return deepcopy(session)

    def delete_session(self, session_id: str) -> SessionModel | None:
        """Remove a session's record."""
        return self._sessions.pop(session_id, None)

    def list_sessions(self) -> list[SessionModel]:
        """Every stored session (used by the sweep and the reaper)."""
        return [deepcopy(session) for session in self._sessions.values()]
