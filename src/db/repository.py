"""Protocol repository (in memory dict by default, SQL Alchemy when configured)"""

from typing import Protocol

from src.core.models import SessionModel


class SessionRepository(Protocol):
    """Storage behind the session registry"""

    def get_session(self, session_id: str) -> SessionModel | None:
        """Get session by ID, if record exists."""
        ...

    def create_session(self, session: SessionModel) -> SessionModel:
        """Store a new session under its own (already allocated) ID."""
        ...

    def update_session(self, session: SessionModel) -> SessionModel | None:
        """Replace the stored record with this snapshot."""
        ...

    def delete_session(self, session_id: str) -> SessionModel | None:
        """Remove a session's record."""
        ...

    def list_sessions(self) -> list[SessionModel]:
        """Every stored session (used by the sweep and the reaper)."""
        ...
