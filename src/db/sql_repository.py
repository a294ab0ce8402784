"""Implementation of (Session)Repository using SQLAlchemy"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.exceptions import RepositoryError
from src.core.models import SessionModel
from src.db.schema import DBSession

# columns that map one-to-one onto SessionModel fields (the primary key is named differently)
_FIELDS = (
    "variant",
    "time_control",
    "time_limit_ms",
    "increment_ms",
    "starting_fen",
    "position_number",
    "participants",
    "observers",
    "moves",
    "clocks",
    "last_debit_ms",
    "phase",
    "outcome",
    "draw_offer_by",
    "created_at_ms",
)


class SQLSessionRepository:
    """Data stored using SQL / methods implemented using SQLAlchemy"""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_session(self, session_id: str) -> SessionModel | None:
        """Get session by ID, if record exists."""
        session_db = self._fetch_session(session_id)
        if session_db:
            return self._to_model(session_db)
        return None

    def create_session(self, session: SessionModel) -> SessionModel:
        """Store a new session under its own (already allocated) ID."""
        if self._fetch_session(session.session_id) is not None:
            raise RepositoryError(f"Session {session.session_id!r} already exists.")
        session_db = DBSession(
            id=session.session_id,
            **{name: getattr(session, name) for name in _FIELDS},
        )
        self.db.add(session_db)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise RepositoryError(
                f"Session {session.session_id!r} already exists."
            ) from exc
        self.db.refresh(session_db)
        return self._to_model(session_db)

    def update_session(self, session: SessionModel) -> SessionModel | None:
        """Replace the stored record with this snapshot."""
        session_db = self._fetch_session(session.session_id)
        if not session_db:
            return None
        for name in _FIELDS:
            setattr(session_db, name, getattr(session, name))
        self.db.commit()
        self.db.refresh(session_db)
        return self._to_model(session_db)

    def delete_session(self, session_id: str) -> SessionModel | None:
        """Remove a session's record."""
        session_db = self._fetch_session(session_id)
        if not session_db:
            return None
        session_model = self._to_model(session_db)
        self.db.delete(session_db)
        self.db.commit()
        return session_model

    def list_sessions(self) -> list[SessionModel]:
        """Every stored session (used by the sweep and the reaper)."""
        return [self._to_model(row) for row in self.db.scalars(select(DBSession))]

    def _fetch_session(self, session_id: str) -> DBSession | None:
        query = select(DBSession).where(DBSession.id == session_id)
        return self.db.scalar(query)

    def _to_model(self, session_db: DBSession) -> SessionModel:
        """Convert SQLAlchemy model to data transfer model."""
        return SessionModel(
            session_id=session_db.id,
            **{name: getattr(session_db, name) for name in _FIELDS},
        )
