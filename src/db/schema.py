"""Database tables / schema"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DBSession(Base):
    __tablename__ = "sessions"
    id: Mapped[str] = mapped_column(primary_key=True)
    variant: Mapped[str]
    time_control: Mapped[str]
    time_limit_ms: Mapped[int]
    increment_ms: Mapped[int]
    starting_fen: Mapped[str]
    position_number: Mapped[Optional[int]]
    participants: Mapped[dict[str, dict[str, str]]] = mapped_column(JSON)
    observers: Mapped[list[str]] = mapped_column(JSON, default=list)
    moves: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    clocks: Mapped[dict[str, int]] = mapped_column(JSON)
    last_debit_ms: Mapped[Optional[int]]
    phase: Mapped[str]
    outcome: Mapped[Optional[dict[str, Optional[str]]]] = mapped_column(JSON)
    draw_offer_by: Mapped[Optional[str]]
    created_at_ms: Mapped[int]
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)
