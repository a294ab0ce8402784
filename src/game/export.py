"""Portable notation exports of a session: PGN for the whole game, FEN for the current position."""

from datetime import datetime, timezone
from typing import Optional

import chess

from src.core.shared_types import EndReason, Side, Variant
from src.game import rules
from src.game.session import Session

TERMINATION = {
    EndReason.TIMEOUT: "time forfeit",
    EndReason.ABANDONMENT: "abandoned",
}


def result_tag(session: Session) -> str:
    """PGN result: 1-0, 0-1, 1/2-1/2, or * while unfinished (or abandoned before anybody won)."""
    outcome = session.outcome
    if outcome is None:
        return "*"
    if outcome.winner == Side.WHITE:
        return "1-0"
    if outcome.winner == Side.BLACK:
        return "0-1"
    if outcome.reason == EndReason.ABANDONMENT:
        return "*"
    return "1/2-1/2"


def pgn_headers(session: Session) -> dict[str, str]:
    created = datetime.fromtimestamp(session.created_at_ms / 1000, tz=timezone.utc)
    players = session.participants
    headers = {
        "Event": f"Casual {session.start.variant.value} game",
        "Site": f"Room {session.id}",
        "Date": created.strftime("%Y.%m.%d"),
        "White": players[Side.WHITE].name if Side.WHITE in players else "?",
        "Black": players[Side.BLACK].name if Side.BLACK in players else "?",
        "Result": result_tag(session),
        "TimeControl": f"{session.time_limit_ms // 1000}+{session.clock.increment_ms // 1000}",
    }
    if session.outcome is not None:
        headers["Termination"] = TERMINATION.get(session.outcome.reason, "normal")
    if session.start.variant == Variant.CHESS960:
        headers["Variant"] = "Chess960"
    return headers


def export_pgn(session: Session, board: Optional[chess.Board] = None) -> str:
    return rules.to_pgn(board or session.board(), pgn_headers(session))


def export_fen(session: Session) -> str:
    return session.current_fen
