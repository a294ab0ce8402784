"""
Type definitions used across layers
"""

from enum import StrEnum
from typing import Optional


class Side(StrEnum):
    WHITE = "white"
    BLACK = "black"

    @property
    def other(self) -> "Side":
        return Side.BLACK if self == Side.WHITE else Side.WHITE


class Phase(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    FINISHED = "finished"


class Variant(StrEnum):
    STANDARD = "standard"
    CHESS960 = "chess960"
    CUSTOM = "custom"


class EndReason(StrEnum):
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    REPETITION = "repetition"
    INSUFFICIENT_MATERIAL = "insufficient_material"
    DRAW = "draw"
    TIMEOUT = "timeout"
    RESIGNATION = "resignation"
    AGREEMENT = "agreement"
    ABANDONMENT = "abandonment"


class TimeControl(StrEnum):
    BULLET = "bullet"
    BLITZ = "blitz"
    RAPID = "rapid"
    CLASSICAL = "classical"
    CUSTOM = "custom"


class PieceType(StrEnum):
    PAWN = "pawn"
    KNIGHT = "knight"
    BISHOP = "bishop"
    ROOK = "rook"
    QUEEN = "queen"
    KING = "king"


# (seconds, increment seconds). CUSTOM has no preset: the request must carry its own values.
TIME_CONTROL_PRESETS: dict[TimeControl, Optional[tuple[int, int]]] = {
    TimeControl.BULLET: (60, 0),
    TimeControl.BLITZ: (300, 0),
    TimeControl.RAPID: (600, 0),
    TimeControl.CLASSICAL: (1800, 0),
    TimeControl.CUSTOM: None,
}

DEFAULT_TIME_LIMIT_SECONDS = 300

# Role reported to a joining connection that did not get a side.
OBSERVER = "observer"
