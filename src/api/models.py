"""Requests, responses and push event models. camelCase on the wire, snake_case in Python."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.core.exceptions import InvalidRequestError, RoomCodeRequiredError
from src.core.shared_types import EndReason, Phase, PieceType, Side, TimeControl, Variant
from src.game.position_generator import NUMBER_OF_CHESS960_POSITIONS

PROMOTION_LETTERS = {
    "n": PieceType.KNIGHT,
    "b": PieceType.BISHOP,
    "r": PieceType.ROOK,
    "q": PieceType.QUEEN,
}


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _is_algebraic_notation(value: str) -> bool:
    if len(value) != 2:
        return False
    file, rank = value[0], value[1]
    return file in "abcdefgh" and rank in "12345678"


# --- REQUEST MODELS ---
class CreateSessionRequest(WireModel):
    variant: Variant = Variant.STANDARD
    time_control: TimeControl = TimeControl.BLITZ
    time_limit_seconds: Optional[int] = None
    increment_seconds: Optional[int] = None
    starting_index: Optional[int] = None
    starting_fen: Optional[str] = None
    player_name: str = "Player 1"

    @field_validator("starting_fen")
    @classmethod
    def validate_starting_fen(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value

        parts = value.strip().split(" ")
        if len(parts) != 6:
            raise InvalidRequestError(
                "FEN string must contain 6 space-separated parts."
            )
        return value.strip()

    @field_validator("starting_index")
    @classmethod
    def validate_starting_index(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not 0 <= value < NUMBER_OF_CHESS960_POSITIONS:
            raise InvalidRequestError(
                f"startingIndex must be in [0, {NUMBER_OF_CHESS960_POSITIONS})."
            )
        return value

    @model_validator(mode="after")
    def custom_variant_needs_fen(self) -> "CreateSessionRequest":
        if self.variant == Variant.CUSTOM and not self.starting_fen:
            raise InvalidRequestError("A custom game needs a startingFen.")
        return self


class SessionRequest(WireModel):
    """Every request that targets an existing game carries its room code."""

    session_id: str = Field(default="", validate_default=True)

    @field_validator("session_id", mode="before")
    @classmethod
    def validate_session_id(cls, value: Any) -> str:
        code = "" if value is None else str(value).strip()
        if not code:
            raise RoomCodeRequiredError("Please enter a room code.")
        return code


class JoinSessionRequest(SessionRequest):
    player_name: str = "Player 2"


class MovePayload(WireModel):
    from_square: str = Field(alias="from")
    to_square: str = Field(alias="to")
    promotion: Optional[PieceType] = None

    @field_validator("from_square", "to_square")
    @classmethod
    def validate_square(cls, value: str) -> str:
        if not _is_algebraic_notation(value):
            raise InvalidRequestError(
                f"Cannot interpret {value!r} as a valid square name."
            )
        return value

    @field_validator("promotion", mode="before")
    @classmethod
    def validate_promotion(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in PROMOTION_LETTERS:
            return PROMOTION_LETTERS[value.lower()]
        if value in (PieceType.PAWN, PieceType.KING, "pawn", "king"):
            raise InvalidRequestError(f"Cannot promote to {value}.")
        return value


class SubmitMoveRequest(SessionRequest):
    move: MovePayload


class LegalMovesRequest(SessionRequest):
    square: Optional[str] = None


# --- RESPONSE MODELS ---
class StartPositionInfo(WireModel):
    fen: str
    variant: Variant
    position_number: Optional[int] = None


class ConfigInfo(WireModel):
    variant: Variant
    time_control: TimeControl
    time_limit: int
    increment: int


class MoveInfo(WireModel):
    uci: str
    san: str
    from_square: str = Field(alias="from")
    to_square: str = Field(alias="to")
    promotion: Optional[str] = None
    piece: str
    captured: Optional[str] = None
    color: Side


class MoveHistoryEntry(WireModel):
    move: MoveInfo
    fen: str
    timestamp: int


class PlayerInfo(WireModel):
    name: str


class OutcomeInfo(WireModel):
    winner: Optional[Side]
    reason: EndReason


class FullState(WireModel):
    """Everything a client needs to draw the game without having seen any earlier event."""

    id: str
    fen: str
    pgn: str
    turn: Side
    move_history: list[MoveHistoryEntry]
    players: dict[Side, PlayerInfo]
    config: ConfigInfo
    start_position: StartPositionInfo
    clocks: dict[Side, int]
    phase: Phase
    game_over: bool
    result: Optional[OutcomeInfo] = None
    in_check: bool
    is_checkmate: bool
    is_draw: bool
    is_stalemate: bool
    draw_offer_by: Optional[Side] = None
    observer_count: int = 0


class CreateSessionResponse(WireModel):
    session_id: str
    side: Side
    config: ConfigInfo
    start_position: StartPositionInfo


class JoinSessionResponse(WireModel):
    side: str
    game_state: FullState


class MoveAcceptedResponse(WireModel):
    move: MoveInfo
    fen: str
    clocks: dict[Side, int]
    result: Optional[OutcomeInfo] = None


class LegalMovesResponse(WireModel):
    session_id: str
    moves: list[str]


class ErrorInfo(WireModel):
    code: str
    message: str


# --- PUSH EVENT PAYLOADS ---
class MoveMadePayload(WireModel):
    move: MoveInfo
    position: str
    clocks: dict[Side, int]
    turn: Side


class DrawOfferedPayload(WireModel):
    by: Side


class GameOverPayload(WireModel):
    winner: Optional[Side]
    reason: EndReason
