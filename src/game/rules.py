"""
Rules engine adapter.

Everything that needs to know the rules of chess goes through this module. The rest of the application treats a
position (a `chess.Board`) as an opaque object: it can be created, replayed, asked for legal moves, asked whether the game
is over and serialized to FEN / PGN, nothing else.
"""

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any, Iterable, Optional

import chess
import chess.pgn

from src.core.exceptions import IllegalMoveError, InternalError, InvalidRequestError
from src.core.shared_types import PieceType, Side


PROMOTION_PIECES: dict[PieceType, chess.PieceType] = {
    PieceType.KNIGHT: chess.KNIGHT,
    PieceType.BISHOP: chess.BISHOP,
    PieceType.ROOK: chess.ROOK,
    PieceType.QUEEN: chess.QUEEN,
}

PIECE_NAMES: dict[chess.PieceType, PieceType] = {
    chess.PAWN: PieceType.PAWN,
    chess.KNIGHT: PieceType.KNIGHT,
    chess.BISHOP: PieceType.BISHOP,
    chess.ROOK: PieceType.ROOK,
    chess.QUEEN: PieceType.QUEEN,
    chess.KING: PieceType.KING,
}


class TerminalState(StrEnum):
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    THREEFOLD_REPETITION = "threefold-repetition"
    INSUFFICIENT_MATERIAL = "insufficient-material"
    OTHER_DRAW = "other-draw"


@dataclass(frozen=True)
class MoveInput:
    """A move as requested by a player. Promotion is never inferred."""

    from_square: str
    to_square: str
    promotion: Optional[PieceType] = None


@dataclass(frozen=True)
class AppliedMove:
    """Descriptor of a move the engine accepted, including the position it resulted in."""

    uci: str
    san: str
    from_square: str
    to_square: str
    promotion: Optional[str]
    piece: str
    captured: Optional[str]
    color: str
    fen: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def side_to_move(board: chess.Board) -> Side:
    return Side.WHITE if board.turn == chess.WHITE else Side.BLACK


def new_position(fen: str = chess.STARTING_FEN, chess960: bool = False) -> chess.Board:
    """Create a position from a FEN string. Raise InvalidRequestError if the FEN can not be used to play from."""
    try:
        board = chess.Board(fen, chess960=chess960)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid FEN {fen!r}: {exc}") from exc

    if not board.is_valid():
        raise InvalidRequestError(f"FEN {fen!r} does not describe a playable position.")
    return board


def replay(fen: str, ucis: Iterable[str], chess960: bool = False) -> chess.Board:
    """Rebuild a position from its starting FEN and the ordered list of applied moves."""
    board = new_position(fen, chess960=chess960)
    for uci in ucis:
        board.push_uci(uci)
    return board


def legal_moves(board: chess.Board, from_square: Optional[str] = None) -> list[str]:
    """All legal moves (UCI) in the position, optionally restricted to the ones starting on `from_square`."""
    if from_square is None:
        return [board.uci(move) for move in board.legal_moves]

    try:
        square = chess.parse_square(from_square)
    except ValueError as exc:
        raise InvalidRequestError(f"Unknown square: {from_square!r}") from exc
    return [
        board.uci(move)
        for move in board.generate_legal_moves(from_mask=chess.BB_SQUARES[square])
    ]


def apply_move(board: chess.Board, move: MoveInput) -> AppliedMove:
    """
    Attempt to apply the move to the board (in place).
    ----

    Any failure of the engine to understand or accept the move ends up as IllegalMoveError. The board is untouched in that case.
    """
    try:
        candidate = chess.Move(
            chess.parse_square(move.from_square),
            chess.parse_square(move.to_square),
            promotion=PROMOTION_PIECES[move.promotion] if move.promotion else None,
        )
        # parse_uci also maps standard castling notation (e1g1) onto the engine's king-takes-rook encoding
        candidate = board.parse_uci(candidate.uci())
    except (ValueError, KeyError) as exc:
        raise IllegalMoveError(
            f"Move not allowed: {move.from_square}{move.to_square}"
        ) from exc

    moving_piece = board.piece_at(candidate.from_square)
    if moving_piece is None:
        raise InternalError(f"Engine accepted a move from the empty square {move.from_square}.")

    captured = _captured_piece(board, candidate)
    san = board.san(candidate)
    uci = board.uci(candidate)
    color = side_to_move(board)
    board.push(candidate)

    return AppliedMove(
        uci=uci,
        san=san,
        from_square=move.from_square,
        to_square=move.to_square,
        promotion=move.promotion.value if move.promotion else None,
        piece=PIECE_NAMES[moving_piece.piece_type].value,
        captured=captured,
        color=color.value,
        fen=board.fen(),
    )


def terminal_state(board: chess.Board) -> Optional[TerminalState]:
    """Which (if any) game ending condition the position is in."""
    if board.is_checkmate():
        return TerminalState.CHECKMATE
    if board.is_stalemate():
        return TerminalState.STALEMATE
    if board.is_insufficient_material():
        return TerminalState.INSUFFICIENT_MATERIAL
    if board.is_repetition(3):
        return TerminalState.THREEFOLD_REPETITION
    if board.is_fifty_moves() or board.is_seventyfive_moves():
        return TerminalState.OTHER_DRAW
    return None


def side_in_check(board: chess.Board) -> bool:
    return board.is_check()


def to_fen(board: chess.Board) -> str:
    return board.fen()


def to_pgn(board: chess.Board, headers: Optional[dict[str, str]] = None) -> str:
    """Export the full game (replayed from its root) in PGN."""
    game = chess.pgn.Game.from_board(board)
    for name, value in (headers or {}).items():
        game.headers[name] = value
    return str(game)


def _captured_piece(board: chess.Board, move: chess.Move) -> Optional[str]:
    if board.is_castling(move) or not board.is_capture(move):
        return None
    if board.is_en_passant(move):
        return PieceType.PAWN.value
    captured = board.piece_at(move.to_square)
    return PIECE_NAMES[captured.piece_type].value if captured else None
