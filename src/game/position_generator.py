"""
Starting positions.

Standard chess, a custom FEN, or one of the 960 shuffled back ranks. The shuffled back rank is derived from its index
deterministically, so two people sharing an index always end up with the same setup.
"""

import random
from dataclasses import dataclass
from typing import Optional

import chess

from src.core.exceptions import InvalidRequestError
from src.core.shared_types import Variant
from src.game.rules import new_position

NUMBER_OF_CHESS960_POSITIONS = 960

LIGHT_SQUARE_BISHOP_FILES = (1, 3, 5, 7)
DARK_SQUARE_BISHOP_FILES = (0, 2, 4, 6)

# Unordered pairs of the 5 files left for the knights, in lexicographic order.
KNIGHT_PLACEMENTS: tuple[tuple[int, int], ...] = (
    (0, 1),
    (0, 2),
    (0, 3),
    (0, 4),
    (1, 2),
    (1, 3),
    (1, 4),
    (2, 3),
    (2, 4),
    (3, 4),
)


@dataclass(frozen=True)
class StartPosition:
    fen: str
    variant: Variant
    position_number: Optional[int] = None


def standard_position() -> StartPosition:
    return StartPosition(fen=chess.STARTING_FEN, variant=Variant.STANDARD)


def custom_position(fen: str) -> StartPosition:
    """Any playable position supplied by the game creator."""
    board = new_position(fen.strip())
    return StartPosition(fen=board.fen(), variant=Variant.CUSTOM)


def chess960_back_rank(index: int) -> str:
    """
    Map an index in [0, 960) to a back rank (lower case, a-file first).
    ----

    1. index % 4 places the light square bishop, divide by 4
    2. index % 4 places the dark square bishop, divide by 4
    3. index % 6 places the queen on one of the 6 empty files, divide by 6
    4. the quotient picks one of the 10 knight pairs among the 5 empty files
    5. the 3 files left get rook, king, rook (in that order)
    """
    if not 0 <= index < NUMBER_OF_CHESS960_POSITIONS:
        raise InvalidRequestError(
            f"Chess960 position must be in [0, {NUMBER_OF_CHESS960_POSITIONS}), got {index}."
        )

    back_rank: list[Optional[str]] = [None] * 8
    n = index

    n, light = divmod(n, 4)
    back_rank[LIGHT_SQUARE_BISHOP_FILES[light]] = "b"

    n, dark = divmod(n, 4)
    back_rank[DARK_SQUARE_BISHOP_FILES[dark]] = "b"

    empty = _empty_files(back_rank)
    n, queen = divmod(n, len(empty))
    back_rank[empty[queen]] = "q"

    empty = _empty_files(back_rank)
    first_knight, second_knight = KNIGHT_PLACEMENTS[n]
    back_rank[empty[first_knight]] = "n"
    back_rank[empty[second_knight]] = "n"

    for file, piece in zip(_empty_files(back_rank), "rkr"):
        back_rank[file] = piece

    return "".join(piece for piece in back_rank if piece)


def chess960_position(
    index: Optional[int] = None, rng: Optional[random.Random] = None
) -> StartPosition:
    """Shuffled back rank position. Draws the index uniformly when none is given."""
    if index is None:
        index = (rng or random).randrange(NUMBER_OF_CHESS960_POSITIONS)

    back_rank = chess960_back_rank(index)
    fen = f"{back_rank}/pppppppp/8/8/8/8/PPPPPPPP/{back_rank.upper()} w KQkq - 0 1"
    return StartPosition(fen=fen, variant=Variant.CHESS960, position_number=index)


def _empty_files(back_rank: list[Optional[str]]) -> list[int]:
    return [file for file, piece in enumerate(back_rank) if piece is None]
