"""
Server side authoritative chess clock.

Time is kept in integer milliseconds. Nothing ticks: elapsed wall time gets charged to the side to move whenever a move
attempt (or the timeout sweep) looks at the clock.
"""

from dataclasses import dataclass
from typing import Optional, Self

from src.core.shared_types import (
    DEFAULT_TIME_LIMIT_SECONDS,
    TIME_CONTROL_PRESETS,
    Side,
    TimeControl,
)
from src.core.exceptions import InvalidRequestError


def resolve_time_control(
    time_control: Optional[TimeControl],
    time_limit_seconds: Optional[int],
    increment_seconds: Optional[int],
) -> tuple[int, int]:
    """Explicit values win over the preset, the preset wins over the defaults. Returns (time limit, increment) in ms."""
    preset = TIME_CONTROL_PRESETS.get(time_control) if time_control else None
    preset_limit, preset_increment = preset or (DEFAULT_TIME_LIMIT_SECONDS, 0)

    limit = time_limit_seconds if time_limit_seconds is not None else preset_limit
    increment = increment_seconds if increment_seconds is not None else preset_increment
    if limit <= 0:
        raise InvalidRequestError(f"Time limit must be positive, got {limit} seconds.")
    if increment < 0:
        raise InvalidRequestError(f"Increment can not be negative, got {increment}.")
    return limit * 1000, increment * 1000


@dataclass
class Clock:
    white_ms: int
    black_ms: int
    increment_ms: int = 0
    last_debit_ms: Optional[int] = None

    @classmethod
    def new(cls, time_limit_ms: int, increment_ms: int = 0) -> Self:
        return cls(white_ms=time_limit_ms, black_ms=time_limit_ms, increment_ms=increment_ms)

    @property
    def is_running(self) -> bool:
        return self.last_debit_ms is not None

    def start(self, now_ms: int) -> None:
        self.last_debit_ms = now_ms

    def remaining(self, side: Side) -> int:
        return self.white_ms if side == Side.WHITE else self.black_ms

    def elapsed(self, now_ms: int) -> int:
        """Time since the last debit. Zero while the clock has not started."""
        if self.last_debit_ms is None:
            return 0
        return now_ms - self.last_debit_ms

    def preview(self, side: Side, now_ms: int) -> int:
        """What `side` would have left if it got charged right now."""
        return self.remaining(side) - self.elapsed(now_ms)

    def debit(self, side: Side, now_ms: int) -> int:
        """Charge the elapsed time to `side` and restart the measurement from `now_ms`."""
        if self.last_debit_ms is None:
            return self.remaining(side)
        self._set(side, self.preview(side, now_ms))
        self.last_debit_ms = now_ms
        return self.remaining(side)

    def credit(self, side: Side) -> None:
        self._set(side, self.remaining(side) + self.increment_ms)

    def is_flagged(self, side: Side) -> bool:
        return self.remaining(side) <= 0

    def stop(self, side: Side) -> None:
        """Freeze the clock, e.g. once the game is over. A flagged side is shown with 0 left."""
        self._set(side, max(self.remaining(side), 0))
        self.last_debit_ms = None

    def as_dict(self) -> dict[str, int]:
        return {Side.WHITE.value: self.white_ms, Side.BLACK.value: self.black_ms}

    def _set(self, side: Side, value: int) -> None:
        if side == Side.WHITE:
            self.white_ms = value
        else:
            self.black_ms = value
