"""
Boundary layer data model(s).

These objects are used to communicate between the Registry and whatever store backs it.
Hence, the domain layer (Session) and the db layer (in memory dict / SQL table) both convert to/from the model defined here
(Decouples the data model specific to the store from the information the domain needs to rebuild a Session)
"""

from dataclasses import dataclass
from typing import Any, Optional

# Type aliases to make SessionModel easier to read
SideName = str
ConnectionHandle = str


@dataclass
class SessionModel:
    """Transport-safe (JSON-able) representation of a session used between Registry, repositories and the Session."""

    session_id: str
    variant: str
    time_control: str
    time_limit_ms: int
    increment_ms: int
    starting_fen: str
    position_number: Optional[int]
    participants: dict[SideName, dict[str, str]]
    observers: list[ConnectionHandle]
    moves: list[dict[str, Any]]
    clocks: dict[SideName, int]
    last_debit_ms: Optional[int]
    phase: str
    outcome: Optional[dict[str, Optional[str]]]
    created_at_ms: int
    draw_offer_by: Optional[SideName] = None
