"""
Custom exceptions.

Every exception carries a stable `code`. Callers (and the clients on the other end of the socket)
must branch on the code, never on the human readable message.
"""


class GameError(Exception):
    """Top level exception for anything going wrong while handling a game session."""

    code: str = "GameError"


# --- VALIDATION ERRORS ---
class InvalidRequestError(GameError):
    code = "InvalidRequest"


class RoomCodeRequiredError(InvalidRequestError):
    code = "RoomCodeRequired"


# --- STATE CONFLICTS ---
class SessionNotFoundError(GameError):
    code = "GameNotFound"


class SessionFullError(GameError):
    code = "GameIsFull"


class GameOverError(GameError):
    code = "GameOver"


class GameNotStartedError(GameError):
    code = "GameNotStarted"


class NotAPlayerError(GameError):
    code = "NotAPlayer"


class NotYourTurnError(GameError):
    code = "NotYourTurn"


class IllegalMoveError(GameError):
    code = "IllegalMove"


class NoDrawOfferError(GameError):
    code = "NoDrawOffer"


# --- FATAL TO SESSION ---
class TimeRanOutError(GameError):
    """The mover's flag fell. The session is already finished when this gets raised."""

    code = "TimeRanOut"


# --- INFRASTRUCTURE ---
class RepositoryError(GameError):
    code = "RepositoryError"


class RegistryError(GameError):
    code = "RegistryError"


class InternalError(GameError):
    """Anything unexpected. Reported to the client without details, logged in full on the server."""

    code = "InternalError"
