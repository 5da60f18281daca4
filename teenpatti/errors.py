"""Error taxonomy for game operations.

Every error carries a human-readable message and an upper-snake ``code`` that
the protocol layer forwards to clients so they can render the right text.
"""
from typing import Any, Optional


class GameError(Exception):
    """Base class for all game errors."""

    code: str = "GAME_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        """Convert to dictionary for error responses."""
        return {"message": self.message, "code": self.code}


# Kinds

class ValidationError(GameError):
    """Malformed input: bad action name, out-of-range amount."""
    code = "VALIDATION_ERROR"


class StateError(GameError):
    """Illegal transition for the game's current status or turn."""
    code = "STATE_ERROR"


class FundsError(GameError):
    """Insufficient balance for a required payment."""
    code = "INSUFFICIENT_FUNDS"


class NotFoundError(GameError):
    """Unknown game or player."""
    code = "NOT_FOUND"


class PersistenceError(GameError):
    """External load/save failure.

    When raised after a validated mutation, ``intended_effect`` describes what
    the mutation would have done so the caller can replay it.
    """
    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, intended_effect: Optional[Any] = None):
        super().__init__(message)
        self.intended_effect = intended_effect


class InvariantViolation(GameError):
    """Internal consistency failure that should be unreachable."""
    code = "INVARIANT_VIOLATION"


# Validation

class InvalidAction(ValidationError):
    code = "INVALID_ACTION"


class InvalidRange(ValidationError):
    code = "INVALID_RANGE"


# State

class GameFull(StateError):
    code = "GAME_FULL"


class AlreadyJoined(StateError):
    code = "ALREADY_JOINED"


class GameInProgress(StateError):
    code = "GAME_IN_PROGRESS"


class GameNotActive(StateError):
    code = "GAME_NOT_ACTIVE"


class NotEnoughPlayers(StateError):
    code = "NOT_ENOUGH_PLAYERS"


class NotYourTurn(StateError):
    code = "NOT_YOUR_TURN"


class MustCallOrRaise(StateError):
    code = "MUST_CALL_OR_RAISE"


class AlreadySeen(StateError):
    code = "ALREADY_SEEN"


class AlreadyCompleted(StateError):
    code = "ALREADY_COMPLETED"


class GameNotCompleted(StateError):
    code = "GAME_NOT_COMPLETED"


class AlreadyInGame(StateError):
    """A user may sit in only one unfinished game at a time."""
    code = "ALREADY_IN_GAME"


class NotGameCreator(StateError):
    """Only the player who created a game may start it."""
    code = "NOT_GAME_CREATOR"


# Funds

class InsufficientChips(FundsError):
    """A player cannot cover a payment from their in-game balance."""
    code = "INSUFFICIENT_CHIPS"


class InsufficientFunds(FundsError):
    """A stored balance would go negative."""
    code = "INSUFFICIENT_FUNDS"


# Lookup

class GameNotFound(NotFoundError):
    code = "GAME_NOT_FOUND"


class PlayerNotFound(NotFoundError):
    code = "PLAYER_NOT_FOUND"


# Invariants

class DeckExhausted(InvariantViolation):
    code = "DECK_EXHAUSTED"


class NoActivePlayers(InvariantViolation):
    code = "NO_ACTIVE_PLAYERS"
