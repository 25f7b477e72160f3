# app/core/errors.py
from app.models.enums import ErrorKind


class GameActionError(Exception):
    """Base class for every rejected player action. Never fatal to the process."""
    kind: ErrorKind = ErrorKind.DEPENDENCY_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GameActionError):
    """Malformed content, word-count/length violation, duplicate content."""
    kind = ErrorKind.VALIDATION


class AuthorizationError(GameActionError):
    """Wrong turn, not the author, or game not in the expected phase."""
    kind = ErrorKind.AUTHORIZATION


class ConflictError(GameActionError):
    """A concurrent actor got there first. The client should refetch state."""
    kind = ErrorKind.CONFLICT


class RateLimitError(GameActionError):
    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str, scope: str):
        super().__init__(message)
        self.scope = scope # "player" or "ip"


class DependencyFailure(GameActionError):
    """Storage failure. The whole action is rolled back."""
    kind = ErrorKind.DEPENDENCY_FAILURE
