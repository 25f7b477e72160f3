from enum import Enum

class GameStatus(str, Enum):
    LOBBY = "lobby"
    TEXTING = "texting"
    ACTIVE = "active" # Legacy alias of TEXTING
    SOLVING = "solving"
    COMPLETED = "completed"
    ARCHIVED = "archived" # Reached through the external janitor only

TEXTING_STATUSES = {GameStatus.LOBBY, GameStatus.TEXTING, GameStatus.ACTIVE}

class GameMode(str, Enum):
    FREE = "free"
    HUNDRED_TEXT = "100_text"

class MessageType(str, Enum):
    TEXT = "text"
    SYSTEM = "system"

class PointKind(str, Enum):
    SELF_RESCUE = "SELF_RESCUE"
    STEAL = "STEAL"

class ActionType(str, Enum):
    PROPOSE_SOLVE = "propose_solve"
    DENY_SOLVE = "deny_solve"
    CONFIRM_SOLVE = "confirm_solve"
    SOLVE_ATTEMPT = "solve_attempt"
    GET_HINT = "get_hint"
    SEND_MESSAGE = "send_message"
    LEAVE_GAME = "leave_game"

class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    AUTHORIZATION = "authorization_error"
    CONFLICT = "conflict_error"
    RATE_LIMIT = "rate_limit_error"
    DEPENDENCY_FAILURE = "dependency_failure"
