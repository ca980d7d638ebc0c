from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Named, recoverable failures returned by synchronizer operations."""
    NOT_FOUND = ('not_found', 'Room not found', 404)
    INVALID_INPUT = ('invalid_input', 'Invalid request', 400)
    ALREADY_STARTED = ('already_started', 'Game already started', 400)
    INVALID_STATE = ('invalid_state', 'Not allowed at this stage of the game', 400)
    UNAUTHORIZED = ('unauthorized', 'Only host can start the game', 403)
    FULL = ('full', 'Room is full', 400)
    CONFLICT = ('conflict', 'Could not save the room, please try again', 409)

    def __init__(self, code, message, http_status):
        self.code = code
        self.message = message
        self.http_status = http_status


class StoreError(Exception):
    """Raised by a backing store when a read or write could not be completed."""


@dataclass
class Outcome:
    ok: bool
    error: Optional[ErrorKind] = None
    state: Any = None
    value: Any = None
    applied: bool = True

    @classmethod
    def success(cls, state=None, value=None, applied=True):
        return cls(ok=True, state=state, value=value, applied=applied)

    @classmethod
    def failure(cls, error: ErrorKind, state=None):
        return cls(ok=False, error=error, state=state, applied=False)

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None
