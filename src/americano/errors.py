"""Exceptions for americano.

Configuration problems are not raised here: validate_config reports them as
a list of messages and the caller decides what to do.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Machine-readable error kinds."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    UNSUPPORTED_WIDGET_TYPE = "UNSUPPORTED_WIDGET_TYPE"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    # Generator / state operations
    ODD_ROSTER = "ODD_ROSTER"
    ROSTER_TOO_SMALL = "ROSTER_TOO_SMALL"
    ROSTER_MISMATCH = "ROSTER_MISMATCH"
    ROUND_NOT_COMPLETE = "ROUND_NOT_COMPLETE"
    FINAL_ROUND = "FINAL_ROUND"
    # Storage
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"


class AmericanoError(Exception):
    """Base exception for all americano errors.

    Carries a machine-readable code and the name of the offending field so
    callers can surface the problem next to the right input.
    """

    default_code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.field = field

    def __str__(self) -> str:
        return self.message


class RuleViolation(AmericanoError):
    """Raised when an operation is not allowed in the current state."""

    default_code = ErrorCode.ACTION_NOT_ALLOWED


class NotFoundError(AmericanoError):
    """Raised when a widget, match or participant does not exist."""

    default_code = ErrorCode.RESOURCE_NOT_FOUND


class InvalidArgumentError(AmericanoError, ValueError):
    """Raised on caller bugs, e.g. a roster that was never checked against the config."""

    default_code = ErrorCode.INVALID_ARGUMENT


class ConcurrentModificationError(AmericanoError):
    """Raised when a widget changed under us between load and save."""

    default_code = ErrorCode.CONCURRENT_MODIFICATION
