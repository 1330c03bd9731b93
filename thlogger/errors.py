"""
Error kinds raised across the logger.

Every failure that crosses a module boundary is a LoggerError tagged with an
ErrorKind. The polling loop decides what to do by inspecting the kind.
"""

from enum import Enum


class ErrorKind(Enum):
    """Failure categories understood by the polling loop."""

    CONNECTION = 'connection'   # port cannot be opened
    NOT_FOUND = 'not_found'     # no port answered the identity probe
    TIMEOUT = 'timeout'         # no line terminator before the deadline
    IO = 'io'                   # read/write failure on an open session
    CONFIG = 'config'           # invalid configuration, not retryable
    CANCELLED = 'cancelled'     # user asked to stop


class LoggerError(Exception):
    """Exception carrying an ErrorKind tag."""

    def __init__(self, kind: ErrorKind, message: str = ""):
        """
        Initialize error.

        Args:
            kind: Failure category
            message: Human readable detail
        """
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        """True for transient failures that a reconnect may fix."""
        return self.kind in (
            ErrorKind.CONNECTION,
            ErrorKind.NOT_FOUND,
            ErrorKind.TIMEOUT,
            ErrorKind.IO
        )

    def __repr__(self) -> str:
        return f"LoggerError({self.kind.name}, {self.message!r})"
