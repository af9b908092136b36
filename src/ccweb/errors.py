"""Error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(Enum):
    """Failure classes a caller can act on differently."""

    UNAVAILABLE = "unavailable"  # configuration absent
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UPSTREAM = "upstream"  # SDK, pty or filesystem failure


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAVAILABLE: 503,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.UPSTREAM: 500,
}


@dataclass(frozen=True)
class ServiceError:
    """Err payload returned by services."""

    kind: ErrorKind
    message: str
    error: str = ""

    @property
    def status_code(self) -> int:
        return http_status(self.kind)

    @classmethod
    def not_found(cls, message: str) -> ServiceError:
        return cls(ErrorKind.NOT_FOUND, message, error="Not found")

    @classmethod
    def validation(cls, message: str, error: str = "Invalid request") -> ServiceError:
        return cls(ErrorKind.VALIDATION, message, error=error)

    @classmethod
    def upstream(cls, message: str, error: str = "Request failed") -> ServiceError:
        return cls(ErrorKind.UPSTREAM, message, error=error)

    @classmethod
    def unavailable(cls, message: str) -> ServiceError:
        return cls(ErrorKind.UNAVAILABLE, message, error="Service unavailable")


def http_status(kind: ErrorKind) -> int:
    """Map an ErrorKind to its HTTP status code."""
    return _HTTP_STATUS[kind]


class UsageTerminalError(RuntimeError):
    """Base class for persistent usage-terminal failures."""


class TerminalNotReadyError(UsageTerminalError):
    """The terminal has not finished starting (or has exited)."""


class TerminalStartupError(UsageTerminalError):
    """The CLI never printed its ready marker."""


class TerminalExitedError(UsageTerminalError):
    """The terminal process exited while a command was pending."""


class CommandTimeoutError(UsageTerminalError):
    """A queued command did not complete in time."""
