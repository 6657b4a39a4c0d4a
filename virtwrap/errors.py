"""Error types for the libvirt connection layer."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorClassification(str, Enum):
    """Outcome of inspecting the driver's last error."""

    OK = "OK"  # No error recorded
    FATAL = "FATAL"  # Connection itself is gone
    TRANSIENT = "TRANSIENT"  # Operation-local, connection unaffected


@dataclass(frozen=True)
class DriverError:
    """Captured copy of the client library's last-error record."""

    code: int
    message: str = ""
    domain: int = 0


def is_ok(error: Optional[DriverError]) -> bool:
    """Check whether an error record means "no error"."""
    return error is None or error.code == 0


class VirtwrapError(Exception):
    """Base class for connection layer errors."""

    pass


class ConnectivityError(VirtwrapError):
    """Raised when a session to the daemon cannot be established."""

    def __init__(self, message: str = "", last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error


class DialError(ConnectivityError):
    """Initial connection did not succeed within the timeout budget."""

    pass


class ConnectionClosedError(VirtwrapError):
    """Raised when an operation is attempted on a closed connection."""

    pass
