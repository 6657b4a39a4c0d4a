"""Pytest configuration and fixtures for virtwrap tests."""

import threading
import time
from typing import Any, Optional
from unittest.mock import Mock

import pytest

from virtwrap.connection import LibvirtConnection
from virtwrap.driver import Credentials, Driver
from virtwrap.errors import DriverError

# libvirt virErrorNumber values used by the fake driver
ERR_INTERNAL_ERROR = 1
ERR_NO_MEMORY = 2
ERR_NO_SUPPORT = 3
ERR_INVALID_CONN = 6
ERR_INVALID_ARG = 8
ERR_OPERATION_FAILED = 9
ERR_SYSTEM_ERROR = 38
ERR_RPC = 39
ERR_NO_DOMAIN = 42
ERR_AUTH_FAILED = 45
ERR_AUTH_CANCELLED = 79

FATAL_CODES = frozenset(
    {
        ERR_INTERNAL_ERROR,
        ERR_INVALID_CONN,
        ERR_AUTH_CANCELLED,
        ERR_NO_MEMORY,
        ERR_AUTH_FAILED,
        ERR_SYSTEM_ERROR,
        ERR_RPC,
    }
)


def make_session(name: str = "session") -> Mock:
    """Mock virConnect that reports itself alive."""
    session = Mock(name=name)
    session.isAlive.return_value = 1
    session.close.return_value = 0
    session.listAllDomains.return_value = []
    session.listSecrets.return_value = []
    session.listAllSecrets.return_value = []
    return session


class FakeDriver(Driver):
    """Scriptable driver standing in for libvirt-python."""

    def __init__(self):
        self.outcomes: list[Any] = []  # sessions to return or exceptions to raise
        self.dial_delay = 0.0
        self.dial_gate: Optional[threading.Event] = None
        self.dial_entered = threading.Event()
        self.dial_count = 0
        self.sessions: list[Any] = []
        self.pending_error: Optional[DriverError] = None
        self._lock = threading.Lock()

    @property
    def fatal_error_codes(self) -> frozenset[int]:
        return FATAL_CODES

    def dial(self, credentials: Credentials) -> Any:
        with self._lock:
            self.dial_count += 1
            outcome = self.outcomes.pop(0) if self.outcomes else None
        self.dial_entered.set()
        if self.dial_gate is not None:
            self.dial_gate.wait(5)
        if self.dial_delay:
            time.sleep(self.dial_delay)
        if isinstance(outcome, Exception):
            raise outcome
        session = outcome or make_session(f"session-{self.dial_count}")
        self.sessions.append(session)
        return session

    def fail_with(self, code: int, message: str = "") -> None:
        """Record an error as the client's last error."""
        self.pending_error = DriverError(code=code, message=message or f"error {code}")

    def last_error(self) -> Optional[DriverError]:
        error, self.pending_error = self.pending_error, None
        return error

    def list_domains_flags(self, actives: bool, inactives: bool) -> int:
        return (1 if actives else 0) | (2 if inactives else 0)

    def register_lifecycle(self, session: Any, callback) -> int:
        return session.domainEventRegisterAny(None, 0, callback, None)


class FakeClock:
    """Replaces the time module inside the dialer."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def credentials():
    """Test credentials."""
    return Credentials(uri="qemu+tcp://host/system", user="admin", password="secret")


@pytest.fixture
def driver():
    """Fake driver."""
    return FakeDriver()


@pytest.fixture
def connection(driver, credentials):
    """Connected LibvirtConnection on a fake session."""
    conn = LibvirtConnection(make_session("initial"), credentials, driver)
    yield conn
    conn.close(timeout=2)


@pytest.fixture
def fake_clock(monkeypatch):
    """Deterministic clock for the dialer."""
    clock = FakeClock()
    monkeypatch.setattr("virtwrap.resilience.dialer.time", clock)
    return clock
