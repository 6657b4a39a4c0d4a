"""Adapter over libvirt-python.

Everything that needs the ``libvirt`` module itself lives here:
- Opening a session with a credential callback
- Capturing the last-error record
- Lifecycle event registration
- The default event loop
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import DriverError
from .resilience.callbacks import LifecycleCallback, LifecycleEvent

logger = logging.getLogger(__name__)

# Try to import libvirt - it's optional
try:
    import libvirt

    LIBVIRT_AVAILABLE = True
except ImportError:
    libvirt = None
    LIBVIRT_AVAILABLE = False


@dataclass(frozen=True)
class Credentials:
    """Endpoint and login used for every (re)connect."""

    uri: str
    user: str = ""
    password: str = field(default="", repr=False)


class Driver(ABC):
    """Narrow capability set the connection layer needs from the client."""

    @property
    @abstractmethod
    def fatal_error_codes(self) -> frozenset[int]:
        """Error codes that prove the connection itself has failed."""

    @abstractmethod
    def dial(self, credentials: Credentials) -> Any:
        """Open a new session. Raises on failure."""

    @abstractmethod
    def last_error(self) -> Optional[DriverError]:
        """Take the last recorded error, resetting it."""

    @abstractmethod
    def list_domains_flags(self, actives: bool, inactives: bool) -> int:
        """Build the filter flags for listing domains."""

    @abstractmethod
    def register_lifecycle(self, session: Any, callback: LifecycleCallback) -> int:
        """Subscribe to domain lifecycle events on a session."""


def build_auth(credentials: Credentials) -> list:
    """Build the ``openAuth`` auth argument answering login prompts.

    Args:
        credentials: Stored credentials

    Returns:
        [credential types, callback, user data]
    """

    def request_credentials(creds: list, user_data: Any) -> int:
        for cred in creds:
            if cred[0] == libvirt.VIR_CRED_AUTHNAME:
                cred[4] = credentials.user
            elif cred[0] == libvirt.VIR_CRED_PASSPHRASE:
                cred[4] = credentials.password
        return 0

    return [
        [libvirt.VIR_CRED_AUTHNAME, libvirt.VIR_CRED_PASSPHRASE],
        request_credentials,
        None,
    ]


class LibvirtDriver(Driver):
    """Driver backed by the libvirt-python bindings."""

    def __init__(self):
        if not LIBVIRT_AVAILABLE:
            raise ImportError("libvirt-python package is not installed")
        self._fatal_codes = frozenset(
            {
                libvirt.VIR_ERR_INTERNAL_ERROR,
                libvirt.VIR_ERR_INVALID_CONN,
                libvirt.VIR_ERR_AUTH_CANCELLED,
                libvirt.VIR_ERR_NO_MEMORY,
                libvirt.VIR_ERR_AUTH_FAILED,
                libvirt.VIR_ERR_SYSTEM_ERROR,
                libvirt.VIR_ERR_RPC,
            }
        )

    @property
    def fatal_error_codes(self) -> frozenset[int]:
        return self._fatal_codes

    def dial(self, credentials: Credentials) -> Any:
        conn = libvirt.openAuth(credentials.uri, build_auth(credentials), 0)
        if conn is None:
            raise libvirt.libvirtError(f"Failed to connect to libvirt at {credentials.uri}")
        return conn

    def last_error(self) -> Optional[DriverError]:
        # libvirt keeps the last error per thread; read it and clear it so a
        # single failure is classified once
        err = libvirt.virGetLastError()
        if err is None:
            return None
        libvirt.virResetLastError()
        code, domain, message = err[0], err[1], err[2]
        if code == libvirt.VIR_ERR_OK:
            return None
        return DriverError(code=code, message=message or "", domain=domain)

    def list_domains_flags(self, actives: bool, inactives: bool) -> int:
        # 0 means do not filter anything
        flags = 0
        if actives:
            flags |= libvirt.VIR_CONNECT_LIST_DOMAINS_ACTIVE
        if inactives:
            flags |= libvirt.VIR_CONNECT_LIST_DOMAINS_INACTIVE
        return flags

    def register_lifecycle(self, session: Any, callback: LifecycleCallback) -> int:
        def on_lifecycle(conn, dom, event, detail, opaque):
            callback(conn, dom, LifecycleEvent(event=event, detail=detail))

        return session.domainEventRegisterAny(
            None, libvirt.VIR_DOMAIN_EVENT_ID_LIFECYCLE, on_lifecycle, None
        )


class EventLoop:
    """Runs libvirt's default event implementation in a background thread.

    Must be started before the first session is opened, otherwise lifecycle
    callbacks are never dispatched.
    """

    _registered = False
    _register_lock = threading.Lock()

    def __init__(self, wakeup_interval: float = 1.0):
        """Initialize event loop.

        Args:
            wakeup_interval: Seconds between no-op wakeups used to notice stop()
        """
        if not LIBVIRT_AVAILABLE:
            raise ImportError("libvirt-python package is not installed")
        self.wakeup_interval = wakeup_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._timer: Optional[int] = None

    @property
    def is_running(self) -> bool:
        """Check if the loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Register the default implementation and start the loop thread."""
        if self._thread is not None:
            logger.warning("libvirt event loop already started")
            return

        with EventLoop._register_lock:
            if not EventLoop._registered:
                libvirt.virEventRegisterDefaultImpl()
                EventLoop._registered = True

        self._timer = libvirt.virEventAddTimeout(
            int(self.wakeup_interval * 1000), self._wakeup, None
        )
        self._thread = threading.Thread(
            target=self._run, name="libvirt-event-loop", daemon=True
        )
        self._thread.start()
        logger.info("libvirt event loop started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to exit and wait for the thread."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._timer is not None:
                libvirt.virEventRemoveTimeout(self._timer)
                self._timer = None
            logger.info("libvirt event loop stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            if libvirt.virEventRunDefaultImpl() < 0:
                logger.error("libvirt event loop iteration failed")
                self._stop.wait(self.wakeup_interval)

    @staticmethod
    def _wakeup(timer: int, opaque: Any) -> None:
        pass
