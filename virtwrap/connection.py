"""Resilient libvirt connection.

Every operation on ``LibvirtConnection`` runs the same protocol:
- ensure_connected(): reconnect if the connection was marked dead
- the underlying libvirt call
- check_connection_lost(): inspect the last error and mark the
  connection dead if it was connection-fatal

The caller always gets the underlying call's own result or exception.
"""

import logging
import threading
from typing import Any, Callable, Optional, TypeVar

from .driver import Credentials, Driver
from .errors import (
    ConnectionClosedError,
    ConnectivityError,
    DriverError,
    ErrorClassification,
    is_ok,
)
from .monitoring.metrics import (
    callback_replays_total,
    connection_alive,
    connection_lost_total,
    reconnects_total,
)
from .resilience.callbacks import RECONNECTED, CallbackRegistry, LifecycleCallback
from .resilience.classifier import ErrorClassifier
from .resilience.dialer import CONNECTION_INTERVAL, CONNECTION_TIMEOUT, dial_with_retry
from .resilience.watchdog import Watchdog

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GuestStream:
    """File-like wrapper around a libvirt stream."""

    def __init__(self, stream: Any):
        self.stream = stream

    def read(self, size: int) -> bytes:
        """Receive up to ``size`` bytes."""
        return self.stream.recv(size)

    def write(self, data: bytes) -> int:
        """Send bytes, returning how many were sent."""
        return self.stream.send(data)

    def close(self) -> None:
        """Finish the stream; abort it if finishing fails."""
        try:
            self.stream.finish()
        except Exception:
            self.stream.abort()
            raise

    def __enter__(self) -> "GuestStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LibvirtConnection:
    """Long-lived libvirt connection that reconnects transparently.

    Usage:
        conn = LibvirtConnection.connect(Credentials("qemu:///system"), driver)
        conn.monitor_connection(10.0)

        for dom in conn.list_all_guests(actives=True, inactives=False):
            ...

        conn.close()
    """

    def __init__(self, session: Any, credentials: Credentials, driver: Driver):
        """Wrap an already established session.

        Args:
            session: Open session returned by ``driver.dial``
            credentials: Credentials reused for every reconnect
            driver: Client library adapter
        """
        self.credentials = credentials
        self.driver = driver
        self.classifier = ErrorClassifier(driver.fatal_error_codes)
        self._session = session
        self._alive = True
        self._closed = False
        self._callbacks = CallbackRegistry()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._watchdog: Optional[Watchdog] = None
        connection_alive.labels(uri=credentials.uri).set(1)

    @classmethod
    def connect(
        cls,
        credentials: Credentials,
        driver: Driver,
        timeout: float = CONNECTION_TIMEOUT,
        interval: float = CONNECTION_INTERVAL,
    ) -> "LibvirtConnection":
        """Dial the daemon with bounded retries.

        Raises:
            DialError: If no session could be opened within ``timeout``
        """
        logger.info(f"Connecting to libvirt daemon: {credentials.uri}")
        session = dial_with_retry(
            lambda: driver.dial(credentials), timeout=timeout, interval=interval
        )
        logger.info("Connected to libvirt daemon")
        return cls(session, credentials, driver)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def alive(self) -> bool:
        """Whether the connection is believed usable."""
        with self._lock:
            return self._alive

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def session(self) -> Any:
        """Current underlying session."""
        with self._lock:
            return self._session

    @property
    def registered_callbacks(self) -> int:
        """Number of callbacks waiting for the next reconnect replay."""
        with self._lock:
            return len(self._callbacks)

    @property
    def watchdog(self) -> Optional[Watchdog]:
        return self._watchdog

    def _mark_lost(self, reason: str) -> None:
        # Caller holds self._lock; only the alive -> dead transition is counted
        if not self._alive:
            return
        self._alive = False
        connection_lost_total.labels(reason=reason).inc()
        connection_alive.labels(uri=self.credentials.uri).set(0)

    def _current_session(self) -> Any:
        with self._lock:
            if self._closed:
                raise ConnectionClosedError("libvirt connection is closed")
            return self._session

    # ------------------------------------------------------------------
    # Reconnect and classification
    # ------------------------------------------------------------------

    def ensure_connected(self) -> None:
        """Reconnect if the connection was marked dead.

        Only one thread reconnects at a time; the others block on the lock
        and then see the connection alive. Registered callbacks are drained
        and notified with ``RECONNECTED`` after the lock is released.

        Raises:
            ConnectionClosedError: If the connection was closed
            ConnectivityError: If the single reconnect attempt failed
        """
        with self._lock:
            if self._closed:
                raise ConnectionClosedError("libvirt connection is closed")
            if self._alive:
                return

            try:
                session = self.driver.dial(self.credentials)
            except Exception as e:
                reconnects_total.labels(outcome="failure").inc()
                logger.error(f"Reconnect to {self.credentials.uri} failed: {e}")
                raise ConnectivityError(
                    f"cannot reconnect to libvirt daemon: {e}", last_error=e
                ) from e

            self._session = session
            self._alive = True
            callbacks = self._callbacks.drain()

        reconnects_total.labels(outcome="success").inc()
        connection_alive.labels(uri=self.credentials.uri).set(1)
        logger.info(
            f"Reconnected to {self.credentials.uri}, notifying {len(callbacks)} callbacks"
        )
        for callback in callbacks:
            # RECONNECTED tells the watcher its subscription is gone; it
            # re-registers itself in response
            try:
                callback(session, None, RECONNECTED)
                callback_replays_total.inc()
            except Exception as e:
                logger.error(f"Reconnect callback error: {e}")

    def check_connection_lost(self, error: Optional[DriverError] = None) -> ErrorClassification:
        """Inspect the last driver error and mark the connection dead if fatal.

        Args:
            error: Already captured error; taken from the driver if omitted

        Returns:
            Classification of the inspected error
        """
        with self._lock:
            if error is None:
                error = self.driver.last_error()
            return self._classify(error)

    def _classify(self, error: Optional[DriverError]) -> ErrorClassification:
        # Caller holds self._lock
        classification = self.classifier.classify(error)
        if classification == ErrorClassification.FATAL and not self._closed:
            self._mark_lost(reason=str(error.code))
            logger.error(
                f"Connection to libvirt lost: code={error.code} {error.message}",
                extra={"code": error.code, "reason": error.message},
            )
        return classification

    def report_dead_session(self, session: Any) -> ErrorClassification:
        """Handle a session that reported itself not alive.

        Without a recorded error the disconnect is silent and the connection
        is marked dead directly; otherwise the classifier decides.

        Args:
            session: The session that was probed

        Returns:
            Classification of the observed state
        """
        with self._lock:
            if self._closed or session is not self._session:
                # Closed, or already replaced by a reconnect
                return ErrorClassification.OK

            error = self.driver.last_error()
            if not is_ok(error):
                return self._classify(error)

            self._mark_lost(reason="silent")
            logger.error("Connection to libvirt lost", extra={"code": None})
            return ErrorClassification.FATAL

    def _call(self, func: Callable[[Any], T]) -> T:
        self.ensure_connected()
        # A replayed callback may have closed the connection
        session = self._current_session()
        try:
            return func(session)
        finally:
            self.check_connection_lost()

    # ------------------------------------------------------------------
    # Guests
    # ------------------------------------------------------------------

    def list_all_guests(self, actives: bool = True, inactives: bool = True) -> list:
        """List domains, optionally filtered by running state."""
        flags = self.driver.list_domains_flags(actives, inactives)
        return self._call(lambda s: list(s.listAllDomains(flags)))

    def lookup_guest_by_name(self, name: str) -> Any:
        return self._call(lambda s: s.lookupByName(name))

    def define_guest_spec(self, xml: str) -> Any:
        return self._call(lambda s: s.defineXML(xml))

    def register_guest_event_lifecycle(self, callback: LifecycleCallback) -> int:
        """Subscribe to domain lifecycle events.

        The callback is kept for replay: after a reconnect it receives
        ``(session, None, RECONNECTED)`` once and must register again.

        Returns:
            libvirt callback id
        """
        self.ensure_connected()
        try:
            with self._lock:
                if self._closed:
                    raise ConnectionClosedError("libvirt connection is closed")
                # Registering and recording under one lock keeps the callback
                # on the same session generation as the registry
                self._callbacks.add(callback)
                return self.driver.register_lifecycle(self._session, callback)
        finally:
            self.check_connection_lost()

    def new_stream(self, flags: int = 0) -> GuestStream:
        return self._call(lambda s: GuestStream(s.newStream(flags)))

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def list_secrets(self) -> list[str]:
        return self._call(lambda s: list(s.listSecrets()))

    def list_all_secrets(self, flags: int = 0) -> list:
        return self._call(lambda s: list(s.listAllSecrets(flags)))

    def lookup_secret_by_uuid_string(self, uuid: str) -> Any:
        return self._call(lambda s: s.secretLookupByUUIDString(uuid))

    def lookup_secret_by_usage(self, usage_type: int, usage_id: str) -> Any:
        return self._call(lambda s: s.secretLookupByUsage(usage_type, usage_id))

    def secret_define_xml(self, xml: str) -> Any:
        return self._call(lambda s: s.secretDefineXML(xml, 0))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def monitor_connection(self, check_interval: float) -> Watchdog:
        """Install a watchdog checking periodically that the connection is alive.

        Args:
            check_interval: Seconds between checks

        Returns:
            The running watchdog
        """
        with self._lock:
            if self._closed:
                raise ConnectionClosedError("libvirt connection is closed")
            if self._watchdog is not None:
                logger.warning("Connection watchdog already running")
                return self._watchdog
            watchdog = Watchdog(self, check_interval, stop_event=self._stop)
            self._watchdog = watchdog

        try:
            watchdog.start()
        except RuntimeError as e:
            # close() cancelled the watchdog before it could start
            raise ConnectionClosedError("libvirt connection is closed") from e
        return watchdog

    def close(self, timeout: Optional[float] = None) -> int:
        """Stop the watchdog and close the underlying session.

        Args:
            timeout: Seconds to wait for the watchdog thread

        Returns:
            Result of the session's close(), 0 if already closed
        """
        self._stop.set()
        with self._lock:
            watchdog = self._watchdog
        if watchdog is not None and not watchdog.join(timeout):
            logger.warning("Connection watchdog did not stop in time")

        with self._lock:
            if self._closed:
                return 0
            self._closed = True
            self._alive = False
            session, self._session = self._session, None
            callbacks = self._callbacks.drain()

        connection_alive.labels(uri=self.credentials.uri).set(0)
        logger.info(f"Closing libvirt connection to {self.credentials.uri}")
        if callbacks:
            logger.debug(f"Dropping {len(callbacks)} lifecycle callbacks")
        return session.close()

    def __enter__(self) -> "LibvirtConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
