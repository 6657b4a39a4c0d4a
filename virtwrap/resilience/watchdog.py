"""Background liveness monitor for a libvirt connection.

Each tick:
- Reconnects if the connection was marked dead
- Asks the session whether it is alive
- Marks the connection dead on a silent disconnect, or lets the
  classifier decide when an error was recorded
"""

import logging
import threading
from typing import TYPE_CHECKING, Optional

from ..errors import ErrorClassification, VirtwrapError
from ..monitoring.metrics import watchdog_ticks_total

if TYPE_CHECKING:
    from ..connection import LibvirtConnection

logger = logging.getLogger(__name__)


class Watchdog:
    """Periodically checks that a connection is still alive.

    Usage:
        watchdog = Watchdog(conn, interval=10.0)
        watchdog.start()
        ...
        watchdog.stop()
        watchdog.join()
    """

    def __init__(
        self,
        connection: "LibvirtConnection",
        interval: float,
        stop_event: Optional[threading.Event] = None,
    ):
        """Initialize watchdog.

        Args:
            connection: Connection to monitor
            interval: Seconds between liveness checks
            stop_event: One-shot cancellation signal, created if not given
        """
        if interval <= 0:
            raise ValueError(f"Watchdog interval must be positive, got {interval}")
        self.connection = connection
        self.interval = interval
        self._stop = stop_event or threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        """Check if the watchdog thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def stopped(self) -> bool:
        """Check if cancellation was signaled."""
        return self._stop.is_set()

    def start(self) -> None:
        """Start the watchdog thread. A stopped watchdog cannot be restarted."""
        if self._thread is not None:
            raise RuntimeError("Watchdog already started")
        if self._stop.is_set():
            raise RuntimeError("Watchdog was cancelled")

        self._thread = threading.Thread(
            target=self._run, name="libvirt-watchdog", daemon=True
        )
        self._thread.start()
        logger.info(f"Connection watchdog started, checking every {self.interval}s")

    def stop(self) -> None:
        """Signal cancellation."""
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the thread to exit.

        Returns:
            True if the thread is no longer running
        """
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.is_running

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Connection watchdog error: {e}")
        logger.info("Connection watchdog stopped")

    def tick(self) -> ErrorClassification:
        """Run a single liveness check.

        Returns:
            Classification of the observed state
        """
        watchdog_ticks_total.inc()

        try:
            self.connection.ensure_connected()
        except VirtwrapError as e:
            logger.warning(f"Watchdog reconnect failed: {e}")

        session = self.connection.session
        try:
            alive = bool(session.isAlive())
        except Exception as e:
            logger.debug(f"isAlive() raised: {e}")
            alive = False

        # If the connection is ok, continue
        if alive:
            return ErrorClassification.OK

        return self.connection.report_dead_session(session)
