"""Connection health metrics in Prometheus text format.

- Dial metrics: dial_attempts_total
- Reconnect metrics: reconnects_total, callback_replays_total
- Loss metrics: connection_lost_total, connection_alive
- Watchdog metrics: watchdog_ticks_total
"""

import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Metric Classes
# =============================================================================


class _Metric:
    """Labelled float values guarded by a lock."""

    kind = "untyped"

    def __init__(self, name: str, description: str, labels: Optional[list[str]] = None):
        self.name = name
        self.description = description
        self._label_names = labels or []
        self._values: dict[tuple, float] = {}
        self._lock = threading.Lock()

    def _label_values(self, kwargs: dict) -> tuple:
        return tuple(str(kwargs.get(l, "")) for l in self._label_names)

    def _add(self, label_values: tuple, value: float) -> None:
        with self._lock:
            self._values[label_values] = self._values.get(label_values, 0) + value

    def _set(self, label_values: tuple, value: float) -> None:
        with self._lock:
            self._values[label_values] = value

    def get(self, **labels) -> float:
        """Get the value for a label set (0 if never recorded)."""
        with self._lock:
            return self._values.get(self._label_values(labels), 0)

    def get_all(self) -> dict[tuple, float]:
        """Get all values."""
        with self._lock:
            return self._values.copy()

    def to_prometheus(self) -> str:
        """Format as Prometheus text."""
        lines = [f"# HELP {self.name} {self.description}", f"# TYPE {self.name} {self.kind}"]
        with self._lock:
            for label_values, value in self._values.items():
                if label_values:
                    labels_str = ",".join(
                        f'{l}="{v}"' for l, v in zip(self._label_names, label_values)
                    )
                    lines.append(f"{self.name}{{{labels_str}}} {value}")
                else:
                    lines.append(f"{self.name} {value}")
        return "\n".join(lines)


class Counter(_Metric):
    """A counter metric that can only increase."""

    kind = "counter"

    def labels(self, **kwargs) -> "_Bound":
        """Return a counter with specific labels."""
        return _Bound(self, self._label_values(kwargs))

    def inc(self, value: float = 1.0) -> None:
        """Increment the counter."""
        if value < 0:
            raise ValueError("Counters can only increase")
        self._add((), value)


class Gauge(_Metric):
    """A gauge metric that can be set to any value."""

    kind = "gauge"

    def labels(self, **kwargs) -> "_Bound":
        """Return a gauge with specific labels."""
        return _Bound(self, self._label_values(kwargs))

    def set(self, value: float) -> None:
        """Set the gauge value."""
        self._set((), value)

    def inc(self, value: float = 1.0) -> None:
        """Increment the gauge."""
        self._add((), value)

    def dec(self, value: float = 1.0) -> None:
        """Decrement the gauge."""
        self._add((), -value)


class _Bound:
    """Metric with specific label values."""

    def __init__(self, parent: _Metric, label_values: tuple):
        self._parent = parent
        self._label_values = label_values

    def inc(self, value: float = 1.0) -> None:
        """Increment the value."""
        if isinstance(self._parent, Counter) and value < 0:
            raise ValueError("Counters can only increase")
        self._parent._add(self._label_values, value)

    def set(self, value: float) -> None:
        """Set the value (gauges only)."""
        if not isinstance(self._parent, Gauge):
            raise TypeError(f"{self._parent.name} is not a gauge")
        self._parent._set(self._label_values, value)


# =============================================================================
# Connection Metrics
# =============================================================================

dial_attempts_total = Counter(
    name="virtwrap_dial_attempts_total",
    description="Initial dial attempts",
    labels=["outcome"],  # success, failure
)

reconnects_total = Counter(
    name="virtwrap_reconnects_total",
    description="Reconnect attempts after the connection was marked dead",
    labels=["outcome"],  # success, failure
)

connection_lost_total = Counter(
    name="virtwrap_connection_lost_total",
    description="Times the connection was marked dead",
    labels=["reason"],  # libvirt error code or "silent"
)

callback_replays_total = Counter(
    name="virtwrap_callback_replays_total",
    description="Lifecycle callbacks notified after a reconnect",
)

watchdog_ticks_total = Counter(
    name="virtwrap_watchdog_ticks_total",
    description="Liveness checks performed by connection watchdogs",
)

connection_alive = Gauge(
    name="virtwrap_connection_alive",
    description="Whether the libvirt connection is believed alive (1) or not (0)",
    labels=["uri"],
)


_ALL_METRICS = [
    dial_attempts_total,
    reconnects_total,
    connection_lost_total,
    callback_replays_total,
    watchdog_ticks_total,
    connection_alive,
]


def generate_metrics() -> str:
    """Generate all metrics in Prometheus text format."""
    return "\n\n".join(metric.to_prometheus() for metric in _ALL_METRICS)


# =============================================================================
# Metrics HTTP Server
# =============================================================================


class MetricsHandler(BaseHTTPRequestHandler):
    """HTTP handler for metrics endpoint."""

    def do_GET(self):
        """Handle GET requests."""
        if self.path == "/metrics":
            content = generate_metrics()
            self.send_response(200)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.end_headers()
            self.wfile.write(content.encode("utf-8"))
        elif self.path == "/health":
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.end_headers()
            self.wfile.write(b"OK")
        else:
            self.send_response(404)
            self.end_headers()

    def log_message(self, format, *args):
        logger.debug(format % args)


class MetricsServer:
    """HTTP server exposing connection metrics."""

    def __init__(self, host: str = "127.0.0.1", port: int = 9101):
        self.host = host
        self.port = port
        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        """Check if server is running."""
        return self._server is not None

    @property
    def address(self) -> Optional[tuple]:
        """Bound (host, port), useful when started on port 0."""
        return self._server.server_address if self._server else None

    def start(self) -> None:
        """Start the metrics server in a background thread."""
        if self._server is not None:
            logger.warning("Metrics server already running")
            return

        self._server = HTTPServer((self.host, self.port), MetricsHandler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info(f"Metrics server started on http://{self.host}:{self.address[1]}/metrics")

    def stop(self) -> None:
        """Stop the metrics server."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._thread = None
            logger.info("Metrics server stopped")
