"""Tests for connection metrics."""

import urllib.request

import pytest

from virtwrap.monitoring.metrics import (
    Counter,
    Gauge,
    MetricsServer,
    generate_metrics,
)


class TestCounter:
    """Test Counter metric."""

    def test_counter_increment(self):
        counter = Counter("test_counter", "Test counter")
        counter.inc()
        counter.inc(2)
        assert counter.get_all()[()] == 3

    def test_counter_with_labels(self):
        counter = Counter("test_counter", "Test counter", labels=["outcome"])
        counter.labels(outcome="success").inc()
        counter.labels(outcome="failure").inc(2)

        assert counter.get(outcome="success") == 1
        assert counter.get(outcome="failure") == 2
        assert counter.get(outcome="unknown") == 0

    def test_counter_cannot_decrease(self):
        counter = Counter("test_counter", "Test counter", labels=["outcome"])
        with pytest.raises(ValueError):
            counter.inc(-1)
        with pytest.raises(ValueError):
            counter.labels(outcome="x").inc(-1)

    def test_counter_prometheus_format(self):
        counter = Counter("test_counter", "Test counter", labels=["reason"])
        counter.labels(reason=39).inc()
        output = counter.to_prometheus()

        assert "# HELP test_counter Test counter" in output
        assert "# TYPE test_counter counter" in output
        assert 'test_counter{reason="39"} 1' in output


class TestGauge:
    """Test Gauge metric."""

    def test_gauge_set_inc_dec(self):
        gauge = Gauge("test_gauge", "Test gauge")
        gauge.set(5)
        gauge.inc()
        gauge.dec(3)
        assert gauge.get() == 3

    def test_gauge_with_labels(self):
        gauge = Gauge("test_gauge", "Test gauge", labels=["uri"])
        gauge.labels(uri="qemu:///system").set(1)
        gauge.labels(uri="qemu:///system").set(0)

        assert gauge.get(uri="qemu:///system") == 0
        assert "# TYPE test_gauge gauge" in gauge.to_prometheus()


class TestGenerateMetrics:
    """Test full exposition output."""

    def test_contains_connection_metrics(self):
        output = generate_metrics()
        for name in (
            "virtwrap_dial_attempts_total",
            "virtwrap_reconnects_total",
            "virtwrap_connection_lost_total",
            "virtwrap_callback_replays_total",
            "virtwrap_watchdog_ticks_total",
            "virtwrap_connection_alive",
        ):
            assert f"# TYPE {name}" in output


class TestMetricsServer:
    """Test the HTTP endpoint."""

    def test_serves_metrics(self):
        server = MetricsServer(port=0)
        server.start()
        try:
            host, port = server.address
            with urllib.request.urlopen(f"http://{host}:{port}/metrics", timeout=5) as resp:
                body = resp.read().decode("utf-8")
            with urllib.request.urlopen(f"http://{host}:{port}/health", timeout=5) as resp:
                assert resp.read() == b"OK"
        finally:
            server.stop()

        assert "virtwrap_connection_alive" in body
        assert server.is_running is False
