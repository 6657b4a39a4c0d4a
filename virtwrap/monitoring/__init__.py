"""Monitoring for the libvirt connection layer.

This module provides:
- Connection health counters and gauges
- Prometheus text rendering and an optional HTTP endpoint
"""

from .metrics import (
    Counter,
    Gauge,
    MetricsServer,
    callback_replays_total,
    connection_alive,
    connection_lost_total,
    dial_attempts_total,
    generate_metrics,
    reconnects_total,
    watchdog_ticks_total,
)

__all__ = [
    "Counter",
    "Gauge",
    "MetricsServer",
    "generate_metrics",
    "dial_attempts_total",
    "reconnects_total",
    "connection_lost_total",
    "callback_replays_total",
    "watchdog_ticks_total",
    "connection_alive",
]
