"""Resilience layer for the libvirt connection.

This module provides:
- Classification of driver errors as connection-fatal or operation-local
- Lifecycle callback registry replayed after reconnects
- Bounded-retry initial dialing
- Background connection watchdog
"""

from .callbacks import RECONNECTED, CallbackRegistry, LifecycleCallback, LifecycleEvent
from .classifier import ErrorClassifier
from .dialer import CONNECTION_INTERVAL, CONNECTION_TIMEOUT, dial_with_retry
from .watchdog import Watchdog

__all__ = [
    "ErrorClassifier",
    "CallbackRegistry",
    "LifecycleCallback",
    "LifecycleEvent",
    "RECONNECTED",
    "dial_with_retry",
    "CONNECTION_TIMEOUT",
    "CONNECTION_INTERVAL",
    "Watchdog",
]
