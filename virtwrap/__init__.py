"""virtwrap: resilient libvirt connection layer."""

__version__ = "0.1.0"

from .connection import GuestStream, LibvirtConnection
from .driver import Credentials, Driver, EventLoop, LibvirtDriver
from .errors import (
    ConnectionClosedError,
    ConnectivityError,
    DialError,
    DriverError,
    ErrorClassification,
    VirtwrapError,
)
from .hypervisor import (
    connection_from_settings,
    monitor_hypervisor_connection,
    new_hypervisor_connection,
)
from .resilience import RECONNECTED, LifecycleEvent

__all__ = [
    "LibvirtConnection",
    "GuestStream",
    "Credentials",
    "Driver",
    "LibvirtDriver",
    "EventLoop",
    "DriverError",
    "ErrorClassification",
    "VirtwrapError",
    "ConnectivityError",
    "DialError",
    "ConnectionClosedError",
    "LifecycleEvent",
    "RECONNECTED",
    "new_hypervisor_connection",
    "monitor_hypervisor_connection",
    "connection_from_settings",
]
