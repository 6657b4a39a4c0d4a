"""Hypervisor entry points.

Currently only libvirt is supported, so these functions hand out a
``LibvirtConnection`` directly.
"""

import logging
from typing import Optional

from .config import Settings, settings
from .connection import LibvirtConnection
from .driver import Credentials, Driver, LibvirtDriver
from .resilience.dialer import CONNECTION_INTERVAL, CONNECTION_TIMEOUT
from .resilience.watchdog import Watchdog

logger = logging.getLogger(__name__)


def new_hypervisor_connection(
    uri: str,
    user: str = "",
    password: str = "",
    driver: Optional[Driver] = None,
    timeout: float = CONNECTION_TIMEOUT,
    interval: float = CONNECTION_INTERVAL,
) -> LibvirtConnection:
    """Connect to the hypervisor daemon at ``uri``.

    Args:
        uri: libvirt URI, e.g. "qemu:///system"
        user: Username answered to authentication prompts
        password: Password answered to authentication prompts
        driver: Client adapter, libvirt-python by default
        timeout: Total dial budget in seconds
        interval: Wait between dial attempts in seconds

    Returns:
        Connected LibvirtConnection

    Raises:
        DialError: If the daemon could not be reached within ``timeout``
    """
    credentials = Credentials(uri=uri, user=user, password=password)
    return LibvirtConnection.connect(
        credentials, driver or LibvirtDriver(), timeout=timeout, interval=interval
    )


def connection_from_settings(
    config: Optional[Settings] = None,
    driver: Optional[Driver] = None,
) -> LibvirtConnection:
    """Connect using the configured URI and credentials and start the watchdog."""
    config = config or settings
    conn = new_hypervisor_connection(
        config.libvirt_uri,
        config.libvirt_user,
        config.libvirt_pass,
        driver=driver,
    )
    monitor_hypervisor_connection(conn, config.watchdog_interval)
    return conn


def monitor_hypervisor_connection(conn: LibvirtConnection, interval: float) -> Watchdog:
    """Check every ``interval`` seconds that the connection is still alive."""
    return conn.monitor_connection(interval)
