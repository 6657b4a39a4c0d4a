"""Bounded-retry establishment of the initial session.

Provides:
- Immediate first attempt, then fixed-interval retries
- A total time budget after which the last failure is surfaced
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from ..errors import DialError
from ..monitoring.metrics import dial_attempts_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONNECTION_TIMEOUT = 15.0  # Total dial budget in seconds
CONNECTION_INTERVAL = 10.0  # Fixed wait between attempts in seconds


def dial_with_retry(
    dial: Callable[[], T],
    timeout: float = CONNECTION_TIMEOUT,
    interval: float = CONNECTION_INTERVAL,
    on_failure: Optional[Callable[[Exception, int], None]] = None,
) -> T:
    """Call ``dial`` until it succeeds or the timeout elapses.

    The first attempt runs immediately. After a failure the dialer waits
    ``interval`` seconds; when the next attempt would land at or past the
    deadline it waits out what is left of the budget and gives up.

    Args:
        dial: Zero-argument callable opening a session
        timeout: Total budget in seconds
        interval: Wait between attempts in seconds
        on_failure: Optional callback on each failed attempt (exception, attempt_number)

    Returns:
        Whatever ``dial`` returned

    Raises:
        DialError: If no attempt succeeded within the budget
    """
    deadline = time.monotonic() + timeout
    attempt = 0
    last_exception: Optional[Exception] = None

    while True:
        attempt += 1
        try:
            result = dial()
            dial_attempts_total.labels(outcome="success").inc()
            return result
        except Exception as e:
            last_exception = e
            dial_attempts_total.labels(outcome="failure").inc()
            logger.warning(f"Dial attempt {attempt} failed: {e}")

            if on_failure:
                on_failure(e, attempt)

        remaining = deadline - time.monotonic()
        if remaining <= interval:
            if remaining > 0:
                time.sleep(remaining)
            break

        time.sleep(interval)

    logger.error(f"Giving up after {attempt} dial attempts in {timeout}s: {last_exception}")
    raise DialError(
        f"cannot connect to libvirt daemon: {last_exception}",
        last_error=last_exception,
    ) from last_exception
