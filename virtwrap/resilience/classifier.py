"""Classification of driver errors as connection-fatal or operation-local."""

import logging
from typing import Iterable, Optional

from ..errors import DriverError, ErrorClassification, is_ok

logger = logging.getLogger(__name__)


class ErrorClassifier:
    """Decides whether a driver error means the connection is gone.

    Usage:
        classifier = ErrorClassifier(driver.fatal_error_codes)

        if classifier.classify(driver.last_error()) == ErrorClassification.FATAL:
            ...  # drop the session, reconnect on next use
    """

    def __init__(self, fatal_codes: Iterable[int]):
        """Initialize classifier.

        Args:
            fatal_codes: Error codes that prove the connection has failed
        """
        self.fatal_codes = frozenset(fatal_codes)

    def classify(self, error: Optional[DriverError]) -> ErrorClassification:
        """Classify a captured error.

        Args:
            error: Last error record, or None if nothing was recorded

        Returns:
            Classification of the error
        """
        if is_ok(error):
            return ErrorClassification.OK
        if error.code in self.fatal_codes:
            return ErrorClassification.FATAL
        logger.debug(f"Operation-local libvirt error: code={error.code} {error.message}")
        return ErrorClassification.TRANSIENT
