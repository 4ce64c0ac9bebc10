"""
Outbound request pacing for ingestion.
"""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforces a minimum interval between successive acquire() calls.

    The first call never waits. Clock and sleep functions are injectable so
    pacing can be tested without wall-clock delays.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        if min_interval < 0:
            raise ValueError(f"min_interval cannot be negative, got {min_interval}")

        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None

    def acquire(self) -> float:
        """
        Block until the next request may be sent.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        if self._last is not None:
            remaining = self.min_interval - (self._clock() - self._last)
            if remaining > 0:
                logger.debug(f"Rate limiter waiting {remaining:.2f}s")
                self._sleep(remaining)
                waited = remaining

        self._last = self._clock()
        return waited

    def reset(self) -> None:
        self._last = None
