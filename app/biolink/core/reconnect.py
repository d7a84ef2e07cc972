"""
Retry scheduling after the link drops.
"""
from typing import Callable, Optional

from biolink.utils.logging import get_logger

# Initialize module logger
logger = get_logger(__name__)

class ReconnectionPolicy:
    """
    Bounded exponential backoff with a single pending retry timer.

    The n-th automatic retry (0-based attempt index ``n``) is scheduled after
    ``base_delay_ms * 2 ** n`` milliseconds, limited to ``max_delay_ms`` when
    set. Once ``max_attempts`` retries have been scheduled without a
    successful connection, no further retry is scheduled until ``reset()``.
    """

    def __init__(self, loop, max_attempts: int = 5, base_delay_ms: float = 1000,
                 max_delay_ms: Optional[float] = None):
        self._loop = loop
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

        self._attempts = 0
        self._handle = None

    @property
    def attempts(self) -> int:
        """Number of retries scheduled since the last reset."""
        return self._attempts

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def exhausted(self) -> bool:
        return self._attempts >= self.max_attempts

    def compute_delay(self, attempt_index: int) -> float:
        """
        Delay in milliseconds for a 0-based attempt index.

        Args:
            attempt_index: Counter value before it is incremented for this attempt

        Returns:
            float: Backoff delay in milliseconds
        """
        delay = self.base_delay_ms * (2 ** attempt_index)
        if self.max_delay_ms is not None:
            delay = min(delay, self.max_delay_ms)
        return delay

    def schedule(self, callback: Callable[[], None]) -> Optional[float]:
        """
        Schedule ``callback`` after the next backoff delay.

        Args:
            callback: Function invoked when the delay elapses

        Returns:
            Optional[float]: The delay in milliseconds, or None if a retry is
            already pending or every attempt is used up
        """
        if self._handle is not None:
            logger.debug("Reconnect already pending, not scheduling another")
            return None

        if self.exhausted:
            logger.info("Max reconnection attempts reached (%d)", self.max_attempts)
            return None

        delay = self.compute_delay(self._attempts)
        self._attempts += 1

        def fire() -> None:
            self._handle = None
            callback()

        self._handle = self._loop.call_later(delay / 1000.0, fire)
        logger.info("Reconnecting in %.0fms (attempt %d/%d)", delay, self._attempts,
                    self.max_attempts)
        return delay

    def cancel(self) -> None:
        """Cancel the pending retry, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Pending reconnect cancelled")

    def reset(self) -> None:
        """Cancel the pending retry and reset the attempt count."""
        self.cancel()
        self._attempts = 0
