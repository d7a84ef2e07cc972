"""
Liveness monitoring for an open link.
"""
from typing import Callable, Optional

from biolink.utils.logging import get_logger

# Initialize module logger
logger = get_logger(__name__)

class HeartbeatMonitor:
    """
    Detects a link that reports itself open while no frames arrive.

    The monitor owns a single periodic timer on the event loop. On every tick
    it compares the time since the last received frame against the staleness
    threshold and calls ``on_stale`` with the elapsed milliseconds when the
    threshold is exceeded. It never changes the connection state itself.
    """

    def __init__(self, loop, interval_ms: float = 2000, stale_threshold_ms: float = 5000,
                 on_stale: Optional[Callable[[float], None]] = None):
        """
        Initialize the monitor.

        Args:
            loop: Event loop providing ``time()`` and ``call_later()``
            interval_ms: Period of the staleness check
            stale_threshold_ms: Silence after which the link counts as stale
            on_stale: Called with the elapsed milliseconds on each stale tick
        """
        self._loop = loop
        self.interval_ms = interval_ms
        self.stale_threshold_ms = stale_threshold_ms
        self.on_stale = on_stale

        self._handle = None
        self.last_seen = 0.0

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """Record the current time and arm the periodic check."""
        self.stop()
        self.last_seen = self._loop.time()
        self._arm()
        logger.debug("Heartbeat started (interval %.0fms, threshold %.0fms)",
                     self.interval_ms, self.stale_threshold_ms)

    def stop(self) -> None:
        """Cancel the periodic check; no further tick fires after this returns."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Heartbeat stopped")

    def touch(self) -> None:
        """Record that a frame was just received."""
        self.last_seen = self._loop.time()

    def elapsed_ms(self) -> float:
        """Milliseconds since the last received frame."""
        return (self._loop.time() - self.last_seen) * 1000.0

    def _arm(self) -> None:
        self._handle = self._loop.call_later(self.interval_ms / 1000.0, self._tick)

    def _tick(self) -> None:
        if self._handle is None:
            return
        # Re-arm first so on_stale may stop the monitor
        self._arm()

        elapsed = self.elapsed_ms()
        if elapsed > self.stale_threshold_ms:
            logger.warning("No data received for %.0fms, connection may be stale", elapsed)
            if self.on_stale:
                self.on_stale(elapsed)
