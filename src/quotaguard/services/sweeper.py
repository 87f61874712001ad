"""Background sweeper that bounds the memory used by expired windows."""

import asyncio
import contextlib
import logging

from quotaguard.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class Sweeper:
    """Periodically removes windows expired more than ``grace_ms`` ago.

    Sweeping only reclaims memory: an expired window that has not been
    swept yet is still reset on its next evaluation.
    """

    def __init__(self, limiter: RateLimiter, interval_seconds: float = 60.0, grace_ms: int = 0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if grace_ms < 0:
            raise ValueError("grace_ms must not be negative")
        self.limiter = limiter
        self.interval_seconds = interval_seconds
        self.grace_ms = grace_ms
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Sweep now. Returns the number of removed entries; never raises."""
        try:
            return self.limiter.cleanup(self.grace_ms)
        except Exception:
            logger.exception("Rate limit sweep failed")
            return 0

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            # The store is lock-safe; keep the O(n) scan off the event loop.
            await asyncio.to_thread(self.run_once)

    def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="quotaguard-sweeper")
        logger.debug("Rate limit sweeper started (every %.1fs)", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.debug("Rate limit sweeper stopped")
