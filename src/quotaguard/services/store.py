"""Window storage for fixed-window rate limiting.

``WindowStore`` is the storage seam: the evaluator only talks to this
interface, so a shared key-value backend can replace the in-memory map
without changing how limits are evaluated. ``InMemoryWindowStore`` is
process-local; every instance of a horizontally scaled service enforces its
own independent limit, and a restart resets all counters.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock

from quotaguard.schemas.limits import RateLimitConfig

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 500


def build_bucket_key(namespace: str, identifier: str) -> str:
    """Address one counter: ``<namespace>:<identifier>``."""
    return f"{namespace}:{identifier}"


@dataclass
class WindowState:
    """Counter for one bucket key within its current window."""

    count: int
    window_start: int
    config: RateLimitConfig

    @property
    def reset_at(self) -> int:
        return self.window_start + self.config.window_ms

    def is_expired(self, now: int) -> bool:
        return now - self.window_start >= self.config.window_ms


@dataclass
class CounterUpdate:
    """Outcome of one check-and-increment."""

    allowed: bool
    count: int
    window_start: int
    config: RateLimitConfig


@dataclass
class StoreStats:
    total_entries: int
    active_entries: int


class WindowStore(ABC):
    """Storage interface for window counters."""

    @abstractmethod
    def get(self, key: str) -> WindowState | None:
        """Return a copy of the state for ``key``, or None."""

    @abstractmethod
    def check_and_increment(self, key: str, config: RateLimitConfig, now: int) -> CounterUpdate:
        """Apply one fixed-window step for ``key`` atomically."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def sweep_expired(self, now: int, grace_ms: int = 0) -> int:
        """Delete windows expired more than ``grace_ms`` ago; return the count removed."""

    @abstractmethod
    def stats(self, now: int) -> StoreStats:
        """Return entry counts."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""


def _is_stale(state: WindowState, now: int, grace_ms: int) -> bool:
    return now - state.reset_at > grace_ms


class InMemoryWindowStore(WindowStore):
    """Dict-backed store guarded by a single lock.

    The lock covers every read-modify-write, so concurrent evaluations of the
    same key can never over-admit.
    """

    def __init__(self) -> None:
        self._windows: dict[str, WindowState] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def get(self, key: str) -> WindowState | None:
        with self._lock:
            state = self._windows.get(key)
            if state is None:
                return None
            return WindowState(count=state.count, window_start=state.window_start, config=state.config)

    def check_and_increment(self, key: str, config: RateLimitConfig, now: int) -> CounterUpdate:
        with self._lock:
            state = self._windows.get(key)

            if state is None or state.is_expired(now):
                state = WindowState(count=1, window_start=now, config=config)
                self._windows[key] = state
                return CounterUpdate(allowed=True, count=1, window_start=now, config=config)

            # The config that opened the window governs it until expiry.
            if state.count < state.config.max_requests:
                state.count += 1
                return CounterUpdate(
                    allowed=True, count=state.count, window_start=state.window_start, config=state.config
                )

            return CounterUpdate(
                allowed=False, count=state.count, window_start=state.window_start, config=state.config
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def sweep_expired(self, now: int, grace_ms: int = 0) -> int:
        # Snapshot first, then delete in short locked batches so request
        # evaluation is never blocked for a full scan.
        with self._lock:
            snapshot = list(self._windows.items())

        candidates = []
        for key, state in snapshot:
            try:
                if _is_stale(state, now, grace_ms):
                    candidates.append(key)
            except Exception:
                logger.exception("Failed to inspect rate limit entry %s during sweep", key)

        removed = 0
        for start in range(0, len(candidates), SWEEP_BATCH_SIZE):
            batch = candidates[start:start + SWEEP_BATCH_SIZE]
            with self._lock:
                for key in batch:
                    try:
                        state = self._windows.get(key)
                        # Re-check: the window may have been reset since the snapshot.
                        if state is not None and _is_stale(state, now, grace_ms):
                            del self._windows[key]
                            removed += 1
                    except Exception:
                        logger.exception("Failed to remove rate limit entry %s during sweep", key)

        return removed

    def stats(self, now: int) -> StoreStats:
        with self._lock:
            states = list(self._windows.values())
        active = sum(1 for state in states if not state.is_expired(now))
        return StoreStats(total_entries=len(states), active_entries=active)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
