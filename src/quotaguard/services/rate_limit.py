"""Fixed-window rate limit evaluation.

A caller may issue up to ``2 * max_requests`` requests across a window
boundary. That burst is part of the fixed-window contract; a smoother
algorithm can be substituted behind the same ``WindowStore``.
"""

import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from threading import Lock

from quotaguard.schemas.limits import LimitRule, RateLimitConfig
from quotaguard.services.notifications import DenialEvent, notify_denial
from quotaguard.services.store import InMemoryWindowStore, StoreStats, WindowStore, build_bucket_key

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"


def _now_ms() -> int:
    return int(time.time() * 1000)


def retry_after_seconds(reset_at: int, now: int) -> int:
    """Whole seconds until ``reset_at``, never negative."""
    return max(0, math.ceil((reset_at - now) / 1000))


@dataclass
class WindowResult:
    """Result of evaluating one limit for one identifier."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    namespace: str
    identifier: str
    config: RateLimitConfig
    invalid_config: bool = False


@dataclass
class CompositeResult:
    """Result of evaluating an ordered list of limits."""

    allowed: bool
    results: list[WindowResult] = field(default_factory=list)
    denied: WindowResult | None = None

    @property
    def decisive(self) -> WindowResult | None:
        """The denial, or on allow the passed check with the least remaining."""
        if self.denied is not None:
            return self.denied
        if not self.results:
            return None
        return min(self.results, key=lambda r: (r.remaining, r.reset_at))


class RateLimiter:
    """Evaluates fixed-window limits against a ``WindowStore``."""

    def __init__(
        self,
        store: WindowStore | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store if store is not None else InMemoryWindowStore()
        self._clock = clock or _now_ms
        self._reported_invalid: set[RateLimitConfig] = set()
        self._reported_lock = Lock()

    def now(self) -> int:
        return self._clock()

    def _report_invalid(self, config: RateLimitConfig, namespace: str) -> None:
        with self._reported_lock:
            if config in self._reported_invalid:
                return
            self._reported_invalid.add(config)
        logger.error(
            "Invalid rate limit config for namespace %s (window_ms=%d, max_requests=%d); "
            "denying all requests under it",
            namespace,
            config.window_ms,
            config.max_requests,
        )

    def check(
        self,
        identifier: str,
        config: RateLimitConfig,
        namespace: str | None = None,
        now: int | None = None,
    ) -> WindowResult:
        """Count one request for ``identifier`` under ``config``."""
        namespace = namespace or config.namespace or DEFAULT_NAMESPACE
        now = self.now() if now is None else now

        if not config.is_valid:
            self._report_invalid(config, namespace)
            result = WindowResult(
                allowed=False,
                limit=max(0, config.max_requests),
                remaining=0,
                reset_at=now,
                retry_after=0,
                namespace=namespace,
                identifier=identifier,
                config=config,
                invalid_config=True,
            )
            self._on_denied(result, now)
            return result

        update = self.store.check_and_increment(build_bucket_key(namespace, identifier), config, now)
        # Report against the config that governs the live window.
        governing = update.config
        reset_at = update.window_start + governing.window_ms
        result = WindowResult(
            allowed=update.allowed,
            limit=governing.max_requests,
            remaining=max(0, governing.max_requests - update.count),
            reset_at=reset_at,
            retry_after=0 if update.allowed else retry_after_seconds(reset_at, now),
            namespace=namespace,
            identifier=identifier,
            config=governing,
        )
        if not result.allowed:
            self._on_denied(result, now)
        return result

    def check_composite(
        self,
        identifier: str,
        rules: Sequence[LimitRule],
        now: int | None = None,
    ) -> CompositeResult:
        """Evaluate ``rules`` in order, stopping at the first denial.

        Checks that passed before the denial keep their increments.
        """
        now = self.now() if now is None else now
        composite = CompositeResult(allowed=True)
        for rule in rules:
            result = self.check(identifier, rule.config, rule.namespace, now=now)
            composite.results.append(result)
            if not result.allowed:
                composite.allowed = False
                composite.denied = result
                break
        return composite

    def _on_denied(self, result: WindowResult, now: int) -> None:
        logger.warning(
            "Rate limit exceeded for %s on %s (%ds until reset)",
            result.identifier,
            result.namespace,
            result.retry_after,
        )
        notify_denial(
            DenialEvent(
                identifier=result.identifier,
                namespace=result.namespace,
                timestamp=now,
                retry_after=result.retry_after,
            )
        )

    def reset(self, identifier: str, namespace: str = DEFAULT_NAMESPACE) -> None:
        """Forget the counter for ``identifier`` under ``namespace``."""
        self.store.delete(build_bucket_key(namespace, identifier))

    def stats(self) -> StoreStats:
        return self.store.stats(self.now())

    def cleanup(self, grace_ms: int = 0) -> int:
        """Remove expired windows now; returns the number removed."""
        removed = self.store.sweep_expired(self.now(), grace_ms)
        if removed:
            logger.info("Rate limit cleanup: removed %d expired entries", removed)
        return removed


_limiter: RateLimiter | None = None
_limiter_lock = Lock()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter, creating it on first use."""
    global _limiter
    with _limiter_lock:
        if _limiter is None:
            _limiter = RateLimiter()
        return _limiter


def reset_rate_limiter(limiter: RateLimiter | None = None) -> RateLimiter:
    """Replace the process-wide limiter (fresh store unless one is given)."""
    global _limiter
    with _limiter_lock:
        _limiter = limiter if limiter is not None else RateLimiter()
        return _limiter
