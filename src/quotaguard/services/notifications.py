"""Denial notifications for monitoring collaborators.

Listeners are fire-and-forget: a failing listener is logged and never
affects the rate limit decision or the remaining listeners.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DenialEvent:
    identifier: str
    namespace: str
    timestamp: int
    retry_after: int


DenialListener = Callable[[DenialEvent], None]

_listeners: list[DenialListener] = []


def add_denial_listener(listener: DenialListener) -> None:
    """Register a listener; registering the same one twice is a no-op."""
    if listener not in _listeners:
        _listeners.append(listener)


def remove_denial_listener(listener: DenialListener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def clear_denial_listeners() -> None:
    _listeners.clear()


def notify_denial(event: DenialEvent) -> None:
    """Deliver ``event`` to every registered listener."""
    for listener in list(_listeners):
        try:
            listener(event)
        except Exception:
            logger.exception(
                "Denial listener %r failed for %s on %s",
                listener,
                event.identifier,
                event.namespace,
            )
