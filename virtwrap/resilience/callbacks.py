"""Registry of lifecycle event callbacks replayed after a reconnect.

A reconnect replaces the underlying session, so every subscription made on
the old session is gone. The registry is drained on reconnect and each
drained callback is notified with the ``RECONNECTED`` sentinel; subscribers
re-register themselves in response, which puts them back in the registry.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class LifecycleEvent:
    """A domain lifecycle event, or the reconnect notification."""

    event: int = 0
    detail: int = 0
    reconnected: bool = False


RECONNECTED = LifecycleEvent(reconnected=True)

# (session, domain, event); domain is None for the reconnect notification
LifecycleCallback = Callable[[Any, Optional[Any], LifecycleEvent], None]


class CallbackRegistry:
    """Ordered collection of registered lifecycle callbacks.

    Not thread-safe on its own: the owning connection guards it with the
    same lock that guards the session and the alive flag.
    """

    def __init__(self):
        self._callbacks: list[LifecycleCallback] = []

    def add(self, callback: LifecycleCallback) -> None:
        """Register a callback for the next replay."""
        self._callbacks.append(callback)

    def drain(self) -> list[LifecycleCallback]:
        """Take every registered callback and leave the registry empty."""
        drained, self._callbacks = self._callbacks, []
        return drained

    def __len__(self) -> int:
        return len(self._callbacks)
