"""
FakeForge Event Bus

Synchronous publish/subscribe for lifecycle events.
"""

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger("fakeforge.events")

SERVER_STARTED = "server:started"
SERVER_SHUTDOWN = "server:shutdown"
SERVER_RELOADED = "server:reloaded"
DATABASE_INSERTED = "database:inserted"
DATABASE_FLUSHED = "database:flushed"

EVENT_NAMES = (
    SERVER_STARTED,
    SERVER_SHUTDOWN,
    SERVER_RELOADED,
    DATABASE_INSERTED,
    DATABASE_FLUSHED,
)

Handler = Callable[[Any], Any]
Disposer = Callable[[], None]


def _noop() -> None:
    return None


class EventBus:
    """
    Delivers published payloads to subscribed handlers.

    Handlers run synchronously, in subscription order. A handler added or
    removed while an event is being delivered takes effect from the next
    publish. Errors raised by a handler propagate to the publisher.

    Example:
        bus = EventBus()
        dispose = bus.subscribe(SERVER_STARTED, lambda payload: print(payload))
        bus.publish(SERVER_STARTED, {'port': 3000})
        dispose()
    """

    def __init__(self, lifecycle=None):
        """
        Initialize event bus.

        Args:
            lifecycle: Optional Lifecycle; the bus is cleared on shutdown
        """
        self._handlers: Dict[str, List[Handler]] = {name: [] for name in EVENT_NAMES}
        if lifecycle is not None:
            lifecycle.register(self.clear, "event bus")

    def subscribe(self, event: str, handler: Handler) -> Disposer:
        """
        Register a handler for an event.

        Args:
            event: One of EVENT_NAMES
            handler: Callable receiving the payload

        Returns:
            Disposer removing exactly this registration; calling it more
            than once has no further effect
        """
        handlers = self._handlers.get(event)
        if handlers is None:
            logger.warning(f"Ignoring subscription to unknown event '{event}'")
            return _noop

        handlers.append(handler)
        disposed = False

        def dispose() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            current = self._handlers.get(event, [])
            for index, registered in enumerate(current):
                if registered is handler:
                    del current[index]
                    break

        return dispose

    def publish(self, event: str, payload: Any = None) -> None:
        """
        Deliver a payload to every handler subscribed to ``event``.

        Args:
            event: Event name
            payload: Value passed to each handler
        """
        handlers = self._handlers.get(event)
        if handlers is None:
            logger.warning(f"Publishing unknown event '{event}'")
            return
        logger.debug(f"Publishing {event} to {len(handlers)} handler(s)")
        for handler in list(handlers):
            handler(payload)

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def clear(self) -> None:
        """Detach every handler."""
        for handlers in self._handlers.values():
            handlers.clear()
