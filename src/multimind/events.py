"""multimind: Minimal publish/subscribe used for engine lifecycle events."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Named-event observer list.

    Listeners run synchronously inside ``emit``. An exception raised by one
    listener is logged and does not stop the others.

    Example::

        events = EventEmitter()
        events.on("started", lambda: print("proxy up"))
        events.emit("started")
    """

    def __init__(self, max_listeners: int = 10, max_recursion_depth: int = 25) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self.max_listeners = max_listeners
        self._max_recursion_depth = max_recursion_depth
        self._depth = 0

    def on(self, event: str, listener: Listener) -> None:
        listeners = self._listeners[event]
        if len(listeners) >= self.max_listeners:
            logger.warning(f"Event '{event}' has exceeded {self.max_listeners} listeners")
        listeners.append(listener)

    def once(self, event: str, listener: Listener) -> None:
        """Subscribe for a single delivery."""

        def wrapper(*args: Any) -> None:
            self.off(event, wrapper)
            listener(*args)

        self.on(event, wrapper)

    def off(self, event: str, listener: Listener) -> None:
        if event in self._listeners:
            self._listeners[event] = [cb for cb in self._listeners[event] if cb is not listener]

    def emit(self, event: str, *args: Any) -> None:
        if not self._listeners.get(event):
            return

        self._depth += 1
        try:
            if self._depth > self._max_recursion_depth:
                logger.error(f"Maximum recursion depth exceeded for event '{event}'")
                return
            # Copy so listeners may unsubscribe while we iterate
            for listener in list(self._listeners[event]):
                try:
                    listener(*args)
                except Exception:
                    logger.exception(f"Error in event handler for '{event}'")
        finally:
            self._depth -= 1

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)
