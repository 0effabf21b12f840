"""In-process publish/subscribe for idlefarm.

Core mutations publish events (``harvested``, ``leveledUp``) so the UI can
refresh without the core knowing about it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


def _valid_name(event: Any) -> bool:
    return isinstance(event, str) and bool(event.strip())


class EventBus:
    """Synchronous event bus with per-handler failure isolation."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> bool:
        """Register ``handler`` for ``event``.

        Returns False if the name or handler is invalid, or if the same
        handler is already subscribed to this event.
        """

        if not _valid_name(event):
            logger.warning("Invalid event name for subscribe: %r", event)
            return False
        if not callable(handler):
            logger.warning("Invalid handler for event %r", event)
            return False

        listeners = self._listeners.setdefault(event, [])
        if handler in listeners:
            logger.warning("Duplicate listener for event %r", event)
            return False
        listeners.append(handler)
        return True

    def unsubscribe(self, event: str, handler: Handler) -> bool:
        listeners = self._listeners.get(event)
        if not listeners or handler not in listeners:
            return False
        listeners.remove(handler)
        return True

    def publish(self, event: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every handler of ``event`` in order.

        Returns the number of handlers that completed without raising.
        """

        if not _valid_name(event):
            logger.warning("Invalid event name for publish: %r", event)
            return 0

        listeners = self._listeners.get(event)
        if not listeners:
            return 0

        delivered = 0
        # Iterate over a copy; handlers may subscribe or unsubscribe.
        for handler in list(listeners):
            try:
                handler(payload)
            except Exception:
                logger.exception("Listener for event %r failed", event)
                continue
            delivered += 1
        return delivered

    def clear(self, event: Optional[str] = None) -> None:
        """Remove all handlers, or only those of ``event``."""

        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def events(self) -> List[str]:
        return [name for name, listeners in self._listeners.items() if listeners]
