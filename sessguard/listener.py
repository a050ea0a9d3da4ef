"""
sessguard - Event dispatch.

Named-event subscription with synchronous, fire-and-forget notification.
The Session engine announces lifecycle transitions here; handlers are
observers and never participate in the engine's state changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable


EVENT_CREATED = "sessguard.created"
EVENT_RESUMED = "sessguard.resumed"
EVENT_NO_DATA = "sessguard.no_data"
EVENT_REGENERATED = "sessguard.regenerated"
EVENT_SAVED = "sessguard.saved"
EVENT_DESTROYED = "sessguard.destroyed"
EVENT_EXPIRED = "sessguard.expired"
EVENT_INVALID_FINGERPRINT = "sessguard.invalid_fingerprint"


EventHandler = Callable[["Event"], None]


@dataclass
class Event:
    """A triggered event, as queued and as passed to handlers."""

    name: str
    payload: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Listener:
    """
    Event dispatcher.

    - Handlers run synchronously, in binding order
    - A failing handler is logged and skipped; later handlers still run
    - Every triggered event is appended to the queue

    Example:
        >>> listener = Listener()
        >>> listener.bind(EVENT_CREATED, lambda event: print(event.name))
        >>> listener.trigger(EVENT_CREATED, session)
        sessguard.created
        >>> [e.name for e in listener.get_queue()]
        ['sessguard.created']
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("sessguard.listener")
        self._handlers: dict[str, list[EventHandler]] = {}
        self._queue: list[Event] = []

    def bind(self, event_name: str, handler: EventHandler) -> None:
        """
        Register handler for event_name.

        Args:
            event_name: Event name (see EVENT_* constants)
            handler: Callable receiving the Event
        """
        self._handlers.setdefault(event_name, []).append(handler)

    def unbind(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def trigger(self, event_name: str, payload: Any = None) -> Event:
        """
        Queue event and notify its handlers.

        Args:
            event_name: Event name
            payload: Usually the Session

        Returns:
            The queued Event
        """
        event = Event(name=event_name, payload=payload)
        self._queue.append(event)
        self.logger.debug("Session event: %s", event_name)

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event)
            except Exception:
                self.logger.exception("Event handler error for %s", event_name)

        return event

    def get_queue(self) -> list[Event]:
        """Triggered events, oldest first."""
        return list(self._queue)

    def clear_queue(self) -> None:
        self._queue.clear()
