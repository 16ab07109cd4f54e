"""In-process delivery of meeting lifecycle events to live observers."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from cabinet.events.base import Event

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Event)
Handler = Callable[[E], None] | Callable[[E], Awaitable[None]]


class EventBus:
    """Fan events out to handlers registered per event class.

    A handler registered for a class also receives events of its
    subclasses, so subscribing to ``Event`` observes every meeting. Handlers
    run concurrently and a failing handler is logged without affecting the
    others or the publisher.
    """

    def __init__(self):
        self._handlers: dict[type[Event], list[Handler]] = {}

    def subscribe(self, event_type: type[E], handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Handler {_name(handler)} subscribed to {event_type.__name__}")

    def unsubscribe(self, event_type: type[E], handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, event_type: type[Event]) -> int:
        """Handlers registered directly on ``event_type``."""
        return len(self._handlers.get(event_type, []))

    def handlers_for(self, event: Event) -> list[Handler]:
        """Handlers that receive ``event``, most specific class first."""
        matched: list[Handler] = []
        for cls in type(event).__mro__:
            matched.extend(self._handlers.get(cls, []))
        return matched

    async def publish(self, event: Event) -> int:
        """Deliver an event and wait for its handlers.

        Returns:
            Number of handlers that failed
        """
        handlers = self.handlers_for(event)
        if not handlers:
            return 0

        results = await asyncio.gather(
            *(self._invoke(handler, event) for handler in handlers),
            return_exceptions=True,
        )
        failures = 0
        for handler, result in zip(handlers, results, strict=True):
            if isinstance(result, Exception):
                failures += 1
                logger.error(
                    f"{_name(handler)} failed on {event.event_type} "
                    f"for meeting {event.meeting_id}: {result}"
                )
        return failures

    async def _invoke(self, handler: Handler, event: Event) -> None:
        outcome = handler(event)
        if inspect.isawaitable(outcome):
            await outcome


def _name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", repr(handler))
