"""
Event Bus — publish/subscribe for scheduler events.

Combines two patterns:
1. Observer (pub/sub): handlers subscribe to event types or wildcards
2. Middleware chain: events pass through middleware before delivery

A failing subscriber is logged and never reaches the emitter, so a
broken listener cannot stall the tick loop.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from typing import Awaitable, Callable

from cronkit.core.events import Event

logger = logging.getLogger(__name__)

# Type aliases
EventHandler = Callable[[Event], Awaitable[None]]
MiddlewareNext = Callable[[Event], Awaitable[Event]]
MiddlewareFunc = Callable[[Event, MiddlewareNext], Awaitable[Event]]


class EventBus:
    """
    Publish/subscribe event bus with middleware pipeline.

    Usage:
        bus = EventBus()
        bus.on("job:completed", on_done)
        bus.on("job:*", audit)
        bus.use(event_logger.middleware)

        await bus.emit(Event(type="job:completed", data={...}))
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._middleware: list[MiddlewareFunc] = []

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to an event type. Supports wildcards: 'job:*', '*'."""
        self._subscribers.setdefault(event_type, []).append(handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        """Unsubscribe a handler."""
        handlers = [h for h in self._subscribers.get(event_type, []) if h is not handler]
        if handlers:
            self._subscribers[event_type] = handlers
        else:
            self._subscribers.pop(event_type, None)

    def use(self, middleware: MiddlewareFunc) -> None:
        """
        Add middleware to the processing pipeline.

        Middleware signature:
            async def my_middleware(event: Event, next: MiddlewareNext) -> Event:
                return await next(event)
        """
        self._middleware.append(middleware)

    async def emit(self, event: Event) -> Event:
        """
        Run the event through middleware (registration order), then
        deliver to all matching subscribers concurrently.
        """
        handler: MiddlewareNext = self._deliver
        for mw in reversed(self._middleware):
            handler = self._wrap(mw, handler)
        return await handler(event)

    @staticmethod
    def _wrap(mw: MiddlewareFunc, next_handler: MiddlewareNext) -> MiddlewareNext:
        async def run(event: Event) -> Event:
            return await mw(event, next_handler)

        return run

    async def _deliver(self, event: Event) -> Event:
        handlers = self._find_handlers(event.type)
        if handlers:
            results = await asyncio.gather(
                *(h(event) for h in handlers),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.error(
                        f"Subscriber error for {event.type}: {result}",
                        exc_info=result,
                    )
        return event

    def _find_handlers(self, event_type: str) -> list[EventHandler]:
        """All handlers whose pattern matches, wildcards included."""
        handlers: list[EventHandler] = []
        for pattern, subs in self._subscribers.items():
            if pattern == event_type or pattern == "*":
                handlers.extend(subs)
            elif "*" in pattern and fnmatch.fnmatch(event_type, pattern):
                handlers.extend(subs)
        return handlers

    @property
    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscribers.values())
