"""
In-Memory Event Bus Implementation.

Simple pub/sub for domain events. Handlers are async; each dispatch runs as
its own task so a slow handler (a batch attempt) never holds up the queue.
Handler exceptions are logged, not propagated.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TypeVar

from perp_keeper.domain.events import DomainEvent
from perp_keeper.observability.logging import get_logger
from perp_keeper.ports.event_bus import EventBusPort

logger = get_logger(__name__)

T = TypeVar("T", bound=DomainEvent)


class InMemoryEventBus(EventBusPort):
    """
    In-memory async event bus.

    Features:
    - Type-keyed subscriptions
    - Exception isolation (one failing handler doesn't affect others)
    - Handler tasks tracked and awaited on shutdown
    """

    def __init__(self, drain_timeout: float = 5.0):
        self._handlers: dict[type[DomainEvent], set[Callable[[DomainEvent], Awaitable[None]]]] = defaultdict(set)
        self._running = False
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue()
        self._processor_task: asyncio.Task | None = None
        self._active_tasks: set[asyncio.Task] = set()
        self._drain_timeout = drain_timeout

    async def start(self) -> None:
        """Start the event bus processor."""
        if self._running:
            return

        self._running = True
        self._processor_task = asyncio.create_task(self._process_events(), name="event_bus_processor")
        logger.debug("Event bus started")

    async def stop(self) -> None:
        """Stop the event bus, dispatch anything still queued and wait for handlers."""
        if not self._running:
            return

        self._running = False

        if self._processor_task:
            self._processor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._processor_task
            self._processor_task = None

        while not self._queue.empty():
            self._dispatch(self._queue.get_nowait())

        await self._wait_for_handlers(self._drain_timeout)
        logger.debug("Event bus stopped")

    def subscribe(
        self,
        event_type: type[T],
        handler: Callable[[T], Awaitable[None]],
    ) -> None:
        self._handlers[event_type].add(handler)  # type: ignore[arg-type]
        logger.debug(f"Subscribed to {event_type.__name__}")

    def unsubscribe(
        self,
        event_type: type[T],
        handler: Callable[[T], Awaitable[None]],
    ) -> None:
        self._handlers[event_type].discard(handler)  # type: ignore[arg-type]

    async def publish(self, event: DomainEvent) -> None:
        """
        Publish an event to all subscribers.

        When running, events are queued and processed asynchronously.
        Before start() (tests, one-shot commands) handlers run inline.
        """
        if not self._running:
            await self._run_inline(event)
            return

        await self._queue.put(event)

    def subscriber_count(self, event_type: type[DomainEvent]) -> int:
        return len(self._handlers.get(event_type, set()))

    @property
    def pending_handlers(self) -> int:
        return len(self._active_tasks)

    async def _process_events(self) -> None:
        while self._running:
            try:
                event = await self._queue.get()
                self._dispatch(event)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Event processor error: {e}")

    def _dispatch(self, event: DomainEvent) -> None:
        handlers = self._handlers.get(type(event), set())
        if not handlers:
            logger.debug(f"No handlers for {event.event_type}")
            return

        for handler in list(handlers):
            task = asyncio.create_task(self._safe_call(handler, event), name=f"event_{event.event_type}")
            self._active_tasks.add(task)
            task.add_done_callback(self._active_tasks.discard)

    async def _run_inline(self, event: DomainEvent) -> None:
        for handler in list(self._handlers.get(type(event), set())):
            await self._safe_call(handler, event)

    async def _wait_for_handlers(self, timeout: float) -> None:
        if not self._active_tasks:
            return

        pending = set(self._active_tasks)
        _done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} event handler(s) still running at shutdown")
            await asyncio.gather(*still_running, return_exceptions=True)

    async def _safe_call(
        self,
        handler: Callable[[DomainEvent], Awaitable[None]],
        event: DomainEvent,
    ) -> None:
        """Call handler with exception isolation."""
        try:
            await handler(event)
        except Exception as e:
            handler_name = getattr(handler, "__name__", repr(handler))
            logger.exception(f"Handler {handler_name} failed for {event.event_type}: {e}")
