"""
Event Bus Port: publish/subscribe for domain events.

Reveal recording publishes RevealConfirmed; the post-reveal trigger consumes
it without the publisher waiting on the batch attempt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

from perp_keeper.domain.events import DomainEvent

T = TypeVar("T", bound=DomainEvent)
EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBusPort(ABC):
    """Abstract interface for the domain event bus."""

    @abstractmethod
    async def start(self) -> None:
        """Start background dispatch."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Drain queued events and stop dispatch."""
        ...

    @abstractmethod
    def subscribe(self, event_type: type[T], handler: Callable[[T], Awaitable[None]]) -> None:
        """Register an async handler for an event class."""
        ...

    @abstractmethod
    def unsubscribe(self, event_type: type[T], handler: Callable[[T], Awaitable[None]]) -> None:
        ...

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """
        Publish an event.

        Once started, publishing only enqueues; handlers run on the bus's
        own task and their failures never reach the publisher.
        """
        ...

    @abstractmethod
    def subscriber_count(self, event_type: type[DomainEvent]) -> int:
        ...
