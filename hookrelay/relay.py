"""Bounded hand-off between the webhook endpoint and the chat notifier.

``RelayQueue`` is the default: a FIFO buffer with a fixed capacity, many
producers (concurrent HTTP requests) and one consumer (the notifier).
Enqueueing never waits; a full queue raises ``RelayFull`` so the caller
can answer with a retryable error instead of buffering without bound.

``Broadcaster`` is the fan-out alternative. Every subscriber gets its own
bounded queue and sees every event enqueued after it subscribed.

All methods must be called from the event loop thread.
"""

import asyncio
import logging
from collections import deque

from hookrelay.errors import RelayClosed, RelayFull
from hookrelay.models.event import Event

logger = logging.getLogger(__name__)


class RelayQueue:
    """Bounded FIFO queue of events with close semantics."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._items: deque[Event] = deque()
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    def full(self) -> bool:
        return len(self._items) >= self._capacity

    def enqueue(self, event: Event) -> None:
        """Append an event without waiting.

        Raises RelayClosed after close() and RelayFull at capacity.
        """
        if self._closed:
            raise RelayClosed("relay is closed")
        if self.full():
            raise RelayFull(f"relay is at capacity ({self._capacity})")
        self._items.append(event)
        self._ready.set()

    async def dequeue(self) -> Event:
        """Wait for the oldest event and take it.

        Raises RelayClosed once the queue is closed, including for
        callers already waiting.
        """
        while True:
            if self._closed:
                raise RelayClosed("relay is closed")
            if self._items:
                event = self._items.popleft()
                if not self._items:
                    self._ready.clear()
                return event
            await self._ready.wait()

    def close(self) -> None:
        """Close the queue, dropping undelivered events."""
        if self._closed:
            return
        self._closed = True
        dropped = len(self._items)
        self._items.clear()
        self._ready.set()
        if dropped:
            logger.warning(f"Relay closed with {dropped} undelivered event(s)")

    def subscribe(self) -> "RelayQueue":
        # Single consumer: the queue is its own subscription.
        return self

    def unsubscribe(self, subscription: "RelayQueue") -> None:
        pass


class Broadcaster:
    """Fan-out relay: each subscriber has an independent bounded cursor."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._subscribers: list[RelayQueue] = []
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> RelayQueue:
        """Register a new subscriber. It sees only events enqueued from now on."""
        if self._closed:
            raise RelayClosed("relay is closed")
        subscription = RelayQueue(self._capacity)
        self._subscribers.append(subscription)
        logger.info(f"Subscriber added, {len(self._subscribers)} active")
        return subscription

    def unsubscribe(self, subscription: RelayQueue) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            logger.info(f"Subscriber removed, {len(self._subscribers)} active")
        subscription.close()

    def enqueue(self, event: Event) -> None:
        """Hand the event to every subscriber.

        A subscriber whose queue is full misses the event. If no subscriber
        takes it, RelayFull is raised so the caller sees backpressure.
        """
        if self._closed:
            raise RelayClosed("relay is closed")

        accepted = 0
        for subscription in self._subscribers:
            try:
                subscription.enqueue(event)
                accepted += 1
            except RelayFull:
                logger.warning(f"Subscriber lagging, skipped {event.describe()}")

        if not accepted:
            raise RelayFull(f"no subscriber accepted {event.describe()}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers:
            subscription.close()
        self._subscribers.clear()
