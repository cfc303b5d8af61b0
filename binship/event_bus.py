"""
In-process event bus.

Publishers never block: every subscriber owns a bounded queue, and when a
queue is full its oldest entry is dropped to make room. Sequence numbers are
assigned per stream so each stream stays individually ordered even when the
pipeline and health streams interleave.
"""

import asyncio
from collections import defaultdict
from typing import Dict, List, Optional

from binship.constants import SUBSCRIBER_QUEUE_SIZE
from binship.events import Event


class Subscription:
    """A reader attached to the bus."""

    def __init__(self, bus: "EventBus", maxsize: int):
        self._bus = bus
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: Event) -> None:
        """Enqueue without blocking, evicting the oldest entry if full."""
        while True:
            try:
                self.queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                try:
                    self.queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    async def get(self) -> Event:
        return await self.queue.get()

    def drain(self) -> List[Event]:
        """Return every queued event without waiting."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    def close(self) -> None:
        self._bus.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        return await self.queue.get()


class EventBus:
    """
    Many-subscriber channel of pipeline and health events.

    Usage::

        bus = EventBus()
        sub = bus.subscribe()
        bus.publish(StageStarted(stage=Stage.BUILDING))
        event = await sub.get()
    """

    def __init__(self, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self.maxsize = maxsize
        self._subscribers: List[Subscription] = []
        self._sequences: Dict[str, int] = defaultdict(int)

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(self, maxsize or self.maxsize)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        try:
            self._subscribers.remove(subscription)
            return True
        except ValueError:
            return False

    def publish(self, event: Event, stream: Optional[str] = None) -> Event:
        """
        Stamp and fan out an event.

        Args:
            event: Event to publish
            stream: Override the event's default stream

        Returns:
            The stamped event
        """
        if stream:
            event.stream = stream
        self._sequences[event.stream] += 1
        event.seq = self._sequences[event.stream]

        for subscription in list(self._subscribers):
            subscription.offer(event)
        return event

    def last_sequence(self, stream: str) -> int:
        return self._sequences.get(stream, 0)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
