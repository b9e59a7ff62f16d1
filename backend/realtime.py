"""In-process live session registry.

Dashboards subscribe over a websocket; every accepted scan is published to
all current subscriptions. Nothing is persisted or replayed: a subscriber
whose buffer is full simply misses the event, and a reconnecting dashboard
resyncs through the query API.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

NEW_SCAN_EVENT = "new-scan"
DEFAULT_QUEUE_SIZE = 100


@dataclass(frozen=True)
class LiveEvent:
    name: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        return {"event": self.name, "data": self.data}


class Subscription:
    def __init__(self, hub: "LiveHub", subscription_id: int, queue_size: int):
        self.id = subscription_id
        self._hub = hub
        self._queue: asyncio.Queue[LiveEvent] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def offer(self, event: LiveEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> LiveEvent:
        return await self._queue.get()

    def get_nowait(self) -> LiveEvent:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def cancel(self) -> None:
        self._hub._remove(self.id)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()


class LiveHub:
    """Fan-out of live events to every connected session.

    ``publish`` never blocks and never raises for a slow subscriber. It must
    be called from the event loop thread that owns the subscriptions.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, next(self._ids), self.queue_size)
        self._subscriptions[subscription.id] = subscription
        logger.debug("Live session %s subscribed (%s active)", subscription.id, len(self._subscriptions))
        return subscription

    def _remove(self, subscription_id: int) -> None:
        if self._subscriptions.pop(subscription_id, None) is not None:
            logger.debug("Live session %s unsubscribed (%s active)", subscription_id, len(self._subscriptions))

    def session_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: LiveEvent) -> int:
        """Offer ``event`` to every subscription. Returns how many accepted it."""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.offer(event):
                delivered += 1
            else:
                logger.warning("Live session %s is behind; dropped %s event", subscription.id, event.name)
        return delivered
