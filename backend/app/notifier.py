import asyncio
import itertools
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


class Subscription:
    """A listener's handle: a bounded inbox filled by ChangeNotifier.publish."""

    def __init__(self, subscription_id: int, max_queue_size: int):
        self.id = subscription_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self.dropped = 0

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        return await self.get()


class ChangeNotifier:
    """
    Broadcast "new data is available" signals to every registered listener.

    Delivery never blocks the publisher: a listener whose inbox is full misses
    that message but stays registered. Listeners only see messages published
    while they are subscribed.
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self.subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(self) -> Subscription:
        subscription = Subscription(next(self._ids), self.max_queue_size)
        self.subscriptions[subscription.id] = subscription
        logger.info(f"Listener connected: id={subscription.id} | Total: {len(self.subscriptions)}")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        self.subscriptions.pop(subscription.id, None)
        logger.info(f"Listener disconnected: id={subscription.id} | Total: {len(self.subscriptions)}")

    def publish(self, message: Dict[str, Any]) -> int:
        delivered = 0
        for subscription in list(self.subscriptions.values()):
            try:
                subscription.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.warning(f"Listener id={subscription.id} is not keeping up; dropped {message.get('type')}")
        return delivered

    def listener_count(self) -> int:
        return len(self.subscriptions)
