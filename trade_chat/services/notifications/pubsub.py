"""In-memory pubsub for SSE, keyed by portfolio."""
import asyncio
import threading
from collections import defaultdict
from typing import Any, Dict, List, Tuple
from trade_chat.services.notifications.notifier import ChangeNotifier
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


def _deliver(queue: asyncio.Queue, event: Dict[str, Any]) -> None:
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        logger.warning("Subscriber queue full, dropping event %s", event.get("type"))


class EventPubSub:
    """Simple in-memory pubsub.

    Subscribers are asyncio queues bound to the loop they subscribed from;
    publish() may be called from any thread.
    """

    def __init__(self):
        self._queues: Dict[str, List[Tuple[asyncio.Queue, asyncio.AbstractEventLoop]]] = defaultdict(list)
        self._lock = threading.Lock()

    async def subscribe(self, portfolio_id: str) -> asyncio.Queue:
        """Subscribe to events for a portfolio."""
        queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        loop = asyncio.get_running_loop()
        with self._lock:
            self._queues[portfolio_id].append((queue, loop))
        return queue

    def publish(self, portfolio_id: str, event: Dict[str, Any]) -> None:
        """Hand the event to every subscriber's loop without waiting."""
        with self._lock:
            subscribers = list(self._queues.get(portfolio_id, ()))

        for queue, loop in subscribers:
            try:
                loop.call_soon_threadsafe(_deliver, queue, event)
            except RuntimeError as e:
                # Event loop already closed
                logger.warning(f"Dropping subscriber for {portfolio_id}: {e}")
                self._remove(portfolio_id, queue)

    async def unsubscribe(self, portfolio_id: str, queue: asyncio.Queue) -> None:
        """Remove a specific queue subscription."""
        self._remove(portfolio_id, queue)

    def _remove(self, portfolio_id: str, queue: asyncio.Queue) -> None:
        with self._lock:
            entries = self._queues.get(portfolio_id)
            if not entries:
                return
            self._queues[portfolio_id] = [e for e in entries if e[0] is not queue]
            if not self._queues[portfolio_id]:
                del self._queues[portfolio_id]

    def subscriber_count(self, portfolio_id: str) -> int:
        with self._lock:
            return len(self._queues.get(portfolio_id, ()))


class PubSubNotifier(ChangeNotifier):
    """ChangeNotifier backed by EventPubSub (feeds the SSE stream)."""

    def __init__(self, pubsub: EventPubSub):
        self.pubsub = pubsub

    def publish(self, portfolio_id: str, event: Dict[str, Any]) -> None:
        self.pubsub.publish(portfolio_id, event)


event_pubsub = EventPubSub()
