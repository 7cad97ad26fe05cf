"""
In-process change feed.

Topic-keyed publish/subscribe over asyncio queues. Each subscriber queue
holds at most one pending snapshot: a newer snapshot replaces a stale one,
so a slow consumer always catches up to the latest state without the
publisher ever blocking.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Hashable

logger = logging.getLogger(__name__)


class ChangeFeed:

    def __init__(self):
        self._subscribers: dict[Hashable, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, topic: Hashable) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._subscribers[topic].add(queue)
        logger.debug(f"Feed subscribe {topic} ({len(self._subscribers[topic])} active)")
        return queue

    def unsubscribe(self, topic: Hashable, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(topic)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[topic]
        logger.debug(f"Feed unsubscribe {topic}")

    def has_subscribers(self, topic: Hashable) -> bool:
        return bool(self._subscribers.get(topic))

    def subscriber_count(self, topic: Hashable) -> int:
        return len(self._subscribers.get(topic, ()))

    def topics(self) -> list[Hashable]:
        """Topics that currently have at least one subscriber."""
        return list(self._subscribers)

    def publish(self, topic: Hashable, payload: Any) -> int:
        """Deliver payload to every subscriber of topic. Returns the count."""
        subscribers = self._subscribers.get(topic, ())
        for queue in subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(payload)
        return len(subscribers)
