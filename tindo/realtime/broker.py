"""
Tindo Realtime - Pub/sub brokers

At-most-once fan-out to whoever is subscribed at publish time. Nothing is
queued for absent subscribers and nothing is replayed on reconnect.

  LocalBroker  asyncio queues, for a single API process
  RedisBroker  Redis PUBLISH/SUBSCRIBE, for several API processes
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Iterable

from pydantic import ValidationError as PydanticValidationError
from redis.asyncio.client import PubSub

from tindo.core.redis_client import get_redis, new_pubsub
from tindo.realtime.events import Envelope

logger = logging.getLogger(__name__)


class Subscription(ABC):
    """One connection's registration on a set of topics."""

    def __init__(self, topics: Iterable[str]):
        self.topics = tuple(dict.fromkeys(topics))
        self.closed = False

    @abstractmethod
    async def get(self, timeout: float) -> Envelope | None:
        """Next envelope, or None if nothing arrived within `timeout` seconds."""

    @abstractmethod
    async def close(self) -> None: ...

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class Broker(ABC):
    @abstractmethod
    async def publish(self, envelope: Envelope) -> int:
        """Fan out; returns how many subscribers it reached (0 is fine)."""

    @abstractmethod
    async def subscribe(self, topics: Iterable[str]) -> Subscription: ...

    async def close(self) -> None:
        pass


# ─── In-process ────────────────────────────────────────────────────────────────

class _LocalSubscription(Subscription):
    def __init__(self, broker: "LocalBroker", topics: Iterable[str], queue_size: int):
        super().__init__(topics)
        self._broker = broker
        self._queue: asyncio.Queue[Envelope] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def offer(self, envelope: Envelope) -> bool:
        try:
            self._queue.put_nowait(envelope)
            return True
        except asyncio.QueueFull:
            # Slow consumer: drop rather than make the publisher wait
            self.dropped += 1
            logger.warning("Subscriber queue full on %s, dropped %s event", envelope.topic, envelope.event.kind)
            return False

    async def get(self, timeout: float) -> Envelope | None:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._broker._remove(self)


class LocalBroker(Broker):
    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._subscribers: dict[str, set[_LocalSubscription]] = defaultdict(set)

    async def publish(self, envelope: Envelope) -> int:
        delivered = 0
        for sub in list(self._subscribers.get(envelope.topic, ())):
            if sub.offer(envelope):
                delivered += 1
        return delivered

    async def subscribe(self, topics: Iterable[str]) -> Subscription:
        sub = _LocalSubscription(self, topics, self._queue_size)
        for topic in sub.topics:
            self._subscribers[topic].add(sub)
        return sub

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def _remove(self, sub: _LocalSubscription) -> None:
        for topic in sub.topics:
            subs = self._subscribers.get(topic)
            if subs is None:
                continue
            subs.discard(sub)
            if not subs:
                del self._subscribers[topic]


# ─── Redis ─────────────────────────────────────────────────────────────────────

class _RedisSubscription(Subscription):
    def __init__(self, pubsub: PubSub, topics: Iterable[str]):
        super().__init__(topics)
        self._pubsub = pubsub

    async def get(self, timeout: float) -> Envelope | None:
        if not self.topics:
            await asyncio.sleep(timeout)
            return None
        message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        if not message or message["type"] != "message":
            return None
        try:
            return Envelope.model_validate_json(message["data"])
        except PydanticValidationError:
            logger.warning("Discarding malformed event on %s", message.get("channel"))
            return None

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._pubsub.unsubscribe(*self.topics)
        finally:
            await self._pubsub.aclose()


class RedisBroker(Broker):
    async def publish(self, envelope: Envelope) -> int:
        return await get_redis().publish(envelope.topic, envelope.model_dump_json())

    async def subscribe(self, topics: Iterable[str]) -> Subscription:
        pubsub = new_pubsub()
        sub = _RedisSubscription(pubsub, topics)
        if sub.topics:
            await pubsub.subscribe(*sub.topics)
        return sub
