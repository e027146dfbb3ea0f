"""
Tindo Realtime - Broadcast channel

Routes typed events onto topics through the configured broker. The
announce_* helpers are what the rest of the service calls; they never
raise, since a broadcast failure must not undo or block an order write.
"""
import logging
from typing import Iterable

from tindo.core.config import get_settings
from tindo.core.session import ClientSession
from tindo.realtime import topics as t
from tindo.realtime.broker import Broker, LocalBroker, RedisBroker, Subscription
from tindo.realtime.events import (
    AgentAvailabilityEvent,
    Envelope,
    Event,
    LocationUpdateEvent,
    NewOrderEvent,
    OrderUpdateEvent,
)
from tindo.schemas.order import OrderOut
from tindo.schemas.tracking import LocationSample

settings = get_settings()
logger = logging.getLogger(__name__)


class BroadcastChannel:
    def __init__(self, broker: Broker):
        self.broker = broker

    async def publish(self, topic: str, event: Event) -> int:
        """Validate the route and hand the event to the broker. Raises on broker failure."""
        t.check_route(topic, event.kind)
        return await self.broker.publish(Envelope(topic=topic, event=event))

    async def publish_many(self, topics: Iterable[str], event: Event) -> bool:
        """Best-effort publish to several topics. Returns False if any publish failed."""
        ok = True
        for topic in topics:
            try:
                await self.publish(topic, event)
            except Exception as exc:
                ok = False
                logger.warning("Broadcast of %s to %s failed: %s", event.kind, topic, exc)
        return ok

    # ── Order events ─────────────────────────────────────────────────────────

    async def announce_new_order(self, order: OrderOut) -> bool:
        event = NewOrderEvent(order=order)
        return await self.publish_many([t.NEW_ORDER, t.restaurant_topic(order.restaurant_id)], event)

    async def announce_order_update(self, order: OrderOut, transition: str) -> bool:
        topics = [t.restaurant_topic(order.restaurant_id), t.track_order_topic(order.order_id)]
        if order.agent_id is not None:
            topics.insert(0, t.agent_topic(order.agent_id))
        return await self.publish_many(topics, OrderUpdateEvent(transition=transition, order=order))

    # ── Location / presence ──────────────────────────────────────────────────

    async def broadcast_location(self, sample: LocationSample) -> bool:
        event = LocationUpdateEvent(sample=sample)
        return await self.publish_many([t.track_order_topic(sample.order_id), t.LOCATION_UPDATE], event)

    async def announce_presence(self, agent_id: int, order_id: str | None, online: bool) -> bool:
        event = AgentAvailabilityEvent(agent_id=agent_id, order_id=order_id, online=online)
        return await self.publish_many([t.AGENT_AVAILABILITY], event)

    # ── Subscribing ──────────────────────────────────────────────────────────

    async def subscribe(self, session: ClientSession, order_id: str | None = None) -> Subscription:
        return await self.broker.subscribe(t.topics_for(session, order_id))


_channel: BroadcastChannel | None = None


def _make_broker() -> Broker:
    backend = settings.BROKER_BACKEND.lower()
    if backend == "local":
        return LocalBroker(queue_size=settings.LOCAL_SUBSCRIBER_QUEUE_SIZE)
    if backend == "redis":
        return RedisBroker()
    raise ValueError(f"Unknown BROKER_BACKEND '{settings.BROKER_BACKEND}'")


def get_channel() -> BroadcastChannel:
    global _channel
    if _channel is None:
        _channel = BroadcastChannel(_make_broker())
        logger.info("Broadcast channel using %s", type(_channel.broker).__name__)
    return _channel


async def close_channel():
    global _channel
    if _channel:
        await _channel.broker.close()
        _channel = None
