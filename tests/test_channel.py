"""
Broadcast channel: topic routing, in-process fan-out and the SSE frame stream.
"""
import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from tindo.api.realtime import sse_events
from tindo.core.errors import ValidationError
from tindo.core.session import ClientSession
from tindo.models.order import OrderStatus, TrackingStatus
from tindo.realtime import topics as t
from tindo.realtime.broker import Broker, LocalBroker
from tindo.realtime.channel import BroadcastChannel
from tindo.realtime.events import Envelope, NewOrderEvent, OrderUpdateEvent, event_adapter
from tindo.schemas.order import OrderOut
from tindo.schemas.tracking import LocationSample


def _order(status: OrderStatus = OrderStatus.WAITING_FOR_AGENT, agent_id: int | None = None) -> OrderOut:
    return OrderOut(
        id=1, order_id="482913650172", user_id=1, restaurant_id=2, agent_id=agent_id,
        items=[{"id": 11, "price": 120.0, "quantity": 2}], total=240.0,
        status=status, tracking_status=TrackingStatus.PENDING,
        payment_type="cash", estimated_delivery=None, notes=None,
        delivery_address="12 MG Road", delivery_lat=12.9716, delivery_lng=77.5946,
        customer_phone=None, restaurant_phone=None,
    )


class _FakeRequest:
    def __init__(self, disconnect_after: int = 10_000):
        self.polls = 0
        self.disconnect_after = disconnect_after

    async def is_disconnected(self) -> bool:
        self.polls += 1
        return self.polls > self.disconnect_after


class _BrokenBroker(Broker):
    async def publish(self, envelope):
        raise ConnectionError("redis down")

    async def subscribe(self, topics):
        raise ConnectionError("redis down")


# ─── Topics ────────────────────────────────────────────────────────────────────
def test_topic_names():
    assert t.restaurant_topic(7) == "orderForRestaurant_7"
    assert t.agent_topic(3) == "orderForAgent_3"
    assert t.track_order_topic("482913650172") == "trackOrder_482913650172"


def test_topics_follow_the_session():
    restaurant = ClientSession(user_id=6, role="restaurant", restaurant_id=2)
    agent = ClientSession(user_id=3, role="delivery")
    customer = ClientSession(user_id=1, role="customer")

    assert t.topics_for(restaurant) == ["newOrder", "orderForRestaurant_2"]
    assert t.topics_for(agent) == ["newOrder", "orderForAgent_3"]
    assert t.topics_for(customer) == []
    assert t.topics_for(customer, "482913650172") == ["trackOrder_482913650172"]


def test_legacy_agent_role_claim():
    session = ClientSession.from_claims({"sub": "3", "role": "delivery_agent"})
    assert session.agent_id == 3


@pytest.mark.parametrize(
    "topic,kind",
    [
        ("newOrder", "locationUpdate"),
        ("orderForAgent_3", "newOrder"),
        ("locationUpdate", "orderUpdate"),
        ("somethingElse", "newOrder"),
        ("trackOrder_", "orderUpdate"),
    ],
)
def test_misrouted_events_are_rejected(topic, kind):
    with pytest.raises(ValidationError):
        t.check_route(topic, kind)


# ─── Events ────────────────────────────────────────────────────────────────────
def test_event_payloads_are_tagged_by_kind():
    raw = {
        "kind": "locationUpdate",
        "sample": {"agent_id": 3, "order_id": "482913650172", "latitude": 12.97, "longitude": 77.59},
    }
    event = event_adapter.validate_python(raw)
    assert isinstance(event.sample, LocationSample)

    with pytest.raises(PydanticValidationError):
        event_adapter.validate_python({"kind": "mystery", "payload": {}})


# ─── LocalBroker ───────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_every_subscriber_gets_the_event():
    broker = LocalBroker()
    channel = BroadcastChannel(broker)
    a = await broker.subscribe(["newOrder"])
    b = await broker.subscribe(["newOrder"])

    delivered = await channel.publish("newOrder", NewOrderEvent(order=_order()))

    assert delivered == 2
    assert (await a.get(timeout=0.1)).event.order.order_id == "482913650172"
    assert (await b.get(timeout=0.1)).event.order.order_id == "482913650172"


@pytest.mark.asyncio
async def test_publish_with_no_subscribers_is_not_an_error():
    channel = BroadcastChannel(LocalBroker())
    assert await channel.publish("newOrder", NewOrderEvent(order=_order())) == 0


@pytest.mark.asyncio
async def test_late_subscriber_gets_no_replay():
    broker = LocalBroker()
    channel = BroadcastChannel(broker)
    await channel.announce_new_order(_order())

    late = await broker.subscribe(["newOrder"])
    assert await late.get(timeout=0.05) is None


@pytest.mark.asyncio
async def test_full_subscriber_queue_drops_instead_of_blocking():
    broker = LocalBroker(queue_size=1)
    channel = BroadcastChannel(broker)
    slow = await broker.subscribe(["newOrder"])

    await channel.publish("newOrder", NewOrderEvent(order=_order()))
    delivered = await channel.publish("newOrder", NewOrderEvent(order=_order()))

    assert delivered == 0
    assert slow.dropped == 1


@pytest.mark.asyncio
async def test_closing_a_subscription_unregisters_it():
    broker = LocalBroker()
    async with await broker.subscribe(["newOrder", "locationUpdate"]):
        assert broker.subscriber_count("newOrder") == 1
    assert broker.subscriber_count("newOrder") == 0
    assert broker.subscriber_count("locationUpdate") == 0


@pytest.mark.asyncio
async def test_location_goes_to_tracker_and_dashboard():
    broker = LocalBroker()
    channel = BroadcastChannel(broker)
    sub = await broker.subscribe(["trackOrder_482913650172", "locationUpdate"])

    sample = LocationSample(agent_id=3, order_id="482913650172", latitude=12.97, longitude=77.59)
    assert await channel.broadcast_location(sample) is True

    topics = {(await sub.get(timeout=0.1)).topic, (await sub.get(timeout=0.1)).topic}
    assert topics == {"trackOrder_482913650172", "locationUpdate"}


@pytest.mark.asyncio
async def test_broker_failure_is_reported_not_raised():
    channel = BroadcastChannel(_BrokenBroker())
    assert await channel.announce_new_order(_order()) is False
    assert await channel.announce_presence(3, None, online=True) is False


# ─── SSE frames ────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_sse_stream_ends_with_terminal_order_update():
    broker = LocalBroker()
    channel = BroadcastChannel(broker)
    sub = await broker.subscribe(["trackOrder_482913650172"])

    await channel.announce_order_update(_order(OrderStatus.DELIVERED, agent_id=3), "deliver")

    frames = [f async for f in sse_events(sub, _FakeRequest(), stop_on_terminal=True)]

    assert frames[0].startswith(": connected to trackOrder_482913650172")
    assert frames[1].startswith("retry: ")
    event_line, data_line = frames[2].strip().split("\n")
    assert event_line == "event: orderUpdate"
    payload = json.loads(data_line.removeprefix("data: "))
    assert payload["topic"] == "trackOrder_482913650172"
    assert payload["event"]["order"]["status"] == "delivered"

    assert sub.closed
    assert broker.subscriber_count("trackOrder_482913650172") == 0


@pytest.mark.asyncio
async def test_sse_stream_releases_subscription_on_disconnect():
    broker = LocalBroker()
    sub = await broker.subscribe(["newOrder"])

    frames = [f async for f in sse_events(sub, _FakeRequest(disconnect_after=0))]

    assert len(frames) == 2
    assert broker.subscriber_count("newOrder") == 0


@pytest.mark.asyncio
async def test_envelope_round_trips_through_json():
    envelope = Envelope(
        topic="orderForAgent_3",
        event=OrderUpdateEvent(transition="assign", order=_order(OrderStatus.AGENT_ASSIGNED, agent_id=3)),
    )
    again = Envelope.model_validate_json(envelope.model_dump_json())
    assert again.event.kind == "orderUpdate"
    assert again.event.order.agent_id == 3
