"""
Tindo Realtime - Event schemas

Every broadcast payload is one of a fixed set of variants tagged by `kind`.
Payloads are validated when they enter the channel (publish endpoints, Redis
receive) so subscribers never see free-form JSON.
"""
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from tindo.schemas.order import OrderOut
from tindo.schemas.tracking import LocationSample


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class NewOrderEvent(BaseModel):
    kind: Literal["newOrder"] = "newOrder"
    order: OrderOut


class OrderUpdateEvent(BaseModel):
    kind: Literal["orderUpdate"] = "orderUpdate"
    transition: Literal["assign", "pickup", "deliver", "cancel"]
    order: OrderOut
    occurred_at: datetime = Field(default_factory=_utcnow)


class LocationUpdateEvent(BaseModel):
    kind: Literal["locationUpdate"] = "locationUpdate"
    sample: LocationSample


class AgentAvailabilityEvent(BaseModel):
    kind: Literal["agentAvailability"] = "agentAvailability"
    agent_id: int
    order_id: str | None = None
    online: bool
    occurred_at: datetime = Field(default_factory=_utcnow)


Event = Annotated[
    Union[NewOrderEvent, OrderUpdateEvent, LocationUpdateEvent, AgentAvailabilityEvent],
    Field(discriminator="kind"),
]

event_adapter: TypeAdapter[Event] = TypeAdapter(Event)


class Envelope(BaseModel):
    """What travels through a broker: the topic it was published on plus the event."""
    topic: str
    event: Event
