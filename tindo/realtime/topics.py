"""
Tindo Realtime - Topic names

Logical topics:
  newOrder                      global feed of freshly created orders
  orderForRestaurant_{id}       one restaurant's orders
  orderForAgent_{id}            one agent's assignments and updates
  trackOrder_{orderId}          status + live position for one order
  locationUpdate                every agent position (operations dashboards)
  agentAvailability             agents going on/off a delivery
"""
from tindo.core.errors import ValidationError
from tindo.core.session import ClientSession, ROLE_AGENT, ROLE_RESTAURANT

NEW_ORDER = "newOrder"
LOCATION_UPDATE = "locationUpdate"
AGENT_AVAILABILITY = "agentAvailability"

RESTAURANT_PREFIX = "orderForRestaurant_"
AGENT_PREFIX = "orderForAgent_"
TRACK_ORDER_PREFIX = "trackOrder_"

ROLE_ADMIN = "admin"

# Topic family -> event kinds allowed on it
ALLOWED_KINDS: dict[str, frozenset[str]] = {
    NEW_ORDER: frozenset({"newOrder"}),
    RESTAURANT_PREFIX: frozenset({"newOrder", "orderUpdate"}),
    AGENT_PREFIX: frozenset({"orderUpdate"}),
    TRACK_ORDER_PREFIX: frozenset({"orderUpdate", "locationUpdate"}),
    LOCATION_UPDATE: frozenset({"locationUpdate"}),
    AGENT_AVAILABILITY: frozenset({"agentAvailability"}),
}


def restaurant_topic(restaurant_id: int) -> str:
    return f"{RESTAURANT_PREFIX}{restaurant_id}"


def agent_topic(agent_id: int) -> str:
    return f"{AGENT_PREFIX}{agent_id}"


def track_order_topic(order_id: str) -> str:
    return f"{TRACK_ORDER_PREFIX}{order_id}"


def topic_family(topic: str) -> str:
    if topic in (NEW_ORDER, LOCATION_UPDATE, AGENT_AVAILABILITY):
        return topic
    for prefix in (RESTAURANT_PREFIX, AGENT_PREFIX, TRACK_ORDER_PREFIX):
        if topic.startswith(prefix) and len(topic) > len(prefix):
            return prefix
    raise ValidationError(f"Unknown topic '{topic}'.")


def check_route(topic: str, kind: str) -> None:
    """Raise ValidationError unless events of `kind` may be published on `topic`."""
    family = topic_family(topic)
    if kind not in ALLOWED_KINDS[family]:
        raise ValidationError(f"Event '{kind}' cannot be published on topic '{topic}'.")


def topics_for(session: ClientSession, order_id: str | None = None) -> list[str]:
    """Topics a connection may listen on, derived from who the caller is."""
    if session.role == ROLE_ADMIN:
        topics = [NEW_ORDER, LOCATION_UPDATE, AGENT_AVAILABILITY]
    elif session.role == ROLE_RESTAURANT:
        topics = [NEW_ORDER]
        if session.restaurant_id is not None:
            topics.append(restaurant_topic(session.restaurant_id))
    elif session.role == ROLE_AGENT:
        topics = [NEW_ORDER, agent_topic(session.user_id)]
    else:
        topics = []

    if order_id:
        topics.append(track_order_topic(order_id))
    return topics
