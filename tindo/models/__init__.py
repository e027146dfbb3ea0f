from tindo.models.order import Order, OrderStatus, TrackingStatus
from tindo.models.tracking import AgentLocation
from tindo.models.user import Restaurant, User

__all__ = ["Order", "OrderStatus", "TrackingStatus", "AgentLocation", "Restaurant", "User"]
