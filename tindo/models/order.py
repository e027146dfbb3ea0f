"""
Tindo API - Order DB model

[TRANSACTIONAL DATA] orders are never deleted; history is retained.
delivery_lat / delivery_lng / delivery_address are written once by the
creation path and referenced by no other UPDATE.
"""
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, Integer, Float, DateTime, Text, JSON, Numeric, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
from tindo.db.database import Base


class OrderStatus(str, PyEnum):
    WAITING_FOR_AGENT = "waiting_for_agent"
    AGENT_ASSIGNED = "agent_assigned"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class TrackingStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    COMPLETED = "completed"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Public identifier; NULL only inside the creation transaction
    order_id: Mapped[str | None] = mapped_column(String(12), unique=True, index=True, nullable=True)

    user_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    restaurant_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    agent_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)

    items: Mapped[list | None] = mapped_column(JSON, nullable=True)
    total: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        default=OrderStatus.WAITING_FOR_AGENT,
        nullable=False,
    )
    tracking_status: Mapped[TrackingStatus] = mapped_column(
        Enum(TrackingStatus, name="tracking_status", values_callable=_enum_values),
        default=TrackingStatus.PENDING,
        nullable=False,
    )

    # Delivery snapshot, frozen at creation
    delivery_lat: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_lng: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    restaurant_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    payment_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    estimated_delivery: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    agent_assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    picked_up_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_id={self.order_id} status={self.status}>"
