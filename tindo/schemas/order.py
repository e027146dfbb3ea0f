"""
Tindo API - Order schemas
"""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from tindo.models.order import OrderStatus, TrackingStatus


class OrderItemIn(BaseModel):
    id: int
    name: str | None = Field(None, max_length=255)
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1, le=50)


class OrderCreateRequest(BaseModel):
    user_id: int
    restaurant_id: int
    items: list[OrderItemIn] = Field(..., min_length=1, max_length=50)
    total: float = Field(..., gt=0)
    payment_type: str | None = Field(None, max_length=32, examples=["cash"])
    estimated_delivery: str | None = Field(None, max_length=64)
    delivery_address: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=500)

    @field_validator("delivery_address", "payment_type", "notes")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class AssignRequest(BaseModel):
    agent_id: int


class OrderOut(BaseModel):
    id: int
    order_id: str
    user_id: int
    restaurant_id: int
    agent_id: int | None
    items: list[dict]
    total: float
    status: OrderStatus
    tracking_status: TrackingStatus
    payment_type: str | None
    estimated_delivery: str | None
    notes: str | None
    delivery_address: str | None
    delivery_lat: float
    delivery_lng: float
    customer_phone: str | None
    restaurant_phone: str | None
    agent_assigned_at: datetime | None = None
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}


class OrderCreatedResponse(BaseModel):
    message: str = "Order created successfully"
    order: OrderOut


class AgentPosition(BaseModel):
    latitude: float
    longitude: float
    accuracy: float | None
    speed: float | None
    heading: float | None
    recorded_at: datetime


class TrackingResponse(BaseModel):
    order_id: str
    status: OrderStatus
    tracking_status: TrackingStatus
    agent_id: int | None
    delivery_address: str | None
    delivery_lat: float
    delivery_lng: float
    estimated_delivery: str | None
    payment_type: str | None
    total: float
    agent_assigned_at: datetime | None
    picked_up_at: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None
    agent_location: AgentPosition | None = None
    distance_meters: float | None = None
    eta_minutes: int | None = None
