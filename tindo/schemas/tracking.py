"""
Tindo API - Location schemas (agent samples, profile capture, presence)
"""
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator


class LocationSample(BaseModel):
    """One GPS fix from an agent device. Always a full snapshot, never a delta."""
    agent_id: int
    order_id: str = Field(..., min_length=1, max_length=12)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(None, ge=0)
    speed: float | None = Field(None, ge=0)
    heading: float | None = Field(None, ge=0, le=360)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class ProfileLocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(None, ge=0)
    address: str | None = Field(None, max_length=500)


class ProfileLocationResponse(BaseModel):
    user_id: int
    lat: float
    lng: float
    address: str | None
    location_updated_at: datetime | None


class PresenceRequest(BaseModel):
    agent_id: int
    order_id: str | None = None
    online: bool = True
