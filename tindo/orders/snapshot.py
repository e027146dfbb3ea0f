"""
Tindo Orders - Delivery location snapshot

Resolved exactly once, inside the order-creation transaction, from the
customer's stored profile. Coordinates come only from the profile; a client
may override the address text but never the position.
"""
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tindo.core.errors import InvalidLocationError, NotFoundError
from tindo.core.geo import is_valid_coordinate
from tindo.models.user import User


@dataclass(frozen=True)
class LocationSnapshot:
    lat: float
    lng: float
    address: str | None
    phone: str | None


async def resolve_snapshot(
    db: AsyncSession,
    user_id: int,
    address_override: str | None = None,
) -> LocationSnapshot:
    row = (await db.execute(
        select(User.lat, User.lng, User.address, User.phone).where(User.id == user_id).limit(1)
    )).first()
    if row is None:
        raise NotFoundError("User not found")

    lat = float(row.lat) if row.lat is not None else None
    lng = float(row.lng) if row.lng is not None else None
    if not is_valid_coordinate(lat, lng):
        raise InvalidLocationError("User delivery location missing. Please set location in profile.")

    override = address_override.strip() if address_override else None
    return LocationSnapshot(
        lat=lat,
        lng=lng,
        address=override or row.address,
        phone=row.phone,
    )
