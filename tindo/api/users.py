"""
Tindo API - Customer profile location capture

Called by the client right after login with the device's coordinates. Only
future orders see the new position; existing orders keep their snapshot.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tindo.core.errors import NotFoundError, ValidationError
from tindo.core.session import ClientSession
from tindo.db.database import get_db
from tindo.middleware.auth import current_session
from tindo.models.user import User
from tindo.schemas.tracking import ProfileLocationRequest, ProfileLocationResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.put("/{user_id}/location", response_model=ProfileLocationResponse)
async def update_profile_location(
    user_id: int,
    payload: ProfileLocationRequest,
    session: ClientSession = Depends(current_session),
    db: AsyncSession = Depends(get_db),
):
    if session.user_id != user_id:
        raise ValidationError("Cannot update another user's location.")

    result = await db.execute(select(User).where(User.id == user_id))
    user: User | None = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    user.lat = payload.latitude
    user.lng = payload.longitude
    if payload.address and payload.address.strip():
        user.address = payload.address.strip()
    user.location_updated_at = datetime.now(tz=timezone.utc)
    await db.commit()

    return ProfileLocationResponse(
        user_id=user.id,
        lat=user.lat,
        lng=user.lng,
        address=user.address,
        location_updated_at=user.location_updated_at,
    )
