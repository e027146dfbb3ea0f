"""
Tindo API - Shared route dependencies
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tindo.db.database import get_db
from tindo.orders.lifecycle import OrderLifecycle
from tindo.orders.locations import LocationStore
from tindo.realtime.channel import BroadcastChannel, get_channel


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    channel: BroadcastChannel = Depends(get_channel),
) -> OrderLifecycle:
    return OrderLifecycle(db, channel)


def get_location_store(db: AsyncSession = Depends(get_db)) -> LocationStore:
    return LocationStore(db)
