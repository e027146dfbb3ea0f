"""
Tindo API - Agent location (durable path)

The agent device posts every accepted sample here as well as to
/realtime/location. This path keeps only the latest sample per agent for
last-known-location reads; it does not broadcast.
"""
import logging

from fastapi import APIRouter, Depends, Response, status

from tindo.api.deps import get_location_store
from tindo.core.session import ClientSession
from tindo.middleware.auth import check_agent_identity, current_session
from tindo.orders.locations import LocationStore
from tindo.schemas.order import AgentPosition
from tindo.schemas.tracking import LocationSample

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tracking", tags=["tracking"])


@router.post("/agent-location", status_code=status.HTTP_204_NO_CONTENT)
async def submit_agent_location(
    sample: LocationSample,
    session: ClientSession = Depends(current_session),
    store: LocationStore = Depends(get_location_store),
):
    check_agent_identity(session, sample.agent_id)
    stored = await store.record(sample)
    if not stored:
        logger.debug("Sample for agent %s superseded by a newer one", sample.agent_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/agents/{agent_id}/location", response_model=AgentPosition)
async def get_agent_location(agent_id: int, store: LocationStore = Depends(get_location_store)):
    loc = await store.last_known(agent_id)
    return AgentPosition(
        latitude=loc.latitude,
        longitude=loc.longitude,
        accuracy=loc.accuracy,
        speed=loc.speed,
        heading=loc.heading,
        recorded_at=loc.recorded_at,
    )
