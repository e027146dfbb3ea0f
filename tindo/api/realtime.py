"""
Tindo API - Realtime endpoints (SSE fan-out + agent publish paths)

Architecture:
  - Order transitions and agent devices publish typed events to the broker
  - GET /realtime/stream subscribes on behalf of one connection and streams
    events as server-sent events until the client goes away
  - Subscriptions last exactly as long as the connection; a reconnecting
    client gets only what is published after it reconnects
"""
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tindo.core.config import get_settings
from tindo.core.errors import NotFoundError, ValidationError
from tindo.core.session import ClientSession, ROLE_CUSTOMER
from tindo.db.database import get_db
from tindo.middleware.auth import check_agent_identity, current_session
from tindo.models.order import Order, TERMINAL_STATUSES
from tindo.realtime.broker import Subscription
from tindo.realtime.channel import BroadcastChannel, get_channel
from tindo.realtime.topics import topics_for
from tindo.schemas.tracking import LocationSample, PresenceRequest

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/realtime", tags=["realtime"])


async def sse_events(
    subscription: Subscription,
    request: Request,
    stop_on_terminal: bool = False,
) -> AsyncGenerator[str, None]:
    """Yield SSE frames from a subscription; always releases it on exit."""
    try:
        yield f": connected to {', '.join(subscription.topics)}\n\n"
        yield f"retry: {settings.SSE_RETRY_MILLISECONDS}\n\n"

        idle = 0.0
        while True:
            if await request.is_disconnected():
                break

            envelope = await subscription.get(timeout=settings.SSE_POLL_TIMEOUT_SECONDS)
            if envelope is None:
                idle += settings.SSE_POLL_TIMEOUT_SECONDS
                if idle >= settings.SSE_KEEPALIVE_INTERVAL_SECONDS:
                    yield ": keepalive\n\n"
                    idle = 0.0
                continue

            idle = 0.0
            event = envelope.event
            yield f"event: {event.kind}\ndata: {envelope.model_dump_json()}\n\n"

            # A customer's tracking stream ends with the order
            if stop_on_terminal and event.kind == "orderUpdate" and event.order.status in TERMINAL_STATUSES:
                break
    finally:
        await subscription.close()


@router.get("/stream")
async def stream_events(
    request: Request,
    order_id: str | None = Query(None, description="Also follow trackOrder_{order_id}"),
    session: ClientSession = Depends(current_session),
    channel: BroadcastChannel = Depends(get_channel),
    db: AsyncSession = Depends(get_db),
):
    """
    SSE endpoint. Topics come from the caller's session: restaurants get their
    restaurant feed, agents their assignments, customers one order they own.
    """
    if session.role == ROLE_CUSTOMER:
        if not order_id:
            raise ValidationError("order_id is required to follow an order.")
        owner = (await db.execute(select(Order.user_id).where(Order.order_id == order_id))).first()
        if owner is None or owner.user_id != session.user_id:
            raise NotFoundError("Order not found.")

    if not topics_for(session, order_id):
        raise ValidationError("Nothing to subscribe to for this session.")

    subscription = await channel.subscribe(session, order_id)
    logger.info("User %s (%s) subscribed to %s", session.user_id, session.role, subscription.topics)

    return StreamingResponse(
        sse_events(subscription, request, stop_on_terminal=session.role == ROLE_CUSTOMER),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable Nginx buffering
            "Connection": "keep-alive",
        },
    )


@router.post("/location", status_code=status.HTTP_202_ACCEPTED)
async def publish_location(
    sample: LocationSample,
    session: ClientSession = Depends(current_session),
    channel: BroadcastChannel = Depends(get_channel),
):
    """Live path for agent samples: fan out to trackOrder_{orderId} and locationUpdate."""
    check_agent_identity(session, sample.agent_id)
    published = await channel.broadcast_location(sample)
    return {"published": published, "order_id": sample.order_id}


@router.post("/presence", status_code=status.HTTP_202_ACCEPTED)
async def publish_presence(
    payload: PresenceRequest,
    session: ClientSession = Depends(current_session),
    channel: BroadcastChannel = Depends(get_channel),
):
    """Agent register / unregister for a delivery."""
    check_agent_identity(session, payload.agent_id)
    published = await channel.announce_presence(payload.agent_id, payload.order_id, payload.online)
    return {"published": published, "agent_id": payload.agent_id, "online": payload.online}
