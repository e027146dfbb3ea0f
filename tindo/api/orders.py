"""
Tindo API - Orders

Flow:
  1. JWT validated by middleware (request.state.session set)
  2. Resolve the customer's delivery snapshot from their own profile
  3. Insert + finalize the order in one transaction, allocating a public id
  4. Broadcast newOrder to the global and restaurant topics
  5. Agents accept with a compare-and-swap assignment, then pick up and deliver

Only the parties to an order see it: the customer who placed it, staff of its
restaurant and its agent (any agent while it is still waiting for one).
Strangers get 404, as on the tracking stream.
"""
from fastapi import APIRouter, Depends, status

from tindo.api.deps import get_lifecycle
from tindo.core.errors import ForbiddenError, NotFoundError, ValidationError
from tindo.core.session import ClientSession, ROLE_RESTAURANT
from tindo.middleware.auth import check_agent_identity, current_session
from tindo.models.order import OrderStatus
from tindo.orders.lifecycle import OrderLifecycle
from tindo.schemas.order import (
    AssignRequest,
    OrderCreatedResponse,
    OrderCreateRequest,
    OrderOut,
    TrackingResponse,
)

router = APIRouter(prefix="/orders", tags=["orders"])


def _is_restaurant_staff(session: ClientSession, order: OrderOut) -> bool:
    return session.role == ROLE_RESTAURANT and session.restaurant_id == order.restaurant_id


def _can_view(session: ClientSession, order: OrderOut) -> bool:
    if session.user_id == order.user_id or _is_restaurant_staff(session, order):
        return True
    if session.agent_id is None:
        return False
    if order.agent_id is None:
        return order.status == OrderStatus.WAITING_FOR_AGENT
    return order.agent_id == session.agent_id


async def _visible_order(lifecycle: OrderLifecycle, order_id: str, session: ClientSession) -> OrderOut:
    order = await lifecycle.get(order_id)
    if not _can_view(session, order):
        raise NotFoundError("Order not found.")
    return order


async def _check_assigned_agent(lifecycle: OrderLifecycle, order_id: str, session: ClientSession) -> None:
    # Another agent's order is already invisible here; an unassigned one falls
    # through to the lifecycle, which reports invalid_transition
    await _visible_order(lifecycle, order_id, session)
    if session.agent_id is None:
        raise ForbiddenError("Only the delivery agent can update delivery progress.")


@router.post("", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreateRequest,
    session: ClientSession = Depends(current_session),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """
    Place an order. Delivery coordinates are taken from the caller's own
    profile at this moment and never change afterwards.
    Idempotency enforced by IdempotencyMiddleware.
    """
    if payload.user_id != session.user_id:
        raise ValidationError("user_id does not match the authenticated user.")
    order = await lifecycle.create(payload)
    return OrderCreatedResponse(order=order)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: str,
    session: ClientSession = Depends(current_session),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return await _visible_order(lifecycle, order_id, session)


@router.get("/{order_id}/tracking", response_model=TrackingResponse)
async def get_tracking(
    order_id: str,
    session: ClientSession = Depends(current_session),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """Polled by customer clients (~5s) as a fallback to the live stream."""
    await _visible_order(lifecycle, order_id, session)
    return await lifecycle.tracking(order_id)


@router.post("/{order_id}/assign", response_model=OrderOut)
async def assign_order(
    order_id: str,
    payload: AssignRequest,
    session: ClientSession = Depends(current_session),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    """
    Agent accepts an order. Exactly one concurrent caller wins; the others get
    409 with code 'already_assigned' and should move on to another order.
    """
    if session.agent_id is None:
        raise ForbiddenError("Only delivery agents can accept orders.")
    check_agent_identity(session, payload.agent_id)
    return await lifecycle.assign(order_id, payload.agent_id)


@router.post("/{order_id}/pickup", response_model=OrderOut)
async def pickup_order(
    order_id: str,
    session: ClientSession = Depends(current_session),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    await _check_assigned_agent(lifecycle, order_id, session)
    return await lifecycle.pickup(order_id)


@router.post("/{order_id}/deliver", response_model=OrderOut)
async def deliver_order(
    order_id: str,
    session: ClientSession = Depends(current_session),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    await _check_assigned_agent(lifecycle, order_id, session)
    return await lifecycle.deliver(order_id)


@router.post("/{order_id}/cancel", response_model=OrderOut)
async def cancel_order(
    order_id: str,
    session: ClientSession = Depends(current_session),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await _visible_order(lifecycle, order_id, session)
    if session.user_id != order.user_id and not _is_restaurant_staff(session, order):
        raise ForbiddenError("Only the customer or the restaurant can cancel an order.")
    return await lifecycle.cancel(order_id)
