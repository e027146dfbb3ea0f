"""
Tindo Orders - Order lifecycle state machine

    (status, tracking_status)

    create   {}                                  -> waiting_for_agent / pending
    assign   waiting_for_agent / pending         -> agent_assigned / accepted
    pickup   agent_assigned / accepted           -> picked_up / in_transit
    deliver  picked_up / in_transit              -> delivered / completed   (terminal)
    cancel   waiting_for_agent | agent_assigned  -> cancelled               (terminal)

Every transition is one conditional UPDATE whose WHERE clause carries the
expected prior status (and, for assign, "agent_id IS NULL"). The database
decides races; a zero-row update is diagnosed by re-reading the row and is
never retried. Broadcasts go out after commit and cannot fail a transition.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tindo.core.config import get_settings
from tindo.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    TindoError,
)
from tindo.core.geo import estimate_eta_minutes, haversine_m
from tindo.db.database import safe_rollback
from tindo.models.order import Order, OrderStatus, TrackingStatus
from tindo.models.tracking import AgentLocation
from tindo.models.user import Restaurant
from tindo.orders.identifiers import db_allocator
from tindo.orders.snapshot import LocationSnapshot, resolve_snapshot
from tindo.realtime.channel import BroadcastChannel
from tindo.schemas.order import AgentPosition, OrderCreateRequest, OrderOut, TrackingResponse

settings = get_settings()
logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (OrderStatus.AGENT_ASSIGNED, OrderStatus.PICKED_UP)


@dataclass(frozen=True)
class Transition:
    name: str
    from_statuses: tuple[OrderStatus, ...]
    to_status: OrderStatus
    to_tracking: TrackingStatus | None
    stamp_column: str


PICKUP = Transition(
    "pickup", (OrderStatus.AGENT_ASSIGNED,),
    OrderStatus.PICKED_UP, TrackingStatus.IN_TRANSIT, "picked_up_at",
)
DELIVER = Transition(
    "deliver", (OrderStatus.PICKED_UP,),
    OrderStatus.DELIVERED, TrackingStatus.COMPLETED, "delivered_at",
)
# tracking_status has no cancelled value; it keeps whatever it was
CANCEL = Transition(
    "cancel", (OrderStatus.WAITING_FOR_AGENT, OrderStatus.AGENT_ASSIGNED),
    OrderStatus.CANCELLED, None, "cancelled_at",
)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ─── Two-phase creation steps ──────────────────────────────────────────────────

async def _insert_base(
    db: AsyncSession,
    payload: OrderCreateRequest,
    snapshot: LocationSnapshot,
    restaurant_phone: str | None,
) -> int:
    """Phase 1: identity, references, delivery snapshot and initial statuses."""
    result = await db.execute(
        insert(Order).values(
            user_id=payload.user_id,
            restaurant_id=payload.restaurant_id,
            delivery_lat=snapshot.lat,
            delivery_lng=snapshot.lng,
            delivery_address=snapshot.address,
            customer_phone=snapshot.phone,
            restaurant_phone=restaurant_phone,
            status=OrderStatus.WAITING_FOR_AGENT,
            tracking_status=TrackingStatus.PENDING,
        )
        .returning(Order.id)
    )
    return result.scalar_one()


async def _finalize(db: AsyncSession, pk: int, payload: OrderCreateRequest, public_id: str) -> None:
    """Phase 2: computed fields. Leaves the delivery snapshot alone."""
    await db.execute(
        update(Order)
        .where(Order.id == pk)
        .values(
            items=[item.model_dump() for item in payload.items],
            total=payload.total,
            order_id=public_id,
            payment_type=payload.payment_type,
            estimated_delivery=payload.estimated_delivery,
            notes=payload.notes,
        )
        .execution_options(synchronize_session=False)
    )


class OrderLifecycle:
    def __init__(self, db: AsyncSession, channel: BroadcastChannel):
        self.db = db
        self.channel = channel

    # ── Reads ────────────────────────────────────────────────────────────────

    async def _find(self, order_id: str) -> Order | None:
        result = await self.db.execute(
            select(Order)
            .where(Order.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, order_id: str) -> OrderOut:
        order = await self._find(order_id)
        if order is None:
            raise NotFoundError("Order not found.")
        return OrderOut.model_validate(order)

    async def tracking(self, order_id: str) -> TrackingResponse:
        order = await self._find(order_id)
        if order is None:
            raise NotFoundError("Order not found.")

        view = TrackingResponse(
            order_id=order.order_id,
            status=order.status,
            tracking_status=order.tracking_status,
            agent_id=order.agent_id,
            delivery_address=order.delivery_address,
            delivery_lat=order.delivery_lat,
            delivery_lng=order.delivery_lng,
            estimated_delivery=order.estimated_delivery,
            payment_type=order.payment_type,
            total=order.total,
            agent_assigned_at=order.agent_assigned_at,
            picked_up_at=order.picked_up_at,
            delivered_at=order.delivered_at,
            cancelled_at=order.cancelled_at,
        )

        if order.agent_id is None or order.status not in ACTIVE_STATUSES:
            return view

        loc = await self.db.get(AgentLocation, order.agent_id)
        if loc is None or loc.order_id != order.order_id:
            return view

        distance = haversine_m(loc.latitude, loc.longitude, order.delivery_lat, order.delivery_lng)
        view.agent_location = AgentPosition(
            latitude=loc.latitude,
            longitude=loc.longitude,
            accuracy=loc.accuracy,
            speed=loc.speed,
            heading=loc.heading,
            recorded_at=loc.recorded_at,
        )
        view.distance_meters = round(distance, 1)
        view.eta_minutes = estimate_eta_minutes(distance, settings.AVERAGE_DELIVERY_SPEED_KMH)
        return view

    # ── create ───────────────────────────────────────────────────────────────

    async def create(self, payload: OrderCreateRequest) -> OrderOut:
        db = self.db
        try:
            snapshot = await resolve_snapshot(db, payload.user_id, payload.delivery_address)

            restaurant = (await db.execute(
                select(Restaurant.id, Restaurant.phone).where(Restaurant.id == payload.restaurant_id)
            )).first()
            if restaurant is None:
                raise NotFoundError("Restaurant not found")

            pk = await _insert_base(db, payload, snapshot, restaurant.phone)
            public_id = await db_allocator(db, settings.ORDER_ID_MAX_ATTEMPTS).allocate()
            await _finalize(db, pk, payload, public_id)
            await db.commit()
        except TindoError:
            await safe_rollback(db)
            raise
        except SQLAlchemyError as exc:
            await safe_rollback(db)
            logger.error(
                "Order creation failed user_id=%s restaurant_id=%s code=%s: %s",
                payload.user_id, payload.restaurant_id, getattr(exc, "code", None), exc,
            )
            raise StorageError("Order creation failed. Please try again.") from exc

        order = await self.get(public_id)
        logger.info("Order %s created for user %s at restaurant %s", public_id, payload.user_id, payload.restaurant_id)
        await self.channel.announce_new_order(order)
        return order

    # ── Transitions ──────────────────────────────────────────────────────────

    async def _conditional_update(self, stmt, order_id: str, action: str) -> bool:
        """Run a CAS update. True if exactly one row changed (and was committed)."""
        try:
            result = await self.db.execute(stmt.execution_options(synchronize_session=False))
            if result.rowcount != 1:
                await safe_rollback(self.db)
                return False
            await self.db.commit()
            return True
        except SQLAlchemyError as exc:
            await safe_rollback(self.db)
            logger.error(
                "Order %s %s failed code=%s: %s", order_id, action, getattr(exc, "code", None), exc,
            )
            raise StorageError(f"Could not {action} order. Please try again.") from exc

    async def _current_or_404(self, order_id: str):
        """Plain (agent_id, status) row for diagnosing a zero-row update."""
        row = (await self.db.execute(
            select(Order.agent_id, Order.status).where(Order.order_id == order_id)
        )).first()
        await safe_rollback(self.db)
        if row is None:
            raise NotFoundError("Order not found.")
        return row

    async def assign(self, order_id: str, agent_id: int) -> OrderOut:
        stmt = (
            update(Order)
            .where(
                Order.order_id == order_id,
                Order.agent_id.is_(None),
                Order.status == OrderStatus.WAITING_FOR_AGENT,
            )
            .values(
                agent_id=agent_id,
                status=OrderStatus.AGENT_ASSIGNED,
                tracking_status=TrackingStatus.ACCEPTED,
                agent_assigned_at=_utcnow(),
            )
        )
        if not await self._conditional_update(stmt, order_id, "assign"):
            current = await self._current_or_404(order_id)
            if current.agent_id is not None:
                # Lost the race: terminal for this attempt, caller picks another order
                logger.info(
                    "Agent %s lost assignment of order %s to agent %s",
                    agent_id, order_id, current.agent_id,
                )
                raise ConflictError("Order already assigned to another agent.")
            raise InvalidTransitionError(
                f"Cannot assign order in status '{current.status.value}'."
            )

        order = await self.get(order_id)
        logger.info("Order %s assigned to agent %s", order_id, agent_id)
        await self.channel.announce_order_update(order, "assign")
        return order

    async def _apply(self, order_id: str, transition: Transition) -> OrderOut:
        values = {"status": transition.to_status, transition.stamp_column: _utcnow()}
        if transition.to_tracking is not None:
            values["tracking_status"] = transition.to_tracking

        stmt = (
            update(Order)
            .where(Order.order_id == order_id, Order.status.in_(transition.from_statuses))
            .values(**values)
        )
        if not await self._conditional_update(stmt, order_id, transition.name):
            current = await self._current_or_404(order_id)
            raise InvalidTransitionError(
                f"Cannot {transition.name} order in status '{current.status.value}'."
            )

        order = await self.get(order_id)
        logger.info("Order %s -> %s", order_id, order.status.value)
        await self.channel.announce_order_update(order, transition.name)
        return order

    async def pickup(self, order_id: str) -> OrderOut:
        return await self._apply(order_id, PICKUP)

    async def deliver(self, order_id: str) -> OrderOut:
        return await self._apply(order_id, DELIVER)

    async def cancel(self, order_id: str) -> OrderOut:
        return await self._apply(order_id, CANCEL)
