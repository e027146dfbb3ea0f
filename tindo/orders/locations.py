"""
Tindo Orders - Last known agent location

Samples arrive unordered (the agent sends on two independent paths), so each
is a full snapshot and an older sample never replaces a newer one.
"""
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tindo.core.errors import InvalidTransitionError, NotFoundError, StorageError, ValidationError
from tindo.db.database import safe_rollback
from tindo.models.order import Order
from tindo.models.tracking import AgentLocation
from tindo.orders.lifecycle import ACTIVE_STATUSES
from tindo.schemas.tracking import LocationSample

logger = logging.getLogger(__name__)


class LocationStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _check_order(self, sample: LocationSample) -> None:
        row = (await self.db.execute(
            select(Order.agent_id, Order.status).where(Order.order_id == sample.order_id)
        )).first()
        if row is None:
            raise NotFoundError("Order not found.")
        if row.agent_id != sample.agent_id:
            raise ValidationError("Agent is not assigned to this order.")
        if row.status not in ACTIVE_STATUSES:
            raise InvalidTransitionError(f"Order is '{row.status.value}', not on an active delivery.")

    async def record(self, sample: LocationSample) -> bool:
        """Persist a sample. Returns False if a newer sample was already stored."""
        values = dict(
            order_id=sample.order_id,
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy=sample.accuracy,
            speed=sample.speed,
            heading=sample.heading,
            recorded_at=sample.timestamp,
        )
        try:
            await self._check_order(sample)

            result = await self.db.execute(
                update(AgentLocation)
                .where(
                    AgentLocation.agent_id == sample.agent_id,
                    AgentLocation.recorded_at <= sample.timestamp,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                exists = (await self.db.execute(
                    select(AgentLocation.agent_id).where(AgentLocation.agent_id == sample.agent_id)
                )).first()
                if exists is not None:
                    await safe_rollback(self.db)
                    logger.debug("Stale sample for agent %s ignored", sample.agent_id)
                    return False
                self.db.add(AgentLocation(agent_id=sample.agent_id, **values))
            await self.db.commit()
            return True
        except IntegrityError:
            # Another request inserted the first row for this agent meanwhile
            await safe_rollback(self.db)
            return False
        except (NotFoundError, ValidationError, InvalidTransitionError):
            await safe_rollback(self.db)
            raise
        except SQLAlchemyError as exc:
            await safe_rollback(self.db)
            logger.error(
                "Location write failed agent_id=%s order_id=%s code=%s: %s",
                sample.agent_id, sample.order_id, getattr(exc, "code", None), exc,
            )
            raise StorageError("Could not save location.") from exc

    async def last_known(self, agent_id: int) -> AgentLocation:
        loc = await self.db.get(AgentLocation, agent_id, populate_existing=True)
        if loc is None:
            raise NotFoundError("No location recorded for this agent.")
        return loc
