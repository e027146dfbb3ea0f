"""
Tindo Orders - Public order identifier allocation

Customers see a random 12-digit number instead of the primary key, which
would leak order volume and be trivially guessable.
"""
import logging
import secrets
import time
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tindo.models.order import Order

logger = logging.getLogger(__name__)

ORDER_ID_DIGITS = 12
_LOWEST = 10 ** (ORDER_ID_DIGITS - 1)
_SPAN = 9 * _LOWEST


def random_order_id() -> str:
    return str(_LOWEST + secrets.randbelow(_SPAN))


def fallback_order_id(now: float) -> str:
    """Last 12 digits of the epoch time in milliseconds, zero-padded."""
    millis = int(now * 1000)
    return str(millis).zfill(ORDER_ID_DIGITS)[-ORDER_ID_DIGITS:]


class OrderIdAllocator:
    """
    Draw random ids until one is unused, at most `max_attempts` times; after
    that fall back to a time-derived id. The unique index on orders.order_id
    is the last line of defence for the fallback.
    """

    def __init__(
        self,
        exists: Callable[[str], Awaitable[bool]],
        max_attempts: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._exists = exists
        self.max_attempts = max_attempts
        self._clock = clock

    async def allocate(self) -> str:
        for _ in range(self.max_attempts):
            candidate = random_order_id()
            if not await self._exists(candidate):
                return candidate

        fallback = fallback_order_id(self._clock())
        logger.warning(
            "All %d random order ids collided; using time-derived id %s",
            self.max_attempts, fallback,
        )
        return fallback


def db_allocator(db: AsyncSession, max_attempts: int = 10) -> OrderIdAllocator:
    """Allocator that checks candidates against already-issued orders."""

    async def exists(candidate: str) -> bool:
        found = await db.execute(select(Order.id).where(Order.order_id == candidate).limit(1))
        return found.first() is not None

    return OrderIdAllocator(exists, max_attempts=max_attempts)
