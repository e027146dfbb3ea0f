"""
Tindo Agent - Live location publisher

Runs on the agent's device while an order is active. A single coroutine is
woken either by a watch notification or by the periodic backstop tick; both
paths go through the same movement filter before a sample is sent to the
broadcast channel and the durable location store.
"""
import asyncio
import logging

import httpx
from pydantic import ValidationError

from tindo.agent.client import TindoApiClient
from tindo.agent.config import AgentSettings, get_agent_settings
from tindo.agent.positions import (
    PermissionDenied,
    Position,
    PositionError,
    PositionSource,
)
from tindo.core.errors import AuthError
from tindo.core.geo import haversine_m
from tindo.core.session import ClientSession
from tindo.schemas.tracking import LocationSample

logger = logging.getLogger(__name__)

_PATHS = ("broadcast", "store")


class AgentLocationPublisher:
    def __init__(
        self,
        source: PositionSource,
        api: TindoApiClient,
        session: ClientSession,
        order_id: str,
        settings: AgentSettings | None = None,
    ):
        if session.agent_id is None:
            raise ValueError("Location publishing requires a delivery agent session")
        self._source = source
        self._api = api
        self._session = session
        self._order_id = order_id
        self._settings = settings or get_agent_settings()

        self._task: asyncio.Task | None = None
        self._wakeups: asyncio.Queue | None = None
        self._watch_id: int | None = None
        self._last_sent: Position | None = None

    @property
    def agent_id(self) -> int:
        return self._session.agent_id

    @property
    def order_id(self) -> str:
        return self._order_id

    @property
    def last_sent(self) -> Position | None:
        return self._last_sent

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def update_order(self, order_id: str) -> None:
        """Switch to the agent's next order; movement filtering restarts."""
        self._order_id = order_id
        self._last_sent = None

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        if self.is_active:
            logger.warning("Location tracking already active for agent %s", self.agent_id)
            return

        try:
            await self._api.set_presence(self.agent_id, self._order_id, online=True)
        except AuthError:
            logger.error("Authentication failed - token expired; tracking not started")
            return
        except httpx.HTTPError as e:
            logger.warning("Presence registration failed for agent %s: %s", self.agent_id, e)

        # A loop that died unexpectedly leaves its watch behind
        self._clear_watch()
        self._wakeups = asyncio.Queue()
        self._watch_id = self._source.watch(self._wakeups.put_nowait, self._wakeups.put_nowait)
        self._task = asyncio.create_task(self._run(), name=f"agent-location-{self.agent_id}")
        logger.info("Location tracking started for agent %s (order %s)", self.agent_id, self._order_id)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return

        self._clear_watch()

        if task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await self._api.set_presence(self.agent_id, self._order_id, online=False)
        except (AuthError, httpx.HTTPError) as e:
            logger.warning("Presence unregistration failed for agent %s: %s", self.agent_id, e)
        logger.info("Location tracking stopped for agent %s", self.agent_id)

    def _clear_watch(self) -> None:
        if self._watch_id is not None:
            self._source.clear_watch(self._watch_id)
            self._watch_id = None

    # ── Loop ──────────────────────────────────────────────────

    async def _run(self) -> None:
        try:
            while True:
                try:
                    item = await asyncio.wait_for(
                        self._wakeups.get(), timeout=self._settings.LOCATION_INTERVAL_SECONDS
                    )
                except asyncio.TimeoutError:
                    item = await self._sample_now()

                if isinstance(item, PermissionDenied):
                    raise item
                if isinstance(item, PositionError):
                    logger.debug("Position unavailable: %s", item)
                    continue
                if item is None:
                    continue
                try:
                    await self.consider(item)
                except ValidationError as e:
                    logger.warning("Discarding malformed position fix: %s", e.errors())
        except AuthError:
            logger.error("Authentication failed - token expired; stopping location tracking")
            await self.stop()
        except PermissionDenied:
            logger.error("Location permission denied; stopping location tracking")
            await self.stop()

    async def _sample_now(self) -> Position | PositionError | None:
        try:
            return await asyncio.wait_for(
                self._source.current_position(),
                timeout=self._settings.POSITION_TIMEOUT_SECONDS,
            )
        except PositionError as e:
            return e
        except asyncio.TimeoutError:
            logger.debug("Timed out reading current position")
            return None

    def should_send(self, position: Position) -> bool:
        if self._last_sent is None:
            return True
        moved = haversine_m(
            self._last_sent.latitude, self._last_sent.longitude,
            position.latitude, position.longitude,
        )
        return moved >= self._settings.MIN_MOVEMENT_METERS

    async def consider(self, position: Position) -> bool:
        """Send position if it passes the movement filter. Returns True if sent."""
        if not self.should_send(position):
            return False

        sample = LocationSample(
            agent_id=self.agent_id,
            order_id=self._order_id,
            latitude=position.latitude,
            longitude=position.longitude,
            accuracy=position.accuracy,
            speed=position.speed,
            heading=position.heading,
            timestamp=position.timestamp,
        )
        self._last_sent = position
        await self._send(sample)
        return True

    async def _send(self, sample: LocationSample) -> None:
        results = await asyncio.gather(
            self._api.broadcast_location(sample),
            self._api.submit_location(sample),
            return_exceptions=True,
        )

        auth_failed = False
        for path, result in zip(_PATHS, results):
            if isinstance(result, AuthError):
                auth_failed = True
            elif isinstance(result, httpx.TimeoutException):
                logger.warning("Location %s timed out; sample dropped", path)
            elif isinstance(result, Exception):
                logger.warning("Location %s failed: %s", path, result)

        if auth_failed:
            raise AuthError("Authentication failed - token expired")
