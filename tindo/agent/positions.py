"""
Tindo Agent - Position sources

A PositionSource is the device's GPS as seen by the publisher: a watch that
calls back on every fix (or error) and a one-shot current position read.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from typing import Callable


class PositionError(Exception):
    pass


class PositionUnavailable(PositionError):
    pass


class PermissionDenied(PositionError):
    """The user revoked location access; tracking cannot continue."""


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy: float | None = None
    speed: float | None = None
    heading: float | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[PositionError], None]


class PositionSource(ABC):
    @abstractmethod
    def watch(self, on_position: PositionCallback, on_error: ErrorCallback | None = None) -> int:
        """Register for fixes; returns a watch id for clear_watch()."""

    @abstractmethod
    def clear_watch(self, watch_id: int) -> None: ...

    @abstractmethod
    async def current_position(self) -> Position:
        """Latest fix. Raises PositionError if none can be had."""


class PushPositionSource(PositionSource):
    """
    Source fed by a platform integration (GPS daemon, phone bridge, replay
    script) that calls push() on every fix and fail() on errors.
    """

    def __init__(self):
        self._ids = count(1)
        self._watchers: dict[int, tuple[PositionCallback, ErrorCallback | None]] = {}
        self._latest: Position | None = None
        self._error: PositionError | None = None

    def watch(self, on_position: PositionCallback, on_error: ErrorCallback | None = None) -> int:
        watch_id = next(self._ids)
        self._watchers[watch_id] = (on_position, on_error)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watchers.pop(watch_id, None)

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def push(self, position: Position) -> None:
        self._latest = position
        self._error = None
        for on_position, _ in list(self._watchers.values()):
            on_position(position)

    def fail(self, error: PositionError) -> None:
        self._error = error
        for _, on_error in list(self._watchers.values()):
            if on_error is not None:
                on_error(error)

    async def current_position(self) -> Position:
        if isinstance(self._error, PermissionDenied):
            raise self._error
        if self._latest is None:
            raise PositionUnavailable("No position fix yet.")
        return self._latest
