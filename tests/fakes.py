"""
In-memory stand-ins for the device and the server connection
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from driver_tracker.exceptions import LocationFetchError, TransportError
from driver_tracker.geolocation import (
    Coords,
    GeolocationProvider,
    Position,
    PositionOptions,
    Subscription,
    deliver,
)
from driver_tracker.models import PermissionState
from driver_tracker.transport import CONNECT, CONNECT_ERROR, DISCONNECT, Transport


def position(lat: float, lon: float, accuracy: Optional[float] = 5.0,
             speed: Optional[float] = None, heading: Optional[float] = None) -> Position:
    return Position(coords=Coords(latitude=lat, longitude=lon, accuracy=accuracy,
                                  speed=speed, heading=heading),
                    timestamp=1735732800000)


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeGeolocationProvider(GeolocationProvider):
    def __init__(self, permission: PermissionState = PermissionState.GRANTED,
                 request_result: PermissionState = PermissionState.GRANTED):
        self.permission = permission
        self.request_result = request_result
        self.request_calls = 0
        self.positions: List[Position] = []
        self.default = position(10.4, -75.5)
        self.fail = False
        self.fail_watch = False
        self.fetch_calls = 0
        self.watches: List[Tuple[PositionOptions, Callable, Subscription]] = []

    async def get_foreground_permission(self) -> PermissionState:
        return self.permission

    async def request_foreground_permission(self) -> PermissionState:
        self.request_calls += 1
        self.permission = self.request_result
        return self.permission

    async def get_current_position(self, options: PositionOptions) -> Position:
        self.fetch_calls += 1
        if self.fail:
            raise LocationFetchError("No GPS fix")
        if self.positions:
            return self.positions.pop(0)
        return self.default

    async def watch_position(self, options, callback) -> Subscription:
        if self.fail_watch:
            raise LocationFetchError("Location services are off")
        subscription = Subscription()
        self.watches.append((options, callback, subscription))
        return subscription

    @property
    def active_watches(self):
        return [w for w in self.watches if not w[2].removed]

    async def push(self, pos: Position):
        """Deliver a position to every live watch"""
        for _, callback, _ in self.active_watches:
            await deliver(callback, pos)


class FakeTransport(Transport):
    def __init__(self, fail: Optional[str] = None, reject: Optional[Any] = None):
        self.handlers: Dict[str, Callable] = {}
        self.tokens: List[str] = []
        self.emitted: List[Tuple[str, Dict[str, Any]]] = []
        self.fail = fail
        self.reject = reject
        self.fail_emit = False
        self.closed = False
        self._connected = False

    def on(self, event: str, handler: Callable):
        self.handlers[event] = handler

    async def fire(self, event: str, *args):
        handler = self.handlers.get(event)
        if handler:
            await handler(*args)

    async def open(self, token: str):
        self.tokens.append(token)
        if self.reject is not None:
            await self.fire(CONNECT_ERROR, self.reject)
            raise TransportError("One or more namespaces failed to connect")
        if self.fail:
            raise TransportError(self.fail)
        self._connected = True
        await self.fire(CONNECT)

    async def emit(self, event: str, payload: Dict[str, Any]):
        if not self._connected:
            raise TransportError("No connection to the server")
        if self.fail_emit:
            raise TransportError("write failed")
        self.emitted.append((event, payload))

    async def close(self):
        was_connected = self._connected
        self._connected = False
        self.closed = True
        if was_connected:
            await self.fire(DISCONNECT, "io client disconnect")

    async def drop(self, reason: str = "transport error"):
        self._connected = False
        await self.fire(DISCONNECT, reason)

    async def reconnect(self):
        self._connected = True
        await self.fire(CONNECT)

    @property
    def connected(self) -> bool:
        return self._connected
