"""
Geolocation providers

`GeolocationProvider` is the device-facing interface used by the tracker.
`SimulatedGeolocationProvider` drives a vehicle along a fixed route so the
client can run on machines without GPS hardware.
"""

import asyncio
import inspect
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from .exceptions import LocationFetchError
from .geo import haversine, initial_bearing, interpolate
from .models import PermissionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coords:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    speed: Optional[float] = None  # m/s
    heading: Optional[float] = None


@dataclass(frozen=True)
class Position:
    coords: Coords
    timestamp: int  # epoch milliseconds


@dataclass(frozen=True)
class PositionOptions:
    accuracy: str = "high"
    time_interval: float = 1.0  # seconds
    distance_interval: float = 0.0  # meters


PositionCallback = Callable[[Position], Union[None, Awaitable[None]]]


class Subscription:
    """Handle for a continuous position watch"""

    def __init__(self, task: Optional[asyncio.Task] = None, on_remove: Optional[Callable[[], None]] = None):
        self._task = task
        self._on_remove = on_remove
        self.removed = False

    def remove(self):
        if self.removed:
            return
        self.removed = True
        if self._task and not self._task.done():
            self._task.cancel()
        if self._on_remove:
            self._on_remove()


class GeolocationProvider(ABC):
    """Device location services"""

    @abstractmethod
    async def get_foreground_permission(self) -> PermissionState:
        ...

    @abstractmethod
    async def request_foreground_permission(self) -> PermissionState:
        ...

    @abstractmethod
    async def get_current_position(self, options: PositionOptions) -> Position:
        """One-shot fix; raises LocationFetchError when no position is available"""
        ...

    @abstractmethod
    async def watch_position(self, options: PositionOptions, callback: PositionCallback) -> Subscription:
        ...


async def deliver(callback: PositionCallback, position: Position):
    result = callback(position)
    if inspect.isawaitable(result):
        await result


def create_sample_route() -> List[Tuple[float, float]]:
    """Loop through central Cartagena"""
    return [
        # Torre del Reloj
        (10.422960, -75.549230),
        # Along Avenida Santander towards Bocagrande
        (10.418500, -75.553400),
        (10.410900, -75.555800),
        # Bocagrande, Carrera 1
        (10.401700, -75.557600),
        (10.397400, -75.558700),
        # Back through Castillogrande
        (10.393600, -75.553100),
        # Manga
        (10.410200, -75.536500),
        # Getsemaní
        (10.419900, -75.544000),
        # Close the loop
        (10.422960, -75.549230),
    ]


class SimulatedGeolocationProvider(GeolocationProvider):
    """Simulates a GPS receiver on a vehicle following a route"""

    def __init__(self, route_points: Optional[List[Tuple[float, float]]] = None,
                 speed_kmh: float = 30.0,
                 permission: PermissionState = PermissionState.UNDETERMINED,
                 grant_on_request: bool = True,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.route_points = route_points or create_sample_route()
        if len(self.route_points) < 2:
            raise ValueError("A route needs at least two points")
        self.speed_kmh = speed_kmh
        self.permission = permission
        self.grant_on_request = grant_on_request
        self.rng = rng or random.Random()
        self.clock = clock
        self.current_position_index = 0
        self.current_position = self.route_points[0]
        self.heading = initial_bearing(self.route_points[0], self.route_points[1])
        self._last_advance = clock()
        self._watchers: List[Subscription] = []

    async def get_foreground_permission(self) -> PermissionState:
        return self.permission

    async def request_foreground_permission(self) -> PermissionState:
        if self.permission != PermissionState.GRANTED:
            self.permission = PermissionState.GRANTED if self.grant_on_request else PermissionState.DENIED
        logger.info(f"Simulated location permission: {self.permission.value}")
        return self.permission

    def calculate_next_position(self, time_delta_seconds: float) -> Tuple[float, float]:
        """Move along the route for time_delta_seconds, updating self.current_position"""
        speed_ms = (self.speed_kmh * 1000) / 3600  # km/h → m/s
        if speed_ms <= 0:
            return self.current_position
        remaining_time = time_delta_seconds

        while remaining_time > 0:
            next_idx = (self.current_position_index + 1) % len(self.route_points)
            start = self.current_position
            end = self.route_points[next_idx]

            segment_dist = haversine(start, end)
            travel_dist = speed_ms * remaining_time

            if travel_dist >= segment_dist:
                # reach the waypoint and keep going with the leftover time
                self.current_position = end
                self.current_position_index = next_idx
                remaining_time -= segment_dist / speed_ms
                following = self.route_points[(next_idx + 1) % len(self.route_points)]
                if following != end:
                    self.heading = initial_bearing(end, following)
            else:
                self.current_position = interpolate(start, end, travel_dist / segment_dist)
                self.heading = initial_bearing(start, end)
                remaining_time = 0

        return self.current_position

    def _advance(self) -> Tuple[float, float]:
        now = self.clock()
        elapsed = max(now - self._last_advance, 0.0)
        self._last_advance = now
        return self.calculate_next_position(elapsed)

    def _fix(self) -> Position:
        """Current position with simulated GPS noise"""
        lat_noise = self.rng.uniform(-0.00001, 0.00001)
        lon_noise = self.rng.uniform(-0.00001, 0.00001)
        speed_ms = max(self.speed_kmh / 3.6 + self.rng.uniform(-0.5, 0.5), 0.0)
        return Position(
            coords=Coords(
                latitude=round(self.current_position[0] + lat_noise, 6),
                longitude=round(self.current_position[1] + lon_noise, 6),
                accuracy=round(self.rng.uniform(5, 15), 1),
                speed=round(speed_ms, 2),
                heading=round(self.heading, 1),
            ),
            timestamp=int(time.time() * 1000),
        )

    def _require_permission(self):
        if self.permission != PermissionState.GRANTED:
            raise LocationFetchError("Location permission has not been granted")

    async def get_current_position(self, options: PositionOptions) -> Position:
        self._require_permission()
        self._advance()
        return self._fix()

    async def watch_position(self, options: PositionOptions, callback: PositionCallback) -> Subscription:
        self._require_permission()
        poll = max(min(options.time_interval, 1.0), 0.05)

        async def run():
            last_emit_time = self.clock()
            last_emit_point = self.current_position
            while True:
                await asyncio.sleep(poll)
                point = self._advance()
                moved = haversine(last_emit_point, point)
                waited = self.clock() - last_emit_time
                # whichever threshold is crossed first triggers an update
                if waited >= options.time_interval or (
                        options.distance_interval > 0 and moved >= options.distance_interval):
                    last_emit_time = self.clock()
                    last_emit_point = point
                    await deliver(callback, self._fix())

        subscription = Subscription(asyncio.create_task(run()))
        subscription._on_remove = lambda: self._watchers.remove(subscription)
        self._watchers.append(subscription)
        logger.info(f"Watching simulated position every {options.time_interval}s / {options.distance_interval}m")
        return subscription

    @property
    def active_watchers(self) -> int:
        return len(self._watchers)
