"""
Session tracker

Owns one tracking session: permission state, the realtime connection,
periodic position sampling, submission of samples and the running
statistics. Everything runs on a single asyncio event loop; state is only
mutated between awaits, so no locking is needed.
"""

import asyncio
import logging
import random
import uuid
from collections import deque
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from .config import settings
from .exceptions import (
    AuthMissingError,
    LocationFetchError,
    PermissionDeniedError,
    TrackerError,
    TransportError,
)
from .geo import CARTAGENA_BOUNDS, TEST_LOCATION_ACCURACY, Bounds, random_point
from .geolocation import GeolocationProvider, Position, PositionOptions, Subscription
from .models import (
    ConnectionState,
    LocationPayload,
    LocationSample,
    Notice,
    NoticeLevel,
    PermissionState,
    SampleKind,
    SentRecord,
    SessionStats,
    TrackerSnapshot,
    isoformat,
    utc_now,
)
from .permissions import PermissionGate, Prompt
from .state_machine import (
    ConnectionEvent,
    ConnectionMachine,
    TrackingEvent,
    TrackingMachine,
    tracking_blocker,
)
from .stats import LocationHistory, SessionStatistics, format_duration
from .token_store import TokenStore
from .transport import (
    CONNECT,
    CONNECT_ERROR,
    DISCONNECT,
    SEND_LOCATION_EVENT,
    SERVER_ERROR,
    SocketIOTransport,
    Transport,
    describe_error,
)

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}

Listener = Callable[[TrackerSnapshot], None]


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SessionTracker:
    """Driver tracking session"""

    def __init__(self, provider: GeolocationProvider, token_store: TokenStore,
                 transport_factory: Optional[Callable[[], Transport]] = None,
                 vehicle_id: Optional[str] = None,
                 interval: Optional[int] = None,
                 notify: Optional[Callable[[Notice], None]] = None,
                 clock: Callable[[], datetime] = utc_now,
                 rng: Optional[random.Random] = None,
                 history_limit: Optional[int] = None,
                 distance_interval: Optional[float] = None,
                 test_bounds: Bounds = CARTAGENA_BOUNDS,
                 token_key: Optional[str] = None):
        self.provider = provider
        self.token_store = token_store
        self.transport_factory = transport_factory or SocketIOTransport
        self.vehicle_id = vehicle_id
        self.notify = notify
        self.clock = clock
        self.rng = rng or random.Random()
        self.distance_interval = distance_interval if distance_interval is not None else settings.DISTANCE_INTERVAL_METERS
        self.test_bounds = test_bounds
        self.token_key = token_key or settings.TOKEN_KEY
        self.tracking_interval = settings.TRACKING_INTERVAL
        if interval is not None:
            self._validate_interval(interval)
            self.tracking_interval = interval

        self.permissions = PermissionGate(provider)
        self.connection = ConnectionMachine()
        self.tracking = TrackingMachine()
        self.connection_status = "Disconnected"
        self.current_location: Optional[LocationSample] = None
        self.history = LocationHistory(history_limit or settings.HISTORY_LIMIT)
        self.statistics = SessionStatistics()
        self.notices = deque(maxlen=50)

        self._transport: Optional[Transport] = None
        self._subscription: Optional[Subscription] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._run_id = 0
        self._listeners: List[Listener] = []
        self.disposed = False

    # -- published state ---------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.connection.state == ConnectionState.CONNECTED

    @property
    def is_connecting(self) -> bool:
        return self.connection.state == ConnectionState.CONNECTING

    @property
    def is_tracking(self) -> bool:
        return self.tracking.active

    @property
    def permission(self) -> PermissionState:
        return self.permissions.state

    @property
    def stats(self) -> SessionStats:
        return self.statistics.snapshot()

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            connection_state=self.connection.state,
            connection_status=self.connection_status,
            is_connected=self.is_connected,
            is_connecting=self.is_connecting,
            is_tracking=self.is_tracking,
            permission=self.permission,
            tracking_interval=self.tracking_interval,
            vehicle_id=self.vehicle_id,
            current_location=self.current_location,
            stats=self.stats,
            history_size=len(self.history),
        )

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self):
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener failed")

    def _publish(self, notice: Notice):
        logger.log(_LOG_LEVELS[notice.level], f"{notice.title}: {notice.message}")
        self.notices.append(notice)
        if self.notify:
            try:
                self.notify(notice)
            except Exception:
                logger.exception("Notice callback failed")

    def _report(self, error: TrackerError, level: NoticeLevel = NoticeLevel.ERROR):
        self._publish(Notice(level=level, title=error.title, message=str(error),
                             error=type(error).__name__))

    def _inform(self, title: str, message: str, level: NoticeLevel = NoticeLevel.INFO):
        self._publish(Notice(level=level, title=title, message=message))

    def _set_status(self, status: str):
        self.connection_status = status
        self._changed()

    # -- permissions and positions -----------------------------------------

    async def request_permissions(self, prompt: Optional[Prompt] = None) -> PermissionState:
        """Query/request location access; warms the current location on grant"""
        previous = self.permissions.state
        try:
            state = await self.permissions.check(prompt)
        except LocationFetchError as e:
            self._report(LocationFetchError(f"Could not verify location permissions: {e}"))
            return self.permissions.state
        self._changed()

        if state == PermissionState.GRANTED:
            if previous != PermissionState.GRANTED:
                self._inform("Permissions granted", "GPS tracking features are available")
            await self._fetch_position()
        else:
            self._report(PermissionDeniedError(
                "Without location permission some features are not available"), NoticeLevel.WARNING)
        return state

    def _sample_from(self, position: Position) -> LocationSample:
        coords = position.coords
        try:
            return LocationSample(
                latitude=coords.latitude,
                longitude=coords.longitude,
                accuracy=coords.accuracy if coords.accuracy is not None and coords.accuracy >= 0 else None,
                timestamp=isoformat(self.clock()),
                speed=coords.speed if coords.speed is not None and coords.speed >= 0 else None,
                heading=coords.heading if coords.heading is not None and coords.heading >= 0 else None,
            )
        except ValidationError as e:
            raise LocationFetchError(f"Device returned an invalid position ({e.error_count()} bad field(s))") from e

    async def _fetch_position(self) -> Optional[LocationSample]:
        """One-shot fix that also becomes the current location"""
        if not self.permissions.granted:
            self._report(PermissionDeniedError("Grant location permission first"))
            return None
        try:
            position = await self.provider.get_current_position(PositionOptions(accuracy="high", time_interval=1.0))
            sample = self._sample_from(position)
        except LocationFetchError as e:
            self._report(e)
            return None
        self.current_location = sample
        self._changed()
        return sample

    async def refresh_location(self) -> Optional[LocationSample]:
        return await self._fetch_position()

    # -- connection --------------------------------------------------------

    async def connect(self):
        """Open the realtime connection using the stored access token"""
        if self.connection.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return

        if self._transport is not None:
            # left over from a dropped connection the library may still be retrying
            stale, self._transport = self._transport, None
            await stale.close()
            # another connect() may have started while closing
            if self.connection.state != ConnectionState.DISCONNECTED:
                return

        self.connection.fire(ConnectionEvent.CONNECT_REQUESTED)
        self._set_status("Connecting...")

        token = self.token_store.get(self.token_key)
        if not token:
            self.connection.fire(ConnectionEvent.AUTH_MISSING)
            self._set_status("Authentication error")
            self._report(AuthMissingError("Authentication token not found"))
            return

        if not self.vehicle_id:
            logger.warning("No vehicle assigned to this driver; locations will be sent without vehicleId")

        transport = self.transport_factory()
        self._transport = transport
        self._wire(transport)
        try:
            await transport.open(token)
        except TransportError as e:
            if transport is self._transport and self.connection.state == ConnectionState.CONNECTING:
                self.connection.fire(ConnectionEvent.TRANSPORT_FAILED)
                self._set_status(f"Error: {e}")
                self._report(e)
            return

        if transport is not self._transport:
            # disconnect() was called while the connection was being opened
            await transport.close()
            return
        if transport.connected:
            self._handle_connected(transport)

    def _wire(self, transport: Transport):
        async def on_connect():
            self._handle_connected(transport)

        async def on_disconnect(reason=None):
            self._handle_disconnected(transport, reason)

        async def on_connect_error(data=None):
            self._handle_connect_error(transport, data)

        async def on_server_error(data=None):
            self._handle_server_error(transport, data)

        transport.on(CONNECT, on_connect)
        transport.on(DISCONNECT, on_disconnect)
        transport.on(CONNECT_ERROR, on_connect_error)
        transport.on(SERVER_ERROR, on_server_error)

    def _handle_connected(self, transport: Transport):
        if transport is not self._transport:
            return
        if not self.connection.send(ConnectionEvent.TRANSPORT_CONNECTED):
            return
        self.statistics.start_session(self.clock())
        self._set_status("Connected")
        logger.info(f"Connected to {settings.LOCATIONS_NAMESPACE}")
        self._inform("Connected", "Connected to the monitoring system")

    def _handle_disconnected(self, transport: Transport, reason=None):
        if transport is not self._transport:
            return
        self.stop()
        if not self.connection.send(ConnectionEvent.TRANSPORT_DISCONNECTED):
            return
        reason = describe_error(reason) if reason else "transport closed"
        self._set_status(f"Disconnected: {reason}")
        self._report(TransportError("Lost connection to the server"), NoticeLevel.WARNING)

    def _handle_connect_error(self, transport: Transport, data=None):
        if transport is not self._transport:
            return
        message = describe_error(data)
        self.stop()
        self.connection.send(ConnectionEvent.TRANSPORT_FAILED)
        self._set_status(f"Error: {message}")
        self._report(TransportError(message))

    def _handle_server_error(self, transport: Transport, data=None):
        if transport is not self._transport:
            return
        self._inform("Server error", describe_error(data) if data else "Server error", NoticeLevel.ERROR)

    async def disconnect(self):
        """Close the connection; safe to call repeatedly"""
        transport, self._transport = self._transport, None
        self.stop()
        if transport is not None:
            await transport.close()
        self.connection.send(ConnectionEvent.DISCONNECT_REQUESTED)
        self.statistics.end_session()
        self._set_status("Disconnected")

    # -- tracking ----------------------------------------------------------

    def set_interval(self, seconds: int):
        """Sampling interval for the next start()"""
        self._validate_interval(seconds)
        self.tracking_interval = seconds
        logger.info(f"Tracking interval set to {seconds}s")
        if self.is_tracking:
            self._inform("Interval updated", "The new interval applies the next time tracking starts")
        self._changed()

    @staticmethod
    def _validate_interval(seconds):
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
            raise ValueError(f"Tracking interval must be a positive number of seconds, got {seconds!r}")

    async def start(self) -> bool:
        """Begin automatic sampling; returns whether tracking is running"""
        if self.is_tracking:
            return True
        blocker = tracking_blocker(self.connection.state, self.permissions.state)
        if blocker:
            self._report(blocker)
            return False

        self._run_id += 1
        run_id = self._run_id
        interval = self.tracking_interval
        self.tracking.fire(TrackingEvent.START)
        self._changed()

        initial = await self._fetch_position()
        if initial and self._running(run_id):
            await self.submit(initial, SampleKind.AUTO)
        if not self._running(run_id):
            return False

        options = PositionOptions(accuracy="high", time_interval=interval,
                                  distance_interval=self.distance_interval)
        try:
            subscription = await self.provider.watch_position(options, self._on_watch_position)
        except LocationFetchError as e:
            if self._running(run_id):
                self.stop()
            self._report(LocationFetchError(f"Could not start GPS tracking: {e}"))
            return False
        if not self._running(run_id):
            subscription.remove()
            return False

        self._subscription = subscription
        # Redundant fixed-period sampling alongside the subscription; both submit
        self._timer_task = asyncio.create_task(self._sampling_timer(run_id, interval))
        self._inform("Tracking started", f"GPS active - sending location every {interval} seconds")
        return True

    def _running(self, run_id: int) -> bool:
        return self.tracking.active and self._run_id == run_id

    async def _on_watch_position(self, position: Position):
        if not self.is_tracking:
            return
        try:
            sample = self._sample_from(position)
        except LocationFetchError as e:
            self._report(e)
            return
        self.current_location = sample
        await self.submit(sample, SampleKind.AUTO)

    async def _sampling_timer(self, run_id: int, interval: int):
        while True:
            await asyncio.sleep(interval)
            if not self._running(run_id):
                return
            sample = await self._fetch_position()
            if sample and self._running(run_id):
                await self.submit(sample, SampleKind.AUTO)

    def stop(self):
        """Cancel the subscription and the sampling timer; idempotent"""
        if self._subscription is not None:
            self._subscription.remove()
            self._subscription = None
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None
        if self.tracking.active:
            self._run_id += 1
            self.tracking.fire(TrackingEvent.STOP)
            logger.info("Tracking stopped")
            self._changed()

    # -- submission --------------------------------------------------------

    async def submit(self, sample: LocationSample, kind: SampleKind = SampleKind.AUTO) -> Optional[SentRecord]:
        """Send a sample and record it in history and statistics"""
        transport = self._transport
        if not self.is_connected or transport is None or not transport.connected:
            self._report(TransportError("No connection to the server"))
            return None

        message = LocationPayload.from_sample(sample, self.vehicle_id).to_message()
        try:
            await transport.emit(SEND_LOCATION_EVENT, message)
        except TransportError as e:
            self._report(e)
            return None

        record = SentRecord(**sample.model_dump(), id=str(uuid.uuid4()), kind=kind)
        distance = self.statistics.record(sample)
        self.history.add(record)
        logger.info(f"Location {kind.value} sent: {message} (+{distance:.1f} m)")
        self._changed()
        return record

    async def send_manual(self) -> Optional[SentRecord]:
        if not self.is_connected:
            self._report(TransportError("Connect to the server first"))
            return None
        sample = await self._fetch_position()
        if sample is None:
            return None
        record = await self.submit(sample, SampleKind.MANUAL)
        if record:
            self._inform("Sent", "Manual location sent")
        return record

    async def send_test_location(self) -> LocationSample:
        """Random point inside the test area; submitted only when connected"""
        lat, lon = random_point(self.test_bounds, self.rng)
        sample = LocationSample(latitude=lat, longitude=lon, accuracy=TEST_LOCATION_ACCURACY,
                                timestamp=isoformat(self.clock()))
        self.current_location = sample
        self._changed()
        if self.is_connected:
            await self.submit(sample, SampleKind.TEST)
        self._inform("Test location", f"Simulated location:\nLat: {lat:.4f}\nLng: {lon:.4f}")
        return sample

    # -- history -----------------------------------------------------------

    def clear_history(self, confirmed: bool = False) -> bool:
        """Empty the history and zero the counters; requires confirmed=True"""
        if not confirmed:
            logger.info("History clear not confirmed")
            return False
        self.history.clear()
        self.statistics.reset()
        self._changed()
        return True

    def session_duration(self, now: Optional[datetime] = None) -> str:
        start = parse_timestamp(self.statistics.stats.session_start_time)
        return format_duration(start, now or self.clock())

    def route_coordinates(self, limit: int = 20) -> List[Tuple[float, float]]:
        return self.history.route_coordinates(limit)

    # -- lifecycle ---------------------------------------------------------

    async def dispose(self):
        """Tear down the session"""
        if self.disposed:
            return
        await self.disconnect()
        self._listeners.clear()
        self.disposed = True
        logger.info("Tracking session disposed")
