"""
Connection and tracking state machines

Transitions are driven by discrete inputs so the session logic can be
exercised without a UI or a live socket.
"""

from enum import Enum
from typing import Dict, Optional, Tuple
import logging

from .exceptions import PermissionDeniedError, TrackerError, TransportError
from .models import ConnectionState, PermissionState

logger = logging.getLogger(__name__)


class ConnectionEvent(str, Enum):
    CONNECT_REQUESTED = "connect_requested"
    AUTH_MISSING = "auth_missing"
    TRANSPORT_CONNECTED = "transport_connected"
    TRANSPORT_FAILED = "transport_failed"
    TRANSPORT_DISCONNECTED = "transport_disconnected"
    DISCONNECT_REQUESTED = "disconnect_requested"


class TrackingState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


class TrackingEvent(str, Enum):
    START = "start"
    STOP = "stop"


class InvalidTransition(Exception):
    """Event is not accepted in the current state"""
    pass


_C = ConnectionState
_E = ConnectionEvent

CONNECTION_TRANSITIONS: Dict[Tuple[ConnectionState, ConnectionEvent], ConnectionState] = {
    (_C.DISCONNECTED, _E.CONNECT_REQUESTED): _C.CONNECTING,
    (_C.CONNECTING, _E.AUTH_MISSING): _C.DISCONNECTED,
    (_C.CONNECTING, _E.TRANSPORT_CONNECTED): _C.CONNECTED,
    (_C.CONNECTING, _E.TRANSPORT_FAILED): _C.DISCONNECTED,
    (_C.CONNECTING, _E.TRANSPORT_DISCONNECTED): _C.DISCONNECTED,
    (_C.CONNECTED, _E.TRANSPORT_FAILED): _C.DISCONNECTED,
    (_C.CONNECTED, _E.TRANSPORT_DISCONNECTED): _C.DISCONNECTED,
    # the transport reconnected on its own after a drop
    (_C.DISCONNECTED, _E.TRANSPORT_CONNECTED): _C.CONNECTED,
    (_C.DISCONNECTED, _E.DISCONNECT_REQUESTED): _C.DISCONNECTED,
    (_C.CONNECTING, _E.DISCONNECT_REQUESTED): _C.DISCONNECTED,
    (_C.CONNECTED, _E.DISCONNECT_REQUESTED): _C.DISCONNECTED,
}

TRACKING_TRANSITIONS: Dict[Tuple[TrackingState, TrackingEvent], TrackingState] = {
    (TrackingState.IDLE, TrackingEvent.START): TrackingState.TRACKING,
    (TrackingState.TRACKING, TrackingEvent.STOP): TrackingState.IDLE,
    (TrackingState.IDLE, TrackingEvent.STOP): TrackingState.IDLE,
}


class StateMachine:
    """Table-driven finite state machine"""

    def __init__(self, name: str, transitions: Dict, initial):
        self.name = name
        self.transitions = transitions
        self.state = initial

    def can(self, event) -> bool:
        return (self.state, event) in self.transitions

    def fire(self, event):
        """Apply event, raising InvalidTransition if the table has no entry"""
        key = (self.state, event)
        if key not in self.transitions:
            raise InvalidTransition(f"{self.name}: {event.value} not allowed in {self.state.value}")
        previous = self.state
        self.state = self.transitions[key]
        if previous != self.state:
            logger.debug(f"{self.name}: {previous.value} -> {self.state.value} ({event.value})")
        return self.state

    def send(self, event) -> bool:
        """Apply event if allowed; returns False when it was ignored"""
        if not self.can(event):
            logger.debug(f"{self.name}: ignoring {event.value} in {self.state.value}")
            return False
        self.fire(event)
        return True


class ConnectionMachine(StateMachine):
    def __init__(self):
        super().__init__("connection", CONNECTION_TRANSITIONS, ConnectionState.DISCONNECTED)


class TrackingMachine(StateMachine):
    def __init__(self):
        super().__init__("tracking", TRACKING_TRANSITIONS, TrackingState.IDLE)

    @property
    def active(self) -> bool:
        return self.state == TrackingState.TRACKING


def tracking_blocker(connection: ConnectionState, permission: PermissionState) -> Optional[TrackerError]:
    """Return the error that prevents tracking from starting, if any"""
    if connection != ConnectionState.CONNECTED:
        return TransportError("Connect to the server first")
    if permission != PermissionState.GRANTED:
        return PermissionDeniedError("Location permission is required for tracking")
    return None
