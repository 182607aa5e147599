"""
Realtime transport to the fleet monitoring server
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import socketio

from .config import settings
from .exceptions import TransportError

logger = logging.getLogger(__name__)

SEND_LOCATION_EVENT = "sendLocation"

# Events the tracker listens for
CONNECT = "connect"
DISCONNECT = "disconnect"
CONNECT_ERROR = "connect_error"
SERVER_ERROR = "error"


class Transport(ABC):
    """Connection-oriented channel with fire-and-forget emits"""

    @abstractmethod
    def on(self, event: str, handler: Callable):
        ...

    @abstractmethod
    async def open(self, token: str):
        """Connect using token as the auth credential; raises TransportError"""
        ...

    @abstractmethod
    async def emit(self, event: str, payload: Dict[str, Any]):
        ...

    @abstractmethod
    async def close(self):
        ...

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...


def describe_error(data: Any) -> str:
    """Message text from a connect_error / error payload"""
    if isinstance(data, dict):
        return str(data.get("message") or data)
    if isinstance(data, Exception):
        return str(data) or data.__class__.__name__
    return str(data) if data else "unknown error"


class SocketIOTransport(Transport):
    """Socket.IO client bound to a single namespace"""

    def __init__(self, url: Optional[str] = None, namespace: Optional[str] = None,
                 timeout: Optional[float] = None, reconnection_attempts: Optional[int] = None,
                 reconnection_delay: Optional[float] = None,
                 client: Optional[socketio.AsyncClient] = None):
        self.url = url or settings.BASE_URL
        self.namespace = namespace or settings.LOCATIONS_NAMESPACE
        self.timeout = timeout if timeout is not None else settings.SOCKET_TIMEOUT
        # Reconnection after a dropped connection is left to the client library
        self.client = client or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=reconnection_attempts if reconnection_attempts is not None
            else settings.RECONNECTION_ATTEMPTS,
            reconnection_delay=reconnection_delay if reconnection_delay is not None
            else settings.RECONNECTION_DELAY,
        )

    def on(self, event: str, handler: Callable):
        self.client.on(event, handler, namespace=self.namespace)

    async def open(self, token: str):
        logger.info(f"Connecting to {self.url}{self.namespace}...")
        try:
            await self.client.connect(
                self.url,
                auth={"token": token},
                namespaces=[self.namespace],
                transports=["websocket", "polling"],
                wait_timeout=self.timeout,
            )
        except socketio.exceptions.ConnectionError as e:
            raise TransportError(describe_error(e)) from e

    @property
    def connected(self) -> bool:
        return self.client.connected and self.namespace in self.client.namespaces

    async def emit(self, event: str, payload: Dict[str, Any]):
        if not self.connected:
            raise TransportError("No connection to the server")
        try:
            await self.client.emit(event, payload, namespace=self.namespace)
        except socketio.exceptions.SocketIOError as e:
            raise TransportError(describe_error(e)) from e

    async def close(self):
        """Disconnect, or abort a reconnection still in progress"""
        try:
            await self.client.shutdown()
        except socketio.exceptions.SocketIOError as e:
            logger.warning(f"Error while disconnecting: {str(e)}")
        logger.info("Disconnected!")
