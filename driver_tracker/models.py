"""
Data models for the driver tracking client
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix"""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SampleKind(str, Enum):
    """Where a submitted sample came from"""
    MANUAL = "manual"
    AUTO = "auto"
    TEST = "test"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LocationSample(BaseModel):
    """Point-in-time GPS reading"""
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    accuracy: Optional[float] = Field(None, ge=0)  # meters
    timestamp: str = Field(default_factory=lambda: isoformat(utc_now()))
    speed: Optional[float] = None  # m/s
    heading: Optional[float] = None  # degrees

    class Config:
        frozen = True

    @property
    def coordinates(self):
        return (self.latitude, self.longitude)


class SentRecord(LocationSample):
    """Sample that was handed to the transport"""
    id: str
    kind: SampleKind


class SessionStats(BaseModel):
    """Running counters for the current session"""
    total_locations_sent: int = 0
    session_start_time: str = Field(default_factory=lambda: isoformat(utc_now()))
    last_location_time: str = ""
    avg_accuracy: float = 0.0
    total_distance: float = 0.0  # meters
    is_active: bool = False


class User(BaseModel):
    """Authenticated driver as returned by /user/me"""
    id: str
    email: str
    role: str
    name: Optional[str] = None
    vehicle_id: Optional[str] = Field(None, alias="vehicleId")

    class Config:
        populate_by_name = True
        coerce_numbers_to_str = True


class LoginData(BaseModel):
    access_token: str = Field(..., min_length=1)


class LoginEnvelope(BaseModel):
    """Body of POST /user/login"""
    data: LoginData
    message: Optional[str] = None


class UserEnvelope(BaseModel):
    """Body of GET /user/me"""
    data: User


class LocationPayload(BaseModel):
    """Body of the sendLocation message"""
    vehicle_id: Optional[str] = Field(None, alias="vehicleId")
    latitude: float
    longitude: float
    timestamp: str
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_sample(cls, sample: LocationSample, vehicle_id: Optional[str]) -> "LocationPayload":
        return cls(
            vehicleId=vehicle_id,
            latitude=sample.latitude,
            longitude=sample.longitude,
            timestamp=sample.timestamp,
            accuracy=sample.accuracy,
            speed=sample.speed,
            heading=sample.heading,
        )

    def to_message(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Notice(BaseModel):
    """User-visible message published by the tracker"""
    level: NoticeLevel
    title: str
    message: str
    error: Optional[str] = None  # error kind, e.g. "AuthMissingError"
    created_at: str = Field(default_factory=lambda: isoformat(utc_now()))


class TrackerSnapshot(BaseModel):
    """Read-only view of a tracking session"""
    connection_state: ConnectionState
    connection_status: str
    is_connected: bool
    is_connecting: bool
    is_tracking: bool
    permission: PermissionState
    tracking_interval: int
    vehicle_id: Optional[str] = None
    current_location: Optional[LocationSample] = None
    stats: SessionStats
    history_size: int
