"""
Sent-location history and session statistics
"""

from collections import deque
from datetime import datetime
from typing import Iterator, List, Optional, Tuple
import logging

from .geo import haversine
from .models import LocationSample, SentRecord, SessionStats, isoformat

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


class LocationHistory:
    """Newest-first list of sent records, capped at `limit` entries"""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT):
        if limit <= 0:
            raise ValueError(f"History limit must be positive, got {limit}")
        self.limit = limit
        self._records = deque(maxlen=limit)

    def add(self, record: SentRecord):
        # appendleft on a bounded deque evicts from the right, i.e. the oldest
        self._records.appendleft(record)

    def clear(self):
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[SentRecord]:
        return iter(self._records)

    @property
    def latest(self) -> Optional[SentRecord]:
        return self._records[0] if self._records else None

    def records(self, limit: Optional[int] = None) -> List[SentRecord]:
        items = list(self._records)
        return items if limit is None else items[:limit]

    def route_coordinates(self, limit: int = 20) -> List[Tuple[float, float]]:
        """Most recent `limit` points in chronological order"""
        return [r.coordinates for r in reversed(self.records(limit))]


class SessionStatistics:
    """Accumulates SessionStats from submitted samples"""

    def __init__(self):
        self.stats = SessionStats()
        self.last_submitted: Optional[LocationSample] = None

    def record(self, sample: LocationSample) -> float:
        """Account for a submitted sample and return the distance it added"""
        distance = 0.0
        if self.last_submitted is not None:
            distance = haversine(self.last_submitted.coordinates, sample.coordinates)

        accuracy = sample.accuracy or 0
        stats = self.stats
        stats.total_locations_sent += 1
        stats.last_location_time = sample.timestamp
        # Recency-weighted smoothing, not an arithmetic mean
        stats.avg_accuracy = accuracy if stats.avg_accuracy == 0 else (stats.avg_accuracy + accuracy) / 2
        stats.total_distance += distance

        self.last_submitted = sample
        return distance

    def start_session(self, now: datetime):
        self.stats.session_start_time = isoformat(now)
        self.stats.is_active = True

    def end_session(self):
        self.stats.is_active = False

    def reset(self):
        """Zero the counters; start time and active flag are kept"""
        self.stats.total_locations_sent = 0
        self.stats.total_distance = 0.0
        self.stats.avg_accuracy = 0.0
        self.last_submitted = None
        logger.info("Session statistics cleared")

    def snapshot(self) -> SessionStats:
        return self.stats.model_copy()


def format_duration(start: datetime, now: datetime) -> str:
    """Render elapsed time as '<h>h <m>m' or '<m>m'"""
    minutes = max(int((now - start).total_seconds() // 60), 0)
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"
