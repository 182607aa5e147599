"""
Geodesic helpers and the test-location generator
"""

import math
import random
from dataclasses import dataclass
from typing import Optional, Tuple

EARTH_RADIUS_M = 6371000  # 6371 km

@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east

# Cartagena, Colombia
CARTAGENA_BOUNDS = Bounds(north=10.5, south=10.28, east=-75.35, west=-75.6)
TEST_LOCATION_ACCURACY = 15.0


def haversine(start: Tuple[float, float], end: Tuple[float, float]) -> float:
    """Calculate distance in meters between two (lat, lon) points using the Haversine formula"""
    φ1, λ1 = map(math.radians, start)
    φ2, λ2 = map(math.radians, end)
    dφ = φ2 - φ1
    dλ = λ2 - λ1
    a = math.sin(dφ/2)**2 + math.cos(φ1)*math.cos(φ2)*math.sin(dλ/2)**2
    return 2*EARTH_RADIUS_M*math.atan2(math.sqrt(a), math.sqrt(1-a))


def random_point(bounds: Bounds = CARTAGENA_BOUNDS,
                 rng: Optional[random.Random] = None) -> Tuple[float, float]:
    """Uniformly random (lat, lon) inside bounds"""
    rng = rng or random
    lat = bounds.south + rng.random() * (bounds.north - bounds.south)
    lon = bounds.west + rng.random() * (bounds.east - bounds.west)
    return lat, lon


def interpolate(start: Tuple[float, float], end: Tuple[float, float], frac: float) -> Tuple[float, float]:
    """Linear interpolation between two points, frac in [0, 1]"""
    return (
        start[0] + (end[0] - start[0]) * frac,
        start[1] + (end[1] - start[1]) * frac,
    )


def initial_bearing(start: Tuple[float, float], end: Tuple[float, float]) -> float:
    """Compass bearing in degrees [0, 360) from start towards end"""
    φ1, λ1 = map(math.radians, start)
    φ2, λ2 = map(math.radians, end)
    dλ = λ2 - λ1
    x = math.sin(dλ) * math.cos(φ2)
    y = math.cos(φ1)*math.sin(φ2) - math.sin(φ1)*math.cos(φ2)*math.cos(dλ)
    return (math.degrees(math.atan2(x, y)) + 360) % 360
