import asyncio
import random
import unittest

from driver_tracker.exceptions import LocationFetchError
from driver_tracker.geo import haversine
from driver_tracker.geolocation import PositionOptions, SimulatedGeolocationProvider, create_sample_route
from driver_tracker.models import PermissionState

STRAIGHT_ROUTE = [(10.0, -75.0), (10.01, -75.0)]


class FakeMonotonic:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


class TestRouteFollowing(unittest.TestCase):

    def test_moves_expected_distance(self):
        provider = SimulatedGeolocationProvider(STRAIGHT_ROUTE, speed_kmh=36.0)
        provider.calculate_next_position(10)  # 10 m/s for 10 s
        self.assertAlmostEqual(haversine(STRAIGHT_ROUTE[0], provider.current_position), 100.0, delta=0.5)
        self.assertAlmostEqual(provider.heading, 0.0, delta=0.01)

    def test_passes_waypoints_and_wraps(self):
        provider = SimulatedGeolocationProvider(STRAIGHT_ROUTE, speed_kmh=36.0)
        segment = haversine(*STRAIGHT_ROUTE)
        provider.calculate_next_position(segment / 10 + 10)
        self.assertEqual(provider.current_position_index, 1)
        # heading back towards the first waypoint
        self.assertAlmostEqual(provider.heading, 180.0, delta=0.01)

    def test_sample_route_is_a_loop(self):
        route = create_sample_route()
        self.assertEqual(route[0], route[-1])

    def test_route_needs_two_points(self):
        with self.assertRaises(ValueError):
            SimulatedGeolocationProvider([(10.0, -75.0)])


class TestSimulatedProvider(unittest.IsolatedAsyncioTestCase):

    async def test_permission_flow(self):
        provider = SimulatedGeolocationProvider(grant_on_request=False)
        self.assertEqual(await provider.get_foreground_permission(), PermissionState.UNDETERMINED)
        self.assertEqual(await provider.request_foreground_permission(), PermissionState.DENIED)

        provider.grant_on_request = True
        self.assertEqual(await provider.request_foreground_permission(), PermissionState.GRANTED)

    async def test_fix_requires_permission(self):
        provider = SimulatedGeolocationProvider()
        with self.assertRaises(LocationFetchError):
            await provider.get_current_position(PositionOptions())

    async def test_fix_follows_clock(self):
        clock = FakeMonotonic()
        provider = SimulatedGeolocationProvider(STRAIGHT_ROUTE, speed_kmh=36.0,
                                                permission=PermissionState.GRANTED,
                                                rng=random.Random(1), clock=clock)
        clock.value = 20.0
        fix = await provider.get_current_position(PositionOptions())

        travelled = haversine(STRAIGHT_ROUTE[0], (fix.coords.latitude, fix.coords.longitude))
        self.assertAlmostEqual(travelled, 200.0, delta=3.0)
        self.assertTrue(5 <= fix.coords.accuracy <= 15)
        self.assertAlmostEqual(fix.coords.speed, 10.0, delta=0.6)

    async def test_watch_delivers_until_removed(self):
        provider = SimulatedGeolocationProvider(permission=PermissionState.GRANTED)
        received = []
        subscription = await provider.watch_position(
            PositionOptions(time_interval=0.05, distance_interval=0), received.append)
        await asyncio.sleep(0.3)
        subscription.remove()
        count = len(received)

        self.assertGreaterEqual(count, 1)
        self.assertEqual(provider.active_watchers, 0)
        await asyncio.sleep(0.15)
        self.assertEqual(len(received), count)
