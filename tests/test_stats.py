import unittest
from datetime import datetime, timedelta, timezone

from driver_tracker.models import LocationSample, SampleKind, SentRecord
from driver_tracker.stats import LocationHistory, SessionStatistics, format_duration


def record(i, kind=SampleKind.AUTO):
    return SentRecord(latitude=10.0, longitude=-75.0 + i * 0.001, timestamp=f"t{i}", id=str(i), kind=kind)


class TestLocationHistory(unittest.TestCase):

    def test_newest_first_and_capped(self):
        history = LocationHistory()
        for i in range(150):
            history.add(record(i))

        self.assertEqual(len(history), 100)
        self.assertEqual(history.latest.id, "149")
        self.assertEqual(history.records()[-1].id, "50")

    def test_length_is_min_of_count_and_limit(self):
        for n in (0, 1, 99, 100, 101):
            history = LocationHistory()
            for i in range(n):
                history.add(record(i))
            self.assertEqual(len(history), min(n, 100))

    def test_records_limit_and_clear(self):
        history = LocationHistory(limit=5)
        for i in range(3):
            history.add(record(i))
        self.assertEqual([r.id for r in history.records(2)], ["2", "1"])

        history.clear()
        self.assertEqual(len(history), 0)
        self.assertIsNone(history.latest)

    def test_route_is_chronological(self):
        history = LocationHistory()
        for i in range(3):
            history.add(record(i))
        route = history.route_coordinates()
        self.assertEqual([p[1] for p in route], [-75.0 + i * 0.001 for i in range(3)])

    def test_invalid_limit(self):
        with self.assertRaises(ValueError):
            LocationHistory(limit=0)


class TestSessionStatistics(unittest.TestCase):

    def setUp(self):
        self.statistics = SessionStatistics()

    def sample(self, lat, lon, accuracy=None):
        return LocationSample(latitude=lat, longitude=lon, accuracy=accuracy, timestamp="2025-01-01T00:00:00.000Z")

    def test_first_sample_adds_no_distance(self):
        self.assertEqual(self.statistics.record(self.sample(10.0, -75.0)), 0.0)
        self.assertEqual(self.statistics.stats.total_locations_sent, 1)

    def test_distance_accumulates(self):
        self.statistics.record(self.sample(10.0, -75.0))
        self.statistics.record(self.sample(10.001, -75.0))
        self.statistics.record(self.sample(10.002, -75.0))
        self.assertAlmostEqual(self.statistics.stats.total_distance, 222.39, delta=0.1)

    def test_accuracy_smoothing_is_not_a_mean(self):
        for accuracy in (8.0, 4.0, 12.0):
            self.statistics.record(self.sample(10.0, -75.0, accuracy))
        # ((8 + 4) / 2 + 12) / 2
        self.assertEqual(self.statistics.stats.avg_accuracy, 9.0)

    def test_zero_average_restarts_from_next_accuracy(self):
        self.statistics.record(self.sample(10.0, -75.0, None))
        self.assertEqual(self.statistics.stats.avg_accuracy, 0)
        self.statistics.record(self.sample(10.0, -75.0, 6.0))
        self.assertEqual(self.statistics.stats.avg_accuracy, 6.0)

    def test_reset_keeps_session_fields(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.statistics.start_session(start)
        self.statistics.record(self.sample(10.0, -75.0, 5.0))
        self.statistics.record(self.sample(10.1, -75.0, 5.0))
        self.statistics.reset()

        stats = self.statistics.stats
        self.assertEqual((stats.total_locations_sent, stats.total_distance, stats.avg_accuracy), (0, 0.0, 0.0))
        self.assertTrue(stats.is_active)
        self.assertEqual(stats.session_start_time, "2025-01-01T00:00:00.000Z")
        self.assertIsNone(self.statistics.last_submitted)

    def test_snapshot_is_a_copy(self):
        snapshot = self.statistics.snapshot()
        self.statistics.record(self.sample(10.0, -75.0))
        self.assertEqual(snapshot.total_locations_sent, 0)


class TestFormatDuration(unittest.TestCase):

    def test_formats(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.assertEqual(format_duration(start, start + timedelta(seconds=59)), "0m")
        self.assertEqual(format_duration(start, start + timedelta(minutes=59)), "59m")
        self.assertEqual(format_duration(start, start + timedelta(hours=2, minutes=3)), "2h 3m")
        self.assertEqual(format_duration(start, start - timedelta(minutes=5)), "0m")
