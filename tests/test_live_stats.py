import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import LiveStatsCalculator
from errors import SessionNotActive
from session_models import SetLog, WorkoutSession
from stats_service import LiveStatsCache


START = datetime.datetime(2024, 3, 15, 18, 0)


class LiveStatsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session = WorkoutSession(
            id=7,
            user_id="u1",
            workout_id="legs",
            status="active",
            started_at=START,
            planned_sets=4,
            planned_duration_seconds=1800,
        )
        self.sets = [
            SetLog(i, 7, "squat", i, 5, 5, 100.0, rpe=8) for i in range(1, 3)
        ]
        self.now = START + datetime.timedelta(minutes=10)

    def test_half_complete(self) -> None:
        stats = LiveStatsCalculator.calculate(self.session, self.sets, self.now)
        self.assertEqual(stats.completion_percentage, 50)
        self.assertEqual(stats.sets_completed, 2)
        self.assertEqual(stats.sets_total, 4)
        self.assertEqual(stats.total_volume, 1000.0)
        self.assertEqual(stats.total_reps, 10)
        self.assertEqual(stats.average_rpe, 8)
        self.assertAlmostEqual(stats.pace_ratio, 0.333)
        self.assertEqual(stats.estimated_remaining_seconds, 600)
        self.assertGreater(stats.calories_estimate, 0)

    def test_no_sets_yet(self) -> None:
        stats = LiveStatsCalculator.calculate(self.session, [], self.now)
        self.assertEqual(stats.completion_percentage, 0)
        self.assertEqual(stats.total_volume, 0)
        self.assertIsNone(stats.average_rpe)
        self.assertEqual(stats.estimated_remaining_seconds, 1200)
        self.assertAlmostEqual(stats.pace_ratio, 0.333)

    def test_skipped_set_counts_toward_total(self) -> None:
        sets = self.sets + [
            SetLog(3, 7, "squat", 3, 5, 0, 100.0, completed=False),
            SetLog(4, 7, "squat", 4, 5, 5, 100.0),
            SetLog(5, 7, "squat", 5, 5, 5, 100.0),
        ]
        stats = LiveStatsCalculator.calculate(self.session, sets, self.now)
        self.assertEqual(stats.sets_total, 5)
        self.assertEqual(stats.completion_percentage, 80)

    def test_requires_active_session(self) -> None:
        self.session.status = "completed"
        with self.assertRaises(SessionNotActive):
            LiveStatsCalculator.calculate(self.session, self.sets, self.now)

    def test_repeatable(self) -> None:
        first = LiveStatsCalculator.calculate(self.session, self.sets, self.now)
        second = LiveStatsCalculator.calculate(self.session, self.sets, self.now)
        self.assertEqual(first, second)

    def test_calorie_bands(self) -> None:
        light = LiveStatsCalculator.estimate_calories(60, 3, 0)
        intense = LiveStatsCalculator.estimate_calories(60, 9, 0)
        self.assertEqual(light, round(3.5 * 75 * 0.7))
        self.assertEqual(intense, round(8.0 * 75 * 0.7))


class LiveStatsCacheTestCase(unittest.TestCase):
    def test_expiry_and_invalidate(self) -> None:
        clock = [0.0]
        cache = LiveStatsCache(ttl=5.0, clock=lambda: clock[0])
        stats = LiveStatsCalculator.calculate(
            WorkoutSession(1, "u", "w", "active", START), [], START
        )
        cache.put(1, stats)
        self.assertIs(cache.get(1), stats)
        clock[0] = 6.0
        self.assertIsNone(cache.get(1))
        cache.put(1, stats)
        cache.invalidate(1)
        self.assertIsNone(cache.get(1))


if __name__ == "__main__":
    unittest.main()
