import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import MathTools


class MathToolsTestCase(unittest.TestCase):
    def test_clamp(self) -> None:
        self.assertEqual(MathTools.clamp(5, 0, 10), 5)
        self.assertEqual(MathTools.clamp(-1, 0, 10), 0)
        self.assertEqual(MathTools.clamp(11, 0, 10), 10)
        with self.assertRaises(ValueError):
            MathTools.clamp(1, 2, 1)

    def test_round_half_up(self) -> None:
        self.assertEqual(MathTools.round_half_up(94.5), 95)
        self.assertEqual(MathTools.round_half_up(94.49), 94)
        self.assertEqual(MathTools.round_half_up(0.5), 1)

    def test_epley_1rm(self) -> None:
        self.assertAlmostEqual(MathTools.epley_1rm(100, 3), 109.99)
        self.assertAlmostEqual(MathTools.epley_1rm(100, 12), MathTools.epley_1rm(100, 8))
        self.assertAlmostEqual(MathTools.epley_1rm(100, 12, max_reps=None), 139.96)
        with self.assertRaises(ValueError):
            MathTools.epley_1rm(100, -1)

    def test_mean_and_median(self) -> None:
        self.assertIsNone(MathTools.mean([]))
        self.assertAlmostEqual(MathTools.mean([1, None, 3]), 2.0)
        self.assertAlmostEqual(MathTools.median([1, 10, 3]), 3.0)
        self.assertIsNone(MathTools.median([]))

    def test_ratio_score(self) -> None:
        self.assertEqual(MathTools.ratio_score(2, 4), 50.0)
        self.assertEqual(MathTools.ratio_score(5, 4), 100.0)
        self.assertEqual(MathTools.ratio_score(1, 0), 0.0)

    def test_band_score(self) -> None:
        self.assertEqual(MathTools.band_score(8, 7, 9), 100.0)
        self.assertEqual(MathTools.band_score(1, 7, 9), 0.0)
        self.assertAlmostEqual(MathTools.band_score(10, 7, 9), 100 - 100 / 6)
        self.assertAlmostEqual(MathTools.band_score(4, 7, 9), 50.0)

    def test_within_tolerance(self) -> None:
        self.assertTrue(MathTools.within_tolerance(110, 120, 0.1))
        self.assertFalse(MathTools.within_tolerance(90, 120, 0.2))

    def test_coefficient_of_variation(self) -> None:
        self.assertEqual(MathTools.coefficient_of_variation([5]), 0.0)
        self.assertEqual(MathTools.coefficient_of_variation([2, 2, 2]), 0.0)
        self.assertGreater(MathTools.coefficient_of_variation([1, 3]), 0)


if __name__ == "__main__":
    unittest.main()
