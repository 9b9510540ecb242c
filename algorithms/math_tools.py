import math
from typing import Iterable, Optional
import numpy as np


class MathTools:
    """Provides essential mathematical utilities for session scoring."""

    EPL_COEFF: float = 0.0333

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves going up."""
        return int(math.floor(value + 0.5))

    @classmethod
    def epley_1rm(
        cls,
        weight: float,
        reps: int,
        factor: float = 1.0,
        max_reps: Optional[int] = 8,
    ) -> float:
        """Return the estimated one-rep max using the Epley formula.

        Reps above ``max_reps`` are not counted; ``None`` leaves them uncapped.
        """
        if reps < 0:
            raise ValueError("reps must be non-negative")
        rep_term = reps if max_reps is None else min(reps, max_reps)
        return weight * (1 + cls.EPL_COEFF * rep_term) * factor

    @staticmethod
    def volume(sets: Iterable[tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol

    @staticmethod
    def mean(values: Iterable[float]) -> Optional[float]:
        """Return the arithmetic mean or ``None`` for no values."""
        data = [float(v) for v in values if v is not None]
        if not data:
            return None
        return float(np.mean(np.array(data, dtype=float)))

    @staticmethod
    def median(values: Iterable[float]) -> Optional[float]:
        data = [float(v) for v in values]
        if not data:
            return None
        return float(np.median(np.array(data, dtype=float)))

    @staticmethod
    def coefficient_of_variation(values: Iterable[float]) -> float:
        """Return the coefficient of variation for ``values``."""
        data = list(values)
        if len(data) < 2:
            return 0.0
        arr = np.array(data, dtype=float)
        mean = float(np.mean(arr))
        if mean == 0:
            return 0.0
        std = float(np.std(arr))
        return std / mean

    @staticmethod
    def within_tolerance(actual: float, target: float, tolerance: float) -> bool:
        """Return True when ``actual`` is within ``tolerance`` (a fraction) of ``target``."""
        return abs(actual - target) <= abs(target) * tolerance

    @staticmethod
    def ratio_score(numerator: float, denominator: float) -> float:
        """Return ``numerator / denominator`` as a 0-100 score."""
        if denominator <= 0:
            return 0.0
        return MathTools.clamp(numerator / denominator * 100.0, 0.0, 100.0)

    @staticmethod
    def band_score(value: float, low: float, high: float, floor: float = 1.0) -> float:
        """Score 100 inside [low, high] and fall off linearly outside it.

        The slope is chosen so that ``floor`` scores 0; values above the band
        lose points at the same rate.
        """
        if low <= value <= high:
            return 100.0
        slope = 100.0 / (low - floor) if low > floor else 100.0
        distance = low - value if value < low else value - high
        return MathTools.clamp(100.0 - distance * slope, 0.0, 100.0)

    @staticmethod
    def weighted_sum(values: dict[str, float], weights: dict[str, float]) -> float:
        """Return the sum of ``values[k] * weights[k]`` over ``weights``."""
        return float(sum(values[k] * w for k, w in weights.items()))
