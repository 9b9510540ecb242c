from typing import Iterable, Optional

from session_models import (
    ExerciseBreakdown,
    PerformanceScoreBreakdown,
    SetLog,
    WorkoutSession,
)
from .math_tools import MathTools


class PerformanceScorer:
    """Six-factor weighted score for a completed session."""

    WEIGHTS: dict[str, float] = {
        "completion": 0.25,
        "volume": 0.20,
        "intensity": 0.20,
        "consistency": 0.15,
        "efficiency": 0.10,
        "progression": 0.10,
    }
    NEUTRAL: float = 50.0

    def __init__(
        self,
        rpe_band_low: int = 7,
        rpe_band_high: int = 9,
        rest_tolerance: float = 0.2,
    ) -> None:
        self.rpe_band_low = rpe_band_low
        self.rpe_band_high = rpe_band_high
        self.rest_tolerance = rest_tolerance

    @staticmethod
    def group_sets(set_logs: Iterable[SetLog]) -> list[ExerciseBreakdown]:
        """Group set logs by exercise, keeping first-seen exercise order."""
        groups: dict[str, ExerciseBreakdown] = {}
        for log in set_logs:
            groups.setdefault(log.exercise_id, ExerciseBreakdown(log.exercise_id))
            groups[log.exercise_id].sets.append(log)
        return list(groups.values())

    def score(
        self,
        session: WorkoutSession,
        breakdowns: list[ExerciseBreakdown],
        trailing_average_volume: Optional[float] = None,
        prior_weights: Optional[dict[str, float]] = None,
    ) -> PerformanceScoreBreakdown:
        sets = [s for b in breakdowns for s in b.sets]
        if not sets:
            return PerformanceScoreBreakdown()
        done = [s for s in sets if s.completed]
        planned = max(session.planned_sets, len(sets))

        parts = {
            "completion": MathTools.ratio_score(len(done), planned),
            "volume": self.volume_score(
                sum(b.total_volume for b in breakdowns),
                trailing_average_volume,
                bool(done),
            ),
            "intensity": self.intensity_score(done),
            "consistency": self.consistency_score(done),
            "progression": self.progression_score(breakdowns, prior_weights or {}),
        }
        parts["efficiency"] = self.efficiency_score(
            session, parts["completion"], len(done) < planned
        )
        parts = {k: round(v, 2) for k, v in parts.items()}
        final = MathTools.round_half_up(MathTools.weighted_sum(parts, self.WEIGHTS))
        return PerformanceScoreBreakdown(
            final_score=int(MathTools.clamp(final, 0, 100)), **parts
        )

    def volume_score(
        self, volume: float, trailing_average: Optional[float], any_completed: bool
    ) -> float:
        if not any_completed:
            return 0.0
        if not trailing_average or trailing_average <= 0:
            return 100.0
        return MathTools.ratio_score(volume, trailing_average)

    def intensity_score(self, done: list[SetLog]) -> float:
        avg = MathTools.mean(s.rpe for s in done if s.rpe is not None)
        if avg is None:
            return self.NEUTRAL
        return MathTools.band_score(avg, self.rpe_band_low, self.rpe_band_high)

    def consistency_score(self, done: list[SetLog]) -> float:
        considered = [
            s
            for s in done
            if s.planned_rest_seconds is not None and s.rest_seconds is not None
        ]
        if not considered:
            return self.NEUTRAL
        consistent = sum(
            1
            for s in considered
            if MathTools.within_tolerance(
                s.rest_seconds, s.planned_rest_seconds, self.rest_tolerance
            )
        )
        return MathTools.ratio_score(consistent, len(considered))

    def efficiency_score(
        self, session: WorkoutSession, completion: float, skipped: bool
    ) -> float:
        actual = session.actual_duration_seconds
        if not session.planned_duration_seconds or not actual or actual <= 0:
            return self.NEUTRAL
        score = MathTools.ratio_score(session.planned_duration_seconds, actual)
        # Finishing early only counts when no set was skipped.
        if skipped:
            score = min(score, completion)
        return score

    def progression_score(
        self, breakdowns: list[ExerciseBreakdown], prior_weights: dict[str, float]
    ) -> float:
        compared = 0
        held = 0
        for b in breakdowns:
            current = b.average_weight
            previous = prior_weights.get(b.exercise_id)
            if current is None or previous is None:
                continue
            compared += 1
            if current >= previous:
                held += 1
        if compared == 0:
            return self.NEUTRAL
        share = held / compared
        if share > 0.5:
            return 100.0
        return share * 100.0
