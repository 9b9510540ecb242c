from typing import Iterable, Optional, Sequence

from session_models import (
    RECOMMENDATION_REASONS,
    ExerciseSessionHistory,
    OneRepMaxEstimate,
    RecommendationResult,
    RestRecommendation,
    SetLog,
)
from .math_tools import MathTools


class AdaptiveRecommender:
    """Per-exercise load and rep guidance from multi-session trends.

    Rules are checked in order and the first match wins:

    1. deload when the last two sessions both averaged RPE at or above
       ``deload_rpe``;
    2. progressive overload when the last three sessions averaged RPE at or
       below ``overload_rpe`` with every set completed;
    3. plateau break when weight and reps stayed the same for three sessions
       inside the 7-8 RPE band;
    4. maintain otherwise.

    The caller's ``reason`` only colours the justification text.
    """

    PLATEAU_BAND: tuple[float, float] = (7.0, 8.0)
    BASE_REST: int = 90
    MIN_REST: int = 30
    MAX_REST: int = 300
    MAX_FATIGUE: float = 1.3

    def __init__(
        self,
        deload_rpe: float = 9,
        overload_rpe: float = 6,
        deload_percent: float = 10.0,
        overload_percent: float = 5.0,
        plateau_rep_percent: float = 20.0,
    ) -> None:
        self.deload_rpe = deload_rpe
        self.overload_rpe = overload_rpe
        self.deload_percent = deload_percent
        self.overload_percent = overload_percent
        self.plateau_rep_percent = plateau_rep_percent

    def recommend(
        self,
        user_id: str,
        exercise_id: str,
        reason: str,
        history: Sequence[ExerciseSessionHistory],
    ) -> RecommendationResult:
        """Return guidance for the next session; ``history`` is newest-first."""
        if reason not in RECOMMENDATION_REASONS:
            raise ValueError(f"unknown recommendation reason: {reason}")
        history = list(history)
        latest = history[0] if history else None
        result = RecommendationResult(
            user_id=user_id,
            exercise_id=exercise_id,
            rationale="maintain",
            reason=reason,
            sessions_considered=len(history),
            suggested_weight=latest.average_weight if latest else None,
            suggested_reps=int(round(latest.average_reps)) if latest else None,
        )

        if self._is_overreaching(history):
            result.rationale = "deload"
            result.weight_delta_percent = -self.deload_percent
            summary = f"Average RPE of {self.deload_rpe:g}+ in the last 2 sessions"
        elif self._is_underloaded(history):
            result.rationale = "progressive_overload"
            result.weight_delta_percent = self.overload_percent
            summary = (
                f"Average RPE of {self.overload_rpe:g} or less with every set "
                "completed in the last 3 sessions"
            )
        elif self._is_plateaued(history):
            result.rationale = "plateau_break"
            step = max(1, int(round(latest.average_reps * self.plateau_rep_percent / 100)))
            result.rep_delta = -step if latest.average_reps > 8 else step
            summary = "Same weight and reps for 3 sessions at RPE 7-8"
        elif not history:
            summary = "No history for this exercise yet"
        elif len(history) < 2:
            summary = "Not enough sessions to detect a trend"
        else:
            summary = "Recent sessions show satisfactory progress"

        if latest is not None:
            result.suggested_weight = round(
                latest.average_weight * (1 + result.weight_delta_percent / 100), 2
            )
            result.suggested_reps = max(1, int(round(latest.average_reps)) + result.rep_delta)
        result.justification = self._justify(result, summary)
        return result

    def _is_overreaching(self, history: list[ExerciseSessionHistory]) -> bool:
        recent = history[:2]
        return len(recent) == 2 and all(
            h.average_rpe is not None and h.average_rpe >= self.deload_rpe
            for h in recent
        )

    def _is_underloaded(self, history: list[ExerciseSessionHistory]) -> bool:
        recent = history[:3]
        return len(recent) == 3 and all(
            h.average_rpe is not None
            and h.average_rpe <= self.overload_rpe
            and h.completion_rate >= 1.0
            for h in recent
        )

    def _is_plateaued(self, history: list[ExerciseSessionHistory]) -> bool:
        recent = history[:3]
        if len(recent) < 3:
            return False
        low, high = self.PLATEAU_BAND
        first = recent[0]
        return all(
            h.average_weight == first.average_weight
            and h.average_reps == first.average_reps
            and h.average_rpe is not None
            and low <= h.average_rpe <= high
            for h in recent
        )

    @staticmethod
    def _justify(result: RecommendationResult, summary: str) -> str:
        if result.rationale == "deload":
            action = f"reduce weight by {abs(result.weight_delta_percent):g}% and keep reps"
        elif result.rationale == "progressive_overload":
            action = f"increase weight by {result.weight_delta_percent:g}%"
        elif result.rationale == "plateau_break":
            action = f"change the rep target by {result.rep_delta:+d} and keep the weight"
        else:
            action = "keep the current weight and reps"
        text = f"{summary}: {action}."
        if result.reason != result.rationale and result.reason != "preference":
            text += f" Requested {result.reason.replace('_', ' ')} was not supported by recent data."
        return text

    def adaptive_rest(
        self,
        set_number: int,
        rpe: Optional[int] = None,
        preferred_rest: Optional[int] = None,
        rest_variance: float = 0.0,
    ) -> RestRecommendation:
        """Recommend rest before the next set.

        ``base x difficulty x fatigue x historical``, clamped to 30-300 seconds.
        """
        if set_number < 1:
            raise ValueError("set_number must be positive")
        base = self.BASE_REST
        if not rpe:
            difficulty = 1.0
        elif rpe <= 6:
            difficulty = 0.8
        elif rpe <= 8:
            difficulty = 1.0
        elif rpe <= 9:
            difficulty = 1.2
        else:
            difficulty = 1.4
        fatigue = 1.0 + (set_number - 1) * 0.05
        if rpe and rpe >= 9:
            fatigue *= 1.15
        fatigue = min(fatigue, self.MAX_FATIGUE)
        preferred = preferred_rest or base
        if preferred_rest:
            penalty = max(0.0, 1 - rest_variance / 60)
            historical = 1.0 + (preferred / base - 1.0) * penalty
        else:
            historical = 1.0
        recommended = int(
            MathTools.clamp(
                round(base * difficulty * fatigue * historical),
                self.MIN_REST,
                self.MAX_REST,
            )
        )
        reasons = [f"Base: {base}s"]
        if difficulty > 1.0:
            reasons.append(f"+{round((difficulty - 1) * 100)}% (RPE {rpe})")
        elif difficulty < 1.0:
            reasons.append(f"{round((difficulty - 1) * 100)}% (easier effort)")
        if fatigue > 1.0:
            reasons.append(f"+{round((fatigue - 1) * 100)}% (set {set_number})")
        if historical != 1.0:
            sign = "+" if historical > 1.0 else ""
            reasons.append(f"{sign}{round((historical - 1) * 100)}% (your pattern)")
        return RestRecommendation(
            base_rest_seconds=base,
            preferred_rest_seconds=preferred,
            difficulty_factor=difficulty,
            fatigue_factor=round(fatigue, 3),
            historical_factor=round(historical, 3),
            recommended_rest_seconds=recommended,
            reasoning=" | ".join(reasons),
        )

    @staticmethod
    def estimate_one_rep_max(sets: Iterable[SetLog], limit: int = 20) -> OneRepMaxEstimate:
        """Median Epley estimate over recent completed sets of 1-12 reps."""
        estimates = [
            MathTools.epley_1rm(s.weight, s.actual_reps, max_reps=None)
            for s in list(sets)[:limit]
            if s.completed and s.weight > 0 and 0 < s.actual_reps <= 12
        ]
        if not estimates:
            return OneRepMaxEstimate()
        median = MathTools.median(estimates)
        spread = MathTools.coefficient_of_variation(estimates)
        confidence = MathTools.clamp(
            len(estimates) / limit * 0.7 + (1 - spread) * 0.3, 0.0, 1.0
        )
        return OneRepMaxEstimate(
            estimated_1rm=round(median, 1),
            confidence=round(confidence, 3),
            sets_used=len(estimates),
        )
