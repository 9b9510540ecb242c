import datetime
from typing import Iterable, Optional

from errors import SessionNotActive
from session_models import LiveSessionStats, SetLog, WorkoutSession
from .math_tools import MathTools


class LiveStatsCalculator:
    """Real-time progress for an in-progress session.

    Calculations are side-effect free so callers can poll them on any
    interval they like.
    """

    # Metabolic equivalents for strength work by average RPE.
    METS_LIGHT: float = 3.5
    METS_MODERATE: float = 5.0
    METS_VIGOROUS: float = 6.0
    METS_INTENSE: float = 8.0
    BODY_WEIGHT_KG: float = 75.0
    CALORIES_PER_REP: float = 0.1

    @classmethod
    def calculate(
        cls,
        session: WorkoutSession,
        set_logs: Iterable[SetLog],
        now: Optional[datetime.datetime] = None,
    ) -> LiveSessionStats:
        if session.status != "active":
            raise SessionNotActive(session.id, session.status)
        logs = list(set_logs)
        now = now or datetime.datetime.now()
        elapsed = max((now - session.started_at).total_seconds(), 0.0)
        pace = (
            elapsed / session.planned_duration_seconds
            if session.planned_duration_seconds > 0
            else 0.0
        )
        stats = LiveSessionStats(
            session_id=session.id,
            pace_ratio=round(pace, 3),
            sets_total=max(session.planned_sets, len(logs)),
            elapsed_seconds=elapsed,
            estimated_remaining_seconds=float(
                max(session.planned_duration_seconds - elapsed, 0.0)
            ),
        )
        if not logs:
            return stats

        done = [s for s in logs if s.completed]
        stats.sets_completed = len(done)
        stats.completion_percentage = round(
            MathTools.ratio_score(len(done), stats.sets_total), 2
        )
        stats.total_volume = MathTools.volume((s.actual_reps, s.weight) for s in done)
        stats.total_reps = sum(s.actual_reps for s in done)
        avg_rpe = MathTools.mean(s.rpe for s in done if s.rpe is not None)
        stats.average_rpe = round(avg_rpe, 2) if avg_rpe is not None else None
        stats.estimated_remaining_seconds = cls.estimate_remaining(
            elapsed, stats.completion_percentage, session.planned_duration_seconds
        )
        stats.calories_estimate = cls.estimate_calories(
            elapsed / 60.0, stats.average_rpe, stats.total_reps
        )
        return stats

    @staticmethod
    def estimate_remaining(
        elapsed_seconds: float, completion_percentage: float, planned_seconds: int
    ) -> float:
        """Project remaining time linearly from the current completion rate."""
        if completion_percentage <= 0:
            return float(max(planned_seconds - elapsed_seconds, 0.0))
        projected = elapsed_seconds / completion_percentage * 100.0
        return float(max(round(projected - elapsed_seconds), 0))

    @classmethod
    def estimate_calories(
        cls, duration_minutes: float, average_rpe: Optional[float], total_reps: int
    ) -> float:
        """Blend a MET-based estimate with a small per-rep term."""
        intensity = average_rpe / 10.0 if average_rpe else 0.5
        if intensity >= 0.85:
            mets = cls.METS_INTENSE
        elif intensity >= 0.7:
            mets = cls.METS_VIGOROUS
        elif intensity >= 0.5:
            mets = cls.METS_MODERATE
        else:
            mets = cls.METS_LIGHT
        mets_calories = mets * cls.BODY_WEIGHT_KG * (duration_minutes / 60.0)
        rep_calories = total_reps * cls.CALORIES_PER_REP
        return float(round(mets_calories * 0.7 + rep_calories * 0.3))
