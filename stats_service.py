from __future__ import annotations
import datetime
import logging
import threading
import time
from typing import Callable, Optional

from db import SessionRepository, SetLogRepository, SessionScoreRepository
from errors import SessionNotCompleted
from session_models import LiveSessionStats, SessionSummary, PerformanceScoreBreakdown
from settings_schema import EngineSettings
from algorithms import (
    HistoricalComparator,
    LiveStatsCalculator,
    MathTools,
    PerformanceScorer,
    StreakTracker,
)

logger = logging.getLogger(__name__)


class LiveStatsCache:
    """Short-lived cache of live statistics, owned and passed in by the caller."""

    def __init__(self, ttl: float = 5.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[int, tuple[float, LiveSessionStats]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: int) -> Optional[LiveSessionStats]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            stored, stats = entry
            if self._clock() - stored > self.ttl:
                del self._entries[session_id]
                return None
            return stats

    def put(self, session_id: int, stats: LiveSessionStats) -> None:
        with self._lock:
            self._entries[session_id] = (self._clock(), stats)

    def invalidate(self, session_id: Optional[int] = None) -> None:
        with self._lock:
            if session_id is None:
                self._entries.clear()
            else:
                self._entries.pop(session_id, None)


class StatisticsService:
    """Compute live and finalized statistics for workout sessions."""

    def __init__(
        self,
        session_repo: SessionRepository,
        set_repo: SetLogRepository,
        score_repo: SessionScoreRepository,
        settings: EngineSettings | None = None,
        cache: LiveStatsCache | None = None,
    ) -> None:
        self.sessions = session_repo
        self.sets = set_repo
        self.scores = score_repo
        self.settings = settings or EngineSettings()
        self.cache = cache
        self.scorer = PerformanceScorer(
            rpe_band_low=self.settings.rpe_band_low,
            rpe_band_high=self.settings.rpe_band_high,
            rest_tolerance=self.settings.rest_tolerance,
        )
        self.comparator = HistoricalComparator(
            window=self.settings.history_window, margin=self.settings.trend_margin
        )

    def compute_live_stats(
        self, session_id: int, now: datetime.datetime | None = None
    ) -> LiveSessionStats:
        """Return progress of an active session; safe to poll repeatedly."""
        if self.cache is not None and now is None:
            cached = self.cache.get(session_id)
            if cached is not None:
                return cached
        session = self.sessions.require(session_id)
        stats = LiveStatsCalculator.calculate(
            session, self.sets.fetch_for_session(session_id), now
        )
        if self.cache is not None and now is None:
            self.cache.put(session_id, stats)
        logger.debug("live stats for session %s: %s", session_id, stats)
        return stats

    def score_session(self, session_id: int) -> PerformanceScoreBreakdown:
        """Return the stored score of a completed session, computing it once."""
        session = self.sessions.require(session_id)
        if session.status != "completed":
            raise SessionNotCompleted(session_id, session.status)
        stored = self.scores.fetch(session_id)
        if stored is not None:
            return stored
        breakdowns = PerformanceScorer.group_sets(self.sets.fetch_for_session(session_id))
        prior_volumes = self.sessions.fetch_prior_volumes(
            session, limit=self.settings.history_window
        )
        trailing = MathTools.mean(v for _id, _ts, v in prior_volumes)
        prior_weights: dict[str, float] = {}
        for b in breakdowns:
            history = self.sets.fetch_exercise_history(
                session.user_id, b.exercise_id, limit=1, before=session
            )
            if history and history[0].average_weight > 0:
                prior_weights[b.exercise_id] = history[0].average_weight
        score = self.scorer.score(session, breakdowns, trailing, prior_weights)
        if not self.scores.save(session_id, score):
            # Another caller scored it first; keep theirs.
            return self.scores.fetch(session_id)
        logger.info("session %s scored %s", session_id, score.final_score)
        return score

    def generate_session_summary(self, session_id: int) -> SessionSummary:
        session = self.sessions.require(session_id)
        if session.status != "completed":
            raise SessionNotCompleted(session_id, session.status)
        set_logs = self.sets.fetch_for_session(session_id)
        breakdowns = PerformanceScorer.group_sets(set_logs)
        score = self.score_session(session_id)
        prior_runs = self.sessions.fetch_prior_volumes(
            session, limit=self.settings.history_window
        )
        for prior_id, _ended, _volume in prior_runs:
            if self.scores.fetch(prior_id) is None:
                self.score_session(prior_id)
        prior = self.scores.fetch_prior_scores(
            session, limit=self.settings.history_window
        )
        comparison = self.comparator.compare(score.final_score, prior)
        anchor = session.ended_at.date() if session.ended_at else None
        streak = StreakTracker.compute(
            self.sessions.fetch_completed_dates(session.user_id), anchor
        )
        done = [s for s in set_logs if s.completed]
        average_rpe = MathTools.mean(s.rpe for s in done if s.rpe is not None)
        total_volume = sum(b.total_volume for b in breakdowns)
        volume_change = duration_change = 0
        if prior_runs:
            previous_id, _ended, previous_volume = prior_runs[0]
            volume_change = self.change_percent(total_volume, previous_volume)
            previous = self.sessions.require(previous_id)
            duration_change = self.change_percent(
                session.actual_duration_seconds or 0,
                previous.actual_duration_seconds or 0,
            )
        return SessionSummary(
            session=session,
            exercise_breakdown=breakdowns,
            performance=score,
            comparison=comparison,
            streak=streak,
            total_volume=total_volume,
            total_reps=sum(s.actual_reps for s in done),
            average_rpe=round(average_rpe, 2) if average_rpe is not None else None,
            recovery_hours=self.estimate_recovery_hours(average_rpe, total_volume),
            volume_change_percent=volume_change,
            duration_change_percent=duration_change,
        )

    @staticmethod
    def change_percent(current: float, previous: float) -> int:
        """Percent change against the previous run; a zero baseline divides by 1."""
        return MathTools.round_half_up((current - previous) / (previous or 1) * 100)

    @staticmethod
    def estimate_recovery_hours(average_rpe: float | None, volume: float) -> int:
        """Base 24 hours, more after hard or high-volume sessions."""
        hours = 24
        intensity = (average_rpe or 0) / 10.0
        if intensity >= 0.9:
            hours += 24
        elif intensity >= 0.75:
            hours += 12
        if volume > 10000:
            hours += 12
        return hours
