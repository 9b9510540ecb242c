from __future__ import annotations
import datetime
import logging
from typing import Iterable

from db import SessionRepository, SetLogRepository, UnlockedAchievementRepository
from errors import SessionNotCompleted
from session_models import (
    ACHIEVEMENT_CATEGORIES,
    RARITIES,
    AchievementDefinition,
    AchievementProgress,
    AchievementStats,
    MetricsSnapshot,
    PerformanceScoreBreakdown,
    StreakInfo,
)
from algorithms import AchievementRuleEngine, StreakTracker

logger = logging.getLogger(__name__)


class GamificationService:
    """Manage streaks and achievement unlocks."""

    GOOD_FORM: int = 4

    def __init__(
        self,
        session_repo: SessionRepository,
        set_repo: SetLogRepository,
        unlock_repo: UnlockedAchievementRepository,
        engine: AchievementRuleEngine | None = None,
    ) -> None:
        self.sessions = session_repo
        self.sets = set_repo
        self.unlocks = unlock_repo
        self.engine = engine or AchievementRuleEngine()

    @staticmethod
    def compute_streaks(
        dates: Iterable[datetime.date], today: datetime.date | None = None
    ) -> StreakInfo:
        return StreakTracker.compute(dates, today)

    def user_streaks(self, user_id: str, today: datetime.date | None = None) -> StreakInfo:
        return StreakTracker.compute(self.sessions.fetch_completed_dates(user_id), today)

    def evaluate_achievements(self, snapshot: MetricsSnapshot) -> list[AchievementDefinition]:
        """Return every achievement whose rule holds; nothing is persisted."""
        return self.engine.evaluate(snapshot)

    def build_snapshot(
        self,
        session_id: int,
        score: PerformanceScoreBreakdown | None = None,
        today: datetime.date | None = None,
    ) -> MetricsSnapshot:
        """Collect the metrics achievement rules look at for a completed session."""
        session = self.sessions.require(session_id)
        if session.status != "completed":
            raise SessionNotCompleted(session_id, session.status)
        logs = self.sets.fetch_for_session(session_id)
        done = [s for s in logs if s.completed]
        rpes = [s.rpe for s in done if s.rpe is not None]
        forms = [s.form_quality for s in done if s.form_quality is not None]
        rested = [s for s in done if s.planned_rest_seconds]
        lifetime_volume, lifetime_reps = self.sessions.lifetime_totals(session.user_id)
        today = today or (session.ended_at.date() if session.ended_at else None)
        return MetricsSnapshot(
            user_id=session.user_id,
            session_id=session.id,
            sets_completed=len(done),
            sets_skipped=len(logs) - len(done),
            average_rpe=sum(rpes) / len(rpes) if rpes else None,
            rest_periods_taken=sum(1 for s in rested if s.rest_seconds),
            rest_periods_skipped=sum(1 for s in rested if s.rest_seconds == 0),
            all_sets_good_form=bool(forms)
            and len(forms) == len(done)
            and all(f >= self.GOOD_FORM for f in forms),
            duration_seconds=session.actual_duration_seconds,
            estimated_duration_seconds=session.planned_duration_seconds or None,
            total_workouts_completed=self.sessions.count_completed(session.user_id),
            current_streak=self.user_streaks(session.user_id, today).current_streak,
            lifetime_volume=lifetime_volume,
            lifetime_reps=lifetime_reps,
            workout_start=session.started_at,
            final_score=score.final_score if score else None,
            completion_score=score.completion if score else None,
        )

    def unlock(
        self,
        user_id: str,
        candidates: Iterable[AchievementDefinition],
        session_id: int | None = None,
    ) -> list[AchievementDefinition]:
        """Persist candidates and return only the ones that were newly unlocked."""
        new: list[AchievementDefinition] = []
        for definition in candidates:
            if self.unlocks.unlock(user_id, definition.id, session_id):
                logger.info("user %s unlocked %s", user_id, definition.id)
                new.append(definition)
        return new

    def process_session(
        self,
        session_id: int,
        score: PerformanceScoreBreakdown | None = None,
    ) -> list[AchievementDefinition]:
        snapshot = self.build_snapshot(session_id, score)
        return self.unlock(
            snapshot.user_id, self.evaluate_achievements(snapshot), session_id
        )

    def unlocked(self, user_id: str) -> list[AchievementDefinition]:
        result = []
        for row in self.unlocks.fetch_for_user(user_id):
            definition = self.engine.definition(row.achievement_id)
            if definition is not None:
                result.append(definition)
        return result

    def total_points(self, user_id: str) -> int:
        return self.engine.total_points(self.unlocked(user_id))

    def achievement_stats(self, user_id: str, recent: int = 5) -> AchievementStats:
        rows = self.unlocks.fetch_for_user(user_id)
        stats = AchievementStats(
            rarity_distribution={r: 0 for r in RARITIES},
            category_distribution={c: 0 for c in ACHIEVEMENT_CATEGORIES},
            recent=rows[:recent],
        )
        for row in rows:
            definition = self.engine.definition(row.achievement_id)
            if definition is None:
                logger.warning("unlocked achievement %s is not in the catalog", row.achievement_id)
                continue
            stats.total_achievements += 1
            stats.total_points += definition.points
            stats.rarity_distribution[definition.rarity] += 1
            stats.category_distribution[definition.category] += 1
        return stats

    def user_snapshot(self, user_id: str, today: datetime.date | None = None) -> MetricsSnapshot:
        """Lifetime metrics of a user, outside any single session."""
        lifetime_volume, lifetime_reps = self.sessions.lifetime_totals(user_id)
        return MetricsSnapshot(
            user_id=user_id,
            total_workouts_completed=self.sessions.count_completed(user_id),
            current_streak=self.user_streaks(user_id, today).current_streak,
            lifetime_volume=lifetime_volume,
            lifetime_reps=lifetime_reps,
        )

    def achievements_with_progress(
        self, user_id: str, today: datetime.date | None = None
    ) -> list[AchievementProgress]:
        """Every catalog entry with its unlock state and 0-100 progress."""
        unlocked = {row.achievement_id: row for row in self.unlocks.fetch_for_user(user_id)}
        snapshot = self.user_snapshot(user_id, today)
        result = []
        for definition in self.engine.catalog:
            row = unlocked.get(definition.id)
            result.append(
                AchievementProgress(
                    definition=definition,
                    unlocked=row is not None,
                    progress=100.0 if row else self.engine.progress(definition, snapshot),
                    unlocked_at=row.unlocked_at if row else None,
                )
            )
        return result
