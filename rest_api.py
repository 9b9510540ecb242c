import datetime
import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Body
from pydantic import BaseModel

from config import APP_VERSION, YamlConfig
from db import (
    SessionRepository,
    SetLogRepository,
    SessionScoreRepository,
    UnlockedAchievementRepository,
)
from errors import SessionNotFound, SessionStateError
from session_models import AchievementDefinition, MetricsSnapshot, SessionSummary
from stats_service import LiveStatsCache, StatisticsService
from recommendation_service import RecommendationService
from gamification_service import GamificationService
from algorithms import AchievementRuleEngine, LiveStatsCalculator, load_catalog

logger = logging.getLogger(__name__)


class MetricsSnapshotBody(BaseModel):
    user_id: str
    session_id: Optional[int] = None
    sets_completed: int = 0
    sets_skipped: int = 0
    average_rpe: Optional[float] = None
    rest_periods_taken: int = 0
    rest_periods_skipped: int = 0
    all_sets_good_form: bool = False
    duration_seconds: Optional[float] = None
    estimated_duration_seconds: Optional[float] = None
    total_workouts_completed: int = 0
    current_streak: int = 0
    lifetime_volume: float = 0.0
    lifetime_reps: int = 0
    workout_start: Optional[datetime.datetime] = None
    final_score: Optional[int] = None
    completion_score: Optional[float] = None


def _achievement_dict(definition: AchievementDefinition) -> dict:
    data = asdict(definition)
    data["color"] = AchievementRuleEngine.rarity_color(definition.rarity)
    return data


def _summary_dict(summary: SessionSummary) -> dict:
    return {
        "session": asdict(summary.session),
        "exercise_breakdown": [b.to_dict() for b in summary.exercise_breakdown],
        "performance": asdict(summary.performance),
        "comparison": asdict(summary.comparison),
        "streak": asdict(summary.streak),
        "total_volume": summary.total_volume,
        "total_reps": summary.total_reps,
        "average_rpe": summary.average_rpe,
        "recovery_hours": summary.recovery_hours,
        "volume_change_percent": summary.volume_change_percent,
        "duration_change_percent": summary.duration_change_percent,
    }


class EngineAPI:
    """Provides REST endpoints for workout sessions, scoring and achievements."""

    def __init__(
        self,
        db_path: str = "workout.db",
        yaml_path: str = "settings.yaml",
    ) -> None:
        self.db_path = db_path
        self.config = YamlConfig(yaml_path)
        self.settings = self.config.settings()
        self.sessions = SessionRepository(db_path)
        self.sets = SetLogRepository(db_path)
        self.scores = SessionScoreRepository(db_path)
        self.unlocks = UnlockedAchievementRepository(db_path)
        self.cache = LiveStatsCache(ttl=self.settings.live_stats_ttl)
        self.statistics = StatisticsService(
            self.sessions, self.sets, self.scores, self.settings, self.cache
        )
        self.recommendations = RecommendationService(self.sets, self.settings)
        self.gamification = GamificationService(
            self.sessions,
            self.sets,
            self.unlocks,
            AchievementRuleEngine(load_catalog(self.settings.achievement_catalog)),
        )
        self.app = FastAPI(title="Workout Performance Engine", version=APP_VERSION)
        self._setup_routes()

    def _setup_routes(self) -> None:
        @self.app.get("/health")
        def health():
            return {"status": "ok", "version": APP_VERSION}

        @self.app.post("/sessions")
        def start_session(
            user_id: str,
            workout_id: str,
            planned_sets: int = 0,
            planned_duration_seconds: int = 0,
            started_at: Optional[str] = None,
        ):
            try:
                sid = self.sessions.create(
                    user_id,
                    workout_id,
                    planned_sets,
                    planned_duration_seconds,
                    datetime.datetime.fromisoformat(started_at) if started_at else None,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": sid}

        @self.app.get("/sessions/{session_id}")
        def get_session(session_id: int):
            session = self.sessions.fetch(session_id)
            if session is None:
                raise HTTPException(status_code=404, detail="session not found")
            return asdict(session)

        @self.app.post("/sessions/{session_id}/sets")
        def log_set(
            session_id: int,
            exercise_id: str,
            planned_reps: int,
            actual_reps: int,
            weight: float,
            rpe: Optional[int] = None,
            completed: bool = True,
            duration_seconds: Optional[int] = None,
            planned_rest_seconds: Optional[int] = None,
            rest_seconds: Optional[int] = None,
            form_quality: Optional[int] = None,
        ):
            try:
                set_id = self.sets.add(
                    session_id,
                    exercise_id,
                    planned_reps,
                    actual_reps,
                    weight,
                    rpe,
                    completed=completed,
                    duration_seconds=duration_seconds,
                    planned_rest_seconds=planned_rest_seconds,
                    rest_seconds=rest_seconds,
                    form_quality=form_quality,
                )
            except SessionNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))
            except SessionStateError as e:
                raise HTTPException(status_code=409, detail=str(e))
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self.cache.invalidate(session_id)
            return {"id": set_id}

        @self.app.get("/sessions/{session_id}/sets")
        def list_sets(session_id: int):
            return [asdict(s) for s in self.sets.fetch_for_session(session_id)]

        @self.app.get("/sessions/{session_id}/live_stats")
        def live_stats(session_id: int):
            try:
                return asdict(self.statistics.compute_live_stats(session_id))
            except SessionNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))
            except SessionStateError as e:
                raise HTTPException(status_code=409, detail=str(e))

        @self.app.post("/sessions/{session_id}/complete")
        def complete_session(session_id: int):
            session = self.sessions.fetch(session_id)
            if session is None:
                raise HTTPException(status_code=404, detail="session not found")
            ended_at = datetime.datetime.now()
            calories = None
            if session.status == "active":
                calories = LiveStatsCalculator.calculate(
                    session, self.sets.fetch_for_session(session_id), ended_at
                ).calories_estimate
            if not self.sessions.complete(session_id, ended_at, calories):
                raise HTTPException(status_code=409, detail="session is not active")
            self.cache.invalidate(session_id)
            summary = self.statistics.generate_session_summary(session_id)
            unlocked = self.gamification.process_session(session_id, summary.performance)
            logger.info(
                "session %s finalized with score %s, %d new achievements",
                session_id,
                summary.performance.final_score,
                len(unlocked),
            )
            data = _summary_dict(summary)
            data["new_achievements"] = [_achievement_dict(a) for a in unlocked]
            return data

        @self.app.post("/sessions/{session_id}/abandon")
        def abandon_session(session_id: int):
            try:
                changed = self.sessions.abandon(session_id)
            except SessionNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))
            if not changed:
                raise HTTPException(status_code=409, detail="session is not active")
            self.cache.invalidate(session_id)
            return {"status": "abandoned"}

        @self.app.get("/sessions/{session_id}/summary")
        def session_summary(session_id: int):
            try:
                return _summary_dict(self.statistics.generate_session_summary(session_id))
            except SessionNotFound as e:
                raise HTTPException(status_code=404, detail=str(e))
            except SessionStateError as e:
                raise HTTPException(status_code=409, detail=str(e))

        @self.app.get("/users/{user_id}/recommendations/{exercise_id}")
        def recommendation(user_id: str, exercise_id: str, reason: str = "preference"):
            try:
                result = self.recommendations.generate_recommendation(
                    user_id, exercise_id, reason
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return asdict(result)

        @self.app.get("/users/{user_id}/rest/{exercise_id}")
        def rest_recommendation(
            user_id: str, exercise_id: str, set_number: int = 1, rpe: Optional[int] = None
        ):
            try:
                rest = self.recommendations.recommend_rest(
                    user_id, exercise_id, set_number, rpe
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return asdict(rest)

        @self.app.get("/users/{user_id}/one_rep_max/{exercise_id}")
        def one_rep_max(user_id: str, exercise_id: str):
            return asdict(self.recommendations.estimate_one_rep_max(user_id, exercise_id))

        @self.app.get("/achievements")
        def achievement_catalog(category: Optional[str] = None):
            engine = self.gamification.engine
            defs = engine.by_category(category) if category else engine.catalog
            return [_achievement_dict(d) for d in defs]

        @self.app.post("/achievements/evaluate")
        def evaluate_achievements(body: MetricsSnapshotBody):
            snapshot = MetricsSnapshot(**body.model_dump())
            return [
                _achievement_dict(d)
                for d in self.gamification.evaluate_achievements(snapshot)
            ]

        @self.app.get("/users/{user_id}/achievements")
        def user_achievements(user_id: str):
            return [_achievement_dict(d) for d in self.gamification.unlocked(user_id)]

        @self.app.get("/users/{user_id}/achievements/stats")
        def user_achievement_stats(user_id: str, recent: int = 5):
            return asdict(self.gamification.achievement_stats(user_id, recent))

        @self.app.get("/users/{user_id}/achievements/progress")
        def user_achievement_progress(user_id: str):
            result = []
            for item in self.gamification.achievements_with_progress(user_id):
                data = _achievement_dict(item.definition)
                data["unlocked"] = item.unlocked
                data["progress"] = item.progress
                data["unlocked_at"] = item.unlocked_at
                result.append(data)
            return result

        @self.app.post("/streaks")
        def compute_streaks(
            dates: List[datetime.date] = Body(...),
            today: Optional[datetime.date] = None,
        ):
            return asdict(self.gamification.compute_streaks(dates, today))

        @self.app.get("/users/{user_id}/streaks")
        def user_streaks(user_id: str):
            return asdict(self.gamification.user_streaks(user_id))


api = EngineAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
