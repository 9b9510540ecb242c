from __future__ import annotations
import logging
import numpy as np

from db import SetLogRepository
from session_models import OneRepMaxEstimate, RecommendationResult, RestRecommendation
from settings_schema import EngineSettings
from algorithms import AdaptiveRecommender

logger = logging.getLogger(__name__)


class RecommendationService:
    """Generate next-session guidance based on logged history."""

    def __init__(
        self,
        set_repo: SetLogRepository,
        settings: EngineSettings | None = None,
    ) -> None:
        self.sets = set_repo
        self.settings = settings or EngineSettings()
        self.recommender = AdaptiveRecommender(
            deload_rpe=self.settings.deload_rpe,
            overload_rpe=self.settings.overload_rpe,
            deload_percent=self.settings.deload_percent,
            overload_percent=self.settings.overload_percent,
            plateau_rep_percent=self.settings.plateau_rep_percent,
        )

    def generate_recommendation(
        self, user_id: str, exercise_id: str, reason: str = "preference"
    ) -> RecommendationResult:
        history = self.sets.fetch_exercise_history(
            user_id, exercise_id, limit=self.settings.history_window
        )
        result = self.recommender.recommend(user_id, exercise_id, reason, history)
        logger.info(
            "recommendation for %s/%s: %s (%d sessions)",
            user_id,
            exercise_id,
            result.rationale,
            len(history),
        )
        return result

    def recommend_rest(
        self, user_id: str, exercise_id: str, set_number: int, rpe: int | None = None
    ) -> RestRecommendation:
        """Adaptive rest before the next set, using the user's rest habits."""
        recent = self.sets.fetch_recent_for_exercise(user_id, exercise_id)
        rests = [s.rest_seconds for s in recent if s.rest_seconds]
        preferred = int(round(sum(rests) / len(rests))) if rests else None
        variance = float(np.std(rests)) if len(rests) > 1 else 0.0
        return self.recommender.adaptive_rest(set_number, rpe, preferred, variance)

    def estimate_one_rep_max(self, user_id: str, exercise_id: str) -> OneRepMaxEstimate:
        recent = self.sets.fetch_recent_for_exercise(user_id, exercise_id)
        return self.recommender.estimate_one_rep_max(recent)
