import datetime
from typing import Sequence

from session_models import HistoricalComparison
from .math_tools import MathTools


class HistoricalComparator:
    """Compare a session score with the user's trailing window of scores."""

    def __init__(self, window: int = 10, margin: float = 5.0) -> None:
        if window <= 0:
            raise ValueError("window must be positive")
        self.window = window
        self.margin = margin

    def compare(
        self,
        current_score: int,
        prior_scores: Sequence[tuple[datetime.datetime, int]],
    ) -> HistoricalComparison:
        """``prior_scores`` arrive newest-first, as the history reader returns them."""
        recent = list(prior_scores)[: self.window]
        recent.reverse()
        comparison = HistoricalComparison(current_score=current_score, prior_scores=recent)
        if not recent:
            return comparison
        mean = MathTools.mean(score for _ts, score in recent)
        comparison.prior_mean = round(mean, 2)
        comparison.delta = round(current_score - mean, 2)
        if len(recent) < 2:
            return comparison
        if comparison.delta > self.margin:
            comparison.trend = "improving"
        elif comparison.delta < -self.margin:
            comparison.trend = "declining"
        return comparison
