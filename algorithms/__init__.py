from .math_tools import MathTools
from .streak_tracker import StreakTracker
from .live_stats import LiveStatsCalculator
from .performance_scorer import PerformanceScorer
from .historical_comparator import HistoricalComparator
from .adaptive_recommender import AdaptiveRecommender
from .achievement_rules import AchievementRuleEngine, load_catalog

__all__ = [
    "MathTools",
    "StreakTracker",
    "LiveStatsCalculator",
    "PerformanceScorer",
    "HistoricalComparator",
    "AdaptiveRecommender",
    "AchievementRuleEngine",
    "load_catalog",
]
