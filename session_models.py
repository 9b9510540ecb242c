"""Data structures shared by the scoring algorithms and services."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

SESSION_STATUSES = ("active", "completed", "abandoned")
TREND_VALUES = ("improving", "stable", "declining")
ACHIEVEMENT_CATEGORIES = (
    "performance",
    "milestone",
    "streak",
    "volume",
    "speed",
    "special",
)
RARITIES = ("common", "rare", "epic", "legendary")
RATIONALES = (
    "progressive_overload",
    "plateau_break",
    "deload",
    "maintain",
    "preference",
)
RECOMMENDATION_REASONS = (
    "preference",
    "plateau_break",
    "deload",
    "progressive_overload",
)


@dataclass
class WorkoutSession:
    id: int
    user_id: str
    workout_id: str
    status: str
    started_at: datetime.datetime
    ended_at: Optional[datetime.datetime] = None
    planned_sets: int = 0
    planned_duration_seconds: int = 0
    total_duration_seconds: Optional[int] = None
    total_calories: Optional[float] = None

    @property
    def actual_duration_seconds(self) -> Optional[float]:
        if self.total_duration_seconds is not None:
            return float(self.total_duration_seconds)
        if self.ended_at is not None:
            return (self.ended_at - self.started_at).total_seconds()
        return None


@dataclass
class SetLog:
    id: int
    session_id: int
    exercise_id: str
    set_number: int
    planned_reps: int
    actual_reps: int
    weight: float
    duration_seconds: Optional[int] = None
    planned_rest_seconds: Optional[int] = None
    rest_seconds: Optional[int] = None
    rpe: Optional[int] = None
    form_quality: Optional[int] = None
    completed: bool = True
    logged_at: Optional[datetime.datetime] = None

    @property
    def volume(self) -> float:
        return self.weight * self.actual_reps if self.completed else 0.0


@dataclass
class ExerciseBreakdown:
    """Aggregation of one exercise's set logs within a session."""

    exercise_id: str
    sets: list[SetLog] = field(default_factory=list)

    @property
    def completed(self) -> list[SetLog]:
        return [s for s in self.sets if s.completed]

    @property
    def planned_sets(self) -> int:
        return len(self.sets)

    @property
    def completed_sets(self) -> int:
        return len(self.completed)

    @property
    def total_volume(self) -> float:
        return sum(s.volume for s in self.sets)

    @property
    def total_reps(self) -> int:
        return sum(s.actual_reps for s in self.completed)

    @property
    def completion_rate(self) -> float:
        if not self.sets:
            return 0.0
        return self.completed_sets / self.planned_sets

    @property
    def average_rpe(self) -> Optional[float]:
        values = [s.rpe for s in self.completed if s.rpe is not None]
        if not values:
            return None
        return sum(values) / len(values)

    @property
    def average_weight(self) -> Optional[float]:
        done = self.completed
        if not done:
            return None
        return sum(s.weight for s in done) / len(done)

    def to_dict(self) -> dict:
        return {
            "exercise_id": self.exercise_id,
            "planned_sets": self.planned_sets,
            "completed_sets": self.completed_sets,
            "total_volume": self.total_volume,
            "total_reps": self.total_reps,
            "completion_rate": self.completion_rate,
            "average_rpe": self.average_rpe,
            "average_weight": self.average_weight,
        }


@dataclass
class LiveSessionStats:
    session_id: int
    completion_percentage: float = 0.0
    total_volume: float = 0.0
    average_rpe: Optional[float] = None
    pace_ratio: float = 0.0
    sets_completed: int = 0
    sets_total: int = 0
    total_reps: int = 0
    elapsed_seconds: float = 0.0
    estimated_remaining_seconds: float = 0.0
    calories_estimate: float = 0.0


@dataclass
class PerformanceScoreBreakdown:
    completion: float = 0.0
    volume: float = 0.0
    intensity: float = 0.0
    consistency: float = 0.0
    efficiency: float = 0.0
    progression: float = 0.0
    final_score: int = 0


@dataclass
class StreakInfo:
    current_streak: int = 0
    best_streak: int = 0


@dataclass
class HistoricalComparison:
    current_score: int
    prior_scores: list[tuple[datetime.datetime, int]] = field(default_factory=list)
    prior_mean: Optional[float] = None
    delta: float = 0.0
    trend: str = "stable"


@dataclass
class SessionSummary:
    session: WorkoutSession
    exercise_breakdown: list[ExerciseBreakdown]
    performance: PerformanceScoreBreakdown
    comparison: HistoricalComparison
    streak: StreakInfo
    total_volume: float = 0.0
    total_reps: int = 0
    average_rpe: Optional[float] = None
    recovery_hours: int = 24
    volume_change_percent: int = 0
    duration_change_percent: int = 0


@dataclass(frozen=True)
class RuleCondition:
    """A single predicate: ``snapshot.<metric> <op> value``."""

    metric: str
    op: str
    value: float | bool


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    category: str
    title: str
    description: str
    icon: str
    points: int
    rarity: str
    conditions: tuple[RuleCondition, ...] = ()


@dataclass
class UnlockedAchievement:
    user_id: str
    achievement_id: str
    unlocked_at: datetime.datetime
    session_id: Optional[int] = None


@dataclass
class MetricsSnapshot:
    """Everything the achievement rules can look at for one session."""

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

    @property
    def percent_faster(self) -> Optional[float]:
        if not self.estimated_duration_seconds or self.duration_seconds is None:
            return None
        saved = self.estimated_duration_seconds - self.duration_seconds
        return saved / self.estimated_duration_seconds * 100

    @property
    def start_hour(self) -> Optional[int]:
        if self.workout_start is None:
            return None
        return self.workout_start.hour

    @property
    def all_rest_skipped(self) -> bool:
        return self.rest_periods_skipped > 0 and self.rest_periods_taken == 0


@dataclass
class ExerciseSessionHistory:
    """Per-session aggregate of one exercise, used for trend rules."""

    session_id: int
    completed_at: Optional[datetime.datetime]
    average_rpe: Optional[float]
    completion_rate: float
    average_weight: float
    average_reps: float
    sets: int = 0


@dataclass
class RecommendationResult:
    user_id: str
    exercise_id: str
    rationale: str
    weight_delta_percent: float = 0.0
    rep_delta: int = 0
    suggested_weight: Optional[float] = None
    suggested_reps: Optional[int] = None
    reason: str = "preference"
    justification: str = ""
    sessions_considered: int = 0


@dataclass
class RestRecommendation:
    base_rest_seconds: int
    preferred_rest_seconds: int
    difficulty_factor: float
    fatigue_factor: float
    historical_factor: float
    recommended_rest_seconds: int
    reasoning: str


@dataclass
class OneRepMaxEstimate:
    estimated_1rm: float = 0.0
    confidence: float = 0.0
    sets_used: int = 0


@dataclass
class AchievementStats:
    total_achievements: int = 0
    total_points: int = 0
    rarity_distribution: dict[str, int] = field(default_factory=dict)
    category_distribution: dict[str, int] = field(default_factory=dict)
    recent: list[UnlockedAchievement] = field(default_factory=list)


@dataclass
class AchievementProgress:
    definition: AchievementDefinition
    unlocked: bool = False
    progress: float = 0.0
    unlocked_at: Optional[datetime.datetime] = None
