"""Data-driven achievement catalog and its generic rule dispatcher.

Each catalog entry lists one or more ``RuleCondition`` descriptors. A
condition names a metric on :class:`MetricsSnapshot` (plain attribute or
derived property), a comparison operator and a threshold. An achievement
qualifies when all of its conditions hold, so adding one only needs a new
catalog row.
"""

import operator
from typing import Any, Iterable, Optional

import yaml

from session_models import (
    ACHIEVEMENT_CATEGORIES,
    RARITIES,
    AchievementDefinition,
    MetricsSnapshot,
    RuleCondition,
)
from .math_tools import MathTools

OPERATORS = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}

RARITY_COLORS = {
    "common": "#9CA3AF",
    "rare": "#3B82F6",
    "epic": "#A855F7",
    "legendary": "#F59E0B",
}

DEFAULT_ACHIEVEMENTS: list[dict[str, Any]] = [
    {
        "id": "perfect_form",
        "category": "performance",
        "title": "Perfect Form",
        "description": "Completed all sets with excellent form (RPE 7 or less)",
        "icon": "💎",
        "rarity": "rare",
        "points": 50,
        "conditions": [
            ["all_sets_good_form", "==", True],
            ["average_rpe", "<=", 7],
            ["sets_skipped", "==", 0],
        ],
    },
    {
        "id": "beast_mode",
        "category": "performance",
        "title": "Beast Mode",
        "description": "All sets at RPE 9+",
        "icon": "🔥",
        "rarity": "epic",
        "points": 100,
        "conditions": [["average_rpe", ">=", 9]],
    },
    {
        "id": "consistent",
        "category": "performance",
        "title": "Consistency King",
        "description": "Completed all sets without skipping rest",
        "icon": "👑",
        "rarity": "rare",
        "points": 75,
        "conditions": [
            ["sets_completed", ">", 0],
            ["sets_skipped", "==", 0],
            ["rest_periods_skipped", "==", 0],
        ],
    },
    {
        "id": "no_rest_needed",
        "category": "performance",
        "title": "No Rest Needed",
        "description": "Skipped all rest periods",
        "icon": "⚡",
        "rarity": "epic",
        "points": 150,
        "conditions": [["sets_completed", ">", 0], ["all_rest_skipped", "==", True]],
    },
    {
        "id": "elite_session",
        "category": "performance",
        "title": "Elite Session",
        "description": "Scored 90 or more in a single session",
        "icon": "🏅",
        "rarity": "epic",
        "points": 120,
        "conditions": [["final_score", ">=", 90]],
    },
    {
        "id": "first_workout",
        "category": "milestone",
        "title": "First Steps",
        "description": "Completed your first workout!",
        "icon": "🎯",
        "rarity": "common",
        "points": 25,
        "conditions": [["total_workouts_completed", ">=", 1]],
    },
    {
        "id": "tenth_workout",
        "category": "milestone",
        "title": "Double Digits",
        "description": "Completed 10 workouts",
        "icon": "🔟",
        "rarity": "rare",
        "points": 100,
        "conditions": [["total_workouts_completed", ">=", 10]],
    },
    {
        "id": "fiftieth_workout",
        "category": "milestone",
        "title": "Half Century",
        "description": "Completed 50 workouts",
        "icon": "🎖️",
        "rarity": "epic",
        "points": 250,
        "conditions": [["total_workouts_completed", ">=", 50]],
    },
    {
        "id": "hundredth_workout",
        "category": "milestone",
        "title": "Century Club",
        "description": "Completed 100 workouts!",
        "icon": "💯",
        "rarity": "legendary",
        "points": 500,
        "conditions": [["total_workouts_completed", ">=", 100]],
    },
    {
        "id": "week_streak",
        "category": "streak",
        "title": "7 Day Warrior",
        "description": "Worked out 7 days in a row",
        "icon": "📅",
        "rarity": "rare",
        "points": 150,
        "conditions": [["current_streak", ">=", 7]],
    },
    {
        "id": "month_streak",
        "category": "streak",
        "title": "Monthly Grind",
        "description": "30 day workout streak!",
        "icon": "🔥",
        "rarity": "epic",
        "points": 300,
        "conditions": [["current_streak", ">=", 30]],
    },
    {
        "id": "ton_lifted",
        "category": "volume",
        "title": "Ton Moved",
        "description": "Lifted 1000kg total volume",
        "icon": "🏋️",
        "rarity": "rare",
        "points": 100,
        "conditions": [["lifetime_volume", ">=", 1000]],
    },
    {
        "id": "ten_tons_lifted",
        "category": "volume",
        "title": "Heavy Hauler",
        "description": "Lifted 10000kg total volume",
        "icon": "🚛",
        "rarity": "epic",
        "points": 200,
        "conditions": [["lifetime_volume", ">=", 10000]],
    },
    {
        "id": "ten_thousand_reps",
        "category": "volume",
        "title": "10K Club",
        "description": "Completed 10,000 reps lifetime",
        "icon": "💪",
        "rarity": "epic",
        "points": 200,
        "conditions": [["lifetime_reps", ">=", 10000]],
    },
    {
        "id": "speed_demon",
        "category": "speed",
        "title": "Speed Demon",
        "description": "Finished workout 20% faster than estimated",
        "icon": "⚡",
        "rarity": "epic",
        "points": 100,
        "conditions": [["percent_faster", ">=", 20], ["sets_skipped", "==", 0]],
    },
    {
        "id": "early_bird",
        "category": "special",
        "title": "Early Bird",
        "description": "Workout started before 6 AM",
        "icon": "🌅",
        "rarity": "rare",
        "points": 75,
        "conditions": [["start_hour", "<", 6]],
    },
    {
        "id": "night_owl",
        "category": "special",
        "title": "Night Owl",
        "description": "Workout started after 9 PM",
        "icon": "🦉",
        "rarity": "rare",
        "points": 75,
        "conditions": [["start_hour", ">=", 21]],
    },
]


def parse_definition(data: dict[str, Any]) -> AchievementDefinition:
    """Build a definition from a catalog row, validating its fields."""
    category = data["category"]
    rarity = data.get("rarity", "common")
    if category not in ACHIEVEMENT_CATEGORIES:
        raise ValueError(f"unknown achievement category: {category}")
    if rarity not in RARITIES:
        raise ValueError(f"unknown rarity: {rarity}")
    conditions = []
    for cond in data.get("conditions", []):
        if isinstance(cond, dict):
            metric, op, value = cond["metric"], cond["op"], cond["value"]
        else:
            metric, op, value = cond
        if op not in OPERATORS:
            raise ValueError(f"unknown operator: {op}")
        if not hasattr(MetricsSnapshot, metric) and metric not in MetricsSnapshot.__dataclass_fields__:
            raise ValueError(f"unknown metric: {metric}")
        conditions.append(RuleCondition(metric, op, value))
    if not conditions:
        raise ValueError(f"achievement {data['id']} has no conditions")
    return AchievementDefinition(
        id=data["id"],
        category=category,
        title=data["title"],
        description=data.get("description", ""),
        icon=data.get("icon", ""),
        points=int(data.get("points", 0)),
        rarity=rarity,
        conditions=tuple(conditions),
    )


def load_catalog(path: Optional[str] = None) -> list[AchievementDefinition]:
    """Return the catalog from a YAML file or the built-in defaults."""
    rows = DEFAULT_ACHIEVEMENTS
    if path:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        rows = data.get("achievements", []) if isinstance(data, dict) else data
    catalog = [parse_definition(row) for row in rows]
    ids = [d.id for d in catalog]
    if len(ids) != len(set(ids)):
        raise ValueError("duplicate achievement ids in catalog")
    return catalog


class AchievementRuleEngine:
    """Stateless evaluator over a static achievement catalog."""

    def __init__(self, catalog: Optional[Iterable[AchievementDefinition]] = None) -> None:
        self.catalog = tuple(catalog) if catalog is not None else tuple(load_catalog())

    def definition(self, achievement_id: str) -> Optional[AchievementDefinition]:
        for d in self.catalog:
            if d.id == achievement_id:
                return d
        return None

    def by_category(self, category: str) -> list[AchievementDefinition]:
        return [d for d in self.catalog if d.category == category]

    @staticmethod
    def check(condition: RuleCondition, snapshot: MetricsSnapshot) -> bool:
        actual = getattr(snapshot, condition.metric, None)
        if actual is None:
            return False
        return bool(OPERATORS[condition.op](actual, condition.value))

    def qualifies(self, definition: AchievementDefinition, snapshot: MetricsSnapshot) -> bool:
        return all(self.check(c, snapshot) for c in definition.conditions)

    def evaluate(self, snapshot: MetricsSnapshot) -> list[AchievementDefinition]:
        """Return every definition whose predicate holds, in catalog order."""
        return [d for d in self.catalog if self.qualifies(d, snapshot)]

    @staticmethod
    def total_points(definitions: Iterable[AchievementDefinition]) -> int:
        return sum(d.points for d in definitions)

    @staticmethod
    def rarity_color(rarity: str) -> str:
        return RARITY_COLORS.get(rarity, RARITY_COLORS["common"])

    @classmethod
    def condition_progress(cls, condition: RuleCondition, snapshot: MetricsSnapshot) -> float:
        """0-100 towards one condition; only lower-bound thresholds give partial credit."""
        if cls.check(condition, snapshot):
            return 100.0
        actual = getattr(snapshot, condition.metric, None)
        if (
            condition.op in (">=", ">")
            and isinstance(actual, (int, float))
            and not isinstance(actual, bool)
            and not isinstance(condition.value, bool)
            and condition.value > 0
        ):
            return MathTools.clamp(actual / condition.value * 100.0, 0.0, 99.9)
        return 0.0

    def progress(self, definition: AchievementDefinition, snapshot: MetricsSnapshot) -> float:
        """Progress of the least advanced condition, rounded to one decimal."""
        return round(
            min(self.condition_progress(c, snapshot) for c in definition.conditions), 1
        )
