import datetime
import os
import sqlite3
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    SessionRepository,
    SetLogRepository,
    SessionScoreRepository,
    UnlockedAchievementRepository,
)
from errors import SessionNotActive, SessionNotFound
from session_models import PerformanceScoreBreakdown


START = datetime.datetime(2024, 3, 15, 18, 0)


@pytest.fixture
def repos(tmp_path):
    db_path = str(tmp_path / "engine.db")
    return (
        SessionRepository(db_path),
        SetLogRepository(db_path),
        SessionScoreRepository(db_path),
        UnlockedAchievementRepository(db_path),
    )


def test_session_lifecycle(repos) -> None:
    sessions, sets, _scores, _unlocks = repos
    sid = sessions.create("u1", "push", planned_sets=3, planned_duration_seconds=1800, started_at=START)
    session = sessions.fetch(sid)
    assert session.status == "active"
    assert session.started_at == START
    assert sessions.complete(sid, START + datetime.timedelta(minutes=30), 250.0)
    done = sessions.fetch(sid)
    assert done.status == "completed"
    assert done.total_duration_seconds == 1800
    assert done.total_calories == 250.0
    # completion is a one-way transition
    assert not sessions.complete(sid)
    assert not sessions.abandon(sid)


def test_missing_session(repos) -> None:
    sessions, sets, _scores, _unlocks = repos
    assert sessions.fetch(99) is None
    with pytest.raises(SessionNotFound):
        sessions.require(99)
    with pytest.raises(SessionNotFound):
        sets.add(99, "bench", 5, 5, 100.0)


def test_negative_plan_rejected(repos) -> None:
    sessions = repos[0]
    with pytest.raises(ValueError):
        sessions.create("u1", "push", planned_sets=-1)


def test_set_numbers_and_inactive_session(repos) -> None:
    sessions, sets, _scores, _unlocks = repos
    sid = sessions.create("u1", "push", started_at=START)
    sets.add(sid, "bench", 5, 5, 100.0, 8)
    sets.add(sid, "bench", 5, 4, 100.0, 9)
    sets.add(sid, "row", 8, 8, 60.0, completed=True)
    sets.add(sid, "row", 8, 8, 60.0, completed=False)
    logged = sets.fetch_for_session(sid)
    assert [(s.exercise_id, s.set_number) for s in logged] == [
        ("bench", 1),
        ("bench", 2),
        ("row", 1),
        ("row", 2),
    ]
    assert logged[3].actual_reps == 0
    assert not logged[3].completed
    sessions.abandon(sid)
    with pytest.raises(SessionNotActive):
        sets.add(sid, "bench", 5, 5, 100.0)


@pytest.mark.parametrize(
    "kwargs",
    [{"rpe": 11}, {"rpe": 0}, {"form_quality": 6}, {"weight": -1.0}],
)
def test_set_validation(repos, kwargs) -> None:
    sessions, sets, _scores, _unlocks = repos
    sid = sessions.create("u1", "push")
    values = {"weight": 100.0}
    values.update(kwargs)
    weight = values.pop("weight")
    with pytest.raises(ValueError):
        sets.add(sid, "bench", 5, 5, weight, **values)


def test_history_and_totals(repos) -> None:
    sessions, sets, _scores, _unlocks = repos
    ids = []
    for day, weight in enumerate([90.0, 95.0, 100.0]):
        started = START + datetime.timedelta(days=day)
        sid = sessions.create("u1", "push", started_at=started)
        sets.add(sid, "bench", 5, 5, weight, 7, logged_at=started)
        sets.add(sid, "bench", 5, 5, weight, 8, logged_at=started)
        sessions.complete(sid, started + datetime.timedelta(minutes=30))
        ids.append(sid)
    history = sets.fetch_exercise_history("u1", "bench", limit=10)
    assert [h.session_id for h in history] == list(reversed(ids))
    assert history[0].average_weight == 100.0
    assert history[0].average_rpe == 7.5
    assert history[0].completion_rate == 1.0
    latest = sessions.fetch(ids[-1])
    before = sets.fetch_exercise_history("u1", "bench", limit=1, before=latest)
    assert before[0].session_id == ids[1]
    prior = sessions.fetch_prior_volumes(latest)
    assert [v for _id, _ts, v in prior] == [950.0, 900.0]
    assert sessions.lifetime_totals("u1") == (2850.0, 30)
    assert sessions.count_completed("u1") == 3
    assert sessions.fetch_completed_dates("u1") == [
        (START + datetime.timedelta(days=d)).date() for d in range(3)
    ]


def test_score_saved_once(repos) -> None:
    sessions, _sets, scores, _unlocks = repos
    sid = sessions.create("u1", "push", started_at=START)
    sessions.complete(sid, START + datetime.timedelta(minutes=10))
    assert scores.save(sid, PerformanceScoreBreakdown(completion=100, final_score=80))
    assert not scores.save(sid, PerformanceScoreBreakdown(final_score=10))
    assert scores.fetch(sid).final_score == 80


def test_unlock_is_idempotent(repos) -> None:
    _sessions, _sets, _scores, unlocks = repos
    assert unlocks.unlock("u1", "first_workout", 1)
    assert not unlocks.unlock("u1", "first_workout", 2)
    assert unlocks.unlock("u2", "first_workout")
    assert [u.achievement_id for u in unlocks.fetch_for_user("u1")] == ["first_workout"]
    assert unlocks.exists("u1", "first_workout")


def test_schema_migration_adds_columns(tmp_path) -> None:
    db_path = str(tmp_path / "old.db")
    conn = sqlite3.connect(db_path)
    conn.execute(
        "CREATE TABLE unlocked_achievements (id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "user_id TEXT NOT NULL, achievement_id TEXT NOT NULL, unlocked_at TEXT NOT NULL);"
    )
    conn.execute(
        "INSERT INTO unlocked_achievements (user_id, achievement_id, unlocked_at) "
        "VALUES ('u1', 'first_workout', '2024-01-01T10:00:00');"
    )
    conn.commit()
    conn.close()
    unlocks = UnlockedAchievementRepository(db_path)
    rows = unlocks.fetch_for_user("u1")
    assert rows[0].achievement_id == "first_workout"
    assert rows[0].session_id is None
