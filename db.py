import sqlite3
import datetime
import logging
from contextlib import contextmanager
from typing import List, Optional, Tuple

from errors import SessionNotActive, SessionNotFound
from session_models import (
    ExerciseSessionHistory,
    PerformanceScoreBreakdown,
    SetLog,
    UnlockedAchievement,
    WorkoutSession,
)

logger = logging.getLogger(__name__)


def _parse_ts(value: Optional[str]) -> Optional[datetime.datetime]:
    return datetime.datetime.fromisoformat(value) if value else None


def _format_ts(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    workout_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    planned_sets INTEGER NOT NULL DEFAULT 0,
                    planned_duration_seconds INTEGER NOT NULL DEFAULT 0,
                    total_duration_seconds INTEGER,
                    total_calories REAL,
                    CHECK (status IN ('active', 'completed', 'abandoned'))
                );""",
            [
                "id",
                "user_id",
                "workout_id",
                "status",
                "started_at",
                "ended_at",
                "planned_sets",
                "planned_duration_seconds",
                "total_duration_seconds",
                "total_calories",
            ],
        ),
        "set_logs": (
            """CREATE TABLE set_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    exercise_id TEXT NOT NULL,
                    set_number INTEGER NOT NULL,
                    planned_reps INTEGER NOT NULL,
                    actual_reps INTEGER NOT NULL DEFAULT 0,
                    weight REAL NOT NULL DEFAULT 0,
                    duration_seconds INTEGER,
                    planned_rest_seconds INTEGER,
                    rest_seconds INTEGER,
                    rpe INTEGER,
                    form_quality INTEGER,
                    completed INTEGER NOT NULL DEFAULT 1,
                    logged_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_id",
                "exercise_id",
                "set_number",
                "planned_reps",
                "actual_reps",
                "weight",
                "duration_seconds",
                "planned_rest_seconds",
                "rest_seconds",
                "rpe",
                "form_quality",
                "completed",
                "logged_at",
            ],
        ),
        "session_scores": (
            """CREATE TABLE session_scores (
                    session_id INTEGER PRIMARY KEY,
                    completion REAL NOT NULL,
                    volume REAL NOT NULL,
                    intensity REAL NOT NULL,
                    consistency REAL NOT NULL,
                    efficiency REAL NOT NULL,
                    progression REAL NOT NULL,
                    final_score INTEGER NOT NULL,
                    scored_at TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE
                );""",
            [
                "session_id",
                "completion",
                "volume",
                "intensity",
                "consistency",
                "efficiency",
                "progression",
                "final_score",
                "scored_at",
            ],
        ),
        "unlocked_achievements": (
            """CREATE TABLE unlocked_achievements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    achievement_id TEXT NOT NULL,
                    unlocked_at TEXT NOT NULL,
                    session_id INTEGER,
                    UNIQUE (user_id, achievement_id)
                );""",
            ["id", "user_id", "achievement_id", "unlocked_at", "session_id"],
        ),
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("migrating table %s", table)
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def execute_rowcount(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class SessionRepository(BaseRepository):
    """Repository for workout session records and their status transitions."""

    _COLUMNS = (
        "id, user_id, workout_id, status, started_at, ended_at, planned_sets, "
        "planned_duration_seconds, total_duration_seconds, total_calories"
    )

    @staticmethod
    def _row_to_session(row: Tuple) -> WorkoutSession:
        return WorkoutSession(
            id=int(row[0]),
            user_id=row[1],
            workout_id=row[2],
            status=row[3],
            started_at=_parse_ts(row[4]),
            ended_at=_parse_ts(row[5]),
            planned_sets=int(row[6]),
            planned_duration_seconds=int(row[7]),
            total_duration_seconds=int(row[8]) if row[8] is not None else None,
            total_calories=float(row[9]) if row[9] is not None else None,
        )

    def create(
        self,
        user_id: str,
        workout_id: str,
        planned_sets: int = 0,
        planned_duration_seconds: int = 0,
        started_at: Optional[datetime.datetime] = None,
    ) -> int:
        if planned_sets < 0 or planned_duration_seconds < 0:
            raise ValueError("planned values must be non-negative")
        started_at = started_at or datetime.datetime.now()
        sid = self.execute(
            "INSERT INTO workout_sessions (user_id, workout_id, status, started_at, planned_sets, planned_duration_seconds) "
            "VALUES (?, ?, 'active', ?, ?, ?);",
            (user_id, workout_id, _format_ts(started_at), planned_sets, planned_duration_seconds),
        )
        logger.info("session %s started for user %s", sid, user_id)
        return sid

    def fetch(self, session_id: int) -> Optional[WorkoutSession]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM workout_sessions WHERE id = ?;",
            (session_id,),
        )
        return self._row_to_session(rows[0]) if rows else None

    def require(self, session_id: int) -> WorkoutSession:
        session = self.fetch(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def complete(
        self,
        session_id: int,
        ended_at: Optional[datetime.datetime] = None,
        total_calories: Optional[float] = None,
    ) -> bool:
        """Flip ``active -> completed``; only one caller can ever succeed."""
        session = self.require(session_id)
        ended_at = ended_at or datetime.datetime.now()
        duration = max(int((ended_at - session.started_at).total_seconds()), 0)
        changed = self.execute_rowcount(
            "UPDATE workout_sessions SET status = 'completed', ended_at = ?, "
            "total_duration_seconds = ?, total_calories = ? "
            "WHERE id = ? AND status = 'active';",
            (_format_ts(ended_at), duration, total_calories, session_id),
        )
        if changed:
            logger.info("session %s completed", session_id)
        else:
            logger.warning("session %s was not active, completion ignored", session_id)
        return changed == 1

    def abandon(self, session_id: int, ended_at: Optional[datetime.datetime] = None) -> bool:
        self.require(session_id)
        changed = self.execute_rowcount(
            "UPDATE workout_sessions SET status = 'abandoned', ended_at = ? "
            "WHERE id = ? AND status = 'active';",
            (_format_ts(ended_at or datetime.datetime.now()), session_id),
        )
        if changed:
            logger.info("session %s abandoned", session_id)
        return changed == 1

    def fetch_completed_dates(self, user_id: str) -> list[datetime.date]:
        rows = self.fetch_all(
            "SELECT ended_at FROM workout_sessions "
            "WHERE user_id = ? AND status = 'completed' AND ended_at IS NOT NULL;",
            (user_id,),
        )
        return sorted({_parse_ts(r[0]).date() for r in rows})

    def count_completed(self, user_id: str) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM workout_sessions WHERE user_id = ? AND status = 'completed';",
            (user_id,),
        )
        return int(rows[0][0] or 0)

    def fetch_prior_volumes(
        self,
        session: WorkoutSession,
        limit: int = 10,
    ) -> list[Tuple[int, datetime.datetime, float]]:
        """Return ``(id, ended_at, volume)`` of earlier completed runs of the same workout, newest-first."""
        rows = self.fetch_all(
            "SELECT s.id, s.ended_at, "
            "COALESCE(SUM(CASE WHEN l.completed = 1 THEN l.weight * l.actual_reps END), 0) "
            "FROM workout_sessions s LEFT JOIN set_logs l ON l.session_id = s.id "
            "WHERE s.user_id = ? AND s.workout_id = ? AND s.status = 'completed' "
            "AND s.id != ? AND s.ended_at <= ? "
            "GROUP BY s.id ORDER BY s.ended_at DESC, s.id DESC LIMIT ?;",
            (
                session.user_id,
                session.workout_id,
                session.id,
                _format_ts(session.ended_at or datetime.datetime.now()),
                limit,
            ),
        )
        return [(int(r[0]), _parse_ts(r[1]), float(r[2])) for r in rows]

    def lifetime_totals(self, user_id: str) -> Tuple[float, int]:
        """Return total completed volume and reps over the user's completed sessions."""
        rows = self.fetch_all(
            "SELECT COALESCE(SUM(l.weight * l.actual_reps), 0), COALESCE(SUM(l.actual_reps), 0) "
            "FROM set_logs l JOIN workout_sessions s ON s.id = l.session_id "
            "WHERE s.user_id = ? AND s.status = 'completed' AND l.completed = 1;",
            (user_id,),
        )
        return float(rows[0][0]), int(rows[0][1])


class SetLogRepository(BaseRepository):
    """Repository for the append-only set logs of a session."""

    _COLUMNS = (
        "id, session_id, exercise_id, set_number, planned_reps, actual_reps, weight, "
        "duration_seconds, planned_rest_seconds, rest_seconds, rpe, form_quality, "
        "completed, logged_at"
    )

    @staticmethod
    def _row_to_set(row: Tuple) -> SetLog:
        return SetLog(
            id=int(row[0]),
            session_id=int(row[1]),
            exercise_id=row[2],
            set_number=int(row[3]),
            planned_reps=int(row[4]),
            actual_reps=int(row[5]),
            weight=float(row[6]),
            duration_seconds=row[7],
            planned_rest_seconds=row[8],
            rest_seconds=row[9],
            rpe=row[10],
            form_quality=row[11],
            completed=bool(row[12]),
            logged_at=_parse_ts(row[13]),
        )

    def add(
        self,
        session_id: int,
        exercise_id: str,
        planned_reps: int,
        actual_reps: int,
        weight: float,
        rpe: Optional[int] = None,
        *,
        completed: bool = True,
        duration_seconds: Optional[int] = None,
        planned_rest_seconds: Optional[int] = None,
        rest_seconds: Optional[int] = None,
        form_quality: Optional[int] = None,
        logged_at: Optional[datetime.datetime] = None,
    ) -> int:
        """Append a set to an active session and return its id."""
        if rpe is not None and not 1 <= rpe <= 10:
            raise ValueError("rpe must be between 1 and 10")
        if form_quality is not None and not 1 <= form_quality <= 5:
            raise ValueError("form_quality must be between 1 and 5")
        if planned_reps < 0 or actual_reps < 0 or weight < 0:
            raise ValueError("reps and weight must be non-negative")
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO set_logs (session_id, exercise_id, set_number, planned_reps, actual_reps, weight, "
                "duration_seconds, planned_rest_seconds, rest_seconds, rpe, form_quality, completed, logged_at) "
                "SELECT ?, ?, (SELECT COUNT(*) + 1 FROM set_logs WHERE session_id = ? AND exercise_id = ?), "
                "?, ?, ?, ?, ?, ?, ?, ?, ?, ? "
                "WHERE EXISTS (SELECT 1 FROM workout_sessions WHERE id = ? AND status = 'active');",
                (
                    session_id,
                    exercise_id,
                    session_id,
                    exercise_id,
                    planned_reps,
                    actual_reps if completed else 0,
                    weight,
                    duration_seconds,
                    planned_rest_seconds,
                    rest_seconds,
                    rpe,
                    form_quality,
                    1 if completed else 0,
                    _format_ts(logged_at or datetime.datetime.now()),
                    session_id,
                ),
            )
            if cursor.rowcount == 1:
                return cursor.lastrowid
            row = conn.execute(
                "SELECT status FROM workout_sessions WHERE id = ?;", (session_id,)
            ).fetchone()
        if row is None:
            raise SessionNotFound(session_id)
        raise SessionNotActive(session_id, row[0])

    def fetch_for_session(self, session_id: int) -> list[SetLog]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM set_logs WHERE session_id = ? ORDER BY id;",
            (session_id,),
        )
        return [self._row_to_set(r) for r in rows]

    def fetch_recent_for_exercise(
        self, user_id: str, exercise_id: str, limit: int = 20
    ) -> list[SetLog]:
        """Return the user's most recent sets of an exercise, newest-first."""
        cols = ", ".join(f"l.{c.strip()}" for c in self._COLUMNS.split(","))
        rows = self.fetch_all(
            f"SELECT {cols} FROM set_logs l JOIN workout_sessions s ON s.id = l.session_id "
            "WHERE s.user_id = ? AND l.exercise_id = ? AND s.status != 'abandoned' "
            "ORDER BY l.logged_at DESC, l.id DESC LIMIT ?;",
            (user_id, exercise_id, limit),
        )
        return [self._row_to_set(r) for r in rows]

    def fetch_exercise_history(
        self,
        user_id: str,
        exercise_id: str,
        limit: int = 10,
        before: Optional[WorkoutSession] = None,
    ) -> list[ExerciseSessionHistory]:
        """Per-session aggregates of one exercise over completed sessions, newest-first.

        With ``before`` only sessions that finished earlier than that session
        are returned.
        """
        query = (
            "SELECT s.id, s.ended_at, "
            "AVG(CASE WHEN l.completed = 1 THEN l.rpe END), "
            "SUM(l.completed) * 1.0 / COUNT(*), "
            "AVG(CASE WHEN l.completed = 1 THEN l.weight END), "
            "AVG(CASE WHEN l.completed = 1 THEN l.actual_reps END), "
            "COUNT(*) "
            "FROM set_logs l JOIN workout_sessions s ON s.id = l.session_id "
            "WHERE s.user_id = ? AND l.exercise_id = ? AND s.status = 'completed'"
        )
        params: list = [user_id, exercise_id]
        if before is not None:
            query += " AND s.id != ? AND s.ended_at <= ?"
            params.extend(
                [before.id, _format_ts(before.ended_at or datetime.datetime.now())]
            )
        query += " GROUP BY s.id ORDER BY s.ended_at DESC, s.id DESC LIMIT ?;"
        params.append(limit)
        rows = self.fetch_all(query, tuple(params))
        return [
            ExerciseSessionHistory(
                session_id=int(r[0]),
                completed_at=_parse_ts(r[1]),
                average_rpe=float(r[2]) if r[2] is not None else None,
                completion_rate=float(r[3] or 0.0),
                average_weight=float(r[4] or 0.0),
                average_reps=float(r[5] or 0.0),
                sets=int(r[6]),
            )
            for r in rows
        ]


class SessionScoreRepository(BaseRepository):
    """Repository for finalized performance scores, one per completed session."""

    def save(self, session_id: int, score: PerformanceScoreBreakdown) -> bool:
        """Store a score; an existing score for the session is never replaced."""
        changed = self.execute_rowcount(
            "INSERT OR IGNORE INTO session_scores (session_id, completion, volume, intensity, "
            "consistency, efficiency, progression, final_score, scored_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                session_id,
                score.completion,
                score.volume,
                score.intensity,
                score.consistency,
                score.efficiency,
                score.progression,
                score.final_score,
                datetime.datetime.now().isoformat(),
            ),
        )
        return changed == 1

    def fetch(self, session_id: int) -> Optional[PerformanceScoreBreakdown]:
        rows = self.fetch_all(
            "SELECT completion, volume, intensity, consistency, efficiency, progression, final_score "
            "FROM session_scores WHERE session_id = ?;",
            (session_id,),
        )
        if not rows:
            return None
        c, v, i, cs, e, p, final = rows[0]
        return PerformanceScoreBreakdown(
            completion=float(c),
            volume=float(v),
            intensity=float(i),
            consistency=float(cs),
            efficiency=float(e),
            progression=float(p),
            final_score=int(final),
        )

    def fetch_prior_scores(
        self, session: WorkoutSession, limit: int = 10
    ) -> list[Tuple[datetime.datetime, int]]:
        """Final scores of earlier completed runs of the same workout, newest-first."""
        rows = self.fetch_all(
            "SELECT s.ended_at, sc.final_score FROM session_scores sc "
            "JOIN workout_sessions s ON s.id = sc.session_id "
            "WHERE s.user_id = ? AND s.workout_id = ? AND s.status = 'completed' "
            "AND s.id != ? AND s.ended_at <= ? "
            "ORDER BY s.ended_at DESC, s.id DESC LIMIT ?;",
            (
                session.user_id,
                session.workout_id,
                session.id,
                _format_ts(session.ended_at or datetime.datetime.now()),
                limit,
            ),
        )
        return [(_parse_ts(r[0]), int(r[1])) for r in rows]


class UnlockedAchievementRepository(BaseRepository):
    """Repository for unlocked achievements, unique per user and achievement."""

    def exists(self, user_id: str, achievement_id: str) -> bool:
        rows = self.fetch_all(
            "SELECT 1 FROM unlocked_achievements WHERE user_id = ? AND achievement_id = ?;",
            (user_id, achievement_id),
        )
        return bool(rows)

    def unlock(
        self,
        user_id: str,
        achievement_id: str,
        session_id: Optional[int] = None,
        unlocked_at: Optional[datetime.datetime] = None,
    ) -> bool:
        """Insert an unlock if absent. Returns True only for a new row."""
        if self.exists(user_id, achievement_id):
            return False
        changed = self.execute_rowcount(
            "INSERT OR IGNORE INTO unlocked_achievements (user_id, achievement_id, unlocked_at, session_id) "
            "VALUES (?, ?, ?, ?);",
            (
                user_id,
                achievement_id,
                _format_ts(unlocked_at or datetime.datetime.now()),
                session_id,
            ),
        )
        if not changed:
            logger.debug("unlock of %s for %s lost a race, ignored", achievement_id, user_id)
        return changed == 1

    def fetch_for_user(self, user_id: str) -> list[UnlockedAchievement]:
        rows = self.fetch_all(
            "SELECT user_id, achievement_id, unlocked_at, session_id FROM unlocked_achievements "
            "WHERE user_id = ? ORDER BY unlocked_at DESC, id DESC;",
            (user_id,),
        )
        return [
            UnlockedAchievement(
                user_id=r[0],
                achievement_id=r[1],
                unlocked_at=_parse_ts(r[2]),
                session_id=r[3],
            )
            for r in rows
        ]
