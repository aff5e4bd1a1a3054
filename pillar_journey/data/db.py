"""
Pillar Journey — SQLite Stores.

Reference implementations of the store ports: assessments, journeys with
their append-only timeline, and the task/calendar entries a plan is
written to. Each store owns its tables and can share one database file.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from pillar_journey.core.pillars import PillarKey
from pillar_journey.data.models import (
    Activity,
    ActivityCategory,
    AssessmentResult,
    Journey,
    JourneyMode,
    JourneyStatus,
    TimelineEvent,
    TimelineEventType,
)
from pillar_journey.ports.task_store_port import TaskStoreError

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class _SQLiteStore:
    """Shared connection handling for the stores below."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from pillar_journey.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


class AssessmentDB(_SQLiteStore):
    """SQLite-backed assessment history. Results are insert-only."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS assessments (
                    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id             TEXT NOT NULL,
                    pillar_key          TEXT NOT NULL,
                    scores_json         TEXT NOT NULL,
                    completed_at        TEXT NOT NULL
                )
            """)
        logger.debug("Assessments table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_result(row: sqlite3.Row) -> AssessmentResult:
        return AssessmentResult(
            id=row["id"],
            user_id=row["user_id"],
            pillar_key=PillarKey(row["pillar_key"]),
            scores_by_dimension=json.loads(row["scores_json"]),
            completed_at=datetime.fromisoformat(row["completed_at"]),
        )

    def submit_assessment(
        self, user_id: str, pillar_key: PillarKey, scores_by_dimension: dict[str, float],
    ) -> AssessmentResult:
        """Insert a completed assessment and return it."""
        completed_at = datetime.now()
        scores = {k: float(v) for k, v in scores_by_dimension.items()}
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO assessments (user_id, pillar_key, scores_json, completed_at) "
                "VALUES (?, ?, ?, ?)",
                (user_id, pillar_key.value, json.dumps(scores), completed_at.isoformat()),
            )
            result_id = cursor.lastrowid

        logger.info("Assessment #%d saved for user %s (%s)", result_id, user_id, pillar_key.value)
        return AssessmentResult(
            id=result_id,
            user_id=user_id,
            pillar_key=pillar_key,
            scores_by_dimension=scores,
            completed_at=completed_at,
        )

    def get_latest(self, user_id: str, pillar_key: PillarKey) -> AssessmentResult | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM assessments WHERE user_id = ? AND pillar_key = ? "
                "ORDER BY id DESC LIMIT 1",
                (user_id, pillar_key.value),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_result(row)

    def history(self, user_id: str, pillar_key: PillarKey) -> list[AssessmentResult]:
        """All results for a pillar, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM assessments WHERE user_id = ? AND pillar_key = ? ORDER BY id",
                (user_id, pillar_key.value),
            ).fetchall()
        return [self._row_to_result(r) for r in rows]

    def latest_scores(self, user_id: str) -> dict[PillarKey, float]:
        """Pillar score of the most recent assessment for each assessed pillar."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM assessments a
                WHERE user_id = ? AND id = (
                    SELECT MAX(id) FROM assessments b
                    WHERE b.user_id = a.user_id AND b.pillar_key = a.pillar_key
                )
                """,
                (user_id,),
            ).fetchall()
        results = [self._row_to_result(r) for r in rows]
        return {r.pillar_key: r.pillar_score for r in results}


class JourneyDB(_SQLiteStore):
    """SQLite-backed journeys, timeline events and per-user mode."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS journeys (
                    id              TEXT PRIMARY KEY,
                    user_id         TEXT NOT NULL,
                    pillar_key      TEXT NOT NULL,
                    mode            TEXT NOT NULL,
                    status          TEXT NOT NULL,
                    progress        INTEGER NOT NULL DEFAULT 0,
                    started_at      TEXT NOT NULL,
                    paused_at       TEXT,
                    completed_at    TEXT,
                    plan_id         TEXT,
                    updated_at      TEXT,
                    estimated_completion     TEXT,
                    initial_assessment_score REAL
                )
            """)
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(journeys)").fetchall()
            }
            if "estimated_completion" not in existing_cols:
                conn.execute("ALTER TABLE journeys ADD COLUMN estimated_completion TEXT")
            if "initial_assessment_score" not in existing_cols:
                conn.execute("ALTER TABLE journeys ADD COLUMN initial_assessment_score REAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS timeline_events (
                    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
                    id              TEXT NOT NULL UNIQUE,
                    journey_id      TEXT NOT NULL,
                    user_id         TEXT NOT NULL,
                    pillar_key      TEXT NOT NULL,
                    event_type      TEXT NOT NULL,
                    occurred_at     TEXT NOT NULL,
                    event_title     TEXT NOT NULL,
                    event_data      TEXT NOT NULL DEFAULT '{}'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_modes (
                    user_id         TEXT PRIMARY KEY,
                    mode            TEXT NOT NULL,
                    updated_at      TEXT NOT NULL
                )
            """)
        logger.debug("Journey tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_journey(row: sqlite3.Row) -> Journey:
        return Journey(
            id=row["id"],
            user_id=row["user_id"],
            pillar_key=PillarKey(row["pillar_key"]),
            mode=JourneyMode(row["mode"]),
            status=JourneyStatus(row["status"]),
            progress=row["progress"],
            started_at=datetime.fromisoformat(row["started_at"]),
            paused_at=_parse(row["paused_at"]),
            completed_at=_parse(row["completed_at"]),
            plan_id=row["plan_id"],
            updated_at=_parse(row["updated_at"]),
            estimated_completion=_parse(row["estimated_completion"]),
            initial_assessment_score=row["initial_assessment_score"],
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> TimelineEvent:
        return TimelineEvent(
            id=row["id"],
            journey_id=row["journey_id"],
            user_id=row["user_id"],
            pillar_key=PillarKey(row["pillar_key"]),
            event_type=TimelineEventType(row["event_type"]),
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            event_title=row["event_title"],
            event_data=json.loads(row["event_data"]),
        )

    def add_journey(self, journey: Journey) -> Journey:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO journeys
                    (id, user_id, pillar_key, mode, status, progress,
                     started_at, paused_at, completed_at, plan_id, updated_at,
                     estimated_completion, initial_assessment_score)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    journey.id, journey.user_id, journey.pillar_key.value,
                    journey.mode.value, journey.status.value, journey.progress,
                    _iso(journey.started_at), _iso(journey.paused_at),
                    _iso(journey.completed_at), journey.plan_id, _iso(journey.updated_at),
                    _iso(journey.estimated_completion), journey.initial_assessment_score,
                ),
            )
        logger.info("Journey %s added for user %s (%s)", journey.id, journey.user_id, journey.pillar_key.value)
        return journey

    def get_journey(self, journey_id: str) -> Journey | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM journeys WHERE id = ?", (journey_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_journey(row)

    def find_by_plan(self, plan_id: str) -> Journey | None:
        """The journey started from a plan, if any."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM journeys WHERE plan_id = ? ORDER BY started_at DESC, id LIMIT 1",
                (plan_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_journey(row)

    def update_journey(self, journey: Journey) -> None:
        """Overwrite the mutable snapshot of a journey."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE journeys SET
                    mode = ?, status = ?, progress = ?, paused_at = ?,
                    completed_at = ?, plan_id = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    journey.mode.value, journey.status.value, journey.progress,
                    _iso(journey.paused_at), _iso(journey.completed_at),
                    journey.plan_id, _iso(journey.updated_at), journey.id,
                ),
            )

    def list_journeys(
        self,
        user_id: str,
        pillar_key: PillarKey | None = None,
        status: JourneyStatus | None = None,
    ) -> list[Journey]:
        """Journeys for a user, optionally filtered, oldest first."""
        query = "SELECT * FROM journeys WHERE user_id = ?"
        params: list = [user_id]
        if pillar_key is not None:
            query += " AND pillar_key = ?"
            params.append(pillar_key.value)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY started_at, id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_journey(r) for r in rows]

    def append_event(self, event: TimelineEvent) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO timeline_events
                    (id, journey_id, user_id, pillar_key, event_type,
                     occurred_at, event_title, event_data)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id, event.journey_id, event.user_id, event.pillar_key.value,
                    event.event_type.value, event.occurred_at.isoformat(),
                    event.event_title, json.dumps(event.event_data),
                ),
            )

    def list_events(
        self, user_id: str | None = None, journey_id: str | None = None,
    ) -> list[TimelineEvent]:
        """Timeline events in append order."""
        conditions: list[str] = []
        params: list = []
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if journey_id is not None:
            conditions.append("journey_id = ?")
            params.append(journey_id)

        query = "SELECT * FROM timeline_events"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY seq"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def get_mode(self, user_id: str) -> JourneyMode | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT mode FROM user_modes WHERE user_id = ?", (user_id,),
            ).fetchone()
        if row is None:
            return None
        return JourneyMode(row["mode"])

    def set_mode(self, user_id: str, mode: JourneyMode) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO user_modes (user_id, mode, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET mode = excluded.mode,
                                                   updated_at = excluded.updated_at
                """,
                (user_id, mode.value, datetime.now().isoformat()),
            )
        logger.info("Mode for user %s set to %s", user_id, mode.value)


class TaskDB(_SQLiteStore):
    """SQLite-backed task/calendar store for plan activities.

    Rows are keyed by activity id and inserted with INSERT OR IGNORE, so
    re-sending a batch after a partial failure only fills in what is missing.
    """

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS calendar_entries (
                    id                  TEXT PRIMARY KEY,
                    plan_id             TEXT NOT NULL,
                    user_id             TEXT NOT NULL,
                    title               TEXT NOT NULL,
                    description         TEXT NOT NULL DEFAULT '',
                    event_date          TEXT NOT NULL,
                    category            TEXT NOT NULL DEFAULT 'development_activity'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id                  TEXT PRIMARY KEY,
                    plan_id             TEXT NOT NULL,
                    user_id             TEXT NOT NULL,
                    journey_id          TEXT,
                    pillar_key          TEXT NOT NULL,
                    title               TEXT NOT NULL,
                    description         TEXT NOT NULL DEFAULT '',
                    category            TEXT NOT NULL,
                    estimated_minutes   INTEGER NOT NULL,
                    deadline            TEXT NOT NULL,
                    status              TEXT NOT NULL DEFAULT 'pending',
                    completed_at        TEXT
                )
            """)
        logger.debug("Task tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_activity(row: sqlite3.Row) -> Activity:
        return Activity(
            id=row["id"],
            pillar_key=PillarKey(row["pillar_key"]),
            title=row["title"],
            description=row["description"],
            category=ActivityCategory(row["category"]),
            estimated_minutes=row["estimated_minutes"],
            scheduled_date=datetime.fromisoformat(row["deadline"]),
            is_completed=row["status"] == "completed",
            plan_id=row["plan_id"],
            journey_id=row["journey_id"],
        )

    async def insert_calendar_entries(self, user_id: str, activities: list[Activity]) -> None:
        rows = [
            (a.id, a.plan_id, user_id, a.title, a.description, a.scheduled_date.isoformat())
            for a in activities
        ]
        try:
            with self._connect() as conn:
                conn.executemany(
                    "INSERT OR IGNORE INTO calendar_entries "
                    "(id, plan_id, user_id, title, description, event_date) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise TaskStoreError(f"Failed to save calendar entries: {exc}") from exc

    async def insert_tasks(self, user_id: str, activities: list[Activity]) -> None:
        rows = [
            (
                a.id, a.plan_id, user_id, a.journey_id, a.pillar_key.value, a.title,
                a.description, a.category.value, a.estimated_minutes,
                a.scheduled_date.isoformat(),
                "completed" if a.is_completed else "pending",
            )
            for a in activities
        ]
        try:
            with self._connect() as conn:
                conn.executemany(
                    "INSERT OR IGNORE INTO tasks "
                    "(id, plan_id, user_id, journey_id, pillar_key, title, description, "
                    " category, estimated_minutes, deadline, status) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise TaskStoreError(f"Failed to save tasks: {exc}") from exc

    async def list_activities(self, plan_id: str) -> list[Activity]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM tasks WHERE plan_id = ? ORDER BY deadline, id", (plan_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise TaskStoreError(f"Failed to load plan {plan_id}: {exc}") from exc
        return [self._row_to_activity(r) for r in rows]

    async def get_activity(self, activity_id: str) -> Activity | None:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM tasks WHERE id = ?", (activity_id,)).fetchone()
        except sqlite3.Error as exc:
            raise TaskStoreError(f"Failed to load activity {activity_id}: {exc}") from exc
        if row is None:
            return None
        return self._row_to_activity(row)

    async def mark_completed(self, activity_id: str) -> Activity:
        """Mark a task as completed. Completing twice keeps the first timestamp."""
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM tasks WHERE id = ?", (activity_id,)).fetchone()
                if row is None:
                    raise TaskStoreError(f"Activity {activity_id} not found")
                conn.execute(
                    "UPDATE tasks SET status = 'completed', "
                    "completed_at = COALESCE(completed_at, ?) WHERE id = ?",
                    (datetime.now().isoformat(), activity_id),
                )
        except sqlite3.Error as exc:
            raise TaskStoreError(f"Failed to complete activity {activity_id}: {exc}") from exc
        activity = self._row_to_activity(row)
        activity.is_completed = True
        return activity

    async def attach_journey(self, plan_id: str, journey_id: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE tasks SET journey_id = ? WHERE plan_id = ?", (journey_id, plan_id),
                )
        except sqlite3.Error as exc:
            raise TaskStoreError(f"Failed to link plan {plan_id}: {exc}") from exc

    async def discard_plan(self, plan_id: str) -> None:
        """Remove every calendar entry and task of a plan."""
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM calendar_entries WHERE plan_id = ?", (plan_id,))
                conn.execute("DELETE FROM tasks WHERE plan_id = ?", (plan_id,))
        except sqlite3.Error as exc:
            raise TaskStoreError(f"Failed to discard plan {plan_id}: {exc}") from exc
        logger.info("Plan %s discarded", plan_id)
