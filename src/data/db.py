"""
Planner Sync — SQLite storage.

Tasks, time blocks and recurrence rules share one SQLite file so the
maintenance cleanup can exclude template tasks with a single query.
Every store wraps backend errors in StoreError.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from src.config import settings
from src.data.models import (
    Frequency,
    RecurringTask,
    Task,
    TaskStatus,
    TimeBlock,
    TimeBlockType,
    parse_recurrence_pattern,
)
from src.ports.store_port import StoreError

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id                 TEXT    PRIMARY KEY,
        user_id            TEXT    NOT NULL,
        title              TEXT    NOT NULL,
        description        TEXT,
        is_urgent          INTEGER NOT NULL DEFAULT 0,
        is_important       INTEGER NOT NULL DEFAULT 0,
        estimated_duration INTEGER,
        due_date           TEXT,
        status             TEXT    NOT NULL DEFAULT 'pending',
        tags               TEXT    NOT NULL DEFAULT '[]',
        color              TEXT    NOT NULL DEFAULT '#3b82f6',
        created_at         TEXT    NOT NULL,
        updated_at         TEXT    NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS time_blocks (
        id           TEXT    PRIMARY KEY,
        user_id      TEXT    NOT NULL,
        task_id      TEXT,
        start_time   TEXT    NOT NULL,
        end_time     TEXT    NOT NULL,
        type         TEXT    NOT NULL DEFAULT 'work',
        notes        TEXT,
        is_completed INTEGER NOT NULL DEFAULT 0,
        created_at   TEXT    NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_time_blocks_task_id ON time_blocks (task_id)",
    """
    CREATE TABLE IF NOT EXISTS recurring_tasks (
        id                  TEXT    PRIMARY KEY,
        user_id             TEXT    NOT NULL,
        parent_task_id      TEXT    NOT NULL,
        frequency           TEXT    NOT NULL,
        recurrence_pattern  TEXT    NOT NULL DEFAULT '{}',
        start_date          TEXT    NOT NULL,
        end_date            TEXT,
        last_generated_date TEXT,
        is_active           INTEGER NOT NULL DEFAULT 1,
        created_at          TEXT    NOT NULL,
        updated_at          TEXT    NOT NULL
    )
    """,
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _local_iso(value: datetime | None) -> str | None:
    """ISO text in the configured timezone.

    Calendar-day filters use the first ten characters of the stored text, so
    every user-facing timestamp is written at the local offset.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=settings.tz)
    return value.astimezone(settings.tz).isoformat()


def _str_to_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _str_to_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


class _SQLiteStore:
    """Connection handling and schema bootstrap shared by all stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
        logger.debug("%s initialized at %s", type(self).__name__, self._db_path)


class TaskDB(_SQLiteStore):
    """SQLite-backed storage for tasks."""

    _UPDATABLE = {
        "title", "description", "is_urgent", "is_important",
        "estimated_duration", "due_date", "status", "tags", "color",
    }

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            is_urgent=bool(row["is_urgent"]),
            is_important=bool(row["is_important"]),
            estimated_duration=row["estimated_duration"],
            due_date=_str_to_dt(row["due_date"]),
            status=TaskStatus(row["status"]),
            tags=json.loads(row["tags"]),
            color=row["color"],
            created_at=_str_to_dt(row["created_at"]),
            updated_at=_str_to_dt(row["updated_at"]),
        )

    @staticmethod
    def _to_column(name: str, value: Any) -> Any:
        if name == "status":
            return TaskStatus(value).value
        if name == "due_date":
            return _local_iso(value)
        if name == "tags":
            return json.dumps(list(dict.fromkeys(value or [])))
        if name in ("is_urgent", "is_important"):
            return int(bool(value))
        return value

    def insert_task(self, task: Task) -> Task:
        """Insert a task. An empty id is replaced by a generated one."""
        task_id = task.id or _new_id()
        now = _utcnow()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks
                    (id, user_id, title, description, is_urgent, is_important,
                     estimated_duration, due_date, status, tags, color,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id, task.user_id, task.title, task.description,
                    int(task.is_urgent), int(task.is_important),
                    task.estimated_duration, _local_iso(task.due_date),
                    task.status.value, json.dumps(task.tags), task.color,
                    now, now,
                ),
            )
        logger.info("Task added: %s '%s' for user %s", task_id, task.title, task.user_id)
        return self.get_task(task_id)

    def get_task(self, task_id: str) -> Task | None:
        """Fetch a single task by ID."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(
        self,
        user_id: str | None = None,
        status: TaskStatus | None = None,
        due_on: date | None = None,
    ) -> list[Task]:
        """List tasks, optionally filtered by owner, status and due day."""
        conditions: list[str] = []
        params: list = []
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(TaskStatus(status).value)
        if due_on is not None:
            conditions.append("substr(due_date, 1, 10) = ?")
            params.append(due_on.isoformat())

        query = "SELECT * FROM tasks"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def update_task(self, task_id: str, **patch: Any) -> Task:
        """Apply a partial update. Raises StoreError if the task does not exist."""
        unknown = set(patch) - self._UPDATABLE
        if unknown:
            raise StoreError(f"Cannot update task fields: {sorted(unknown)}")

        assignments = [f"{name} = ?" for name in patch]
        params = [self._to_column(name, value) for name, value in patch.items()]
        assignments.append("updated_at = ?")
        params.extend([_utcnow(), task_id])

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?", params,
            )
        if cursor.rowcount == 0:
            raise StoreError(f"Task {task_id} not found")

        logger.debug("Task %s updated: %s", task_id, sorted(patch))
        return self.get_task(task_id)

    def delete_task(self, task_id: str) -> bool:
        """Permanently delete a task. Linked time blocks keep their task_id."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task %s deleted", task_id)
        return deleted

    def delete_completed_before(self, cutoff: datetime) -> int:
        """Delete completed tasks last updated before cutoff.

        Tasks referenced as a template by any recurrence rule are kept.
        """
        cutoff_utc = cutoff.astimezone(timezone.utc).isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM tasks
                WHERE status = ?
                  AND updated_at < ?
                  AND id NOT IN (SELECT parent_task_id FROM recurring_tasks)
                """,
                (TaskStatus.COMPLETED.value, cutoff_utc),
            )
        deleted = cursor.rowcount
        logger.info("Deleted %d completed task(s) older than %s", deleted, cutoff_utc)
        return deleted


class TimeBlockDB(_SQLiteStore):
    """SQLite-backed storage for time blocks."""

    _UPDATABLE = {"task_id", "start_time", "end_time", "type", "notes", "is_completed"}

    @staticmethod
    def _row_to_block(row: sqlite3.Row) -> TimeBlock:
        return TimeBlock(
            id=row["id"],
            user_id=row["user_id"],
            task_id=row["task_id"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]),
            type=TimeBlockType(row["type"]),
            notes=row["notes"],
            is_completed=bool(row["is_completed"]),
            created_at=_str_to_dt(row["created_at"]),
        )

    @classmethod
    def _by_start(cls, rows: list[sqlite3.Row]) -> list[TimeBlock]:
        # Text order breaks across a DST fall-back, compare instants instead
        return sorted((cls._row_to_block(r) for r in rows), key=lambda b: b.start_time)

    def insert_time_block(self, block: TimeBlock) -> TimeBlock:
        """Insert a time block. An empty id is replaced by a generated one."""
        block_id = block.id or _new_id()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO time_blocks
                    (id, user_id, task_id, start_time, end_time, type, notes,
                     is_completed, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    block_id, block.user_id, block.task_id,
                    _local_iso(block.start_time), _local_iso(block.end_time),
                    block.type.value, block.notes, int(block.is_completed),
                    _utcnow(),
                ),
            )
        logger.info(
            "Time block added: %s %s-%s (task %s)",
            block_id, block.start_time.isoformat(), block.end_time.isoformat(),
            block.task_id,
        )
        return self.get_time_block(block_id)

    def get_time_block(self, block_id: str) -> TimeBlock | None:
        """Fetch a single time block by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM time_blocks WHERE id = ?", (block_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_block(row)

    def list_by_task(self, task_id: str) -> list[TimeBlock]:
        """Return every block linked to a task, earliest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM time_blocks WHERE task_id = ?", (task_id,),
            ).fetchall()
        return self._by_start(rows)

    def list_by_date(
        self, target_date: date, user_id: str | None = None,
    ) -> list[TimeBlock]:
        """Return blocks starting on a calendar day in the configured timezone."""
        query = "SELECT * FROM time_blocks WHERE substr(start_time, 1, 10) = ?"
        params: list = [target_date.isoformat()]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return self._by_start(rows)

    def update_time_block(self, block_id: str, **patch: Any) -> TimeBlock:
        """Apply a partial update, keeping end_time after start_time.

        Raises StoreError if the block does not exist, ValueError if the
        resulting interval is invalid.
        """
        unknown = set(patch) - self._UPDATABLE
        if unknown:
            raise StoreError(f"Cannot update time block fields: {sorted(unknown)}")

        current = self.get_time_block(block_id)
        if current is None:
            raise StoreError(f"Time block {block_id} not found")

        merged = TimeBlock(**{**current.__dict__, **patch})

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE time_blocks
                SET task_id = ?, start_time = ?, end_time = ?, type = ?,
                    notes = ?, is_completed = ?
                WHERE id = ?
                """,
                (
                    merged.task_id, _local_iso(merged.start_time),
                    _local_iso(merged.end_time), merged.type.value,
                    merged.notes, int(merged.is_completed), block_id,
                ),
            )
        logger.debug("Time block %s updated: %s", block_id, sorted(patch))
        return self.get_time_block(block_id)

    def delete_time_block(self, block_id: str) -> bool:
        """Permanently delete a time block."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM time_blocks WHERE id = ?", (block_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Time block %s deleted", block_id)
        return deleted


class RecurringTaskDB(_SQLiteStore):
    """SQLite-backed storage for recurrence rules."""

    _UPDATABLE = {"frequency", "recurrence_pattern", "start_date", "end_date", "is_active"}

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> RecurringTask:
        return RecurringTask(
            id=row["id"],
            user_id=row["user_id"],
            parent_task_id=row["parent_task_id"],
            frequency=Frequency(row["frequency"]),
            recurrence_pattern=parse_recurrence_pattern(
                row["frequency"], json.loads(row["recurrence_pattern"]),
            ),
            start_date=date.fromisoformat(row["start_date"]),
            end_date=_str_to_date(row["end_date"]),
            last_generated_date=_str_to_date(row["last_generated_date"]),
            is_active=bool(row["is_active"]),
            created_at=_str_to_dt(row["created_at"]),
            updated_at=_str_to_dt(row["updated_at"]),
        )

    def add_recurring_task(
        self,
        user_id: str,
        parent_task_id: str,
        frequency: Frequency | str,
        recurrence_pattern: dict | None,
        start_date: date,
        end_date: date | None = None,
    ) -> RecurringTask:
        """Create a rule from an existing task. The pattern is validated here."""
        pattern = parse_recurrence_pattern(frequency, recurrence_pattern)
        rule_id = _new_id()
        now = _utcnow()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO recurring_tasks
                    (id, user_id, parent_task_id, frequency, recurrence_pattern,
                     start_date, end_date, last_generated_date, is_active,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, NULL, 1, ?, ?)
                """,
                (
                    rule_id, user_id, parent_task_id, Frequency(frequency).value,
                    pattern.model_dump_json(exclude_none=True),
                    start_date.isoformat(),
                    end_date.isoformat() if end_date else None,
                    now, now,
                ),
            )
        logger.info(
            "Recurring task added: %s (%s) for task %s",
            rule_id, Frequency(frequency).value, parent_task_id,
        )
        return self.get_recurring_task(rule_id)

    def get_recurring_task(self, rule_id: str) -> RecurringTask | None:
        """Fetch a single rule by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM recurring_tasks WHERE id = ?", (rule_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_rule(row)

    def list_recurring_tasks(
        self, user_id: str | None = None, active_only: bool = True,
    ) -> list[RecurringTask]:
        """List rules, newest first."""
        conditions: list[str] = []
        params: list = []
        if active_only:
            conditions.append("is_active = 1")
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)

        query = "SELECT * FROM recurring_tasks"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def list_active_needing_generation(self, today: date) -> list[RecurringTask]:
        """Active rules inside their window not yet generated today."""
        today_str = today.isoformat()
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM recurring_tasks
                WHERE is_active = 1
                  AND (last_generated_date IS NULL OR last_generated_date < ?)
                  AND start_date <= ?
                  AND (end_date IS NULL OR end_date >= ?)
                ORDER BY created_at
                """,
                (today_str, today_str, today_str),
            ).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def update_last_generated_date(self, rule_id: str, day: date) -> None:
        """Record a generation. The stored date never moves backwards."""
        day_str = day.isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE recurring_tasks
                SET last_generated_date = ?, updated_at = ?
                WHERE id = ?
                  AND (last_generated_date IS NULL OR last_generated_date <= ?)
                """,
                (day_str, _utcnow(), rule_id, day_str),
            )
        if cursor.rowcount == 0:
            if self.get_recurring_task(rule_id) is None:
                raise StoreError(f"Recurring task {rule_id} not found")
            raise StoreError(
                f"Recurring task {rule_id} already generated after {day_str}"
            )
        logger.info("Recurring task %s last generated on %s", rule_id, day_str)

    def update_recurring_task(self, rule_id: str, **patch: Any) -> RecurringTask:
        """Apply a partial update (e.g. extending end_date)."""
        unknown = set(patch) - self._UPDATABLE
        if unknown:
            raise StoreError(f"Cannot update recurring task fields: {sorted(unknown)}")

        current = self.get_recurring_task(rule_id)
        if current is None:
            raise StoreError(f"Recurring task {rule_id} not found")

        frequency = Frequency(patch.get("frequency", current.frequency))
        raw_pattern = patch.get("recurrence_pattern", current.recurrence_pattern)
        if not isinstance(raw_pattern, dict):
            raw_pattern = raw_pattern.model_dump()
        pattern = parse_recurrence_pattern(frequency, raw_pattern)
        start_date = patch.get("start_date", current.start_date)
        end_date = patch.get("end_date", current.end_date)
        is_active = patch.get("is_active", current.is_active)

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE recurring_tasks
                SET frequency = ?, recurrence_pattern = ?, start_date = ?,
                    end_date = ?, is_active = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    frequency.value, pattern.model_dump_json(exclude_none=True),
                    start_date.isoformat(),
                    end_date.isoformat() if end_date else None,
                    int(is_active), _utcnow(), rule_id,
                ),
            )
        logger.info("Recurring task %s updated: %s", rule_id, sorted(patch))
        return self.get_recurring_task(rule_id)

    def deactivate(self, rule_id: str) -> bool:
        """Soft-stop a rule (set is_active = False)."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE recurring_tasks SET is_active = 0, updated_at = ? "
                "WHERE id = ? AND is_active = 1",
                (_utcnow(), rule_id),
            )
        deactivated = cursor.rowcount > 0
        if deactivated:
            logger.info("Recurring task %s deactivated", rule_id)
        return deactivated

    def delete(self, rule_id: str) -> bool:
        """Permanently delete a rule. Already generated tasks are kept."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM recurring_tasks WHERE id = ?", (rule_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Recurring task %s deleted", rule_id)
        return deleted
