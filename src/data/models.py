"""
Planner Sync — Data Models.

Tasks, their scheduled time blocks, and the recurrence rules that generate
new task instances. Rows are owned by a single user and persist in SQLite.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field, field_validator


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TimeBlockType(str, Enum):
    WORK = "work"
    BREAK = "break"
    MEETING = "meeting"
    PERSONAL = "personal"
    EXERCISE = "exercise"
    LEARNING = "learning"
    BUFFER = "buffer"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class Task:
    """A prioritizable to-do item.

    Created by the user, by an AI intent, or by the recurrence scheduler as a
    fresh instance of a template task.
    """

    id: str
    user_id: str
    title: str
    description: str | None = None
    is_urgent: bool = False
    is_important: bool = False
    estimated_duration: int | None = None   # minutes
    due_date: datetime | None = None
    status: TaskStatus = TaskStatus.PENDING
    tags: list[str] = field(default_factory=list)
    color: str = "#3b82f6"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.status = TaskStatus(self.status)
        # ordered set: keep first occurrence
        self.tags = list(dict.fromkeys(self.tags))


@dataclass
class TimeBlock:
    """A concrete calendar interval, optionally linked to a task.

    task_id is a lookup reference only: the block may outlive its task.
    """

    id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    task_id: str | None = None
    type: TimeBlockType = TimeBlockType.WORK
    notes: str | None = None
    is_completed: bool = False
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.type = TimeBlockType(self.type)
        if self.end_time <= self.start_time:
            raise ValueError(
                f"TimeBlock end_time {self.end_time.isoformat()} must be after "
                f"start_time {self.start_time.isoformat()}"
            )

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60


# ---------------------------------------------------------------------------
# Recurrence patterns: JSON blob stored in recurring_tasks.recurrence_pattern
# ---------------------------------------------------------------------------


class DailyPattern(BaseModel):
    """Repeat every day. interval is kept for the "every N days" UI hint."""

    interval: int = Field(1, ge=1)


class WeeklyPattern(BaseModel):
    """Repeat on the given weekdays (0=Sunday .. 6=Saturday)."""

    interval: int = Field(1, ge=1)
    days: list[int] = Field(default_factory=list)

    @field_validator("days")
    @classmethod
    def check_days(cls, v: list[int]) -> list[int]:
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"Weekday ordinal out of range 0-6: {day}")
        return sorted(set(v))


class MonthlyPattern(BaseModel):
    """Repeat on a day of the month, or on its last day."""

    interval: int = Field(1, ge=1)
    day_of_month: int | Literal["last_day"] | None = None

    @field_validator("day_of_month")
    @classmethod
    def check_day_of_month(cls, v: int | str | None) -> int | str | None:
        if isinstance(v, int) and not 1 <= v <= 31:
            raise ValueError(f"day_of_month out of range 1-31: {v}")
        return v


RecurrencePattern = Union[DailyPattern, WeeklyPattern, MonthlyPattern]

_PATTERN_MODELS: dict[Frequency, type[BaseModel]] = {
    Frequency.DAILY: DailyPattern,
    Frequency.WEEKLY: WeeklyPattern,
    Frequency.MONTHLY: MonthlyPattern,
}


def parse_recurrence_pattern(
    frequency: Frequency | str, raw: dict | None,
) -> RecurrencePattern:
    """Validate a raw pattern blob against the model for its frequency.

    Raises ValueError (pydantic ValidationError) for an unknown frequency or
    an invalid blob.
    """
    model = _PATTERN_MODELS[Frequency(frequency)]
    return model.model_validate(raw or {})


@dataclass
class RecurringTask:
    """A rule generating new task instances from a template (parent) task."""

    id: str
    user_id: str
    parent_task_id: str
    frequency: Frequency
    recurrence_pattern: RecurrencePattern
    start_date: date
    end_date: date | None = None
    last_generated_date: date | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.frequency = Frequency(self.frequency)
        if isinstance(self.recurrence_pattern, dict):
            self.recurrence_pattern = parse_recurrence_pattern(
                self.frequency, self.recurrence_pattern,
            )
