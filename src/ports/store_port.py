"""Store ports — abstract interfaces for task, time block and rule storage.

Core modules depend on these protocols, never on a specific backend.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Protocol

from src.data.models import RecurringTask, Task, TaskStatus, TimeBlock


class StoreError(Exception):
    """Raised when any store operation fails (missing row, backend error)."""


class TaskStore(Protocol):
    """Abstract task storage used by core modules."""

    def get_task(self, task_id: str) -> Task | None: ...

    def list_tasks(
        self,
        user_id: str | None = None,
        status: TaskStatus | None = None,
        due_on: date | None = None,
    ) -> list[Task]: ...

    def insert_task(self, task: Task) -> Task: ...

    def update_task(self, task_id: str, **patch: Any) -> Task: ...

    def delete_task(self, task_id: str) -> bool: ...

    def delete_completed_before(self, cutoff: datetime) -> int: ...


class TimeBlockStore(Protocol):
    """Abstract time block storage used by core modules."""

    def get_time_block(self, block_id: str) -> TimeBlock | None: ...

    def list_by_task(self, task_id: str) -> list[TimeBlock]: ...

    def list_by_date(
        self, target_date: date, user_id: str | None = None,
    ) -> list[TimeBlock]: ...

    def insert_time_block(self, block: TimeBlock) -> TimeBlock: ...

    def update_time_block(self, block_id: str, **patch: Any) -> TimeBlock: ...

    def delete_time_block(self, block_id: str) -> bool: ...


class RecurringTaskStore(Protocol):
    """Abstract recurrence rule storage used by the scheduler."""

    def get_recurring_task(self, rule_id: str) -> RecurringTask | None: ...

    def list_active_needing_generation(self, today: date) -> list[RecurringTask]: ...

    def update_last_generated_date(self, rule_id: str, day: date) -> None: ...

    def update_recurring_task(self, rule_id: str, **patch: Any) -> RecurringTask: ...

    def deactivate(self, rule_id: str) -> bool: ...

    def delete(self, rule_id: str) -> bool: ...
