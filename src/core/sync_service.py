"""
Planner Sync — Task <-> TimeBlock synchronization.

Keeps a task's status and duration consistent with its linked time blocks.
Sync always runs after a primary write (create / complete / delete) and is
best-effort: every operation returns a SyncResult and never raises, so a
sync failure can never roll back the write that triggered it.

Status transitions driven here:
    pending --[block linked]--> in_progress
    in_progress --[all linked blocks completed]--> completed
    in_progress | completed --[last linked block deleted]--> pending
Cancelled tasks are only changed by the user.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from functools import wraps
from typing import TYPE_CHECKING, Callable

from src.config import settings
from src.data.models import Task, TaskStatus, TimeBlock, TimeBlockType

if TYPE_CHECKING:
    from src.ports.clock_port import Clock
    from src.ports.store_port import TaskStore, TimeBlockStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a sync operation, surfaced by the caller as a toast or log line."""

    success: bool
    message: str
    synced_id: str | None = None


def _never_raises(operation: Callable[..., SyncResult]) -> Callable[..., SyncResult]:
    """Convert any exception escaping a sync operation into a failed SyncResult."""

    @wraps(operation)
    def wrapper(*args, **kwargs) -> SyncResult:
        try:
            return operation(*args, **kwargs)
        except Exception as exc:
            logger.error("Error in %s: %s", operation.__name__, exc)
            return SyncResult(success=False, message=f"Sync failed: {exc}")

    return wrapper


class SyncService:
    """Bidirectional consistency layer between tasks and time blocks."""

    def __init__(
        self,
        task_store: TaskStore,
        time_block_store: TimeBlockStore,
        clock: Clock,
    ) -> None:
        self._tasks = task_store
        self._blocks = time_block_store
        self._clock = clock

    # ------------------------------------------------------------------
    # Task -> TimeBlock
    # ------------------------------------------------------------------

    def _default_start(self, task: Task) -> datetime:
        """The task's due day (or today) at the default start hour, local time."""
        now = self._clock.now()
        tz = now.tzinfo
        if task.due_date is not None:
            due = task.due_date if task.due_date.tzinfo is None else task.due_date.astimezone(tz)
            day = due.date()
        else:
            day = now.date()
        return datetime.combine(day, time(settings.DEFAULT_BLOCK_START_HOUR), tzinfo=tz)

    @_never_raises
    def sync_task_to_time_block(self, task: Task) -> SyncResult:
        """Create the time block for a task that has an estimated duration.

        Idempotent: a second call finds the existing block and reports it.
        The block type is always "work"; urgency and importance are cosmetic.
        """
        if not task.estimated_duration:
            return SyncResult(
                success=False,
                message="Task needs an estimated_duration to be synced to a time block",
            )

        existing = self._blocks.list_by_task(task.id)
        if existing:
            return SyncResult(
                success=False,
                message="Time block for this task already exists",
                synced_id=existing[0].id,
            )

        start = self._default_start(task)
        end = start + timedelta(minutes=task.estimated_duration)

        block = self._blocks.insert_time_block(TimeBlock(
            id="",
            user_id=task.user_id,
            task_id=task.id,
            start_time=start,
            end_time=end,
            type=TimeBlockType.WORK,
            notes=f"Auto-synced from task: {task.title}",
        ))
        logger.info("Time block %s created for task %s", block.id, task.id)
        return SyncResult(
            success=True,
            message="Task synced to time block",
            synced_id=block.id,
        )

    # ------------------------------------------------------------------
    # TimeBlock -> Task
    # ------------------------------------------------------------------

    @_never_raises
    def sync_time_block_to_task(self, time_block: TimeBlock) -> SyncResult:
        """Move the linked task from pending to in_progress.

        Any other status is left alone so a completed task never regresses.
        """
        if not time_block.task_id:
            logger.debug("Time block %s not linked to a task, skipping sync", time_block.id)
            return SyncResult(
                success=False,
                message="Time block must be linked to a task to be synced",
            )

        task = self._tasks.get_task(time_block.task_id)
        if task is None:
            logger.warning(
                "Time block %s references missing task %s",
                time_block.id, time_block.task_id,
            )
            return SyncResult(success=False, message="Linked task not found")

        if task.status is TaskStatus.PENDING:
            self._tasks.update_task(task.id, status=TaskStatus.IN_PROGRESS)
            logger.info("Task %s status updated to in_progress", task.id)
        else:
            logger.debug("Task %s status already %s, not updating", task.id, task.status.value)

        return SyncResult(
            success=True,
            message="Time block synced to task",
            synced_id=task.id,
        )

    @_never_raises
    def sync_time_block_completion(self, time_block: TimeBlock) -> SyncResult:
        """Complete the linked task once every one of its blocks is completed."""
        if not time_block.task_id or not time_block.is_completed:
            return SyncResult(success=False, message="Invalid time block data")

        siblings = self._blocks.list_by_task(time_block.task_id)
        if not siblings or not all(block.is_completed for block in siblings):
            return SyncResult(
                success=True,
                message="Time block marked as completed",
                synced_id=time_block.id,
            )

        task = self._tasks.get_task(time_block.task_id)
        if task is None:
            return SyncResult(success=False, message="Linked task not found")
        if task.status is TaskStatus.CANCELLED:
            return SyncResult(
                success=True,
                message="Task is cancelled, status left unchanged",
                synced_id=task.id,
            )

        if task.status is not TaskStatus.COMPLETED:
            self._tasks.update_task(task.id, status=TaskStatus.COMPLETED)
            logger.info("Task %s completed: all %d time blocks done", task.id, len(siblings))

        return SyncResult(
            success=True,
            message="Task status updated to completed",
            synced_id=task.id,
        )

    @_never_raises
    def sync_time_block_deletion(self, time_block_id: str, task_id: str) -> SyncResult:
        """Reset the task to pending when its last time block is gone.

        Called after the block row was deleted; the deleted id is excluded
        from the sibling lookup in case the caller runs this first.
        """
        remaining = [
            block for block in self._blocks.list_by_task(task_id)
            if block.id != time_block_id
        ]
        if remaining:
            return SyncResult(
                success=True,
                message="Time block deleted",
                synced_id=time_block_id,
            )

        task = self._tasks.get_task(task_id)
        if task is None:
            return SyncResult(success=False, message="Linked task not found")
        if task.status is TaskStatus.CANCELLED:
            return SyncResult(
                success=True,
                message="Task is cancelled, status left unchanged",
                synced_id=task_id,
            )

        self._tasks.update_task(task_id, status=TaskStatus.PENDING)
        logger.info("Task %s back to pending: no time blocks left", task_id)
        return SyncResult(
            success=True,
            message="Task status updated back to pending",
            synced_id=task_id,
        )

    @_never_raises
    def update_task_duration_from_time_blocks(self, task_id: str) -> SyncResult:
        """Set estimated_duration to the total length of the task's blocks."""
        blocks = self._blocks.list_by_task(task_id)
        if not blocks:
            return SyncResult(success=False, message="No time blocks for this task")

        total = math.floor(sum(block.duration_minutes for block in blocks) + 0.5)
        self._tasks.update_task(task_id, estimated_duration=total)
        logger.info("Task %s duration updated to %d minutes", task_id, total)
        return SyncResult(
            success=True,
            message=f"Task duration updated to {total} minutes",
            synced_id=task_id,
        )
