"""
Planner Sync — UI-Agnostic Action Service.

Stateless service layer for task and time block mutations:
primary store write -> sync the paired entity -> return a structured
response object. Also executes AI assistant intents (create a task or a
time block) given the parsed intent and the user's original message.

A sync failure never undoes the primary write; it is reported in the
response's `sync` field so the UI can show it as a toast.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.config import settings
from src.core.sync_service import SyncResult, SyncService
from src.core.time_extraction import (
    extract_time_range,
    parse_time_block_datetime,
    validate_time_block_timestamps,
)
from src.data.models import Task, TimeBlock, TimeBlockType

if TYPE_CHECKING:
    from src.core.parser import ParsedIntent
    from src.ports.clock_port import Clock
    from src.ports.store_port import TaskStore, TimeBlockStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    NO_ACTION = "no_action"


@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str


@dataclass
class SuccessResponse(ServiceResponse):
    task: Task | None = None
    time_block: TimeBlock | None = None
    sync: SyncResult | None = None


@dataclass
class ErrorResponse(ServiceResponse):
    pass


@dataclass
class NoActionResponse(ServiceResponse):
    pass


def _error(message: str) -> ErrorResponse:
    return ErrorResponse(kind=ResponseKind.ERROR, message=message)


def _log_sync(sync: SyncResult) -> None:
    if not sync.success:
        logger.info("Sync skipped/failed: %s", sync.message)


# ---------------------------------------------------------------------------
# ActionService
# ---------------------------------------------------------------------------


class ActionService:
    """Performs task / time block mutations and keeps both sides in sync.

    Returns structured response objects and never raises for store errors.
    """

    def __init__(
        self,
        task_store: TaskStore,
        time_block_store: TimeBlockStore,
        clock: Clock,
        sync: SyncService | None = None,
    ) -> None:
        self._tasks = task_store
        self._blocks = time_block_store
        self._clock = clock
        self._sync = sync or SyncService(task_store, time_block_store, clock)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        user_id: str,
        title: str,
        description: str | None = None,
        is_urgent: bool = False,
        is_important: bool = False,
        estimated_duration: int | None = None,
        due_date: datetime | None = None,
        tags: list[str] | None = None,
        color: str | None = None,
    ) -> ServiceResponse:
        """Insert a task; tasks with a duration also get a time block."""
        if not title or not title.strip():
            return _error("Task title is required")

        try:
            task = self._tasks.insert_task(Task(
                id="",
                user_id=user_id,
                title=title.strip(),
                description=description,
                is_urgent=is_urgent,
                is_important=is_important,
                estimated_duration=estimated_duration,
                due_date=due_date,
                tags=tags or [],
                color=color or settings.DEFAULT_TASK_COLOR,
            ))
        except Exception as exc:
            logger.error("Failed to create task: %s", exc)
            return _error(f"Failed to create task: {exc}")

        sync = None
        if task.estimated_duration:
            sync = self._sync.sync_task_to_time_block(task)
            _log_sync(sync)

        duration = f" ({task.estimated_duration} mins)" if task.estimated_duration else ""
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f'Task created: "{task.title}"{duration}',
            task=task,
            sync=sync,
        )

    # ------------------------------------------------------------------
    # Time blocks
    # ------------------------------------------------------------------

    def _owned_block(self, user_id: str, block_id: str) -> TimeBlock | None:
        """The block, or None if it is missing or belongs to someone else."""
        block = self._blocks.get_time_block(block_id)
        if block is None or block.user_id != user_id:
            return None
        return block

    def create_time_block(
        self,
        user_id: str,
        start_raw: object,
        end_raw: object,
        task_id: str | None = None,
        block_type: TimeBlockType | str = TimeBlockType.WORK,
        notes: str | None = None,
    ) -> ServiceResponse:
        """Validate the interval, insert the block, then sync its task."""
        times = validate_time_block_timestamps(start_raw, end_raw, now=self._clock.now())

        try:
            if task_id is not None:
                task = self._tasks.get_task(task_id)
                if task is None or task.user_id != user_id:
                    return _error("Task not found")
            block = self._blocks.insert_time_block(TimeBlock(
                id="",
                user_id=user_id,
                task_id=task_id,
                start_time=times.start,
                end_time=times.end,
                type=TimeBlockType(block_type),
                notes=notes,
            ))
        except Exception as exc:
            logger.error("Failed to create time block: %s", exc)
            return _error(f"Failed to create time block: {exc}")

        sync = None
        if block.task_id:
            sync = self._sync.sync_time_block_to_task(block)
            _log_sync(sync)

        start = block.start_time.strftime("%H:%M")
        end = block.end_time.strftime("%H:%M")
        label = f" ({block.notes})" if block.notes else ""
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Time block scheduled: {start} - {end}{label}",
            time_block=block,
            sync=sync,
        )

    def complete_time_block(self, user_id: str, block_id: str) -> ServiceResponse:
        """Mark a block completed; the task completes with its last block."""
        try:
            if self._owned_block(user_id, block_id) is None:
                return _error("Time block not found")
            block = self._blocks.update_time_block(block_id, is_completed=True)
        except Exception as exc:
            logger.error("Failed to complete time block %s: %s", block_id, exc)
            return _error(f"Failed to complete time block: {exc}")

        sync = None
        if block.task_id:
            sync = self._sync.sync_time_block_completion(block)
            _log_sync(sync)

        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message="Time block completed",
            time_block=block,
            sync=sync,
        )

    def update_time_block(self, user_id: str, block_id: str, **patch: Any) -> ServiceResponse:
        """Edit a block; moving or resizing a linked block refreshes the task's duration."""
        try:
            if self._owned_block(user_id, block_id) is None:
                return _error("Time block not found")
            block = self._blocks.update_time_block(block_id, **patch)
        except Exception as exc:
            logger.error("Failed to update time block %s: %s", block_id, exc)
            return _error(f"Failed to update time block: {exc}")

        sync = None
        if block.task_id and {"start_time", "end_time"} & set(patch):
            sync = self._sync.update_task_duration_from_time_blocks(block.task_id)
            _log_sync(sync)

        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message="Time block updated",
            time_block=block,
            sync=sync,
        )

    def delete_time_block(self, user_id: str, block_id: str) -> ServiceResponse:
        """Delete a block, then re-pend its task if it was the last one."""
        try:
            block = self._owned_block(user_id, block_id)
            if block is None:
                return _error("Time block not found")
            self._blocks.delete_time_block(block_id)
        except Exception as exc:
            logger.error("Failed to delete time block %s: %s", block_id, exc)
            return _error(f"Failed to delete time block: {exc}")

        sync = None
        if block.task_id:
            sync = self._sync.sync_time_block_deletion(block_id, block.task_id)
            _log_sync(sync)

        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message="Time block deleted",
            time_block=block,
            sync=sync,
        )

    # ------------------------------------------------------------------
    # AI assistant intents
    # ------------------------------------------------------------------

    def handle_intent(
        self,
        user_id: str,
        intent: ParsedIntent | dict | str | None,
        user_message: str = "",
    ) -> ServiceResponse:
        """Execute a parsed assistant intent.

        Args:
            user_id: Owner of whatever gets created.
            intent: ParsedIntent, or the raw reply to parse.
            user_message: The user's original text; a time range found in
                it wins over the timestamps the assistant produced.
        """
        from src.core.parser import ParsedIntent, parse_intent

        if not isinstance(intent, ParsedIntent):
            intent = parse_intent(intent)
        if intent is None:
            return _error("Sorry, I couldn't understand that request. Please try again.")

        if intent.action == "task":
            return self._create_task_from_intent(user_id, intent)
        if intent.action == "time_block":
            return self._create_time_block_from_intent(user_id, intent, user_message)

        return NoActionResponse(
            kind=ResponseKind.NO_ACTION,
            message=intent.reasoning or "Request processed",
        )

    def _create_task_from_intent(self, user_id: str, intent: ParsedIntent) -> ServiceResponse:
        details = intent.details
        tz = self._clock.now().tzinfo
        return self.create_task(
            user_id,
            intent.title,
            description=details.description,
            is_urgent=details.is_urgent,
            is_important=details.is_important,
            estimated_duration=details.estimated_duration,
            due_date=parse_time_block_datetime(details.due_date, tz),
            tags=details.tags,
            color=details.color,
        )

    def _create_time_block_from_intent(
        self, user_id: str, intent: ParsedIntent, user_message: str,
    ) -> ServiceResponse:
        details = intent.details
        extracted = extract_time_range(user_message, now=self._clock.now())

        if extracted is not None:
            logger.info("Using time range extracted from the user's message")
            start_raw, end_raw = extracted.start, extracted.end
        else:
            logger.info("No time range in message, using assistant timestamps")
            start_raw, end_raw = details.start_time, details.end_time

        return self.create_time_block(
            user_id,
            start_raw,
            end_raw,
            notes=details.notes or intent.title or None,
        )
