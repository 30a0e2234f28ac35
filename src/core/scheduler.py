"""
Planner Sync — Daily Recurring Task Generation.

Run once a day (cron invokes main.py): for every active recurrence rule
that should produce an instance today, copy the template task into a new
pending task and record today as the rule's last generation date.

One bad rule never blocks the others: per-rule errors are collected and
returned alongside the successes. Missed days are caught up one instance
per run because the next due date is anchored on the last generation.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

from src.config import settings
from src.core.recurrence import get_next_occurrence, should_generate_today
from src.data.models import RecurringTask, Task, TaskStatus

if TYPE_CHECKING:
    from src.ports.clock_port import Clock
    from src.ports.store_port import RecurringTaskStore, TaskStore

logger = logging.getLogger(__name__)

# Two overlapping runs could both pass the once-per-day check
_generation_lock = threading.Lock()


@dataclass
class GenerationError:
    rule_id: str      # "general" when the whole run failed
    error: str


@dataclass
class GenerationResult:
    generated_count: int = 0
    errors: list[GenerationError] = field(default_factory=list)
    generated_task_ids: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def _next_due_date(rule: RecurringTask, clock: Clock) -> datetime:
    """Next occurrence after the last generation, at local midnight.

    The time of day of the template's due date is not carried over.
    """
    base = rule.last_generated_date or rule.start_date
    next_day = get_next_occurrence(base, rule.frequency, rule.recurrence_pattern)
    return datetime.combine(next_day, time.min, tzinfo=clock.now().tzinfo)


def _instance_from_template(parent: Task, due_date: datetime) -> Task:
    return Task(
        id="",
        user_id=parent.user_id,
        title=parent.title,
        description=parent.description,
        is_urgent=parent.is_urgent,
        is_important=parent.is_important,
        estimated_duration=parent.estimated_duration,
        due_date=due_date,
        status=TaskStatus.PENDING,
        tags=list(parent.tags),
        color=parent.color,
    )


def generate_recurring_tasks(
    task_store: TaskStore,
    recurring_store: RecurringTaskStore,
    clock: Clock,
) -> GenerationResult:
    """Create today's task instances for every rule that needs one.

    Returns a GenerationResult; partial success is normal and reported
    as generated_count plus one error entry per failed rule.
    """
    result = GenerationResult()
    today = clock.now().date()

    try:
        rules = recurring_store.list_active_needing_generation(today)
    except Exception as exc:
        logger.error("Failed to fetch recurring tasks needing generation: %s", exc)
        result.errors.append(GenerationError(rule_id="general", error=str(exc)))
        return result

    logger.info("%d recurring task(s) to check for %s", len(rules), today.isoformat())

    for rule in rules:
        try:
            parent = task_store.get_task(rule.parent_task_id)
            if parent is None:
                raise LookupError("Parent task not found")

            # The store filter may be stale; the evaluator is authoritative
            if not should_generate_today(rule, today):
                continue

            instance = _instance_from_template(parent, _next_due_date(rule, clock))
            try:
                created = task_store.insert_task(instance)
            except Exception as exc:
                raise RuntimeError(f"Failed to insert task: {exc}") from exc

            result.generated_count += 1
            result.generated_task_ids.append(created.id)

            recurring_store.update_last_generated_date(rule.id, today)
            logger.info(
                "Generated task %s from recurring task %s (due %s)",
                created.id, rule.id, instance.due_date.date().isoformat(),
            )
        except Exception as exc:
            logger.error("Recurring task %s failed: %s", rule.id, exc)
            result.errors.append(GenerationError(rule_id=rule.id, error=str(exc)))

    return result


def run_daily_generation(
    task_store: TaskStore,
    recurring_store: RecurringTaskStore,
    clock: Clock,
) -> GenerationResult:
    """generate_recurring_tasks, refusing to run twice at the same time."""
    if not _generation_lock.acquire(blocking=False):
        logger.warning("Recurring task generation already running, skipping")
        return GenerationResult(
            errors=[GenerationError(rule_id="general", error="Generation already running")],
        )
    try:
        return generate_recurring_tasks(task_store, recurring_store, clock)
    finally:
        _generation_lock.release()


def cleanup_completed_instances(
    task_store: TaskStore,
    clock: Clock,
    older_than_days: int = 30,
) -> int:
    """Delete completed tasks older than the cutoff, keeping template tasks.

    Returns the number of deleted tasks.
    """
    cutoff = clock.now() - timedelta(days=older_than_days)
    return task_store.delete_completed_before(cutoff)


def main() -> None:
    """Daily job: generate recurring instances, then clean up old ones."""
    from src.adapters.system_clock import SystemClock
    from src.data.db import RecurringTaskDB, TaskDB

    clock = SystemClock()
    task_db = TaskDB()
    recurring_db = RecurringTaskDB()

    result = run_daily_generation(task_db, recurring_db, clock)
    logger.info(
        "Recurring generation finished: %d generated, %d error(s)",
        result.generated_count, len(result.errors),
    )
    for err in result.errors:
        logger.warning("  %s: %s", err.rule_id, err.error)

    try:
        cleanup_completed_instances(task_db, clock, settings.CLEANUP_OLDER_THAN_DAYS)
    except Exception as exc:
        logger.error("Cleanup of completed tasks failed: %s", exc)
