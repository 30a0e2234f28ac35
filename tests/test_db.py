"""Tests for src.data.db — TaskDB, TimeBlockDB, RecurringTaskDB (SQLite storage)."""

import pytest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from src.data.models import (
    Frequency,
    MonthlyPattern,
    TaskStatus,
    TimeBlockType,
    WeeklyPattern,
)
from src.ports.store_port import StoreError


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestTaskDB:
    def test_insert_assigns_id_and_timestamps(self, make_task):
        task = make_task(tags=["work", "q1"], estimated_duration=45)
        assert task.id
        assert task.created_at is not None
        assert task.updated_at is not None
        assert task.tags == ["work", "q1"]
        assert task.estimated_duration == 45
        assert task.status is TaskStatus.PENDING

    def test_insert_keeps_given_id(self, make_task):
        task = make_task(id="fixed-id")
        assert task.id == "fixed-id"

    def test_get_task_not_found(self, task_db):
        assert task_db.get_task("missing") is None

    def test_due_date_round_trip(self, make_task, task_db):
        due = _utc(2026, 3, 1, 17, 0)
        task = make_task(due_date=due)
        assert task_db.get_task(task.id).due_date == due

    def test_update_task(self, make_task, task_db):
        task = make_task()
        updated = task_db.update_task(task.id, status=TaskStatus.IN_PROGRESS, estimated_duration=30)
        assert updated.status is TaskStatus.IN_PROGRESS
        assert updated.estimated_duration == 30

    def test_update_missing_task_raises(self, task_db):
        with pytest.raises(StoreError):
            task_db.update_task("missing", status=TaskStatus.COMPLETED)

    def test_update_unknown_field_raises(self, make_task, task_db):
        task = make_task()
        with pytest.raises(StoreError):
            task_db.update_task(task.id, user_id="someone-else")

    def test_list_tasks_filters(self, make_task, task_db):
        make_task(title="A", user_id="u1")
        b = make_task(title="B", user_id="u1", due_date=_utc(2026, 2, 12, 8))
        make_task(title="C", user_id="u2")
        task_db.update_task(b.id, status=TaskStatus.COMPLETED)

        assert {t.title for t in task_db.list_tasks(user_id="u1")} == {"A", "B"}
        assert [t.title for t in task_db.list_tasks(status=TaskStatus.COMPLETED)] == ["B"]
        assert [t.title for t in task_db.list_tasks(due_on=date(2026, 2, 12))] == ["B"]
        assert len(task_db.list_tasks()) == 3

    def test_delete_task(self, make_task, task_db):
        task = make_task()
        assert task_db.delete_task(task.id) is True
        assert task_db.get_task(task.id) is None
        assert task_db.delete_task(task.id) is False


class TestTaskDBCleanup:
    def _backdate(self, task_db, task_id, when):
        with task_db._connect() as conn:
            conn.execute(
                "UPDATE tasks SET updated_at = ? WHERE id = ?",
                (when.isoformat(), task_id),
            )

    def test_deletes_old_completed_tasks(self, make_task, task_db):
        old = make_task(title="Old", status=TaskStatus.COMPLETED)
        recent = make_task(title="Recent", status=TaskStatus.COMPLETED)
        pending = make_task(title="Pending")
        self._backdate(task_db, old.id, _utc(2019, 1, 1))
        self._backdate(task_db, pending.id, _utc(2019, 1, 1))

        deleted = task_db.delete_completed_before(_utc(2020, 1, 1))

        assert deleted == 1
        assert task_db.get_task(old.id) is None
        assert task_db.get_task(recent.id) is not None
        assert task_db.get_task(pending.id) is not None

    def test_keeps_recurrence_templates(self, make_task, task_db, recurring_db):
        template = make_task(title="Template", status=TaskStatus.COMPLETED)
        recurring_db.add_recurring_task(
            "user-1", template.id, "daily", {}, start_date=date(2025, 1, 1),
        )
        self._backdate(task_db, template.id, _utc(2019, 1, 1))

        assert task_db.delete_completed_before(_utc(2020, 1, 1)) == 0
        assert task_db.get_task(template.id) is not None


class TestTimeBlockDB:
    def test_insert_and_get(self, make_block, time_block_db):
        block = make_block(task_id="t1", notes="Deep work", type="learning")
        fetched = time_block_db.get_time_block(block.id)
        assert fetched.task_id == "t1"
        assert fetched.notes == "Deep work"
        assert fetched.type is TimeBlockType.LEARNING
        assert fetched.start_time == _utc(2026, 2, 11, 9)
        assert fetched.is_completed is False

    def test_list_by_task_ordered_by_start(self, make_block, time_block_db):
        make_block(task_id="t1", start_time=_utc(2026, 2, 11, 14), end_time=_utc(2026, 2, 11, 15))
        make_block(task_id="t1")
        make_block(task_id="t2")
        blocks = time_block_db.list_by_task("t1")
        assert [b.start_time.hour for b in blocks] == [9, 14]

    def test_list_by_date(self, make_block, time_block_db):
        make_block(user_id="u1")
        make_block(user_id="u2")
        make_block(user_id="u1", start_time=_utc(2026, 2, 12, 9), end_time=_utc(2026, 2, 12, 10))
        assert len(time_block_db.list_by_date(date(2026, 2, 11))) == 2
        assert len(time_block_db.list_by_date(date(2026, 2, 11), user_id="u1")) == 1

    def test_update_time_block(self, make_block, time_block_db):
        block = make_block()
        updated = time_block_db.update_time_block(block.id, is_completed=True, notes="done")
        assert updated.is_completed is True
        assert time_block_db.get_time_block(block.id).notes == "done"

    def test_update_rejects_inverted_interval(self, make_block, time_block_db):
        block = make_block()
        with pytest.raises(ValueError):
            time_block_db.update_time_block(block.id, end_time=_utc(2026, 2, 11, 8))
        assert time_block_db.get_time_block(block.id).end_time == _utc(2026, 2, 11, 10)

    def test_update_missing_block_raises(self, time_block_db):
        with pytest.raises(StoreError):
            time_block_db.update_time_block("missing", is_completed=True)

    def test_delete_time_block(self, make_block, time_block_db):
        block = make_block()
        assert time_block_db.delete_time_block(block.id) is True
        assert time_block_db.get_time_block(block.id) is None


class TestRecurringTaskDB:
    def test_add_and_get(self, recurring_db):
        rule = recurring_db.add_recurring_task(
            "u1", "t1", "weekly", {"days": [3, 1], "interval": 1},
            start_date=date(2026, 1, 1), end_date=date(2026, 12, 31),
        )
        fetched = recurring_db.get_recurring_task(rule.id)
        assert fetched.frequency is Frequency.WEEKLY
        assert isinstance(fetched.recurrence_pattern, WeeklyPattern)
        assert fetched.recurrence_pattern.days == [1, 3]
        assert fetched.start_date == date(2026, 1, 1)
        assert fetched.end_date == date(2026, 12, 31)
        assert fetched.last_generated_date is None
        assert fetched.is_active is True

    def test_add_rejects_invalid_pattern(self, recurring_db):
        with pytest.raises(ValueError):
            recurring_db.add_recurring_task(
                "u1", "t1", "monthly", {"day_of_month": 0}, start_date=date(2026, 1, 1),
            )
        assert recurring_db.list_recurring_tasks(active_only=False) == []

    def test_list_active_needing_generation(self, recurring_db):
        today = date(2026, 2, 11)
        due = recurring_db.add_recurring_task("u1", "t1", "daily", {}, start_date=date(2026, 1, 1))
        done = recurring_db.add_recurring_task("u1", "t2", "daily", {}, start_date=date(2026, 1, 1))
        recurring_db.update_last_generated_date(done.id, today)
        recurring_db.add_recurring_task("u1", "t3", "daily", {}, start_date=date(2026, 3, 1))
        recurring_db.add_recurring_task(
            "u1", "t4", "daily", {}, start_date=date(2026, 1, 1), end_date=date(2026, 2, 10),
        )
        inactive = recurring_db.add_recurring_task("u1", "t5", "daily", {}, start_date=date(2026, 1, 1))
        recurring_db.deactivate(inactive.id)

        rules = recurring_db.list_active_needing_generation(today)
        assert [r.id for r in rules] == [due.id]

    def test_last_generated_date_never_moves_backwards(self, recurring_db):
        rule = recurring_db.add_recurring_task("u1", "t1", "daily", {}, start_date=date(2026, 1, 1))
        recurring_db.update_last_generated_date(rule.id, date(2026, 2, 11))
        with pytest.raises(StoreError):
            recurring_db.update_last_generated_date(rule.id, date(2026, 2, 10))
        assert recurring_db.get_recurring_task(rule.id).last_generated_date == date(2026, 2, 11)

    def test_last_generated_date_missing_rule(self, recurring_db):
        with pytest.raises(StoreError):
            recurring_db.update_last_generated_date("missing", date(2026, 2, 11))

    def test_update_extends_end_date(self, recurring_db):
        rule = recurring_db.add_recurring_task(
            "u1", "t1", "monthly", {"day_of_month": "last_day"},
            start_date=date(2026, 1, 1), end_date=date(2026, 3, 31),
        )
        updated = recurring_db.update_recurring_task(rule.id, end_date=date(2026, 12, 31))
        assert updated.end_date == date(2026, 12, 31)
        assert isinstance(updated.recurrence_pattern, MonthlyPattern)
        assert updated.recurrence_pattern.day_of_month == "last_day"

    def test_update_frequency_revalidates_pattern(self, recurring_db):
        rule = recurring_db.add_recurring_task("u1", "t1", "daily", {}, start_date=date(2026, 1, 1))
        updated = recurring_db.update_recurring_task(
            rule.id, frequency="weekly", recurrence_pattern={"days": [0]},
        )
        assert updated.frequency is Frequency.WEEKLY
        assert updated.recurrence_pattern.days == [0]

    def test_deactivate_and_delete(self, recurring_db):
        rule = recurring_db.add_recurring_task("u1", "t1", "daily", {}, start_date=date(2026, 1, 1))
        assert recurring_db.deactivate(rule.id) is True
        assert recurring_db.deactivate(rule.id) is False
        assert recurring_db.list_recurring_tasks() == []
        assert len(recurring_db.list_recurring_tasks(active_only=False)) == 1
        assert recurring_db.delete(rule.id) is True
        assert recurring_db.get_recurring_task(rule.id) is None


class TestLocalCalendarDay:
    """Timestamps given at any offset land on the local calendar day."""

    @pytest.fixture(autouse=True)
    def new_york(self, monkeypatch):
        from src.config import settings
        monkeypatch.setattr(settings, "TIMEZONE", "America/New_York")

    def test_utc_evening_block_listed_on_local_day(self, make_block, time_block_db):
        # 02:00Z on Nov 2 is 22:00 on Nov 1 in New York
        block = make_block(start_time=_utc(2025, 11, 2, 2), end_time=_utc(2025, 11, 2, 3))

        assert [b.id for b in time_block_db.list_by_date(date(2025, 11, 1))] == [block.id]
        assert time_block_db.list_by_date(date(2025, 11, 2)) == []

    def test_blocks_at_mixed_offsets_sorted_by_instant(self, make_block, time_block_db):
        ny = ZoneInfo("America/New_York")
        afternoon = make_block(
            task_id="t1",
            start_time=datetime(2025, 11, 1, 10, tzinfo=timezone(timedelta(hours=-5))),
            end_time=datetime(2025, 11, 1, 11, tzinfo=timezone(timedelta(hours=-5))),
        )
        morning = make_block(
            task_id="t1", start_time=_utc(2025, 11, 1, 12), end_time=_utc(2025, 11, 1, 13),
        )

        by_task = time_block_db.list_by_task("t1")
        by_day = time_block_db.list_by_date(date(2025, 11, 1))

        assert [b.id for b in by_task] == [morning.id, afternoon.id]
        assert [b.id for b in by_day] == [morning.id, afternoon.id]
        assert by_task[0].start_time == datetime(2025, 11, 1, 8, tzinfo=ny)

    def test_update_keeps_local_day(self, make_block, time_block_db):
        block = make_block()
        time_block_db.update_time_block(
            block.id, start_time=_utc(2025, 11, 2, 2), end_time=_utc(2025, 11, 2, 3),
        )

        assert len(time_block_db.list_by_date(date(2025, 11, 1))) == 1

    def test_task_due_on_local_day(self, make_task, task_db):
        task = make_task(due_date=_utc(2025, 11, 2, 2))

        assert [t.id for t in task_db.list_tasks(due_on=date(2025, 11, 1))] == [task.id]
        assert task_db.get_task(task.id).due_date == _utc(2025, 11, 2, 2)
