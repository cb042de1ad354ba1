"""Tests for navvault.storage.mailbox module."""

import logging
import sqlite3
from datetime import datetime

from navvault.core.types import (
    ActivityRecord,
    ActivityType,
    PendingTaskUpdate,
    TaskRecord,
    TaskStatus,
)
from navvault.storage.mailbox import CrossProcessMailbox, MailboxKey, MailboxLogHandler


def pending(task_id: int, status: TaskStatus = TaskStatus.COMPLETED) -> PendingTaskUpdate:
    return PendingTaskUpdate(task_id=task_id, status=status)


class TestGenericAccess:
    """Tests for get/set/update."""

    def test_get_default(self, mailbox):
        assert mailbox.get("Missing", "fallback") == "fallback"

    def test_set_and_get(self, mailbox):
        mailbox.set("Key", {"a": [1, 2]})

        assert mailbox.get("Key") == {"a": [1, 2]}
        assert mailbox.updated_at("Key") is not None

    def test_set_none_deletes(self, mailbox):
        mailbox.set("Key", 1)
        mailbox.set("Key", None)

        assert "Key" not in mailbox.keys()

    def test_visible_to_second_connection(self, mailbox):
        """A value written by one handle is read by another on the same file."""
        other = CrossProcessMailbox(db_path=mailbox.db_path)
        try:
            mailbox.set("Shared", "yes")
            assert other.get("Shared") == "yes"
        finally:
            other.close()

    def test_update_returns_new_value(self, mailbox):
        assert mailbox.update("Counter", lambda v: v + 5, default=1) == 6
        assert mailbox.get("Counter") == 6

    def test_undecodable_value_reads_as_default(self, mailbox, caplog):
        conn = sqlite3.connect(mailbox.db_path)
        conn.execute(
            "INSERT INTO mailbox (key, value, updated_at) VALUES (?, ?, 0)",
            ("Broken", "{not json"),
        )
        conn.commit()
        conn.close()

        with caplog.at_level(logging.WARNING):
            assert mailbox.get("Broken", []) == []

        assert "[E011]" in caplog.text

    def test_reopen_after_close(self, mailbox):
        mailbox.set("Key", 1)
        mailbox.close()

        assert mailbox.get("Key") == 1


class TestPendingTaskUpdates:
    """Tests for the pending task update queue."""

    def test_fifo_order(self, mailbox):
        for task_id in (3, 1, 2):
            mailbox.enqueue_task_update(pending(task_id))

        assert [u.task_id for u in mailbox.pending_task_updates()] == [3, 1, 2]

    def test_wire_format(self, mailbox):
        mailbox.enqueue_task_update(pending(100, TaskStatus.IN_PROGRESS))

        assert mailbox.get(MailboxKey.PENDING_TASK_UPDATES) == [
            {"taskId": 100, "status": "/"}
        ]

    def test_remove_keeps_entries_added_later(self, mailbox):
        """Entries enqueued after a drain started survive the removal."""
        mailbox.enqueue_task_update(pending(1))
        mailbox.enqueue_task_update(pending(2))
        processed = mailbox.pending_task_updates()

        mailbox.enqueue_task_update(pending(3))
        mailbox.remove_task_updates(processed)

        assert [u.task_id for u in mailbox.pending_task_updates()] == [3]

    def test_remove_one_occurrence_each(self, mailbox):
        mailbox.enqueue_task_update(pending(1))
        mailbox.enqueue_task_update(pending(1))

        mailbox.remove_task_updates([pending(1)])

        assert len(mailbox.pending_task_updates()) == 1

    def test_remove_all_deletes_key(self, mailbox):
        mailbox.enqueue_task_update(pending(1))

        mailbox.remove_task_updates(mailbox.pending_task_updates())

        assert MailboxKey.PENDING_TASK_UPDATES not in mailbox.keys()

    def test_malformed_entries_skipped(self, mailbox):
        mailbox.set(
            MailboxKey.PENDING_TASK_UPDATES,
            [{"taskId": 1, "status": "x"}, {"bogus": True}, {"taskId": 2, "status": "?"}],
        )

        assert [u.task_id for u in mailbox.pending_task_updates()] == [1]

        mailbox.remove_task_updates([pending(1)])
        assert mailbox.get(MailboxKey.PENDING_TASK_UPDATES) is None

    def test_remove_matches_loosely_typed_entries(self, mailbox):
        """An entry written with a string id is removed once it has been drained."""
        mailbox.set(MailboxKey.PENDING_TASK_UPDATES, [{"taskId": "100", "status": "x"}])

        drained = mailbox.pending_task_updates()
        mailbox.remove_task_updates(drained)

        assert [u.task_id for u in drained] == [100]
        assert mailbox.pending_task_updates() == []
        assert mailbox.get(MailboxKey.PENDING_TASK_UPDATES) is None


class TestWidgetSnapshot:
    """Tests for the widget task snapshot."""

    def test_round_trip(self, mailbox):
        task = TaskRecord(id=1, name="Write", project_id=7, tags=("a",))

        mailbox.set_widget_tasks([task])

        assert mailbox.widget_tasks() == [task]

    def test_patch_status(self, mailbox):
        mailbox.set_widget_tasks([TaskRecord(id=1, name="A"), TaskRecord(id=2, name="B")])

        assert mailbox.set_widget_task_status(2, "x") is True
        assert [t.status for t in mailbox.widget_tasks()] == [
            TaskStatus.NOT_STARTED,
            TaskStatus.COMPLETED,
        ]

    def test_patch_missing_task(self, mailbox):
        mailbox.set_widget_tasks([TaskRecord(id=1, name="A")])

        assert mailbox.set_widget_task_status(99, "x") is False

    def test_malformed_snapshot_entries_skipped(self, mailbox):
        mailbox.set(MailboxKey.WIDGET_TASKS, [{"id": 1, "name": "A"}, {"name": "no id"}])

        assert [t.id for t in mailbox.widget_tasks()] == [1]


class TestStampsAndCounter:
    """Tests for change stamps and the calendar counter."""

    def test_touch_never_moves_backwards(self, mailbox):
        mailbox.touch_activity_update(200.0)
        mailbox.touch_activity_update(100.0)

        assert mailbox.last_activity_update() == 200.0

    def test_task_stamp(self, mailbox):
        assert mailbox.last_task_update() == 0.0
        mailbox.touch_task_update(50.0)

        assert mailbox.last_task_update() == 50.0

    def test_counter(self, mailbox):
        assert mailbox.calendar_update_count() == 0
        assert mailbox.increment_calendar_update_count() == 1
        assert mailbox.increment_calendar_update_count() == 2

        mailbox.reset_calendar_update_count()

        assert mailbox.calendar_update_count() == 0


class TestPendingActivities:
    """Tests for the widget activity queue."""

    def test_enqueue_and_remove(self, mailbox):
        first = ActivityRecord(type=ActivityType.MEAL, time=datetime(2024, 5, 1, 12, 0))
        second = ActivityRecord(type=ActivityType.SLEEP, time=datetime(2024, 5, 1, 23, 0))
        mailbox.enqueue_activity(first)
        mailbox.enqueue_activity(second)

        mailbox.remove_pending_activities([first])

        assert mailbox.pending_activities() == [second]

    def test_last_known(self, mailbox):
        mailbox.set_last_known_activities({"meal": 10})

        assert mailbox.last_known_activities() == {"meal": 10}

    def test_merge_last_known_keeps_newest(self, mailbox):
        mailbox.set_last_known_activities({"meal": 10, "wake": 50})

        merged = mailbox.merge_last_known_activities({"meal": 20, "wake": 30, "sleep": 5})

        assert merged == {"meal": 20, "wake": 50, "sleep": 5}
        assert mailbox.last_known_activities() == merged


class TestLogs:
    """Tests for persisted logs."""

    def test_ring_keeps_newest(self, mailbox):
        for i in range(5):
            mailbox.append_log(f"line {i}", max_lines=3)

        assert mailbox.logs() == ["line 2", "line 3", "line 4"]

    def test_clear(self, mailbox):
        mailbox.append_log("x")
        mailbox.clear_logs()

        assert mailbox.logs() == []

    def test_handler_formats_with_target(self, mailbox):
        handler = MailboxLogHandler(mailbox, target="widget")
        logger = logging.getLogger("navvault.test.handler")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            logger.info("hello")
            logger.debug("hidden")
        finally:
            logger.removeHandler(handler)

        lines = mailbox.logs()
        assert len(lines) == 1
        assert lines[0].endswith("widget: [INFO] hello")
