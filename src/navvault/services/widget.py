"""Widget-side bridge.

The widget runs in its own process and never sees the main process's
caches. It renders from the mailbox snapshot and sends its writes back
through the mailbox, except activities, which it appends to the vault
directly through the shared file coordinator.
"""

import logging
from datetime import datetime

from navvault.core.errors import FileOperationFailed, NoVaultAccess
from navvault.core.types import (
    ActivityRecord,
    ActivityType,
    PendingTaskUpdate,
    TaskRecord,
    TaskStatus,
)
from navvault.storage.activity_store import ActivityEventStore
from navvault.storage.mailbox import CrossProcessMailbox

logger = logging.getLogger(__name__)


class WidgetBridge:
    """What the widget process is allowed to do."""

    def __init__(
        self,
        mailbox: CrossProcessMailbox,
        activity_store: ActivityEventStore | None = None,
    ):
        """
        Initialize bridge.

        Args:
            mailbox: Shared mailbox
            activity_store: Direct vault access for activities; without it
                every activity is queued for the main process
        """
        self.mailbox = mailbox
        self.activity_store = activity_store

    def tasks(self) -> list[TaskRecord]:
        return self.mailbox.widget_tasks()

    def post_task_status(self, task_id: int, status: TaskStatus) -> None:
        """
        Queue a status change for the main process.

        The snapshot is patched at once so the widget shows the new state
        before the main process applies it.
        """
        self.mailbox.enqueue_task_update(PendingTaskUpdate(task_id=task_id, status=status))
        if not self.mailbox.set_widget_task_status(task_id, status.value):
            logger.warning("Task %s is not in the widget snapshot", task_id)
        self.mailbox.touch_task_update()

    def toggle_task(self, task_id: int) -> TaskStatus:
        """Flip a task between completed and not started."""
        current = next((t for t in self.tasks() if t.id == task_id), None)
        if current is not None and current.status is TaskStatus.COMPLETED:
            status = TaskStatus.NOT_STARTED
        else:
            status = TaskStatus.COMPLETED
        self.post_task_status(task_id, status)
        return status

    def log_activity(
        self, activity_type: ActivityType, time: datetime | None = None
    ) -> ActivityRecord:
        """
        Record an activity from the widget.

        Written straight to the vault when possible, otherwise queued in
        PendingActivities for the main process.
        """
        record = ActivityRecord(
            type=activity_type, time=(time or datetime.now()).replace(microsecond=0)
        )
        if self.activity_store is None:
            self.mailbox.enqueue_activity(record)
        else:
            try:
                self.activity_store.append(record)
            except (NoVaultAccess, FileOperationFailed) as e:
                logger.warning("Queueing activity, vault write failed: %s", e)
                self.mailbox.enqueue_activity(record)

        self.mailbox.merge_last_known_activities(
            {activity_type.value.lower(): record.timestamp}
        )
        return record

    def last_known_activities(self) -> dict[ActivityType, datetime]:
        """Latest time per activity type, read from the mailbox only."""
        result = {}
        for key, stamp in self.mailbox.last_known_activities().items():
            activity_type = ActivityType.parse(key)
            if activity_type is not None:
                result[activity_type] = datetime.fromtimestamp(stamp)
        return result
