"""Activity service: the most recent activities, kept in memory."""

import logging
from datetime import datetime

from navvault.core.errors import NavVaultError
from navvault.core.types import ActivityRecord, ActivityType
from navvault.storage.activity_store import ActivityEventStore
from navvault.storage.mailbox import CrossProcessMailbox

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


class ActivityService:
    """Newest-last list of recent activities backed by the quarter files."""

    def __init__(
        self,
        store: ActivityEventStore,
        mailbox: CrossProcessMailbox,
        capacity: int = DEFAULT_CAPACITY,
    ):
        self.store = store
        self.mailbox = mailbox
        self.capacity = capacity
        self.items: list[ActivityRecord] = []
        self._seen_update = 0.0

    def _set_items(self, records: list[ActivityRecord]) -> None:
        self.items = sorted(records, key=lambda r: r.time)[-self.capacity :]

    def load(self, now: datetime | None = None) -> list[ActivityRecord]:
        """Reload from the vault and republish the last known values."""
        self._seen_update = self.mailbox.last_activity_update()
        self._set_items(self.store.load_latest(self.capacity, now=now))
        self.update_last_known_activities()
        return list(self.items)

    def poll(self) -> bool:
        """
        Reload if another process changed activities since the last load.

        Returns:
            True if a reload happened
        """
        stamp = self.mailbox.last_activity_update()
        if stamp <= self._seen_update:
            return False
        logger.debug("Activity change stamp moved to %s, reloading", stamp)
        self.load()
        return True

    def latest(self, activity_type: ActivityType | None = None) -> ActivityRecord | None:
        for record in reversed(self.items):
            if activity_type is None or record.type is activity_type:
                return record
        return None

    def push(
        self, activity_type: ActivityType, time: datetime | None = None
    ) -> ActivityRecord:
        """Log a new activity (second resolution) and add it to the list."""
        record = ActivityRecord(
            type=activity_type, time=(time or datetime.now()).replace(microsecond=0)
        )
        self.store.append(record)
        self._set_items([*self.items, record])
        self.update_last_known_activities()
        return record

    def remove(self, record: ActivityRecord) -> bool:
        removed = self.store.remove(record)
        self._set_items([r for r in self.items if r != record])
        self.update_last_known_activities()
        return removed

    def update(self, old: ActivityRecord, new_time: datetime) -> ActivityRecord:
        """Move an activity to a new time, possibly into another quarter file."""
        new = ActivityRecord(type=old.type, time=new_time.replace(microsecond=0))
        self.store.update(old, new)
        self._set_items([new if r == old else r for r in self.items])
        self.update_last_known_activities()
        return new

    def process_pending_activities(self) -> int:
        """
        Write activities the widget queued while it couldn't reach the vault.

        Stops at the first failure; that entry and the ones after it stay
        queued.

        Returns:
            Number of activities written
        """
        pending = self.mailbox.pending_activities()
        if not pending:
            return 0

        processed = []
        for record in pending:
            try:
                self.store.append(record)
            except NavVaultError as e:
                logger.error("[E028] Failed to write pending activity %s: %s", record.to_line(), e)
                break
            processed.append(record)

        self.mailbox.remove_pending_activities(processed)
        if processed:
            self._set_items([*self.items, *processed])
            self.update_last_known_activities()
        logger.info("Processed %d pending activities", len(processed))
        return len(processed)

    def update_last_known_activities(self) -> dict[str, int]:
        """Merge the newest timestamp per type into LastKnownActivities."""
        newest: dict[str, int] = {}
        for record in self.items:
            key = record.type.value.lower()
            newest[key] = max(newest.get(key, 0), record.timestamp)
        return self.mailbox.merge_last_known_activities(newest)
