"""Year-partitioned calendar event store.

Each year has one JSON-Lines file, `Category Notes/Daily/<year>/Calendar-<year>.md`.
Events are only ever appended; the newest line for an event id is the live
one. Every append bumps a counter in the mailbox, and once it reaches the
threshold the year file is compacted.
"""

import json
import logging
import random
import time
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator

from pydantic import ValidationError

from navvault.core.access import VaultAccess
from navvault.core.config import RECONCILE_THRESHOLD
from navvault.core.coordination import CoordinatedFileIO
from navvault.core.errors import (
    FileOperationFailed,
    NavVaultError,
    NoVaultAccess,
    ReconciliationFailed,
    VaultNotFound,
)
from navvault.core.types import CalendarEvent
from navvault.storage.event_log import EventLog, LogEntry
from navvault.storage.mailbox import CrossProcessMailbox
from navvault.vault.layout import get_calendar_file_path

logger = logging.getLogger(__name__)


def new_event_id() -> int:
    """Epoch milliseconds times 1000 plus a random suffix."""
    return int(time.time() * 1000) * 1000 + random.randint(0, 999)


class CalendarCodec:
    """Line codec for calendar year files, including delete markers."""

    def decode(self, line: str) -> LogEntry[CalendarEvent] | None:
        try:
            obj = json.loads(line)
        except ValueError:
            return None
        if not isinstance(obj, dict):
            return None

        if obj.get("action") == "delete":
            event_id = obj.get("eventId")
            if not isinstance(event_id, int) or isinstance(event_id, bool):
                return None
            return LogEntry(key=event_id, item=None, line=line)

        try:
            event = CalendarEvent.model_validate(obj)
        except ValidationError:
            return None
        return LogEntry(key=event.event_id, item=event, line=line)

    def encode(self, item: CalendarEvent) -> str:
        return item.to_json_line()

    def key(self, item: CalendarEvent) -> int:
        return item.event_id

    def tombstone(self, key: int) -> str:
        return json.dumps({"eventId": key, "action": "delete"}, separators=(",", ":"))


def _sorted(events: list[CalendarEvent]) -> list[CalendarEvent]:
    return sorted(events, key=lambda e: e.start_time)


class CalendarEventStore:
    """Calendar events with a per-year in-memory cache.

    The cache belongs to this process only; call `load` to pick up writes
    made elsewhere.
    """

    def __init__(
        self,
        access: VaultAccess,
        io: CoordinatedFileIO,
        mailbox: CrossProcessMailbox,
        threshold: int = RECONCILE_THRESHOLD,
    ):
        """
        Initialize calendar store.

        Args:
            access: Vault grant
            io: File coordinator
            mailbox: Holds the shared reconciliation counter
            threshold: Appends between compactions
        """
        self.access = access
        self.io = io
        self.mailbox = mailbox
        self.threshold = threshold
        self.codec = CalendarCodec()
        self.events_by_year: dict[int, list[CalendarEvent]] = {}

    new_event_id = staticmethod(new_event_id)

    @contextmanager
    def _vault(self) -> Iterator[Path]:
        try:
            with self.access.scoped() as root:
                yield root
        except VaultNotFound:
            raise
        except NoVaultAccess as exc:
            logger.error("[E015] Vault not found for calendar: %s", exc)
            raise VaultNotFound(str(exc)) from exc

    def _log(self, root: Path, year: int) -> EventLog[CalendarEvent]:
        return EventLog(get_calendar_file_path(root, year), self.io, self.codec)

    def setup(self, now: datetime | None = None) -> None:
        """Load the current and the next year."""
        year = (now or datetime.now()).year
        self.load(year)
        self.load(year + 1)

    def load(self, year: int) -> list[CalendarEvent]:
        """
        Read a year file into the cache.

        Returns:
            Live events sorted by start time (empty when the file is absent)

        Raises:
            VaultNotFound: If the vault can't be reached
            FileOperationFailed: If the file can't be read
        """
        with self._vault() as root:
            events = self._log(root, year).materialize()
        self.events_by_year[year] = _sorted(events)
        logger.debug("Loaded %d calendar events for %d", len(events), year)
        return list(self.events_by_year[year])

    def _purge(self, event_id: int) -> None:
        for year, events in self.events_by_year.items():
            self.events_by_year[year] = [e for e in events if e.event_id != event_id]

    def _year_of(self, event_id: int) -> int | None:
        for year, events in self.events_by_year.items():
            if any(e.event_id == event_id for e in events):
                return year
        return None

    def append(self, event: CalendarEvent) -> None:
        """
        Append an event's current state to its year file.

        Also used for edits: the event is first dropped from every cached
        year. When an edit moves it to another year, a delete marker is
        written to the old year file after the new line.

        Raises:
            VaultNotFound: If the vault can't be reached
            FileOperationFailed: If the write fails
            ReconciliationFailed: If the threshold compaction fails; the
                event is still written and cached
        """
        previous_year = self._year_of(event.event_id)
        self._purge(event.event_id)
        year = event.year
        with self._vault() as root:
            self._log(root, year).append(event)
            if previous_year is not None and previous_year != year:
                self._log(root, previous_year).append_tombstone(event.event_id)
                logger.info(
                    "Moved calendar event %s from %d to %d", event.event_id, previous_year, year
                )
        logger.info("Appended calendar event %s to %d", event.event_id, year)

        def _insert(events: list[CalendarEvent]) -> list[CalendarEvent]:
            return _sorted([*events, event])

        self._after_write(year, _insert)

    def delete(self, event_id: int) -> None:
        """
        Append a delete marker for an event.

        Raises:
            FileOperationFailed: If the event isn't in the cache
        """
        year = self._year_of(event_id)
        if year is None:
            logger.error("[E023] Event %s not found for deletion", event_id)
            raise FileOperationFailed("event not found")

        with self._vault() as root:
            self._log(root, year).append_tombstone(event_id)
        self._purge(event_id)
        logger.info("Deleted calendar event %s from %d", event_id, year)
        self._after_write(year, lambda events: events)

    def _after_write(
        self, year: int, apply: Callable[[list[CalendarEvent]], list[CalendarEvent]]
    ) -> None:
        count = self.mailbox.increment_calendar_update_count()
        if count < self.threshold:
            self.events_by_year[year] = apply(self.events_by_year.get(year, []))
            return

        try:
            self.reconcile(year)
        except ReconciliationFailed:
            # Counter stays at its value so the next write tries again
            self.events_by_year[year] = apply(self.events_by_year.get(year, []))
            raise
        self.mailbox.reset_calendar_update_count()
        self.load(year)

    def reconcile(self, year: int) -> int:
        """
        Compact a year file to one line per live event.

        Returns:
            Number of live events

        Raises:
            ReconciliationFailed: If the file can't be compacted
        """
        try:
            with self._vault() as root:
                kept = self._log(root, year).compact()
        except NavVaultError as exc:
            logger.error("[E022] Reconciliation failed for %d: %s", year, exc)
            raise ReconciliationFailed(f"Reconciliation failed for {year}: {exc}") from exc
        logger.info("Reconciled calendar %d: %d live events", year, kept)
        return kept

    def _overlapping(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        range_start = int(start.timestamp())
        range_end = int(end.timestamp())
        matches = [
            event
            for events in self.events_by_year.values()
            for event in events
            if event.overlaps(range_start, range_end)
        ]
        return _sorted(matches)

    def events_for_day(self, day: date) -> list[CalendarEvent]:
        start = datetime(day.year, day.month, day.day)
        return self._overlapping(start, start + timedelta(days=1))

    def events_for_month(self, day: date) -> list[CalendarEvent]:
        start = datetime(day.year, day.month, 1)
        if day.month == 12:
            end = datetime(day.year + 1, 1, 1)
        else:
            end = datetime(day.year, day.month + 1, 1)
        return self._overlapping(start, end)

    def events_for_year(self, year: int) -> list[CalendarEvent]:
        return self._overlapping(datetime(year, 1, 1), datetime(year + 1, 1, 1))
