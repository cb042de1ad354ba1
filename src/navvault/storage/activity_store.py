"""Quarter-partitioned activity log.

Each quarter has one file, `Category Notes/Daily/<year>/<year>-Q<n>.md`, with
one `Type:: unixSeconds` line per activity. The file an activity belongs to
is fully determined by its timestamp.
"""

import logging
from datetime import datetime
from pathlib import Path

from navvault.core.access import VaultAccess
from navvault.core.config import ACTIVITY_LOOKBACK_YEARS
from navvault.core.coordination import (
    CoordinatedFileIO,
    append_text,
    ends_with_newline,
    read_text,
    write_atomic,
)
from navvault.core.types import ActivityRecord
from navvault.storage.mailbox import CrossProcessMailbox
from navvault.vault.layout import get_quarter_file_path, previous_quarter, quarter_of

logger = logging.getLogger(__name__)


def _cleansed_lines(text: str) -> list[str]:
    """Split on newlines and NULs, trim, drop empties."""
    lines = text.replace("\0", "\n").split("\n")
    return [line.strip() for line in lines if line.strip()]


def _join(lines: list[str]) -> str:
    return "\n".join(lines) + "\n" if lines else ""


def _line_timestamp(line: str) -> float:
    parts = line.split(":: ")
    try:
        return float(parts[1])
    except (IndexError, ValueError):
        return 0.0


class ActivityEventStore:
    """Append, load, edit and remove activities in quarter files."""

    def __init__(
        self,
        access: VaultAccess,
        io: CoordinatedFileIO,
        mailbox: CrossProcessMailbox | None = None,
        lookback_years: int = ACTIVITY_LOOKBACK_YEARS,
    ):
        """
        Initialize activity store.

        Args:
            access: Vault grant
            io: File coordinator
            mailbox: When set, every mutation advances LastActivityUpdate
            lookback_years: How far back load_latest reads
        """
        self.access = access
        self.io = io
        self.mailbox = mailbox
        self.lookback_years = lookback_years

    @staticmethod
    def quarter_file(root: Path, moment: datetime) -> Path:
        year, quarter = quarter_of(moment)
        return get_quarter_file_path(root, year, quarter)

    def quarter_for(self, moment: datetime) -> Path:
        """Quarter file an activity at moment belongs to."""
        with self.access.scoped() as root:
            return self.quarter_file(root, moment)

    def _notify(self) -> None:
        if self.mailbox is not None:
            self.mailbox.touch_activity_update()

    def append(self, record: ActivityRecord) -> None:
        """
        Append an activity to its quarter file, creating the file if needed.

        Raises:
            NoVaultAccess: If the vault can't be reached
            FileOperationFailed: If the write fails
        """
        entry = record.to_line() + "\n"

        def _append(resolved: Path) -> None:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            append_text(resolved, entry if ends_with_newline(resolved) else "\n" + entry)

        with self.access.scoped() as root:
            path = self.quarter_file(root, record.time)
            self.io.coordinate_write(path, _append)
        logger.debug("Appended %s to %s", record.to_line(), path.name)
        self._notify()

    def _read_records(self, path: Path) -> list[ActivityRecord]:
        data = self.io.coordinate_read(path, missing_ok=True)
        if not data:
            return []
        records = []
        for line in _cleansed_lines(data.decode("utf-8", errors="replace")):
            record = ActivityRecord.from_line(line)
            if record is None:
                logger.warning("[E006] Failed to parse line: %r in %s", line, path.name)
                continue
            records.append(record)
        return records

    def load_latest(self, count: int, now: datetime | None = None) -> list[ActivityRecord]:
        """
        Load the most recent activities.

        Reads quarter files backwards from the current quarter until count
        records are found or the lookback bound is reached. Malformed lines
        are skipped.

        Args:
            count: Number of records wanted
            now: Reference time (defaults to now)

        Returns:
            Up to count records, oldest first
        """
        if count <= 0:
            return []
        now = now or datetime.now()
        year, quarter = quarter_of(now)
        bound = (year - self.lookback_years, quarter)

        records: list[ActivityRecord] = []
        with self.access.scoped() as root:
            while (year, quarter) >= bound:
                path = get_quarter_file_path(root, year, quarter)
                records.extend(self._read_records(path))
                if len(records) >= count:
                    break
                year, quarter = previous_quarter(year, quarter)

        if not records:
            logger.info("[E010] No activities found within %d years", self.lookback_years)
        records.sort(key=lambda r: r.time)
        return records[-count:]

    def remove(self, record: ActivityRecord) -> bool:
        """
        Remove every line exactly matching record.

        Returns:
            False (and no write) when the line or file is absent
        """
        target = record.to_line()

        def _remove(resolved: Path) -> bool:
            text = read_text(resolved)
            if text is None:
                return False
            lines = _cleansed_lines(text)
            kept = [line for line in lines if line != target]
            if len(kept) == len(lines):
                return False
            write_atomic(resolved, _join(kept))
            return True

        with self.access.scoped() as root:
            removed = self.io.coordinate_write(
                self.quarter_file(root, record.time), _remove
            )
        if removed:
            self._notify()
        else:
            logger.debug("Nothing to remove for %s", target)
        return removed

    @staticmethod
    def _insert_sorted(resolved: Path, line: str, drop: str | None = None) -> None:
        resolved.parent.mkdir(parents=True, exist_ok=True)
        lines = _cleansed_lines(read_text(resolved) or "")
        if drop is not None:
            lines = [existing for existing in lines if existing != drop]
        lines.append(line)
        lines.sort(key=_line_timestamp)
        write_atomic(resolved, _join(lines))

    def update(self, old: ActivityRecord, new: ActivityRecord) -> None:
        """
        Replace old with new.

        Within one quarter this is a single rewrite. Across quarters it is
        two coordinated writes, old file first: a crash in between leaves
        the record in neither file.
        """
        old_line = old.to_line()
        new_line = new.to_line()

        with self.access.scoped() as root:
            old_path = self.quarter_file(root, old.time)
            new_path = self.quarter_file(root, new.time)

            if old_path == new_path:
                self.io.coordinate_write(
                    old_path,
                    lambda resolved: self._insert_sorted(resolved, new_line, drop=old_line),
                )
            else:
                self.io.coordinate_write(
                    old_path, lambda resolved: self._drop_line(resolved, old_line)
                )
                logger.info(
                    "Moving activity from %s to %s (two separate writes)",
                    old_path.name,
                    new_path.name,
                )
                self.io.coordinate_write(
                    new_path, lambda resolved: self._insert_sorted(resolved, new_line)
                )
        self._notify()

    @staticmethod
    def _drop_line(resolved: Path, line: str) -> None:
        text = read_text(resolved)
        if text is None:
            return
        write_atomic(
            resolved, _join([existing for existing in _cleansed_lines(text) if existing != line])
        )
