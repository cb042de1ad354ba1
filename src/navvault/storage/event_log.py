"""Append-only event log with latest-wins materialization.

One log is one text file with one encoded entry per line. An item is never
edited in place: a change appends a new line carrying the same key, and a
delete appends a tombstone. Reading folds the file into one entry per live
key; compaction rewrites the file to exactly that fold.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Protocol, TypeVar

from navvault.core.coordination import (
    CoordinatedFileIO,
    append_text,
    ends_with_newline,
    read_text,
    write_atomic,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LogEntry(Generic[T]):
    """One decoded line. `item` is None for a tombstone."""

    key: int
    item: T | None
    line: str

    @property
    def is_tombstone(self) -> bool:
        return self.item is None


class LogCodec(Protocol[T]):
    """How a particular log turns items into lines and back."""

    def decode(self, line: str) -> LogEntry[T] | None:
        """Decode a line, None when it is malformed."""
        ...

    def encode(self, item: T) -> str:
        ...

    def key(self, item: T) -> int:
        ...

    def tombstone(self, key: int) -> str:
        ...


def fold(entries: list[LogEntry[T]]) -> dict[int, LogEntry[T]]:
    """
    Reduce entries to the winning entry per key.

    The last line for a key wins. If that line is a tombstone the key is
    gone; a later ordinary line brings it back. The result is ordered by
    where each winner sits in the log.
    """
    winners: dict[int, LogEntry[T]] = {}
    for entry in entries:
        winners.pop(entry.key, None)
        if not entry.is_tombstone:
            winners[entry.key] = entry
    return winners


class EventLog(Generic[T]):
    """A single log file accessed through the file coordinator."""

    def __init__(self, path: Path, io: CoordinatedFileIO, codec: LogCodec[T]):
        self.path = Path(path)
        self.io = io
        self.codec = codec

    def _decode_all(self, text: str) -> list[LogEntry[T]]:
        entries = []
        for raw in text.replace("\0", "\n").split("\n"):
            line = raw.strip()
            if not line:
                continue
            entry = self.codec.decode(line)
            if entry is None:
                logger.warning("[E016] Skipping malformed line in %s: %r", self.path.name, line)
                continue
            entries.append(entry)
        return entries

    def _append_line(self, line: str) -> None:
        def _append(resolved: Path) -> None:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            text = f"{line}\n"
            append_text(resolved, text if ends_with_newline(resolved) else "\n" + text)

        self.io.coordinate_write(self.path, _append)

    def append(self, item: T) -> None:
        """Append an item's current state. Existing lines are never touched."""
        self._append_line(self.codec.encode(item))

    def append_tombstone(self, key: int) -> None:
        """Append a delete marker for key."""
        self._append_line(self.codec.tombstone(key))

    def entries(self) -> list[LogEntry[T]]:
        """Every well-formed entry in file order; empty when the file is absent."""
        data = self.io.coordinate_read(self.path, missing_ok=True)
        if data is None:
            return []
        return self._decode_all(data.decode("utf-8", errors="replace"))

    def materialize(self) -> list[T]:
        """Live items, one per key, in the order of their winning lines."""
        return [entry.item for entry in fold(self.entries()).values()]

    def compact(self) -> int:
        """
        Rewrite the file to one line per live key.

        The winning line of each key is kept byte for byte. Tombstones and
        malformed lines are dropped. Running it twice leaves the file
        unchanged the second time.

        Returns:
            Number of live items written
        """

        def _compact(resolved: Path) -> int:
            text = read_text(resolved)
            if text is None:
                return 0
            winners = fold(self._decode_all(text))
            lines = [entry.line for entry in winners.values()]
            compacted = "\n".join(lines) + "\n" if lines else ""
            if compacted != text:
                write_atomic(resolved, compacted)
                logger.info(
                    "Compacted %s: %d lines kept", resolved.name, len(lines)
                )
            return len(lines)

        return self.io.coordinate_write(self.path, _compact)
