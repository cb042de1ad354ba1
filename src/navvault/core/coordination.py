"""Coordinated file access shared by every process that holds the vault grant.

Each path gets a lock file in the app group directory. Readers take a shared
`flock`, writers an exclusive one, so the main app and the widget process
never interleave writes to the same file. There is no timeout: a writer that
never releases blocks everyone else on that path.
"""

import fcntl
import hashlib
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from navvault.core.errors import FileOperationFailed, NavVaultError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CoordinatedFileIO:
    """Serializes reads and writes to a single path across threads and processes."""

    def __init__(self, lock_dir: Path | str):
        """
        Initialize coordinator.

        Args:
            lock_dir: Directory for lock files, shared by all cooperating processes
        """
        self.lock_dir = Path(lock_dir)

    def _lock_path(self, resolved: str) -> Path:
        key = hashlib.sha1(resolved.encode("utf-8")).hexdigest()
        return self.lock_dir / f"{key}.lock"

    @contextmanager
    def _coordinated(self, path: Path | str, exclusive: bool) -> Iterator[Path]:
        resolved = os.path.realpath(path)
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
            handle = self._lock_path(resolved).open("a+", encoding="utf-8")
        except OSError as exc:
            logger.error("[E009] Cannot open lock for %s: %s", resolved, exc)
            raise FileOperationFailed(f"cannot coordinate {resolved}: {exc}") from exc

        try:
            try:
                fcntl.flock(
                    handle.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
                )
            except OSError as exc:
                logger.error("[E009] File coordinator error on %s: %s", resolved, exc)
                raise FileOperationFailed(
                    f"cannot coordinate {resolved}: {exc}"
                ) from exc
            try:
                yield Path(resolved)
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    def coordinate_read(self, path: Path | str, missing_ok: bool = False) -> bytes | None:
        """
        Read a whole file under a shared lock.

        Args:
            path: File to read
            missing_ok: Return None instead of raising when the file is absent

        Returns:
            File contents, or None for a missing file when missing_ok is set

        Raises:
            FileOperationFailed: If the file can't be coordinated or read
        """
        with self._coordinated(path, exclusive=False) as resolved:
            try:
                return resolved.read_bytes()
            except FileNotFoundError as exc:
                if missing_ok:
                    return None
                logger.error("[E003] File not found: %s", resolved)
                raise FileOperationFailed(f"file not found: {resolved}") from exc
            except OSError as exc:
                logger.error("[E005] Failed to read %s: %s", resolved, exc)
                raise FileOperationFailed(str(exc)) from exc

    def coordinate_write(self, path: Path | str, body: Callable[[Path], T]) -> T:
        """
        Run body with exclusive access to path.

        The body receives the resolved path and does its own reading and
        writing. Errors it raises are reported as FileOperationFailed; store
        errors pass through untouched. Nothing is retried.
        """
        with self._coordinated(path, exclusive=True) as resolved:
            try:
                return body(resolved)
            except NavVaultError:
                raise
            except (OSError, UnicodeError, ValueError) as exc:
                logger.error("[E007] Coordinated write to %s failed: %s", resolved, exc)
                raise FileOperationFailed(str(exc)) from exc


def read_text(path: Path) -> str | None:
    """Read a UTF-8 file inside a coordinated body, None if it doesn't exist."""
    try:
        with path.open(encoding="utf-8", newline="") as handle:
            return handle.read()
    except FileNotFoundError:
        return None


def write_atomic(path: Path, text: str) -> None:
    """Replace path's contents via a temp file and rename."""
    tmp = path.with_name(f".{path.name}.tmp")
    with tmp.open("w", encoding="utf-8", newline="") as handle:
        handle.write(text)
    os.replace(tmp, path)


def append_text(path: Path, text: str) -> None:
    """Append to path, creating it if absent."""
    with path.open("a", encoding="utf-8", newline="") as handle:
        handle.write(text)


def ends_with_newline(path: Path) -> bool:
    """True for a missing or empty file, or one whose last byte is a newline."""
    try:
        if path.stat().st_size == 0:
            return True
    except FileNotFoundError:
        return True
    with path.open("rb") as handle:
        handle.seek(-1, os.SEEK_END)
        return handle.read(1) == b"\n"
