"""Cross-process mailbox backed by SQLite.

The mailbox is the only channel between the main app and the widget
process. It lives in the app group directory and holds JSON values under a
fixed set of keys: a read-only task snapshot for the widget, a FIFO of task
updates waiting to be applied, change timestamps, and the calendar
reconciliation counter.
"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from enum import StrEnum
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Generator

from navvault.core.config import LOG_MAX_LINES, MAILBOX_PATH, PROCESS_TARGET
from navvault.core.types import ActivityRecord, PendingTaskUpdate, TaskRecord

logger = logging.getLogger(__name__)


class MailboxKey(StrEnum):
    """Keys shared between processes."""

    WIDGET_TASKS = "WidgetTasks"
    PENDING_TASK_UPDATES = "PendingTaskUpdates"
    LAST_ACTIVITY_UPDATE = "LastActivityUpdate"
    LAST_TASK_UPDATE = "LastTaskUpdate"
    CALENDAR_UPDATE_COUNT = "CalendarUpdateCount"
    VAULT_BOOKMARK = "ObsidianVaultBookmark"
    PENDING_ACTIVITIES = "PendingActivities"
    LAST_KNOWN_ACTIVITIES = "LastKnownActivities"
    TASK_FILTER_TOGGLES = "TaskFilterToggles"
    APP_LOGS = "AppLogs"


class CrossProcessMailbox:
    """Process-wide key-value store shared through the app group directory."""

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize mailbox.

        Args:
            db_path: Path to SQLite database (defaults to the app group mailbox)
        """
        self.db_path = Path(db_path) if db_path else MAILBOX_PATH
        self._connection: sqlite3.Connection | None = None
        self._connection_lock = Lock()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create database schema if not exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS mailbox (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            # Autocommit; transactions are opened explicitly with BEGIN IMMEDIATE
            self._connection = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                isolation_level=None,
                check_same_thread=False,
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA journal_mode=WAL")
            self._connection.execute("PRAGMA synchronous=NORMAL")
        return self._connection

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Hold the database write lock for a read-modify-write cycle."""
        with self._connection_lock:
            conn = self._connect()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def close(self) -> None:
        """Close the database connection."""
        with self._connection_lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # --- Generic access ---

    @staticmethod
    def _decode(raw: str | None, default: Any) -> tuple[Any, bool]:
        if raw is None:
            return default, True
        try:
            return json.loads(raw), True
        except json.JSONDecodeError:
            return default, False

    @staticmethod
    def _write(conn: sqlite3.Connection, key: str, value: Any) -> None:
        if value is None:
            conn.execute("DELETE FROM mailbox WHERE key = ?", (key,))
            return
        conn.execute(
            """
            INSERT INTO mailbox (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value, ensure_ascii=False), time.time()),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Get a decoded value, or default if the key is absent."""
        with self._connection_lock:
            row = (
                self._connect()
                .execute("SELECT value FROM mailbox WHERE key = ?", (key,))
                .fetchone()
            )
        value, ok = self._decode(row["value"] if row else None, default)
        if not ok:
            logger.warning("[E011] Discarding undecodable mailbox value for %s", key)
        return value

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value. None deletes the key."""
        with self._transaction() as conn:
            self._write(conn, key, value)

    def delete(self, key: str) -> None:
        """Remove a key."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM mailbox WHERE key = ?", (key,))

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Atomically replace a value with fn(current).

        Runs inside one write transaction, so concurrent updates from the
        other process are serialized rather than lost.

        Returns:
            The value written (None means the key was removed)
        """
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT value FROM mailbox WHERE key = ?", (key,)
            ).fetchone()
            current, ok = self._decode(row["value"] if row else None, default)
            new_value = fn(current)
            self._write(conn, key, new_value)
        # Logged after the transaction; MailboxLogHandler writes back here
        if not ok:
            logger.warning("[E011] Replaced undecodable mailbox value for %s", key)
        return new_value

    def updated_at(self, key: str) -> float | None:
        """When a key was last written, or None."""
        with self._connection_lock:
            row = (
                self._connect()
                .execute("SELECT updated_at FROM mailbox WHERE key = ?", (key,))
                .fetchone()
            )
        return row["updated_at"] if row else None

    def keys(self) -> list[str]:
        with self._connection_lock:
            rows = self._connect().execute("SELECT key FROM mailbox").fetchall()
        return sorted(row["key"] for row in rows)

    # --- Widget task snapshot ---

    def widget_tasks(self) -> list[TaskRecord]:
        """Task snapshot the widget renders from."""
        raw = self.get(MailboxKey.WIDGET_TASKS, [])
        tasks = []
        for item in raw:
            try:
                tasks.append(TaskRecord.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("[E012] Skipping malformed widget task: %r", item)
        return tasks

    def set_widget_tasks(self, tasks: list[TaskRecord]) -> None:
        self.set(MailboxKey.WIDGET_TASKS, [task.to_dict() for task in tasks])

    def set_widget_task_status(self, task_id: int, status: str) -> bool:
        """Patch one task in the snapshot. Returns False if it isn't there."""
        found = False

        def _patch(items: list[dict]) -> list[dict]:
            nonlocal found
            for item in items:
                if item.get("id") == task_id:
                    item["status"] = status
                    found = True
            return items

        self.update(MailboxKey.WIDGET_TASKS, _patch, default=[])
        return found

    # --- Pending task updates (FIFO) ---

    def pending_task_updates(self) -> list[PendingTaskUpdate]:
        raw = self.get(MailboxKey.PENDING_TASK_UPDATES, [])
        updates = []
        for item in raw:
            try:
                updates.append(PendingTaskUpdate.model_validate(item))
            except ValueError:
                logger.warning("[E013] Skipping malformed pending update: %r", item)
        return updates

    def enqueue_task_update(self, update: PendingTaskUpdate) -> None:
        """Append to the pending list."""
        entry = update.model_dump(mode="json", by_alias=True)
        self.update(
            MailboxKey.PENDING_TASK_UPDATES,
            lambda items: [*items, entry],
            default=[],
        )

    def remove_task_updates(self, processed: list[PendingTaskUpdate]) -> None:
        """
        Remove processed entries, one occurrence each.

        Entries the widget appended while the main app was draining stay in
        the queue. Malformed entries are dropped.
        """
        processed_dumps = [u.model_dump(mode="json", by_alias=True) for u in processed]

        def _remove(items: list) -> list | None:
            remaining = list(processed_dumps)
            kept = []
            for item in items:
                try:
                    normalized = PendingTaskUpdate.model_validate(item).model_dump(
                        mode="json", by_alias=True
                    )
                except ValueError:
                    continue
                if normalized in remaining:
                    remaining.remove(normalized)
                    continue
                kept.append(item)
            return kept or None

        self.update(MailboxKey.PENDING_TASK_UPDATES, _remove, default=[])

    # --- Change notification ---

    def last_activity_update(self) -> float:
        return float(self.get(MailboxKey.LAST_ACTIVITY_UPDATE, 0.0))

    def touch_activity_update(self, timestamp: float | None = None) -> float:
        """Advance the activity change stamp. Never moves backwards."""
        stamp = timestamp if timestamp is not None else time.time()
        return self.update(
            MailboxKey.LAST_ACTIVITY_UPDATE,
            lambda current: max(float(current or 0.0), stamp),
            default=0.0,
        )

    def last_task_update(self) -> float:
        return float(self.get(MailboxKey.LAST_TASK_UPDATE, 0.0))

    def touch_task_update(self, timestamp: float | None = None) -> float:
        stamp = timestamp if timestamp is not None else time.time()
        return self.update(
            MailboxKey.LAST_TASK_UPDATE,
            lambda current: max(float(current or 0.0), stamp),
            default=0.0,
        )

    # --- Calendar reconciliation counter ---

    def calendar_update_count(self) -> int:
        return int(self.get(MailboxKey.CALENDAR_UPDATE_COUNT, 0))

    def increment_calendar_update_count(self) -> int:
        return self.update(
            MailboxKey.CALENDAR_UPDATE_COUNT,
            lambda current: int(current or 0) + 1,
            default=0,
        )

    def reset_calendar_update_count(self) -> None:
        self.set(MailboxKey.CALENDAR_UPDATE_COUNT, 0)

    # --- Widget activity queue ---

    def pending_activities(self) -> list[ActivityRecord]:
        raw = self.get(MailboxKey.PENDING_ACTIVITIES, [])
        activities = []
        for item in raw:
            try:
                activities.append(ActivityRecord.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("[E014] Skipping malformed pending activity: %r", item)
        return activities

    def enqueue_activity(self, record: ActivityRecord) -> None:
        entry = record.to_dict()
        self.update(
            MailboxKey.PENDING_ACTIVITIES,
            lambda items: [*items, entry],
            default=[],
        )

    def remove_pending_activities(self, processed: list[ActivityRecord]) -> None:
        remaining = [record.to_dict() for record in processed]

        def _remove(items: list) -> list | None:
            kept = []
            for item in items:
                if item in remaining:
                    remaining.remove(item)
                else:
                    kept.append(item)
            return kept or None

        self.update(MailboxKey.PENDING_ACTIVITIES, _remove, default=[])

    def last_known_activities(self) -> dict[str, int]:
        return {
            str(k): int(v)
            for k, v in self.get(MailboxKey.LAST_KNOWN_ACTIVITIES, {}).items()
        }

    def set_last_known_activities(self, value: dict[str, int]) -> None:
        self.set(MailboxKey.LAST_KNOWN_ACTIVITIES, value)

    def merge_last_known_activities(self, values: dict[str, int]) -> dict[str, int]:
        """Keep the newer timestamp per type, in one transaction."""

        def _merge(current: dict) -> dict:
            merged = {str(k): int(v) for k, v in (current or {}).items()}
            for key, stamp in values.items():
                merged[key] = max(merged.get(key, 0), int(stamp))
            return merged

        return self.update(MailboxKey.LAST_KNOWN_ACTIVITIES, _merge, default={})

    # --- Persisted logs ---

    def append_log(self, line: str, max_lines: int = LOG_MAX_LINES) -> None:
        self.update(
            MailboxKey.APP_LOGS,
            lambda lines: [*lines, line][-max_lines:],
            default=[],
        )

    def logs(self) -> list[str]:
        return list(self.get(MailboxKey.APP_LOGS, []))

    def clear_logs(self) -> None:
        self.delete(MailboxKey.APP_LOGS)


class MailboxLogHandler(logging.Handler):
    """Persists log lines to the mailbox so either process can read them."""

    def __init__(
        self,
        mailbox: CrossProcessMailbox,
        target: str = PROCESS_TARGET,
        max_lines: int = LOG_MAX_LINES,
        level: int = logging.INFO,
    ):
        super().__init__(level=level)
        self.mailbox = mailbox
        self.max_lines = max_lines
        self._emitting = False
        self.setFormatter(
            logging.Formatter(
                f"%(asctime)s {target}: [%(levelname)s] %(message)s",
                datefmt="%Y-%m-%d#%H:%M:%S",
            )
        )

    def emit(self, record: logging.LogRecord) -> None:
        # The mailbox logs its own warnings; don't feed them back in
        if self._emitting:
            return
        self._emitting = True
        try:
            self.mailbox.append_log(self.format(record), self.max_lines)
        except Exception:
            self.handleError(record)
        finally:
            self._emitting = False
