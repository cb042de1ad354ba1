"""Task service: the main process's view of every task in the vault."""

import logging
from dataclasses import replace
from datetime import date
from pathlib import Path
from threading import Lock

from pydantic import ValidationError

from navvault.core.errors import FileOperationFailed, NavVaultError, TaskNotFound
from navvault.core.types import (
    ProjectMetadata,
    TaskFilterToggles,
    TaskPriority,
    TaskRecord,
    TaskSortOrder,
    TaskStatus,
)
from navvault.storage.mailbox import CrossProcessMailbox, MailboxKey
from navvault.vault.projects import ProjectFileScanner
from navvault.vault.tasks import new_task_id

logger = logging.getLogger(__name__)

_UNSET = object()


class TaskService:
    """Loads, edits and publishes tasks.

    The cache is rebuilt by `load_all_tasks`. Mutations write the project
    file first and only then touch the cache, and every mutation refreshes
    the widget snapshot.
    """

    def __init__(
        self,
        scanner: ProjectFileScanner,
        mailbox: CrossProcessMailbox,
        sort_order: TaskSortOrder = TaskSortOrder.CREATION_DESC,
    ):
        """
        Initialize task service.

        Args:
            scanner: Project file access
            mailbox: Shared with the widget process
            sort_order: Default order for sorted_tasks
        """
        self.scanner = scanner
        self.mailbox = mailbox
        self.sort_order = sort_order
        self.tasks: list[TaskRecord] = []
        self.projects: list[ProjectMetadata] = []
        self._lock = Lock()

    # --- Loading ---

    def load_all_tasks(self) -> list[TaskRecord]:
        """Scan every project note and rebuild the cache."""
        projects = self.scanner.load_projects()
        tasks = []
        for project in projects:
            tasks.extend(self.scanner.parse_tasks(Path(project.file_path), project))
        with self._lock:
            self.projects = projects
            self.tasks = tasks
        logger.info(f"Loaded {len(tasks)} tasks from {len(projects)} projects")
        return self.sorted_tasks()

    def get_task(self, task_id: int) -> TaskRecord | None:
        with self._lock:
            return next((t for t in self.tasks if t.id == task_id), None)

    def get_project(self, project_id: int) -> ProjectMetadata | None:
        if not self.projects:
            self.projects = self.scanner.load_projects()
        return next((p for p in self.projects if p.project_id == project_id), None)

    def _require(self, task_id: int) -> TaskRecord:
        task = self.get_task(task_id) or self.scanner.find_task(task_id)
        if task is None:
            logger.error(f"[E024] Task not found: {task_id}")
            raise TaskNotFound(task_id)
        return task

    def _require_project(self, project_id: int) -> ProjectMetadata:
        project = self.get_project(project_id)
        if project is None:
            logger.error(f"[E026] Project not found: {project_id}")
            raise FileOperationFailed(f"project not found: {project_id}")
        return project

    def _store(self, task: TaskRecord) -> None:
        with self._lock:
            self.tasks = [t for t in self.tasks if t.id != task.id] + [task]

    def _forget(self, task_id: int) -> None:
        with self._lock:
            self.tasks = [t for t in self.tasks if t.id != task_id]

    # --- Mutations ---

    def add_task(
        self,
        name: str,
        project_id: int,
        priority: TaskPriority = TaskPriority.NORMAL,
        due_date: date | None = None,
        tags: tuple[str, ...] = (),
        status: TaskStatus = TaskStatus.NOT_STARTED,
    ) -> TaskRecord:
        """
        Create a task at the end of a project note.

        Args:
            name: Task text
            project_id: Target project
            priority: Task priority
            due_date: Optional due date
            tags: Tags without the leading '#'
            status: Initial status

        Returns:
            The stored task

        Raises:
            FileOperationFailed: If the project doesn't exist or can't be written
        """
        project = self._require_project(project_id)
        task = TaskRecord(
            id=new_task_id(),
            name=name,
            status=status,
            priority=priority,
            project_id=project.project_id,
            due_date=due_date,
            tags=tuple(tags),
        )
        stored = self.scanner.append_task(project.file_path, task)
        self._store(stored)
        self.publish_widget_snapshot()
        return stored

    def _write_status(self, task: TaskRecord, status: TaskStatus) -> TaskRecord:
        try:
            return self.scanner.update_task_status(task, status)
        except TaskNotFound:
            # Cached location may be stale if the task was moved elsewhere
            fresh = self.scanner.find_task(task.id)
            if fresh is None or fresh.file_path == task.file_path:
                raise
            return self.scanner.update_task_status(fresh, status)

    def update_task_status(self, task_id: int, status: TaskStatus) -> TaskRecord:
        """Rewrite a task's checkbox."""
        updated = self._write_status(self._require(task_id), status)
        self._store(updated)
        self.publish_widget_snapshot()
        return updated

    def update_task(
        self,
        task_id: int,
        name: str | None = None,
        priority: TaskPriority | None = None,
        due_date: date | None | object = _UNSET,
        tags: tuple[str, ...] | None = None,
        project_id: int | None = None,
    ) -> TaskRecord:
        """
        Edit a task's fields.

        Passing a different project_id moves the line: it is removed from
        the old note and appended to the new one. Pass due_date=None to
        clear the due date.

        Raises:
            TaskNotFound: If the task doesn't exist
            FileOperationFailed: If the target project doesn't exist
        """
        task = self._require(task_id)
        changes: dict = {}
        if name is not None:
            changes["name"] = name
        if priority is not None:
            changes["priority"] = priority
        if due_date is not _UNSET:
            changes["due_date"] = due_date
        if tags is not None:
            changes["tags"] = tuple(tags)
        updated = replace(task, **changes)

        if project_id is not None and project_id != task.project_id:
            project = self._require_project(project_id)
            self.scanner.remove_task(task)
            stored = self.scanner.append_task(
                project.file_path, replace(updated, project_id=project.project_id)
            )
            logger.info(f"Moved task {task_id} to project {project.name}")
        else:
            stored = self.scanner.update_task(task, updated)

        self._store(stored)
        self.publish_widget_snapshot()
        return stored

    def delete_task(self, task_id: int) -> bool:
        """Remove a task's line. Returns False if it was already gone."""
        task = self._require(task_id)
        removed = self.scanner.remove_task(task)
        self._forget(task_id)
        self.publish_widget_snapshot()
        return removed

    # --- Views ---

    def filter_toggles(self) -> TaskFilterToggles:
        raw = self.mailbox.get(MailboxKey.TASK_FILTER_TOGGLES)
        if raw is None:
            return TaskFilterToggles()
        try:
            return TaskFilterToggles.model_validate(raw)
        except ValidationError:
            logger.warning("Ignoring malformed task filter toggles")
            return TaskFilterToggles()

    def set_filter_toggles(self, toggles: TaskFilterToggles) -> None:
        self.mailbox.set(MailboxKey.TASK_FILTER_TOGGLES, toggles.model_dump(mode="json"))

    def sorted_tasks(
        self,
        order: TaskSortOrder | None = None,
        toggles: TaskFilterToggles | None = None,
    ) -> list[TaskRecord]:
        """
        Filter and sort the cached tasks.

        Args:
            order: Sort order (defaults to the service's order)
            toggles: Filter (defaults to the persisted toggles)

        Returns:
            Matching tasks, newest first within equal keys
        """
        order = order or self.sort_order
        toggles = toggles if toggles is not None else self.filter_toggles()
        with self._lock:
            tasks = [t for t in self.tasks if toggles.matches(t)]

        if order is TaskSortOrder.PRIORITY_DESC:
            return sorted(tasks, key=lambda t: (t.priority.rank, -t.id))
        if order is TaskSortOrder.PROJECT_MODIFIED_DESC:
            modified = {p.project_id: p.modified_time.timestamp() for p in self.projects}
            return sorted(tasks, key=lambda t: (-modified.get(t.project_id, 0.0), -t.id))
        return sorted(tasks, key=lambda t: -t.id)

    def publish_widget_snapshot(self) -> None:
        """Replace the widget's task snapshot with the current sorted view."""
        self.mailbox.set_widget_tasks(self.sorted_tasks())

    # --- Widget hand-off ---

    def drain_pending_updates(self) -> int:
        """
        Apply status changes the widget queued in the mailbox.

        Applied entries and entries whose task no longer exists are removed
        from the queue. Entries that fail for any other reason stay queued
        for the next drain.

        Returns:
            Number of updates applied
        """
        pending = self.mailbox.pending_task_updates()
        if not pending:
            return 0

        processed = []
        applied = 0
        for update in pending:
            try:
                task = self._require(update.task_id)
                updated = self._write_status(task, update.status)
            except TaskNotFound:
                logger.warning(f"[E024] Dropping pending update for missing task {update.task_id}")
                processed.append(update)
                continue
            except NavVaultError as e:
                logger.error(f"[E027] Failed to apply pending update for {update.task_id}: {e}")
                continue
            self._store(updated)
            processed.append(update)
            applied += 1

        self.mailbox.remove_task_updates(processed)
        if applied:
            self.publish_widget_snapshot()
        logger.info(f"Drained {len(processed)} of {len(pending)} pending task updates")
        return applied
