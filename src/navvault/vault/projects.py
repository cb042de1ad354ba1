"""Project note discovery and in-place task line editing.

Edits treat a note as a list of lines: the target line is found by its
embedded task id, only that slot is replaced, and the list is joined back.
Every other byte of the file is left as it was.
"""

import logging
from dataclasses import replace
from pathlib import Path

from navvault.core.access import VaultAccess
from navvault.core.coordination import CoordinatedFileIO, read_text, write_atomic
from navvault.core.errors import InvalidFrontmatter, TaskNotFound
from navvault.core.types import ProjectMetadata, TaskRecord, TaskStatus
from navvault.vault import tasks as codec
from navvault.vault.frontmatter import is_project_note, project_metadata
from navvault.vault.layout import get_projects_path, list_notes

logger = logging.getLogger(__name__)


def _locate(lines: list[str], task_id: int) -> list[int]:
    marker = codec.id_marker(task_id)
    return [i for i, line in enumerate(lines) if marker in line and codec.is_task_line(line)]


class ProjectFileScanner:
    """Finds project notes in the vault and edits the task lines inside them."""

    def __init__(self, access: VaultAccess, io: CoordinatedFileIO):
        self.access = access
        self.io = io

    def _read(self, path: Path) -> str | None:
        data = self.io.coordinate_read(path, missing_ok=True)
        if data is None:
            return None
        return data.decode("utf-8", errors="replace").replace("\0", "\n")

    def find_project_files(self) -> list[Path]:
        """
        Recursively list project notes.

        Returns:
            Sorted paths of markdown files containing `notetype: Project`
        """
        with self.access.scoped() as root:
            results = []
            for note in list_notes(get_projects_path(root)):
                content = self._read(note)
                if content is not None and is_project_note(content):
                    results.append(note)
            return results

    def load_projects(self) -> list[ProjectMetadata]:
        """Parse every project note's frontmatter, newest modification first."""
        projects = []
        with self.access.scoped():
            for path in self.find_project_files():
                content = self._read(path)
                if content is None:
                    continue
                try:
                    projects.append(project_metadata(path, content))
                except InvalidFrontmatter:
                    logger.warning("Skipping project without frontmatter: %s", path)
        projects.sort(key=lambda p: p.modified_time, reverse=True)
        return projects

    def parse_tasks(
        self, path: Path, project: ProjectMetadata | None = None
    ) -> list[TaskRecord]:
        """
        Decode every task line in a project note.

        Args:
            path: Project note
            project: Metadata for the note, used to stamp project_id

        Returns:
            Tasks in file order
        """
        with self.access.scoped():
            content = self._read(path)
        if content is None:
            return []

        project_id = project.project_id if project else 0
        results = []
        for line in content.split("\n"):
            task = codec.decode(
                line.removesuffix("\r"),
                project_id=project_id,
                file_path=str(path),
                project_name=path.stem,
            )
            if task is not None:
                results.append(task)
        return results

    def find_task(self, task_id: int) -> TaskRecord | None:
        """Search every project note for a task id."""
        for project in self.load_projects():
            for task in self.parse_tasks(Path(project.file_path), project):
                if task.id == task_id:
                    return task
        return None

    def append_task(self, path: Path | str, task: TaskRecord) -> TaskRecord:
        """
        Append a task line to the end of a project note.

        Returns:
            The task with file_path and project_name set
        """
        path = Path(path)
        line = codec.encode(task)

        def _append(resolved: Path) -> None:
            content = read_text(resolved) or ""
            if content and not content.endswith("\n"):
                content += "\n"
            write_atomic(resolved, f"{content}{line}\n")

        with self.access.scoped():
            self.io.coordinate_write(path, _append)
        logger.info("Appended task %s to %s", task.id, path.name)
        return replace(task, file_path=str(path), project_name=path.stem)

    def rewrite_task_line(self, task: TaskRecord, new_line: str) -> None:
        """
        Replace the line holding task's id with new_line.

        The original blockquote/indent prefix is kept; only the content after
        it changes.

        Raises:
            TaskNotFound: If no task line carries the id
        """
        if not task.file_path:
            raise TaskNotFound(task.id)
        new_content = new_line.lstrip()

        def _rewrite(resolved: Path) -> None:
            text = read_text(resolved)
            if text is None:
                logger.error("[E024] Project file missing for task %s", task.id)
                raise TaskNotFound(task.id)
            lines = text.split("\n")
            matches = _locate(lines, task.id)
            if not matches:
                logger.error("[E024] No line for task %s in %s", task.id, resolved.name)
                raise TaskNotFound(task.id)
            if len(matches) > 1:
                logger.warning(
                    "Task id %s appears on %d lines of %s; rewriting the first",
                    task.id,
                    len(matches),
                    resolved.name,
                )
            index = matches[0]
            old = lines[index]
            prefix, _ = codec.split_prefix(old)
            ending = "\r" if old.endswith("\r") else ""
            lines[index] = f"{prefix}{new_content}{ending}"
            write_atomic(resolved, "\n".join(lines))

        with self.access.scoped():
            self.io.coordinate_write(task.file_path, _rewrite)

    def update_task(self, task: TaskRecord, updated: TaskRecord) -> TaskRecord:
        """Rewrite task's line from an updated record with the same id."""
        self.rewrite_task_line(task, codec.encode(updated))
        return updated

    def update_task_status(self, task: TaskRecord, status: TaskStatus) -> TaskRecord:
        return self.update_task(task, replace(task, status=status))

    def remove_task(self, task: TaskRecord) -> bool:
        """
        Delete the task's line.

        Returns:
            False if the line was already gone
        """
        if not task.file_path:
            return False

        def _remove(resolved: Path) -> bool:
            text = read_text(resolved)
            if text is None:
                return False
            lines = text.split("\n")
            matches = _locate(lines, task.id)
            if not matches:
                return False
            del lines[matches[0]]
            write_atomic(resolved, "\n".join(lines))
            return True

        with self.access.scoped():
            removed = self.io.coordinate_write(task.file_path, _remove)
        if not removed:
            logger.warning("Task %s not found for removal", task.id)
        return removed
