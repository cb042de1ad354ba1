"""Tests for navvault.vault.projects module."""

import logging
import os
from pathlib import Path

import pytest

from navvault.core.errors import NoVaultAccess, TaskNotFound
from navvault.core.types import ProjectStatus, TaskPriority, TaskRecord, TaskStatus


class TestDiscovery:
    """Tests for project discovery."""

    def test_find_project_files(self, scanner, website_note, garden_note):
        """Only notes carrying the project marker are found, recursively."""
        files = scanner.find_project_files()

        assert sorted(files) == sorted([website_note, garden_note])

    def test_load_projects_newest_first(self, scanner, website_note, garden_note):
        """Projects are sorted by modification time, newest first."""
        os.utime(website_note, (1_000_000, 1_000_000))
        os.utime(garden_note, (2_000_000, 2_000_000))

        projects = scanner.load_projects()

        assert [p.name for p in projects] == ["Garden", "Website"]
        assert projects[0].project_id == 1600000000
        assert projects[0].status is ProjectStatus.IDEA
        assert projects[1].status is ProjectStatus.PROGRESS
        assert projects[1].icon == "globe"
        assert projects[1].banner == "[[cover.png]]"

    def test_parse_tasks(self, scanner, website_note):
        """Every task line in a note is decoded in file order."""
        tasks = scanner.parse_tasks(website_note)

        assert [t.id for t in tasks] == [100, 200, 300]
        assert tasks[0].project_name == "Website"
        assert tasks[0].file_path == str(website_note)

    def test_parse_tasks_stamps_project_id(self, scanner, website_note):
        project = next(p for p in scanner.load_projects() if p.name == "Website")

        tasks = scanner.parse_tasks(website_note, project)

        assert {t.project_id for t in tasks} == {1700000000}

    def test_parse_missing_file(self, scanner, vault_dir):
        assert scanner.parse_tasks(vault_dir / "nope.md") == []

    def test_find_task(self, scanner):
        """A task is found by id across every project."""
        task = scanner.find_task(400)

        assert task.name == "Order seeds"
        assert task.project_id == 1600000000

    def test_find_task_ignores_non_projects(self, scanner):
        """Task lines in ordinary notes are not loaded."""
        assert scanner.find_task(999) is None

    def test_operations_need_vault(self, scanner, access):
        access.clear()

        with pytest.raises(NoVaultAccess):
            scanner.find_project_files()


class TestRewrite:
    """Tests for in-place task line rewriting."""

    def test_rewrite_preserves_other_lines(self, scanner, website_note):
        """Only the target line changes; every other byte is kept."""
        before = website_note.read_text().split("\n")
        task = scanner.find_task(100)

        scanner.update_task_status(task, TaskStatus.COMPLETED)

        after = website_note.read_text().split("\n")
        changed = [i for i, (a, b) in enumerate(zip(before, after)) if a != b]
        assert len(before) == len(after)
        assert len(changed) == 1
        assert after[changed[0]].startswith("- [x] Draft landing page")
        assert 'createTime">100<' in after[changed[0]]

    def test_rewrite_keeps_blockquote_prefix(self, scanner, website_note):
        """The original blockquote prefix survives a rewrite."""
        task = scanner.find_task(200)

        scanner.update_task_status(task, TaskStatus.COMPLETED)

        lines = website_note.read_text().split("\n")
        line = next(line for line in lines if 'createTime">200<' in line)
        assert line.startswith("> - [x] Review analytics")

    def test_rewrite_keeps_indentation(self, scanner, website_note):
        task = scanner.find_task(300)

        scanner.update_task(task, TaskRecord(id=300, name="Renew domain", priority=TaskPriority.HIGH))

        line = next(l for l in website_note.read_text().split("\n") if 'createTime">300<' in l)
        assert line.startswith("\t- [ ] Renew domain")

    def test_rewrite_keeps_crlf(self, scanner, vault_dir):
        """Windows line endings on the target line are kept."""
        note = vault_dir / "Category Notes" / "Projects" / "Crlf.md"
        note.write_bytes(
            b'---\r\nnotetype: Project\r\n---\r\n- [ ] A <span class="createTime">10</span>\r\ntail\r\n'
        )
        task = scanner.find_task(10)

        scanner.update_task_status(task, TaskStatus.COMPLETED)

        assert note.read_bytes() == (
            b'---\r\nnotetype: Project\r\n---\r\n'
            b'- [x] A <span class="priority">Normal</span> <span class="createTime">10</span>\r\n'
            b"tail\r\n"
        )

    def test_unicode_separators_stay_in_one_line(self, scanner, vault_dir):
        """Form feeds and U+2028 inside a task name do not split the line."""
        note = vault_dir / "Category Notes" / "Projects" / "Separators.md"
        note.write_text(
            "---\nnotetype: Project\n---\n"
            "- [ ] Page\x0cbreak \u2028here <span class=\"createTime\">20</span>\n"
        )

        task = scanner.find_task(20)

        assert task is not None
        assert task.name == "Page\x0cbreak \u2028here"
        scanner.update_task_status(task, TaskStatus.COMPLETED)
        assert scanner.find_task(20).status is TaskStatus.COMPLETED
        assert len(note.read_text().split("\n")) == 5

    def test_rewrite_unknown_id_raises(self, scanner, website_note):
        """A task whose line is gone raises TaskNotFound."""
        ghost = TaskRecord(id=12345, name="Ghost", file_path=str(website_note))

        with pytest.raises(TaskNotFound) as exc_info:
            scanner.rewrite_task_line(ghost, "- [x] Ghost")

        assert exc_info.value.task_id == 12345
        assert "[E024]" in str(exc_info.value)

    def test_rewrite_without_file_raises(self, scanner):
        with pytest.raises(TaskNotFound):
            scanner.rewrite_task_line(TaskRecord(id=1, name="x"), "- [ ] x")

    def test_duplicate_ids_rewrite_first(self, scanner, website_note, caplog):
        """With two lines carrying one id, the first is rewritten and a warning logged."""
        text = website_note.read_text()
        website_note.write_text(
            text + '- [ ] Copy <span class="priority">Normal</span> <span class="createTime">100</span>\n'
        )
        task = scanner.find_task(100)

        with caplog.at_level(logging.WARNING):
            scanner.update_task_status(task, TaskStatus.IN_PROGRESS)

        matches = [l for l in website_note.read_text().split("\n") if 'createTime">100<' in l]
        assert matches[0].startswith("- [/] Draft landing page")
        assert matches[1].startswith("- [ ] Copy")
        assert "appears on 2 lines" in caplog.text


class TestAppendRemove:
    """Tests for adding and deleting task lines."""

    def test_append_task(self, scanner, garden_note):
        """A new task goes to the end of the note."""
        task = TaskRecord(id=500, name="Build bed", tags=("diy",))

        stored = scanner.append_task(garden_note, task)

        assert stored.file_path == str(garden_note)
        assert stored.project_name == "Garden"
        assert garden_note.read_text().endswith(
            '- [ ] Build bed #diy <span class="priority">Normal</span> '
            '<span class="createTime">500</span>\n'
        )
        assert scanner.find_task(500).name == "Build bed"

    def test_append_adds_missing_newline(self, scanner, vault_dir):
        note = vault_dir / "Category Notes" / "Projects" / "Bare.md"
        note.write_text("---\nnotetype: Project\n---\nlast line")

        scanner.append_task(note, TaskRecord(id=1, name="One"))

        assert note.read_text().split("\n")[3:5] == [
            "last line",
            '- [ ] One <span class="priority">Normal</span> <span class="createTime">1</span>',
        ]

    def test_remove_task(self, scanner, website_note):
        task = scanner.find_task(200)

        assert scanner.remove_task(task) is True
        assert 'createTime">200<' not in website_note.read_text()
        assert scanner.find_task(100) is not None

    def test_remove_missing_task(self, scanner, website_note):
        """Removing a line that is already gone returns False."""
        ghost = TaskRecord(id=777, name="Ghost", file_path=str(website_note))

        assert scanner.remove_task(ghost) is False

    def test_remove_without_path(self, scanner):
        assert scanner.remove_task(TaskRecord(id=1, name="x")) is False


def test_non_utf8_bytes_are_tolerated(scanner, vault_dir):
    """Undecodable bytes don't stop a note from loading."""
    note = Path(vault_dir) / "Category Notes" / "Projects" / "Latin1.md"
    note.write_bytes(
        b'---\nnotetype: Project\n---\n- [ ] Caf\xe9 <span class="createTime">11</span>\n'
    )

    task = scanner.find_task(11)

    assert task is not None
    assert task.name.startswith("Caf")
