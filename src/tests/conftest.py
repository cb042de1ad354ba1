"""Shared test fixtures and configuration."""

from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path

import pytest

from navvault.core.access import VaultAccess
from navvault.core.coordination import CoordinatedFileIO
from navvault.core.types import CalendarEvent
from navvault.services.activities import ActivityService
from navvault.services.tasks import TaskService
from navvault.storage.activity_store import ActivityEventStore
from navvault.storage.calendar_store import CalendarEventStore
from navvault.storage.mailbox import CrossProcessMailbox
from navvault.vault.projects import ProjectFileScanner

# Path to test vault fixture
TEST_VAULT = Path(__file__).parent / "fixtures" / "test-vault"

PROJECTS = Path("Category Notes") / "Projects"
DAILY = Path("Category Notes") / "Daily"


@pytest.fixture
def app_group_dir(tmp_path):
    """Shared directory for the mailbox and lock files."""
    path = tmp_path / "group"
    path.mkdir()
    return path


@pytest.fixture
def vault_dir(tmp_path):
    """A fresh copy of the fixture vault."""
    root = tmp_path / "vault"
    shutil.copytree(TEST_VAULT, root)
    return root.resolve()


@pytest.fixture
def website_note(vault_dir):
    return vault_dir / PROJECTS / "Website.md"


@pytest.fixture
def garden_note(vault_dir):
    return vault_dir / PROJECTS / "Archive" / "Garden.md"


@pytest.fixture
def mailbox(app_group_dir):
    """Mailbox in the temp app group."""
    box = CrossProcessMailbox(db_path=app_group_dir / "mailbox.db")
    yield box
    box.close()


@pytest.fixture
def access(mailbox, vault_dir):
    """Vault access with the fixture vault granted."""
    vault_access = VaultAccess(mailbox)
    vault_access.grant(vault_dir)
    return vault_access


@pytest.fixture
def io(app_group_dir):
    return CoordinatedFileIO(app_group_dir / "locks")


@pytest.fixture
def activity_store(access, io, mailbox):
    return ActivityEventStore(access, io, mailbox=mailbox)


@pytest.fixture
def calendar_store(access, io, mailbox):
    return CalendarEventStore(access, io, mailbox, threshold=100)


@pytest.fixture
def scanner(access, io):
    return ProjectFileScanner(access, io)


@pytest.fixture
def task_service(scanner, mailbox):
    return TaskService(scanner, mailbox)


@pytest.fixture
def activity_service(activity_store, mailbox):
    return ActivityService(activity_store, mailbox)


@pytest.fixture
def make_event():
    """Build a calendar event starting at a local time."""

    def _make(
        event_id: int,
        title: str = "Event",
        start: datetime = datetime(2024, 5, 10, 9, 0),
        minutes: int = 60,
        **kwargs,
    ) -> CalendarEvent:
        start_ts = int(start.timestamp())
        return CalendarEvent(
            title=title,
            start_time=start_ts,
            end_time=start_ts + minutes * 60,
            event_id=event_id,
            **kwargs,
        )

    return _make
