"""Factory for building the store and service graph with all dependencies wired.

Both the main process and the widget process call build_services() so they
agree on the mailbox, the lock directory and the vault grant.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from navvault.core.access import VaultAccess
from navvault.core.config import (
    APP_GROUP_DIR,
    LOG_MAX_LINES,
    PROCESS_TARGET,
    RECONCILE_THRESHOLD,
    VAULT_DIR,
)
from navvault.core.coordination import CoordinatedFileIO
from navvault.services.activities import ActivityService
from navvault.services.tasks import TaskService
from navvault.services.widget import WidgetBridge
from navvault.storage.activity_store import ActivityEventStore
from navvault.storage.calendar_store import CalendarEventStore
from navvault.storage.mailbox import CrossProcessMailbox, MailboxKey, MailboxLogHandler
from navvault.vault.projects import ProjectFileScanner

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything one process needs, constructed once."""

    mailbox: CrossProcessMailbox
    access: VaultAccess
    io: CoordinatedFileIO
    activity_store: ActivityEventStore
    calendar_store: CalendarEventStore
    scanner: ProjectFileScanner
    tasks: TaskService
    activities: ActivityService
    widget: WidgetBridge

    def close(self) -> None:
        self.mailbox.close()


def build_services(
    app_group_dir: Path | str | None = None,
    vault_dir: Path | str | None = None,
    reconcile_threshold: int | None = None,
) -> Services:
    """
    Build a fully wired service graph.

    Args:
        app_group_dir: Shared directory for the mailbox and lock files
            (defaults to config)
        vault_dir: Vault to grant now; when omitted, NAVVAULT_VAULT_DIR is
            granted only if no bookmark exists yet
        reconcile_threshold: Calendar appends between compactions
            (defaults to config)

    Returns:
        Services for this process
    """
    group_dir = Path(app_group_dir) if app_group_dir else APP_GROUP_DIR
    group_dir.mkdir(parents=True, exist_ok=True)

    mailbox = CrossProcessMailbox(db_path=group_dir / "mailbox.db")
    access = VaultAccess(mailbox)
    io = CoordinatedFileIO(group_dir / "locks")

    if vault_dir:
        access.grant(vault_dir)
    elif VAULT_DIR and mailbox.get(MailboxKey.VAULT_BOOKMARK) is None:
        logger.info("Granting configured vault %s", VAULT_DIR)
        access.grant(VAULT_DIR)

    activity_store = ActivityEventStore(access, io, mailbox=mailbox)
    calendar_store = CalendarEventStore(
        access,
        io,
        mailbox,
        threshold=reconcile_threshold or RECONCILE_THRESHOLD,
    )
    scanner = ProjectFileScanner(access, io)

    return Services(
        mailbox=mailbox,
        access=access,
        io=io,
        activity_store=activity_store,
        calendar_store=calendar_store,
        scanner=scanner,
        tasks=TaskService(scanner, mailbox),
        activities=ActivityService(activity_store, mailbox),
        widget=WidgetBridge(mailbox, activity_store),
    )


def attach_mailbox_logging(
    mailbox: CrossProcessMailbox,
    target: str = PROCESS_TARGET,
    max_lines: int = LOG_MAX_LINES,
) -> MailboxLogHandler:
    """Persist this process's log records to the mailbox. Idempotent per mailbox."""
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, MailboxLogHandler) and handler.mailbox is mailbox:
            return handler
    handler = MailboxLogHandler(mailbox, target=target, max_lines=max_lines)
    root.addHandler(handler)
    return handler
