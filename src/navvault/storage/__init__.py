"""Storage layer for NavVault - event logs, activity and calendar stores, mailbox."""

from typing import TYPE_CHECKING

from navvault.storage.mailbox import CrossProcessMailbox, MailboxKey, MailboxLogHandler

if TYPE_CHECKING:
    from navvault.storage.activity_store import ActivityEventStore
    from navvault.storage.calendar_store import CalendarEventStore
    from navvault.storage.event_log import EventLog

__all__ = [
    "ActivityEventStore",
    "CalendarEventStore",
    "CrossProcessMailbox",
    "EventLog",
    "MailboxKey",
    "MailboxLogHandler",
]


def __getattr__(name: str):
    # Stores depend on core.access, which itself imports the mailbox
    if name == "ActivityEventStore":
        from navvault.storage.activity_store import ActivityEventStore

        return ActivityEventStore
    if name == "CalendarEventStore":
        from navvault.storage.calendar_store import CalendarEventStore

        return CalendarEventStore
    if name == "EventLog":
        from navvault.storage.event_log import EventLog

        return EventLog
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
