"""NavVault core library - vault access, file coordination and shared types."""

from typing import TYPE_CHECKING

from navvault.core.errors import (
    FileOperationFailed,
    InvalidFrontmatter,
    NavVaultError,
    NoVaultAccess,
    ReconciliationFailed,
    TaskNotFound,
    VaultNotFound,
)
from navvault.core.types import (
    ActivityRecord,
    ActivityType,
    CalendarEvent,
    TaskRecord,
    TaskStatus,
)

if TYPE_CHECKING:
    from navvault.core.access import VaultAccess
    from navvault.core.coordination import CoordinatedFileIO
    from navvault.core.factory import Services, build_services

__all__ = [
    # Wiring
    "Services",
    "build_services",
    "VaultAccess",
    "CoordinatedFileIO",
    # Types
    "ActivityRecord",
    "ActivityType",
    "CalendarEvent",
    "TaskRecord",
    "TaskStatus",
    # Errors
    "FileOperationFailed",
    "InvalidFrontmatter",
    "NavVaultError",
    "NoVaultAccess",
    "ReconciliationFailed",
    "TaskNotFound",
    "VaultNotFound",
]


def __getattr__(name: str):
    if name in ("Services", "build_services"):
        from navvault.core import factory

        return getattr(factory, name)
    if name == "VaultAccess":
        from navvault.core.access import VaultAccess

        return VaultAccess
    if name == "CoordinatedFileIO":
        from navvault.core.coordination import CoordinatedFileIO

        return CoordinatedFileIO
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
