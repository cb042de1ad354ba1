"""Vault access grant.

The user picks a vault directory once; the grant is kept as a bookmark in
the mailbox so the widget process sees the same vault. Every store
operation runs inside `scoped()`, which resolves the bookmark, checks the
directory is usable and brackets the work with acquire/release.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterator, TypeVar

from navvault.core.errors import NoVaultAccess
from navvault.storage.mailbox import CrossProcessMailbox, MailboxKey

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VaultAccess:
    """Owns the bookmark that grants access to the vault root.

    Example:
        access = VaultAccess(mailbox)
        access.grant("~/Documents/Obsidian")
        with access.scoped() as root:
            ...
    """

    def __init__(self, mailbox: CrossProcessMailbox):
        self.mailbox = mailbox
        self._active = 0
        self._active_lock = Lock()

    @staticmethod
    def _make_bookmark(root: Path) -> dict[str, Any]:
        st = root.stat()
        return {"path": str(root), "device": st.st_dev, "inode": st.st_ino}

    def grant(self, path: Path | str) -> Path:
        """
        Record a new vault root.

        Args:
            path: Directory the user chose

        Returns:
            The resolved root

        Raises:
            NoVaultAccess: If path is not an existing directory
        """
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            logger.error("[E001] Cannot grant vault access, not a directory: %s", root)
            raise NoVaultAccess(f"Not a directory: {root}")
        self.mailbox.set(MailboxKey.VAULT_BOOKMARK, self._make_bookmark(root))
        logger.info("Saved vault bookmark for %s", root)
        return root

    def clear(self) -> None:
        """Forget the grant."""
        self.mailbox.delete(MailboxKey.VAULT_BOOKMARK)
        logger.info("Cleared vault bookmark")

    def resolve(self) -> Path:
        """
        Resolve the bookmark to a root path.

        A stale bookmark (the directory was reached through a moved symlink,
        was replaced, or was saved by an older version as a bare path) is
        refreshed and saved again before returning.

        Raises:
            NoVaultAccess: If no grant exists or it can't be resolved
        """
        bookmark = self.mailbox.get(MailboxKey.VAULT_BOOKMARK)
        if not bookmark:
            logger.error("[E001] No vault bookmark found")
            raise NoVaultAccess("No vault access granted")

        stale = False
        if isinstance(bookmark, str):
            bookmark = {"path": bookmark}
            stale = True

        try:
            root = Path(bookmark["path"]).resolve(strict=True)
        except (KeyError, OSError) as exc:
            logger.error("[E001] Error resolving vault bookmark: %s", exc)
            raise NoVaultAccess("Vault bookmark could not be resolved") from exc

        if not root.is_dir():
            logger.error("[E001] Vault bookmark does not point to a directory")
            raise NoVaultAccess(f"Not a directory: {root}")

        fresh = self._make_bookmark(root)
        if stale or any(bookmark.get(k) != v for k, v in fresh.items()):
            self.mailbox.set(MailboxKey.VAULT_BOOKMARK, fresh)
            logger.info("Updated stale vault bookmark")

        return root

    @property
    def vault_path(self) -> Path | None:
        """Resolved root, or None when there is no usable grant."""
        try:
            return self.resolve()
        except NoVaultAccess:
            return None

    @property
    def is_accessing(self) -> bool:
        """True while any scoped operation holds the grant."""
        with self._active_lock:
            return self._active > 0

    @contextmanager
    def scoped(self) -> Iterator[Path]:
        """Acquire the grant for the duration of the block."""
        root = self.resolve()
        if not os.access(root, os.R_OK | os.W_OK | os.X_OK):
            logger.error("[E002] Failed to get access to vault %s", root)
            raise NoVaultAccess("Access to vault denied")

        with self._active_lock:
            self._active += 1
        try:
            yield root
        finally:
            with self._active_lock:
                self._active -= 1

    def with_vault(self, body: Callable[[Path], T]) -> T:
        """Run body(root) inside `scoped()`."""
        with self.scoped() as root:
            return body(root)
