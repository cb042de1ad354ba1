"""Error taxonomy for the vault store.

Every error carries a stable code that also appears in the matching log
line, so a failure reported to the user can be found in the persisted logs.
"""


class NavVaultError(Exception):
    """Base class for store errors."""

    code = "E000"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__ or ""
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class NoVaultAccess(NavVaultError):
    """Cannot access vault."""

    code = "E001"


class VaultNotFound(NoVaultAccess):
    """Vault not found."""

    code = "E015"


class FileOperationFailed(NavVaultError):
    """File operation failed."""

    code = "E009"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"File operation failed: {detail}")


class ReconciliationFailed(NavVaultError):
    """Calendar reconciliation failed."""

    code = "E022"


class TaskNotFound(NavVaultError):
    """Task not found."""

    code = "E024"

    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidFrontmatter(NavVaultError):
    """Invalid or missing frontmatter section."""

    code = "E025"
