"""Configuration management for NavVault core."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


# Directory shared by the main app and the widget process (XDG-style)
APP_GROUP_DIR = Path(
    get_env("NAVVAULT_APP_GROUP_DIR", os.path.expanduser("~/.navvault"))
    or os.path.expanduser("~/.navvault")
)

# Mailbox database path
MAILBOX_PATH = APP_GROUP_DIR / "mailbox.db"

# Vault granted on first start when no bookmark exists yet
VAULT_DIR = get_env("NAVVAULT_VAULT_DIR", "")

# Vault layout
ACTIVITY_BASE_DIR = "Category Notes/Daily"
PROJECTS_BASE_DIR = "Category Notes/Projects"

# Calendar compaction
RECONCILE_THRESHOLD = get_env_int("NAVVAULT_RECONCILE_THRESHOLD", 100)

# How far back load_latest looks for quarter files
ACTIVITY_LOOKBACK_YEARS = get_env_int("NAVVAULT_ACTIVITY_LOOKBACK_YEARS", 2)

# Persisted log ring size
LOG_MAX_LINES = get_env_int("NAVVAULT_LOG_MAX_LINES", 1000)

# Name written into persisted log lines ("main" or "widget")
PROCESS_TARGET = get_env("NAVVAULT_TARGET", "main") or "main"

# Logging
LOG_LEVEL = get_env("LOG_LEVEL", "INFO")


def setup_logging() -> logging.Logger:
    """Configure and return logger."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, (LOG_LEVEL or "INFO").upper(), logging.INFO),
    )
    return logging.getLogger(__name__)


def validate_environment() -> tuple[bool, str]:
    """
    Validate that the configured app group directory is usable.

    Returns:
        (is_valid, message) - If not valid, message explains what's wrong.
    """
    if APP_GROUP_DIR.exists() and not APP_GROUP_DIR.is_dir():
        return (
            False,
            f"NAVVAULT_APP_GROUP_DIR is not a directory: {APP_GROUP_DIR}",
        )

    if VAULT_DIR and not Path(VAULT_DIR).expanduser().is_dir():
        return False, f"NAVVAULT_VAULT_DIR does not exist: {VAULT_DIR}"

    return True, ""
