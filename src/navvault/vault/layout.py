"""Vault layout and path helpers.

Activity and calendar files live under the daily folder, one directory per
year. Project notes live anywhere below the projects folder.
"""

from datetime import datetime
from pathlib import Path

from navvault.core.config import ACTIVITY_BASE_DIR, PROJECTS_BASE_DIR


def quarter_of(moment: datetime) -> tuple[int, int]:
    """
    Get the (year, quarter) a moment falls in.

    Args:
        moment: Local time

    Returns:
        Year and quarter number 1-4
    """
    return moment.year, (moment.month - 1) // 3 + 1


def previous_quarter(year: int, quarter: int) -> tuple[int, int]:
    """Quarter immediately before (year, quarter)."""
    if quarter > 1:
        return year, quarter - 1
    return year - 1, 4


def get_daily_path(vault_root: Path) -> Path:
    """
    Get the daily folder path.

    Args:
        vault_root: Resolved vault root

    Returns:
        Path to the folder holding activity and calendar files
    """
    return vault_root / ACTIVITY_BASE_DIR


def get_year_path(vault_root: Path, year: int) -> Path:
    return get_daily_path(vault_root) / str(year)


def get_quarter_file_path(vault_root: Path, year: int, quarter: int) -> Path:
    """
    Get the activity file for a quarter.

    Format: Category Notes/Daily/2024/2024-Q1.md
    """
    return get_year_path(vault_root, year) / f"{year}-Q{quarter}.md"


def get_calendar_file_path(vault_root: Path, year: int) -> Path:
    """
    Get the calendar event log for a year.

    Format: Category Notes/Daily/2024/Calendar-2024.md
    """
    return get_year_path(vault_root, year) / f"Calendar-{year}.md"


def get_projects_path(vault_root: Path) -> Path:
    """
    Get the projects folder path.

    Returns:
        Path to projects folder
    """
    return vault_root / PROJECTS_BASE_DIR


def list_notes(folder: Path) -> list[Path]:
    """
    List all markdown notes below a folder, skipping hidden entries.

    Returns:
        Sorted list of note paths
    """
    if not folder.exists():
        return []
    return sorted(
        path
        for path in folder.rglob("*.md")
        if path.is_file()
        and not any(part.startswith(".") for part in path.relative_to(folder).parts)
    )
