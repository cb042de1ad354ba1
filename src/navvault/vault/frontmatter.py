"""YAML frontmatter parsing for project notes."""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from navvault.core.errors import InvalidFrontmatter
from navvault.core.types import ProjectMetadata, ProjectStatus

logger = logging.getLogger(__name__)

PROJECT_MARKER = "notetype: Project"

_SCALARS = (str, int, float, bool)


def is_project_note(content: str) -> bool:
    """A note is a project iff its text contains the project marker."""
    return PROJECT_MARKER in content


def _split_pairs(block: list[str]) -> dict[str, str]:
    pairs = {}
    for line in block:
        key, sep, value = line.partition(":")
        if sep and key.strip():
            pairs[key.strip()] = value.strip()
    return pairs


def parse_frontmatter(content: str) -> tuple[dict[str, Any] | None, str]:
    """
    Parse frontmatter from note content.

    The block is read with PyYAML. Obsidian notes often hold values YAML
    reads as lists (`banner: [[cover.png]]`), and some aren't valid YAML at
    all; those keys fall back to their raw `key: value` text.

    Args:
        content: Full note content including frontmatter

    Returns:
        (frontmatter, body) - None for frontmatter when the note has none
    """
    lines = content.split("\n")
    if not lines or lines[0].strip() != "---":
        return None, content

    try:
        end = next(i for i in range(1, len(lines)) if lines[i].strip() == "---")
    except StopIteration:
        return None, content

    block = lines[1:end]
    body = "\n".join(lines[end + 1 :])
    raw = _split_pairs(block)

    try:
        parsed = yaml.safe_load("\n".join(block))
    except yaml.YAMLError as e:
        logger.debug(f"Frontmatter is not valid YAML, using raw pairs: {e}")
        parsed = None
    if not isinstance(parsed, dict):
        parsed = {}

    merged: dict[str, Any] = {}
    for key, value in raw.items():
        candidate = parsed.get(key)
        merged[key] = candidate if isinstance(candidate, _SCALARS) else value
    return merged, body


def _creation_time(st: os.stat_result) -> datetime:
    birth = getattr(st, "st_birthtime", None)
    return datetime.fromtimestamp(birth if birth is not None else st.st_ctime)


def project_metadata(path: Path, content: str) -> ProjectMetadata:
    """
    Build project metadata from a note's frontmatter and file times.

    Args:
        path: Project note path
        content: Note text

    Returns:
        ProjectMetadata; projId defaults to the file creation time in seconds

    Raises:
        InvalidFrontmatter: If the note has no frontmatter block
    """
    frontmatter, _ = parse_frontmatter(content)
    if frontmatter is None:
        logger.error(f"[E025] Missing frontmatter in {path.name}")
        raise InvalidFrontmatter(f"Invalid or missing frontmatter in {path}")

    st = path.stat()
    created = _creation_time(st)

    try:
        project_id = int(frontmatter.get("projId"))
    except (TypeError, ValueError):
        project_id = int(created.timestamp())

    def _text(key: str) -> str | None:
        value = frontmatter.get(key)
        return str(value) if value not in (None, "") else None

    return ProjectMetadata(
        project_id=project_id,
        status=ProjectStatus.from_string(_text("projectStatus")),
        file_path=str(path),
        creation_time=created,
        modified_time=datetime.fromtimestamp(st.st_mtime),
        icon=_text("icon"),
        banner=_text("banner"),
        note_type=_text("notetype") or "Project",
    )
