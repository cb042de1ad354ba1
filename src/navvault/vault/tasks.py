"""Task line codec.

A task lives on one markdown line:

    - [x] Write report (due:: 2024-03-01) #work <span class="priority">High</span> <span class="createTime">1709251200000</span>

The line may sit inside a blockquote (`> - [ ] ...`) or be indented. The
createTime span holds the task id, which is the only way to find the same
task again when the file is rewritten.
"""

import logging
import re
import time
from datetime import date
from threading import Lock

from navvault.core.types import TaskPriority, TaskRecord, TaskStatus

logger = logging.getLogger(__name__)

_TASK_LINE = re.compile(r"^(>\s*)?\s*-\s*\[.\]")
_PREFIX = re.compile(r"^(>\s*)?\s*")
_STATUS = re.compile(r"^-\s*\[(.)\]")
_DUE = re.compile(r"\(due:: (\d{4}-\d{2}-\d{2})\)")
_PRIORITY = re.compile(r'priority">(\w+)<')
_CREATE_TIME = re.compile(r'createTime">(\d+)<')

# Earliest of these ends the task name
NAME_BOUNDARIES = (" #", "(due::", "<span")

_id_lock = Lock()
_last_id = 0


def new_task_id() -> int:
    """Creation time in milliseconds, bumped so ids from this process never repeat."""
    global _last_id
    with _id_lock:
        _last_id = max(int(time.time() * 1000), _last_id + 1)
        return _last_id


def id_marker(task_id: int) -> str:
    """Substring that identifies a task's line."""
    return f'createTime">{task_id}<'


def is_task_line(line: str) -> bool:
    return _TASK_LINE.match(line) is not None


def split_prefix(line: str) -> tuple[str, str] | None:
    """
    Split a task line into its blockquote/indent prefix and the rest.

    Returns:
        (prefix, content) where content starts at the list dash, or None if
        the line isn't a task
    """
    if not is_task_line(line):
        return None
    prefix = _PREFIX.match(line).group(0)
    return prefix, line[len(prefix) :]


_UNESCAPED = {"#": "#", "n": "\n", "\\": "\\"}


def escape_name(name: str) -> str:
    return name.replace("\\", "\\\\").replace("\n", "\\n").replace("#", "\\#")


def unescape_name(text: str) -> str:
    out = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text) and text[i + 1] in "#n\\":
            out.append(_UNESCAPED[text[i + 1]])
            i += 2
            continue
        out.append(char)
        i += 1
    return "".join(out)


def _name_end(text: str) -> int:
    end = len(text)
    for boundary in NAME_BOUNDARIES:
        index = text.find(boundary)
        if index != -1:
            end = min(end, index)
    return end


def decode(
    line: str,
    *,
    project_id: int = 0,
    file_path: str | None = None,
    project_name: str = "",
) -> TaskRecord | None:
    """
    Decode a task line.

    Args:
        line: One line of a project note
        project_id: Id of the project the line belongs to
        file_path: Project note path, kept on the record for later rewrites
        project_name: Project display name

    Returns:
        TaskRecord, or None when the line is not a task
    """
    split = split_prefix(line)
    if split is None:
        return None
    _, content = split

    status_match = _STATUS.match(content)
    if status_match is None:
        return None
    status = TaskStatus.from_char(status_match.group(1))
    text = content[status_match.end() :].strip()

    end = _name_end(text)
    name = unescape_name(text[:end].strip())
    remaining = text[end:]

    due_date = None
    due_match = _DUE.search(remaining)
    if due_match:
        try:
            due_date = date.fromisoformat(due_match.group(1))
        except ValueError:
            logger.debug(f"Ignoring invalid due date {due_match.group(1)}")

    tags = tuple(
        token[1:] for token in remaining.split(" ") if token.startswith("#") and len(token) > 1
    )

    priority = TaskPriority.NORMAL
    priority_match = _PRIORITY.search(remaining)
    if priority_match:
        priority = TaskPriority.parse(priority_match.group(1)) or TaskPriority.NORMAL

    create_match = _CREATE_TIME.search(remaining)
    if create_match:
        task_id = int(create_match.group(1))
    else:
        # Without the span this task can't be found again by id
        task_id = int(time.time() * 1000)

    return TaskRecord(
        id=task_id,
        name=name,
        status=status,
        priority=priority,
        project_id=project_id,
        due_date=due_date,
        tags=tags,
        file_path=file_path,
        project_name=project_name,
    )


def encode(record: TaskRecord) -> str:
    """Encode a task as a line (no prefix, no newline)."""
    parts = [f"- [{record.status.value}]", escape_name(record.name)]
    if record.due_date is not None:
        parts.append(f"(due:: {record.due_date.isoformat()})")
    if record.tags:
        parts.append(" ".join(f"#{tag}" for tag in record.tags))
    parts.append(f'<span class="priority">{record.priority.value}</span>')
    parts.append(f'<span class="createTime">{record.id}</span>')
    return " ".join(parts)
