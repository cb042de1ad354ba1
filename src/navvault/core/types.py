"""Shared types and data structures for NavVault."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "ActivityRecord",
    "ActivityType",
    "CalendarEvent",
    "PendingTaskUpdate",
    "ProjectMetadata",
    "ProjectStatus",
    "Recurrence",
    "Reminder",
    "TaskFilterToggles",
    "TaskPriority",
    "TaskRecord",
    "TaskSortOrder",
    "TaskStatus",
]


# --- Activities ---


class ActivityType(Enum):
    """Kind of logged activity. Values are written verbatim to quarter files."""

    SLEEP = "Sleep"
    WAKE = "Wake"
    MEAL = "Meal"
    EXERCISE = "Exercise"

    @classmethod
    def parse(cls, value: str) -> ActivityType | None:
        """Case-insensitive lookup, None for unknown names."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        return None


@dataclass(frozen=True)
class ActivityRecord:
    """A single timestamped activity.

    There is no identity field: two records with the same type and the same
    second are the same line on disk.
    """

    type: ActivityType
    time: datetime

    @property
    def timestamp(self) -> int:
        """Unix seconds as written to disk."""
        return int(self.time.timestamp())

    def to_line(self) -> str:
        """Serialize without the trailing newline."""
        return f"{self.type.value}:: {self.timestamp}"

    @classmethod
    def from_line(cls, line: str) -> ActivityRecord | None:
        """Parse `Type:: timestamp`, returning None when the line is malformed."""
        parts = line.strip().split(":: ")
        if len(parts) != 2:
            return None
        try:
            activity_type = ActivityType(parts[0])
            timestamp = float(parts[1])
        except ValueError:
            return None
        return cls(type=activity_type, time=datetime.fromtimestamp(timestamp))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for mailbox serialization."""
        return {"type": self.type.value, "time": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityRecord:
        """Create from dictionary."""
        return cls(
            type=ActivityType(data["type"]),
            time=datetime.fromtimestamp(float(data["time"])),
        )


# --- Calendar ---


class Recurrence(Enum):
    """Calendar recurrence, stored as a single letter."""

    DAILY = "D"
    WEEKLY = "W"
    MONTHLY = "M"
    YEARLY = "Y"


class Reminder(BaseModel):
    """A reminder fired some minutes before an event starts."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    minutes_before: int = Field(alias="minutes")
    sound: str = "Game"


class CalendarEvent(BaseModel):
    """One calendar event as stored in a year file.

    Field order matches the on-disk JSON key order. `event_id` is the only
    identity; equality compares every field.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(alias="eventTitle")
    start_time: int = Field(alias="startTime")
    end_time: int = Field(alias="endTime")
    project_id: int | None = Field(default=None, alias="projId")
    reminders: tuple[Reminder, ...] = ()
    recurrence: Recurrence | None = None
    notes: str | None = None
    location: str | None = None
    url: str | None = None
    event_id: int = Field(alias="eventId")

    @field_validator("reminders", mode="before")
    @classmethod
    def _normalize_reminders(cls, value: Any) -> Any:
        # Older files store bare minute counts
        if value is None:
            return ()
        items = []
        for item in value:
            if isinstance(item, int) and not isinstance(item, bool):
                item = Reminder(minutes_before=item)
            elif isinstance(item, dict):
                item = Reminder.model_validate(item)
            items.append(item)
        unique = {(r.minutes_before, r.sound): r for r in items}
        return tuple(unique[k] for k in sorted(unique))

    @property
    def start(self) -> datetime:
        return datetime.fromtimestamp(self.start_time)

    @property
    def end(self) -> datetime:
        return datetime.fromtimestamp(self.end_time)

    @property
    def year(self) -> int:
        """Year file this event belongs to (local time of its start)."""
        return self.start.year

    def to_json_line(self) -> str:
        """Compact JSON, nulls omitted, no newline."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def overlaps(self, range_start: int, range_end: int) -> bool:
        """True if the event intersects the half-open range [start, end)."""
        if self.start_time >= range_end:
            return False
        return self.end_time > range_start or self.start_time >= range_start


# --- Tasks ---


class TaskStatus(Enum):
    """Checkbox state of a task line."""

    NOT_STARTED = " "
    IN_PROGRESS = "/"
    COMPLETED = "x"

    @classmethod
    def from_char(cls, char: str) -> TaskStatus:
        """Map the character between the brackets; unknown marks are not started."""
        if char == "x":
            return cls.COMPLETED
        if char == "/":
            return cls.IN_PROGRESS
        return cls.NOT_STARTED


class TaskPriority(Enum):
    """Task priority, highest first."""

    URGENT = "Urgent"
    HIGH = "High"
    NORMAL = "Normal"
    LOW = "Low"

    @classmethod
    def parse(cls, value: str) -> TaskPriority | None:
        """Case-insensitive lookup."""
        for member in cls:
            if member.value.lower() == value.lower():
                return member
        return None

    @property
    def rank(self) -> int:
        return list(TaskPriority).index(self)


@dataclass(frozen=True)
class TaskRecord:
    """A task whose only durable form is one line in a project file.

    `id` is the creation time in milliseconds and is embedded in the line,
    so it is also the record's identity.
    """

    id: int
    name: str
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: TaskPriority = TaskPriority.NORMAL
    project_id: int = 0
    due_date: date | None = None
    tags: tuple[str, ...] = field(default=())
    file_path: str | None = None
    project_name: str = ""

    def __post_init__(self) -> None:
        # Ordered set semantics
        object.__setattr__(self, "tags", tuple(dict.fromkeys(self.tags)))

    @property
    def create_time(self) -> datetime:
        return datetime.fromtimestamp(self.id / 1000)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the widget snapshot."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "priority": self.priority.value,
            "projectId": self.project_id,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "tags": list(self.tags),
            "filePath": self.file_path,
            "projectName": self.project_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskRecord:
        """Create from dictionary."""
        due = data.get("dueDate")
        return cls(
            id=int(data["id"]),
            name=data["name"],
            status=TaskStatus(data.get("status", " ")),
            priority=TaskPriority.parse(data.get("priority", "Normal"))
            or TaskPriority.NORMAL,
            project_id=int(data.get("projectId") or 0),
            due_date=date.fromisoformat(due) if due else None,
            tags=tuple(data.get("tags") or ()),
            file_path=data.get("filePath"),
            project_name=data.get("projectName", ""),
        )


class PendingTaskUpdate(BaseModel):
    """A status change posted by the widget and not yet applied to the vault."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    task_id: int = Field(alias="taskId")
    status: TaskStatus


class TaskSortOrder(Enum):
    """Sort orders offered by the task list."""

    CREATION_DESC = "taskCreationDesc"
    PRIORITY_DESC = "priorityDesc"
    PROJECT_MODIFIED_DESC = "projModifiedDesc"


class TaskFilterToggles(BaseModel):
    """Priorities and statuses the user has toggled on. Empty means no filter."""

    model_config = ConfigDict(frozen=True)

    priorities: list[TaskPriority] = Field(default_factory=list)
    statuses: list[TaskStatus] = Field(default_factory=list)

    def matches(self, task: TaskRecord) -> bool:
        if self.priorities and task.priority not in self.priorities:
            return False
        if self.statuses and task.status not in self.statuses:
            return False
        return True


# --- Projects ---


class ProjectStatus(Enum):
    """Lifecycle of a project note."""

    IDEA = "Idea"
    PROGRESS = "Progress"
    DONE = "Done"

    @classmethod
    def from_string(cls, value: str | None) -> ProjectStatus:
        """Lenient parse; anything unknown is treated as in progress."""
        for member in cls:
            if value and member.value.lower() == str(value).strip().lower():
                return member
        return cls.PROGRESS


@dataclass(frozen=True)
class ProjectMetadata:
    """Frontmatter of a project note plus file timestamps."""

    project_id: int
    status: ProjectStatus
    file_path: str
    creation_time: datetime
    modified_time: datetime
    icon: str | None = None
    banner: str | None = None
    note_type: str = "Project"

    @property
    def name(self) -> str:
        """Project name is the file name without extension."""
        return Path(self.file_path).stem
