"""Task, metadata and diff records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


@dataclass
class Task:
    """One schedulable item; `name` is the natural key."""

    name: str
    completed: bool = False
    date: str | None = None
    time: str | None = None
    duration: str | None = None
    priority: str | None = None
    tags: list[str] = field(default_factory=list)
    description: str | None = None
    link: str | None = None
    calendar_event_id: str | None = None
    log: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        known = {key: data[key] for key in cls.__dataclass_fields__ if key in data}
        if "calendarEventId" in data and "calendar_event_id" not in known:
            known["calendar_event_id"] = data["calendarEventId"]
        known.setdefault("tags", [])
        return cls(**known)

    @property
    def is_scheduled(self) -> bool:
        return bool(self.date and self.time and self.duration)


@dataclass
class TaskData:
    completed: list[Task] = field(default_factory=list)
    uncompleted: list[Task] = field(default_factory=list)

    @classmethod
    def partition(cls, tasks: list[Task]) -> TaskData:
        data = cls()
        for task in tasks:
            if task.completed:
                data.completed.append(task)
            else:
                data.uncompleted.append(task)
        return data

    def all_tasks(self) -> list[Task]:
        return self.uncompleted + self.completed

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": [task.to_dict() for task in self.completed],
            "uncompleted": [task.to_dict() for task in self.uncompleted],
        }


@dataclass
class Metadata:
    last_synced: str | None = None
    total_tasks: int | None = None
    tags: list[str] | None = None
    table_header: str | None = None
    timezone: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TaskChange:
    before: Task
    after: Task
    changes: list[str]


@dataclass
class MetadataChange:
    before: Metadata
    after: Metadata
    changes: list[str]


@dataclass
class TaskDiff:
    added: list[Task] = field(default_factory=list)
    removed: list[Task] = field(default_factory=list)
    modified: list[TaskChange] = field(default_factory=list)
    completed: list[Task] = field(default_factory=list)
    uncompleted: list[Task] = field(default_factory=list)
    metadata: MetadataChange | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
