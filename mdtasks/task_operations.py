"""In-memory mutations applied between a query and a save."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from mdtasks.errors import (
    DuplicateTaskError,
    InvalidFieldError,
    NoChangeError,
    TaskNotFoundError,
    TimeConflictError,
)
from mdtasks.task_codec import parse_tags
from mdtasks.task_conflicts import find_time_conflict, format_time_range
from mdtasks.task_constants import (
    CLEAR_DEPENDENTS,
    DEFAULT_DURATION,
    DEFAULT_TIMEZONE,
    EDITABLE_FIELDS,
)
from mdtasks.task_models import Metadata, Priority, Task, TaskData
from mdtasks.task_validation import field_error_message, validate_field, validate_task

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {
    Priority.URGENT.value: 0,
    Priority.HIGH.value: 1,
    Priority.MEDIUM.value: 2,
    Priority.LOW.value: 3,
}
SORT_KEYS = ("priority", "time")


def find_task_index(tasks: list[Task], name: str) -> int:
    for index, task in enumerate(tasks):
        if task.name == name:
            return index
    return -1


def _require_index(tasks: list[Task], name: str) -> int:
    index = find_task_index(tasks, name)
    if index == -1:
        raise TaskNotFoundError("Task not found.", {"name": name})
    return index


def normalize_tags(tags: list[str]) -> list[str]:
    normalized: list[str] = []
    for tag in tags:
        cleaned = tag.strip().lstrip("#").lower()
        if cleaned and cleaned not in normalized:
            normalized.append(cleaned)
    return normalized


def describe_conflict(task: Task) -> str:
    window = task.time or ""
    if task.time and task.duration:
        window = format_time_range(task.time, task.duration)
    return (
        f'Time conflict with existing task: "{task.name}" '
        f"(Date: {task.date}, Time: {window})"
    )


def _raise_on_conflict(candidate: Task, tasks: list[Task], exclude_name: str | None) -> None:
    conflict = find_time_conflict(candidate, tasks, exclude_name)
    if conflict is not None:
        raise TimeConflictError(
            describe_conflict(conflict),
            {"conflictsWith": conflict.name, "date": conflict.date},
        )


def add_task(task_data: TaskData, task: Task) -> Task:
    """Append a new open task after uniqueness and time-conflict checks."""
    task.name = task.name.strip() if isinstance(task.name, str) else task.name
    task.completed = False
    task.tags = normalize_tags(task.tags or [])
    if task.priority:
        task.priority = task.priority.lower()

    result = validate_task(task)
    if not result.valid:
        raise InvalidFieldError("; ".join(result.errors), {"errors": result.errors})
    if find_task_index(task_data.uncompleted, task.name) != -1:
        raise DuplicateTaskError("Task name must be unique.", {"name": task.name})
    _raise_on_conflict(task, task_data.uncompleted, None)

    task_data.uncompleted.append(task)
    return task


def edit_task(task_data: TaskData, name: str, field_name: str, value: str) -> Task:
    """Set or clear one editable field of an open task.

    An empty value clears the field together with the fields that depend on
    it. Editing `tags` takes `#tag` text.
    """
    if field_name not in EDITABLE_FIELDS:
        raise InvalidFieldError(
            f"Field {field_name!r} cannot be edited.",
            {"field": field_name, "allowed": list(EDITABLE_FIELDS)},
        )

    index = _require_index(task_data.uncompleted, name)
    old_task = task_data.uncompleted[index]
    new_task = replace(old_task, tags=list(old_task.tags))
    trimmed = value.strip() if isinstance(value, str) else ""

    if field_name == "tags":
        if trimmed and "#" not in trimmed:
            raise InvalidFieldError(
                "Tags must be prefixed with # (e.g. #work #sports).",
                {"field": field_name},
            )
        new_tags = parse_tags(trimmed)
        if sorted(new_tags) == sorted(old_task.tags):
            raise NoChangeError("Tags are unchanged.", {"field": field_name})
        new_task.tags = new_tags
        task_data.uncompleted[index] = new_task
        return new_task

    new_value: str | None = trimmed or None
    if field_name == "priority" and new_value:
        new_value = new_value.lower()
    if getattr(old_task, field_name) == new_value:
        raise NoChangeError(
            f"The new {field_name} is the same as the current one.",
            {"field": field_name},
        )

    if new_value is None:
        if field_name == "name":
            raise InvalidFieldError("Task name cannot be empty.", {"field": field_name})
        for dependent in CLEAR_DEPENDENTS.get(field_name, ()):
            setattr(new_task, dependent, None)
        setattr(new_task, field_name, None)
        task_data.uncompleted[index] = new_task
        return new_task

    if not validate_field(field_name, new_value):
        raise InvalidFieldError(
            field_error_message(field_name, new_value), {"field": field_name}
        )
    if field_name == "name" and find_task_index(task_data.uncompleted, new_value) != -1:
        raise DuplicateTaskError("Task name must be unique.", {"name": new_value})

    setattr(new_task, field_name, new_value)
    if field_name in ("date", "time", "duration"):
        window = replace(new_task)
        if window.time and not window.duration:
            window.duration = DEFAULT_DURATION
        _raise_on_conflict(window, task_data.uncompleted, old_task.name)

    task_data.uncompleted[index] = new_task
    return new_task


def complete_task(
    task_data: TaskData, name: str, now: datetime | None = None
) -> Task:
    index = _require_index(task_data.uncompleted, name)
    task = task_data.uncompleted.pop(index)
    moment = now or datetime.now(timezone.utc)
    task.completed = True
    task.log = f"completed at {moment.isoformat(timespec='seconds')}"
    task_data.completed.append(task)
    return task


def reopen_task(task_data: TaskData, name: str) -> Task:
    index = _require_index(task_data.completed, name)
    if find_task_index(task_data.uncompleted, name) != -1:
        raise DuplicateTaskError(
            "An open task with this name already exists.", {"name": name}
        )
    task = task_data.completed.pop(index)
    task.completed = False
    task_data.uncompleted.append(task)
    return task


def remove_task(task_data: TaskData, name: str) -> Task:
    index = find_task_index(task_data.uncompleted, name)
    if index != -1:
        return task_data.uncompleted.pop(index)
    return task_data.completed.pop(_require_index(task_data.completed, name))


def clear_completed(task_data: TaskData) -> int:
    count = len(task_data.completed)
    task_data.completed.clear()
    return count


def _priority_key(task: Task) -> int:
    return PRIORITY_ORDER.get(task.priority or "", len(PRIORITY_ORDER))


def _time_key(task: Task) -> tuple[bool, str, bool, str]:
    return (task.date is None, task.date or "", task.time is None, task.time or "")


def sort_tasks(task_data: TaskData, sort_by: str) -> list[Task]:
    """Reorder open tasks in place by priority or by schedule."""
    if sort_by == "priority":
        task_data.uncompleted.sort(key=_priority_key)
    elif sort_by == "time":
        task_data.uncompleted.sort(key=_time_key)
    else:
        raise InvalidFieldError(
            f"Unknown sort type {sort_by!r}.", {"allowed": list(SORT_KEYS)}
        )
    return task_data.uncompleted


def today_in_timezone(timezone_name: str | None, now: datetime | None = None) -> date:
    try:
        zone = ZoneInfo(timezone_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning(
            "Unknown timezone %r in task document; using %s",
            timezone_name,
            DEFAULT_TIMEZONE,
        )
        zone = ZoneInfo(DEFAULT_TIMEZONE)
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(zone).date()


def tasks_for_day(tasks: list[Task], day: date) -> list[Task]:
    target = day.isoformat()
    matching = [task for task in tasks if task.date == target]
    return sorted(matching, key=lambda task: (task.time is None, task.time or ""))


def set_timezone(metadata: Metadata, timezone_name: str) -> Metadata:
    name = timezone_name.strip() if isinstance(timezone_name, str) else ""
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise InvalidFieldError(
            f"Unknown timezone {timezone_name!r}.", {"timezone": timezone_name}
        ) from None
    metadata.timezone = name
    return metadata
