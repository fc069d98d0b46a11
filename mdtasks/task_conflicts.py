"""Scheduled time-window overlap detection."""

from __future__ import annotations

from datetime import datetime, timedelta

from mdtasks.task_models import Task


def parse_duration_minutes(duration: str) -> int:
    """Convert an `H:MM` duration to minutes."""
    hours, _, minutes = duration.partition(":")
    if not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"Invalid duration: {duration!r}")
    return int(hours) * 60 + int(minutes)


def task_window(task: Task) -> tuple[datetime, datetime] | None:
    """Return the half-open `[start, end)` window of a scheduled task."""
    if not task.is_scheduled:
        return None
    try:
        start = datetime.strptime(f"{task.date} {task.time}", "%Y-%m-%d %H:%M")
        end = start + timedelta(minutes=parse_duration_minutes(task.duration or ""))
    except ValueError:
        return None
    return start, end


def windows_overlap(
    first: tuple[datetime, datetime], second: tuple[datetime, datetime]
) -> bool:
    return first[0] < second[1] and first[1] > second[0]


def find_time_conflict(
    candidate: Task,
    existing_tasks: list[Task],
    exclude_name: str | None = None,
) -> Task | None:
    """Return the first task whose window overlaps the candidate's, if any."""
    candidate_window = task_window(candidate)
    if candidate_window is None:
        return None

    for task in existing_tasks:
        if task is candidate or task.date != candidate.date:
            continue
        if exclude_name is not None and task.name == exclude_name:
            continue
        window = task_window(task)
        if window is not None and windows_overlap(candidate_window, window):
            return task
    return None


def format_time_range(time: str, duration: str) -> str:
    """Render `09:00` + `1:30` as `09:00-10:30`."""
    start = datetime.strptime(time, "%H:%M")
    end = start + timedelta(minutes=parse_duration_minutes(duration))
    return f"{time}-{end.strftime('%H:%M')}"
