"""Per-field validation rules for task records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import urlparse

from mdtasks.task_models import Priority, Task

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DURATION_PATTERN = re.compile(r"^\d+:[0-5]\d$")


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _is_valid_url(value: Any) -> bool:
    """Any scheme is accepted (`mailto:`, `urn:`); the rest must be non-empty."""
    if not isinstance(value, str) or not value.strip():
        return False
    text = value.strip()
    if any(char.isspace() for char in text):
        return False
    try:
        parsed = urlparse(text)
    except ValueError:
        return False
    return bool(parsed.scheme and (parsed.netloc or parsed.path))


FIELD_VALIDATORS: dict[str, Callable[[Any], bool]] = {
    "name": lambda value: isinstance(value, str) and bool(value.strip()),
    "completed": lambda value: isinstance(value, bool),
    "date": lambda value: isinstance(value, str) and bool(DATE_PATTERN.match(value)),
    "time": lambda value: isinstance(value, str) and bool(TIME_PATTERN.match(value)),
    "duration": lambda value: isinstance(value, str)
    and bool(DURATION_PATTERN.match(value)),
    "priority": lambda value: isinstance(value, str) and value in Priority.values(),
    "tags": lambda value: isinstance(value, list)
    and all(isinstance(tag, str) for tag in value),
    "description": lambda value: isinstance(value, str),
    "link": _is_valid_url,
    "calendar_event_id": lambda value: isinstance(value, str),
    "log": lambda value: isinstance(value, str),
}

FIELD_ERROR_MESSAGES = {
    "date": "Invalid date format: {value!r}. Expected YYYY-MM-DD",
    "time": "Invalid time format: {value!r}. Expected HH:MM",
    "duration": "Invalid duration format: {value!r}. Expected H:MM",
    "priority": "Invalid priority: {value!r}",
    "link": "Invalid link format: {value!r}",
}


def validate_field(field_name: str, value: Any) -> bool:
    validator = FIELD_VALIDATORS.get(field_name)
    if validator is None:
        return False
    return validator(value)


def field_error_message(field_name: str, value: Any) -> str:
    template = FIELD_ERROR_MESSAGES.get(field_name, "Invalid value for {field}: {value!r}")
    return template.format(field=field_name, value=value)


def validate_task(task: Task) -> ValidationResult:
    """Check every field of a task and collect errors and warnings."""
    errors: list[str] = []
    warnings: list[str] = []

    if not validate_field("name", task.name):
        errors.append("Task name cannot be empty")

    for field_name in ("date", "time", "duration", "priority", "link"):
        value = getattr(task, field_name)
        if value is not None and not validate_field(field_name, value):
            errors.append(field_error_message(field_name, value))

    if task.tags is not None and not validate_field("tags", task.tags):
        errors.append("Tags must be an array of strings")

    for field_name in ("description", "calendar_event_id", "log"):
        value = getattr(task, field_name)
        if value is not None and not isinstance(value, str):
            errors.append(f"{field_name} must be a string")

    if task.time and not task.date:
        warnings.append("time is set without a date")
    if task.duration and not task.time:
        warnings.append("duration is set without a time")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def collect_invalid_tasks(tasks: list[Task]) -> list[dict[str, Any]]:
    """Return an itemized error list for every task that fails validation."""
    invalid: list[dict[str, Any]] = []
    for index, task in enumerate(tasks):
        result = validate_task(task)
        if not result.valid:
            invalid.append({"index": index, "name": task.name, "errors": result.errors})
    return invalid
