"""Semantic diff between two committed versions of the task document."""

from __future__ import annotations

from mdtasks.task_codec import decode
from mdtasks.task_constants import (
    DEFAULT_TIMEZONE,
    DIFF_FIELDS,
    EMPTY_PLACEHOLDER,
    NO_TAGS_PLACEHOLDER,
)
from mdtasks.task_models import Metadata, MetadataChange, Task, TaskChange, TaskDiff


def _joined_tags(tags: list[str] | None) -> str:
    return ", ".join(sorted(tags or []))


def _index_by_name(tasks: list[Task]) -> dict[str, Task]:
    indexed: dict[str, Task] = {}
    for task in tasks:
        indexed.setdefault(task.name, task)
    return indexed


def task_changes(before: Task, after: Task) -> list[str]:
    changes: list[str] = []
    for field_name in DIFF_FIELDS:
        before_value = getattr(before, field_name)
        after_value = getattr(after, field_name)
        if before_value != after_value:
            changes.append(
                f"{field_name}: {before_value or EMPTY_PLACEHOLDER}"
                f" → {after_value or EMPTY_PLACEHOLDER}"
            )

    before_tags = _joined_tags(before.tags)
    after_tags = _joined_tags(after.tags)
    if before_tags != after_tags:
        changes.append(
            f"tags: {before_tags or NO_TAGS_PLACEHOLDER}"
            f" → {after_tags or NO_TAGS_PLACEHOLDER}"
        )
    return changes


def metadata_changes(before: Metadata, after: Metadata) -> list[str]:
    changes: list[str] = []
    if before.timezone != after.timezone:
        changes.append(
            f"timezone: {before.timezone or DEFAULT_TIMEZONE}"
            f" → {after.timezone or DEFAULT_TIMEZONE}"
        )

    before_tags = _joined_tags(before.tags)
    after_tags = _joined_tags(after.tags)
    if before_tags != after_tags:
        changes.append(
            f"allowed tags: {before_tags or NO_TAGS_PLACEHOLDER}"
            f" → {after_tags or NO_TAGS_PLACEHOLDER}"
        )
    return changes


def analyze_diff(before_content: str, after_content: str) -> TaskDiff:
    """Report added, removed, modified and (un)completed tasks by name."""
    before_doc = decode(before_content)
    after_doc = decode(after_content)
    before_tasks = _index_by_name(before_doc.tasks)
    after_tasks = _index_by_name(after_doc.tasks)

    diff = TaskDiff()
    meta_lines = metadata_changes(before_doc.metadata, after_doc.metadata)
    if meta_lines:
        diff.metadata = MetadataChange(
            before=before_doc.metadata, after=after_doc.metadata, changes=meta_lines
        )

    diff.added = [task for name, task in after_tasks.items() if name not in before_tasks]
    diff.removed = [
        task for name, task in before_tasks.items() if name not in after_tasks
    ]

    for name, after_task in after_tasks.items():
        before_task = before_tasks.get(name)
        if before_task is None:
            continue
        if not before_task.completed and after_task.completed:
            diff.completed.append(after_task)
        elif before_task.completed and not after_task.completed:
            diff.uncompleted.append(after_task)

        changes = task_changes(before_task, after_task)
        if changes:
            diff.modified.append(
                TaskChange(before=before_task, after=after_task, changes=changes)
            )

    return diff


def has_changes(diff: TaskDiff) -> bool:
    return bool(
        diff.added
        or diff.removed
        or diff.modified
        or diff.completed
        or diff.uncompleted
        or (diff.metadata is not None and diff.metadata.changes)
    )


def summarize_diff(diff: TaskDiff) -> list[str]:
    """Plain-text lines describing a diff, for notifications."""
    lines: list[str] = []
    if diff.metadata is not None:
        lines.extend(f"settings: {change}" for change in diff.metadata.changes)
    lines.extend(f"added: {task.name}" for task in diff.added)
    lines.extend(f"removed: {task.name}" for task in diff.removed)
    lines.extend(f"completed: {task.name}" for task in diff.completed)
    lines.extend(f"reopened: {task.name}" for task in diff.uncompleted)
    for change in diff.modified:
        lines.extend(f"modified: {change.after.name}: {line}" for line in change.changes)
    return lines
