"""Task endpoints: each one is query → mutate → compare-and-swap save."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from fastapi import Request

from mdtasks import task_operations
from mdtasks.errors import TaskError, success_response
from mdtasks.payload import (
    _ensure_payload_dict,
    _reject_unknown_fields,
    _require_fields,
    _optional_string,
    _required_string,
    _string_list,
)
from mdtasks.task_conflicts import find_time_conflict
from mdtasks.task_constants import DEFAULT_DURATION
from mdtasks.task_diff import analyze_diff, has_changes, summarize_diff
from mdtasks.task_models import Task
from mdtasks.task_persistence import TaskPersistence, TaskSnapshot
from mdtasks.task_router import task_router
from mdtasks.task_sync import CommitInfo, CommitSync

logger = logging.getLogger(__name__)

T = TypeVar("T")

TASK_FIELDS = {
    "name",
    "date",
    "time",
    "duration",
    "priority",
    "tags",
    "description",
    "link",
    "calendarEventId",
    "log",
}
STATUS_FILTERS = {"open", "completed", "all"}


def get_request_persistence(request: Request) -> TaskPersistence:
    persistence = getattr(request.app.state, "persistence", None)
    if persistence is None:
        raise TaskError(
            "Task store is not configured.", code="NOT_CONFIGURED"
        )
    return persistence


def _mutate(
    request: Request, operation: str, apply: Callable[[TaskSnapshot], T]
) -> tuple[T, str]:
    persistence = get_request_persistence(request)
    snapshot = persistence.query_tasks()
    result = apply(snapshot)
    token = persistence.save_tasks(snapshot.task_data, snapshot.metadata, snapshot.token)
    logger.info("%s applied", operation)
    return result, token


def _task_from_payload(payload: dict[str, Any]) -> Task:
    fields: dict[str, Any] = {
        key: _optional_string(payload, key)
        for key in TASK_FIELDS - {"name", "tags"}
    }
    fields["name"] = _required_string(payload, "name")
    fields["tags"] = _string_list(payload, "tags")
    return Task.from_dict(fields)


@task_router.post("/tool:list_tasks")
def list_tasks(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """List tasks, optionally filtered by status, tag or priority."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"status", "tag", "priority"})

    status = payload.get("status", "open")
    if not isinstance(status, str) or status not in STATUS_FILTERS:
        raise TaskError(
            "status must be one of open, completed, all.",
            {"status": str(status)},
            code="INVALID_TYPE",
        )
    tag = _optional_string(payload, "tag")
    priority = _optional_string(payload, "priority")

    snapshot = get_request_persistence(request).query_tasks()
    tasks: list[Task] = []
    if status in {"open", "all"}:
        tasks.extend(snapshot.task_data.uncompleted)
    if status in {"completed", "all"}:
        tasks.extend(snapshot.task_data.completed)
    if tag:
        tag = tag.lstrip("#").lower()
        tasks = [task for task in tasks if tag in task.tags]
    if priority:
        tasks = [task for task in tasks if task.priority == priority.lower()]

    return success_response(
        {
            "tasks": [task.to_dict() for task in tasks],
            "metadata": snapshot.metadata.to_dict(),
        }
    )


@task_router.post("/tool:add_task")
def add_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Add an open task; rejects duplicates and overlapping time windows."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, TASK_FIELDS)
    _require_fields(payload, ["name"])
    task = _task_from_payload(payload)

    added, token = _mutate(
        request, "add_task", lambda snap: task_operations.add_task(snap.task_data, task)
    )
    return success_response({"task": added.to_dict(), "token": token})


@task_router.post("/tool:edit_task")
def edit_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Set or clear a single field of an open task."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"name", "field", "value"})
    _require_fields(payload, ["name", "field", "value"])
    name = _required_string(payload, "name")
    field_name = _required_string(payload, "field")
    value = payload["value"]
    if value is not None and not isinstance(value, str):
        raise TaskError(
            "value must be a string.",
            {"type": type(value).__name__},
            code="INVALID_TYPE",
        )

    edited, token = _mutate(
        request,
        "edit_task",
        lambda snap: task_operations.edit_task(
            snap.task_data, name, field_name, value or ""
        ),
    )
    return success_response({"task": edited.to_dict(), "token": token})


@task_router.post("/tool:complete_task")
def complete_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"name"})
    _require_fields(payload, ["name"])
    name = _required_string(payload, "name")

    task, token = _mutate(
        request,
        "complete_task",
        lambda snap: task_operations.complete_task(snap.task_data, name),
    )
    return success_response({"task": task.to_dict(), "token": token})


@task_router.post("/tool:reopen_task")
def reopen_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"name"})
    _require_fields(payload, ["name"])
    name = _required_string(payload, "name")

    task, token = _mutate(
        request,
        "reopen_task",
        lambda snap: task_operations.reopen_task(snap.task_data, name),
    )
    return success_response({"task": task.to_dict(), "token": token})


@task_router.post("/tool:remove_task")
def remove_task(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"name"})
    _require_fields(payload, ["name"])
    name = _required_string(payload, "name")

    task, token = _mutate(
        request,
        "remove_task",
        lambda snap: task_operations.remove_task(snap.task_data, name),
    )
    return success_response({"task": task.to_dict(), "token": token})


@task_router.post("/tool:sort_tasks")
def sort_tasks(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Persist a new order for open tasks (`by`: priority or time)."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"by"})
    _require_fields(payload, ["by"])
    sort_by = _required_string(payload, "by")

    tasks, token = _mutate(
        request,
        "sort_tasks",
        lambda snap: task_operations.sort_tasks(snap.task_data, sort_by),
    )
    return success_response(
        {"tasks": [task.to_dict() for task in tasks], "token": token}
    )


@task_router.post("/tool:clear_completed")
def clear_completed(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, set())

    cleared, token = _mutate(
        request,
        "clear_completed",
        lambda snap: task_operations.clear_completed(snap.task_data),
    )
    return success_response({"cleared": cleared, "token": token})


@task_router.post("/tool:set_timezone")
def set_timezone(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"timezone"})
    _require_fields(payload, ["timezone"])
    timezone_name = _required_string(payload, "timezone")

    metadata, token = _mutate(
        request,
        "set_timezone",
        lambda snap: task_operations.set_timezone(snap.metadata, timezone_name),
    )
    return success_response({"timezone": metadata.timezone, "token": token})


@task_router.post("/tool:today_tasks")
def today_tasks(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Open tasks dated today in the document's timezone."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, set())

    snapshot = get_request_persistence(request).query_tasks()
    today = task_operations.today_in_timezone(snapshot.metadata.timezone)
    tasks = task_operations.tasks_for_day(snapshot.task_data.uncompleted, today)
    return success_response(
        {"date": today.isoformat(), "tasks": [task.to_dict() for task in tasks]}
    )


@task_router.post("/tool:check_conflict")
def check_conflict(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Report which open task, if any, overlaps a proposed time window."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, TASK_FIELDS | {"excludeName"})
    _require_fields(payload, ["name"])
    candidate = _task_from_payload({k: v for k, v in payload.items() if k != "excludeName"})
    exclude_name = _optional_string(payload, "excludeName")
    if candidate.time and not candidate.duration:
        candidate.duration = DEFAULT_DURATION

    snapshot = get_request_persistence(request).query_tasks()
    conflict = find_time_conflict(candidate, snapshot.task_data.uncompleted, exclude_name)
    return success_response({"conflict": conflict.to_dict() if conflict else None})


@task_router.post("/tool:analyze_diff")
def analyze_document_diff(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Diff two versions of the task document supplied by the caller."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"before", "after"})
    _require_fields(payload, ["before", "after"])
    before = payload["before"]
    after = payload["after"]
    if not isinstance(before, str) or not isinstance(after, str):
        raise TaskError(
            "before and after must be strings.",
            {"fields": ["before", "after"]},
            code="INVALID_TYPE",
        )

    diff = analyze_diff(before, after)
    return success_response(
        {
            "diff": diff.to_dict(),
            "hasChanges": has_changes(diff),
            "summary": summarize_diff(diff),
        }
    )


@task_router.post("/tool:sync_commits")
def sync_commits(payload: dict[str, Any], request: Request) -> dict[str, Any]:
    """Build change reports for externally authored commits of a push."""
    payload = _ensure_payload_dict(payload)
    _reject_unknown_fields(payload, {"commits"})
    _require_fields(payload, ["commits"])
    raw_commits = payload["commits"]
    if not isinstance(raw_commits, list) or not all(
        isinstance(item, dict) for item in raw_commits
    ):
        raise TaskError(
            "commits must be an array of objects.",
            {"type": type(raw_commits).__name__},
            code="INVALID_TYPE",
        )

    persistence = get_request_persistence(request)
    sync = CommitSync(persistence.store, persistence.identity)
    reports = sync.reports([CommitInfo.from_payload(item) for item in raw_commits])
    return success_response(
        {
            "reports": [
                {
                    "sha": report.commit.sha,
                    "message": report.commit.message,
                    "author": report.commit.author,
                    "url": report.commit.url,
                    "diff": report.diff.to_dict(),
                    "summary": summarize_diff(report.diff),
                }
                for report in reports
            ]
        }
    )
