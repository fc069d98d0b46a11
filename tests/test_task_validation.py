import pytest

from mdtasks.task_models import Task
from mdtasks.task_validation import (
    collect_invalid_tasks,
    field_error_message,
    validate_field,
    validate_task,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [("23:59", True), ("00:00", True), ("24:00", False), ("9:00", False), ("12:60", False)],
)
def test_time_validation(value, expected):
    assert validate_field("time", value) is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [("2:30", True), ("0:05", True), ("12:00", True), ("2:75", False), ("230", False)],
)
def test_duration_validation(value, expected):
    assert validate_field("duration", value) is expected


def test_date_validation_is_syntactic():
    assert validate_field("date", "2024-02-30") is True
    assert validate_field("date", "2024-2-3") is False
    assert validate_field("date", "tomorrow") is False


def test_link_requires_scheme_and_host():
    assert validate_field("link", "https://example.com/path") is True
    assert validate_field("link", "example.com") is False
    assert validate_field("link", "") is False
    assert validate_field("link", "mailto:bob@example.com") is True
    assert validate_field("link", "urn:isbn:0451450523") is True
    assert validate_field("link", "https://exa mple.com") is False
    assert validate_field("link", "mailto:") is False


def test_priority_must_be_known_value():
    assert validate_field("priority", "urgent") is True
    assert validate_field("priority", "critical") is False


def test_unknown_field_is_invalid():
    assert validate_field("color", "blue") is False


def test_validate_task_collects_errors():
    task = Task(name="  ", time="25:00", link="nope")

    result = validate_task(task)

    assert result.valid is False
    assert "Task name cannot be empty" in result.errors
    assert any("Invalid time format" in error for error in result.errors)
    assert any("Invalid link format" in error for error in result.errors)


def test_validate_task_warns_on_partial_schedule():
    result = validate_task(Task(name="Run", time="07:00", duration="0:45"))

    assert result.valid is True
    assert result.warnings == ["time is set without a date"]

    result = validate_task(Task(name="Run", date="2024-05-01", duration="0:45"))

    assert result.warnings == ["duration is set without a time"]


def test_collect_invalid_tasks_itemizes_by_index():
    tasks = [
        Task(name="Good"),
        Task(name="Bad", duration="1:99"),
        Task(name="Worse", priority="someday"),
    ]

    invalid = collect_invalid_tasks(tasks)

    assert [item["index"] for item in invalid] == [1, 2]
    assert invalid[0]["name"] == "Bad"
    assert invalid[1]["errors"] == ["Invalid priority: 'someday'"]


def test_field_error_message_falls_back_to_generic_text():
    assert field_error_message("name", "") == "Invalid value for name: ''"
