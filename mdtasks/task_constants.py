"""Shared constants for the task document."""

from __future__ import annotations

import re

# (task field, column header) in rendering order.
TABLE_COLUMNS = [
    ("completed", "Completed"),
    ("name", "Task"),
    ("date", "Date"),
    ("time", "Time"),
    ("duration", "Duration"),
    ("priority", "Priority"),
    ("tags", "Tags"),
    ("description", "Description"),
    ("link", "Link"),
    ("calendar_event_id", "CalendarEventId"),
    ("log", "Log"),
]
REQUIRED_COLUMNS = ("completed", "name")
HEADER_TO_FIELD = {header.lower(): key for key, header in TABLE_COLUMNS}

DEFAULT_TABLE_HEADER = "# Task Table"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_DURATION = "1:00"
EMPTY_PLACEHOLDER = "(empty)"
NO_TAGS_PLACEHOLDER = "(none)"

INIT_COMMIT_MESSAGE = "[bot] init"
UPDATE_COMMIT_PREFIX = "[bot] update - "
BOT_COMMIT_PATTERNS = [
    re.compile(r"^\[bot\] update -"),
    re.compile(r"^\[bot\] init\s*$"),
]

DIFF_FIELDS = ("date", "time", "duration", "priority", "description", "link")
EDITABLE_FIELDS = (
    "name",
    "date",
    "time",
    "duration",
    "priority",
    "tags",
    "description",
    "link",
    "log",
)
# Clearing a field also clears the fields that only make sense with it.
CLEAR_DEPENDENTS = {
    "date": ("time", "duration"),
    "time": ("duration",),
}
