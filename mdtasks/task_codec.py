"""Markdown task document codec.

The document is a small frontmatter block followed by a heading and a pipe
table. Decoding resolves table columns by header name, so a document whose
columns were reordered by hand still parses. Row problems are returned as
`ParseIssue` values rather than raised; the caller decides how to report them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from mdtasks.task_constants import (
    DEFAULT_TABLE_HEADER,
    HEADER_TO_FIELD,
    REQUIRED_COLUMNS,
    TABLE_COLUMNS,
)
from mdtasks.task_models import Metadata, Task, TaskData

FRONTMATTER_DELIMITER = "---"
FRONTMATTER_KEY_VALUE_PATTERN = re.compile(r"^(\w+):\s*(.*)$")
HEADING_PATTERN = re.compile(r"^#+\s")
TABLE_SEPARATOR_PATTERN = re.compile(r"^\|[\s:-]+\|")
LINE_BREAK = "<br>"
# An escaped character, a separator pipe, a run of plain text, or a lone backslash.
CELL_TOKEN_PATTERN = re.compile(r"\\.|\||[^|\\]+|\\")
CELL_ESCAPE_PATTERN = re.compile(r"\\(.)|<br>")
TAG_PATTERN = re.compile(r"#([^\s#]+)")

TABLE_HEADER = "| " + " | ".join(header for _, header in TABLE_COLUMNS) + " |"
TABLE_SEPARATOR = "| " + " | ".join(":--------" for _ in TABLE_COLUMNS) + " |"


@dataclass
class ParseIssue:
    line_number: int
    message: str
    level: str = "warning"


@dataclass
class RowResult:
    task: Task | None = None
    issue: ParseIssue | None = None


@dataclass
class DecodedDocument:
    metadata: Metadata
    tasks: list[Task] = field(default_factory=list)
    issues: list[ParseIssue] = field(default_factory=list)

    @property
    def task_data(self) -> TaskData:
        return TaskData.partition(self.tasks)


def parse_tags(text: str | None) -> list[str]:
    """Extract `#tag` tokens, lowercased and de-duplicated."""
    if not text:
        return []
    tags: list[str] = []
    for match in TAG_PATTERN.finditer(text):
        tag = match.group(1).lower()
        if tag not in tags:
            tags.append(tag)
    return tags


def format_tags(tags: list[str] | None) -> str:
    return " ".join(f"#{tag}" for tag in tags or [])


def escape_cell(value: str | None) -> str:
    """Escape a value for one table cell.

    Backslashes, pipes and literal `<br>` text are backslash-escaped; a bare
    `<br>` marks a newline.
    """
    if value is None:
        return ""
    text = str(value).replace("\r\n", "\n").replace("\\", "\\\\").replace("|", "\\|")
    return text.replace(LINE_BREAK, "\\" + LINE_BREAK).replace("\n", LINE_BREAK)


def unescape_cell(value: str) -> str:
    return CELL_ESCAPE_PATTERN.sub(
        lambda match: "\n" if match.group(1) is None else match.group(1), value
    )


def split_row(line: str) -> list[str]:
    """Split a pipe-table line into trimmed, unescaped cells."""
    stripped = line.strip()
    cells: list[str] = []
    current: list[str] = []
    ends_with_separator = False
    for match in CELL_TOKEN_PATTERN.finditer(stripped):
        token = match.group(0)
        ends_with_separator = token == "|"
        if ends_with_separator:
            cells.append("".join(current))
            current = []
        else:
            current.append(token)
    if not ends_with_separator:
        cells.append("".join(current))
    if stripped.startswith("|"):
        cells = cells[1:]
    return [unescape_cell(cell.strip()) for cell in cells]


def resolve_columns(header_line: str) -> dict[str, int]:
    """Map task fields to cell positions using the header row's labels."""
    columns: dict[str, int] = {}
    for index, label in enumerate(split_row(header_line)):
        key = HEADER_TO_FIELD.get(label.strip().lower())
        if key is not None and key not in columns:
            columns[key] = index
    return columns


def parse_row(cells: list[str], columns: dict[str, int], line_number: int) -> RowResult:
    """Turn one table row into a task, or report why it was skipped."""
    try:
        missing = [
            key
            for key in REQUIRED_COLUMNS
            if key not in columns or columns[key] >= len(cells)
        ]
        if missing:
            return RowResult(
                issue=ParseIssue(
                    line_number,
                    f"Row is missing required cells: {', '.join(missing)}",
                    "error",
                )
            )

        def cell(key: str) -> str | None:
            index = columns.get(key)
            if index is None or index >= len(cells):
                return None
            return cells[index] or None

        name = cell("name")
        if not name:
            return RowResult(
                issue=ParseIssue(line_number, "Skipping row with empty task name")
            )

        completed_cell = cells[columns["completed"]]
        priority = cell("priority")
        task = Task(
            name=name,
            completed="[x]" in completed_cell or "[X]" in completed_cell,
            date=cell("date"),
            time=cell("time"),
            duration=cell("duration"),
            priority=priority.lower() if priority else None,
            tags=parse_tags(cell("tags")),
            description=cell("description"),
            link=cell("link"),
            calendar_event_id=cell("calendar_event_id"),
            log=cell("log"),
        )
        return RowResult(task=task)
    except Exception as exc:
        return RowResult(
            issue=ParseIssue(line_number, f"Error parsing row: {exc}", "error")
        )


def _parse_frontmatter_line(
    line: str, metadata: Metadata, list_key: str | None
) -> str | None:
    """Apply one frontmatter line and return the open list key, if any."""
    if line.startswith("- ") or line == "-":
        if list_key == "tags":
            item = line[1:].strip().strip("'\"")
            if item:
                metadata.tags = (metadata.tags or []) + [item]
        return list_key

    match = FRONTMATTER_KEY_VALUE_PATTERN.match(line)
    if not match:
        return list_key

    key, value = match.group(1), match.group(2).strip()
    if key == "tags":
        if value.startswith("[") and value.endswith("]"):
            metadata.tags = [
                item.strip().strip("'\"")
                for item in value[1:-1].split(",")
                if item.strip()
            ]
            return None
        metadata.tags = []
        return "tags"
    if key == "last_synced" and value:
        metadata.last_synced = value.strip("'\"")
    elif key == "total_tasks":
        try:
            metadata.total_tasks = int(value)
        except ValueError:
            pass
    elif key == "timezone" and value:
        metadata.timezone = value.strip("'\"")
    return None


def decode(content: str | None) -> DecodedDocument:
    """Parse a task document into metadata, tasks and row-level issues."""
    metadata = Metadata()
    document = DecodedDocument(metadata=metadata)
    if not content or not content.strip():
        document.issues.append(ParseIssue(0, "Document is empty; no task table found"))
        return document

    in_frontmatter = False
    frontmatter_seen = False
    list_key: str | None = None
    columns: dict[str, int] | None = None
    header_line_index = -1

    for index, raw_line in enumerate(content.splitlines()):
        line = raw_line.strip()
        line_number = index + 1

        if columns is None:
            if line == FRONTMATTER_DELIMITER and (in_frontmatter or not frontmatter_seen):
                in_frontmatter = not in_frontmatter
                frontmatter_seen = True
                list_key = None
                continue
            if in_frontmatter:
                list_key = _parse_frontmatter_line(line, metadata, list_key)
                continue
            if metadata.table_header is None and HEADING_PATTERN.match(line):
                metadata.table_header = line
                continue
            if line.startswith("|") and "Completed" in line and "Task" in line:
                columns = resolve_columns(line)
                header_line_index = index
            continue

        if index == header_line_index + 1 and TABLE_SEPARATOR_PATTERN.match(line):
            continue
        if not line.startswith("|"):
            break

        result = parse_row(split_row(line), columns, line_number)
        if result.task is not None:
            document.tasks.append(result.task)
        if result.issue is not None:
            document.issues.append(result.issue)

    if columns is None:
        document.issues.append(ParseIssue(0, "No task table found in content"))
    return document


def _render_cell(task: Task, key: str) -> str:
    if key == "completed":
        return "[x]" if task.completed else "[ ]"
    if key == "tags":
        return escape_cell(format_tags(task.tags))
    return escape_cell(getattr(task, key))


def encode(task_data: TaskData, metadata: Metadata) -> str:
    """Render tasks and metadata into the Markdown document format."""
    lines = [FRONTMATTER_DELIMITER]
    if metadata.last_synced:
        lines.append(f"last_synced: {metadata.last_synced}")
    lines.append(f"total_tasks: {len(task_data.uncompleted)}")
    if metadata.timezone:
        lines.append(f"timezone: {metadata.timezone}")
    if metadata.tags:
        lines.append("tags:")
        lines.extend(f"  - {tag}" for tag in metadata.tags)
    lines.append(FRONTMATTER_DELIMITER)
    lines.append("")
    lines.append(metadata.table_header or DEFAULT_TABLE_HEADER)
    lines.append("")
    lines.append(TABLE_HEADER)
    lines.append(TABLE_SEPARATOR)

    for task in task_data.uncompleted + task_data.completed:
        cells = [_render_cell(task, key) for key, _ in TABLE_COLUMNS]
        lines.append("| " + " | ".join(cells) + " |")

    return "\n".join(lines) + "\n"
