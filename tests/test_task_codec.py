from mdtasks.task_codec import (
    TABLE_HEADER,
    decode,
    encode,
    escape_cell,
    parse_row,
    parse_tags,
    resolve_columns,
    split_row,
)
from mdtasks.task_models import Metadata, Task, TaskData


SAMPLE_DOCUMENT = """---
last_synced: 2024-05-01T08:00:00.000Z
total_tasks: 2
timezone: Europe/Berlin
tags:
  - home
  - work
---

# My Tasks

| Completed | Task | Date | Time | Duration | Priority | Tags | Description | Link | CalendarEventId |
| :-------- | :--- | :--- | :--- | :------- | :------- | :--- | :---------- | :--- | :-------------- |
| [ ] | Write report | 2024-05-02 | 09:00 | 1:30 | HIGH | #work | Quarterly numbers | https://example.com/r | evt-1 |
| [x] | Buy milk | | | | low | #home | | | |
| [ ] | Call mom | 2024-05-03 | | | | #family #home | | | |
"""


def _sample_tasks() -> TaskData:
    return TaskData(
        uncompleted=[
            Task(
                name="Write report",
                date="2024-05-02",
                time="09:00",
                duration="1:30",
                priority="high",
                tags=["work"],
                description="Line one\nLine | two",
                link="https://example.com/report",
            ),
            Task(name="Stretch"),
        ],
        completed=[Task(name="Buy milk", completed=True, tags=["home"], log="done")],
    )


def test_decode_reads_frontmatter_and_rows():
    document = decode(SAMPLE_DOCUMENT)

    assert document.issues == []
    assert document.metadata.last_synced == "2024-05-01T08:00:00.000Z"
    assert document.metadata.total_tasks == 2
    assert document.metadata.timezone == "Europe/Berlin"
    assert document.metadata.tags == ["home", "work"]
    assert document.metadata.table_header == "# My Tasks"

    names = [task.name for task in document.tasks]
    assert names == ["Write report", "Buy milk", "Call mom"]
    report = document.tasks[0]
    assert report.priority == "high"
    assert report.tags == ["work"]
    assert report.calendar_event_id == "evt-1"
    assert report.log is None
    assert document.tasks[1].completed is True
    assert document.tasks[2].tags == ["family", "home"]

    data = document.task_data
    assert [task.name for task in data.completed] == ["Buy milk"]
    assert [task.name for task in data.uncompleted] == ["Write report", "Call mom"]


def test_encode_then_decode_preserves_tasks_and_metadata():
    metadata = Metadata(
        last_synced="2024-05-01T08:00:00.000Z",
        tags=["home", "work"],
        table_header="# Weekly",
        timezone="America/New_York",
    )
    task_data = _sample_tasks()

    content = encode(task_data, metadata)
    document = decode(content)

    assert document.issues == []
    assert document.task_data == task_data
    assert document.metadata.timezone == "America/New_York"
    assert document.metadata.tags == ["home", "work"]
    assert document.metadata.table_header == "# Weekly"
    assert document.metadata.total_tasks == 2


def test_encode_writes_uncompleted_rows_first():
    content = encode(_sample_tasks(), Metadata())
    lines = content.splitlines()

    header_index = lines.index(TABLE_HEADER)
    rows = lines[header_index + 2 :]
    assert rows[0].startswith("| [ ] | Write report |")
    assert rows[1].startswith("| [ ] | Stretch |")
    assert rows[2].startswith("| [x] | Buy milk |")
    assert "# Task Table" in lines
    assert content.endswith("\n")


def test_decode_resolves_columns_by_header_name():
    content = "\n".join(
        [
            "| Task | Priority | Completed | Date |",
            "| --- | --- | --- | --- |",
            "| Water plants | medium | [x] | 2024-06-01 |",
        ]
    )

    document = decode(content)

    assert document.issues == []
    task = document.tasks[0]
    assert task.name == "Water plants"
    assert task.priority == "medium"
    assert task.completed is True
    assert task.date == "2024-06-01"


def test_decode_skips_malformed_row_and_keeps_the_rest():
    rows = [
        "| [ ] | First |",
        "| [ ] | Second |",
        "| [ ] |",
        "| [ ] | Fourth |",
        "| [x] | Fifth |",
    ]
    content = "\n".join(["# Tasks", "", "| Completed | Task |", "| --- | --- |", *rows])

    document = decode(content)

    assert [task.name for task in document.tasks] == ["First", "Second", "Fourth", "Fifth"]
    assert len(document.issues) == 1
    issue = document.issues[0]
    assert issue.line_number == 7
    assert issue.level == "error"
    assert "name" in issue.message


def test_decode_reports_empty_name_as_warning():
    content = "| Completed | Task |\n| --- | --- |\n| [ ] |  |\n"

    document = decode(content)

    assert document.tasks == []
    assert document.issues[0].level == "warning"
    assert document.issues[0].message == "Skipping row with empty task name"


def test_decode_without_table_reports_issue():
    document = decode("---\ntimezone: UTC\n---\n\nJust some notes.\n")

    assert document.tasks == []
    assert document.metadata.timezone == "UTC"
    assert [issue.message for issue in document.issues] == [
        "No task table found in content"
    ]


def test_decode_empty_content():
    document = decode("")

    assert document.tasks == []
    assert len(document.issues) == 1


def test_decode_stops_at_first_non_table_line():
    content = "\n".join(
        [
            "| Completed | Task |",
            "| --- | --- |",
            "| [ ] | Inside |",
            "",
            "| [ ] | Outside |",
        ]
    )

    document = decode(content)

    assert [task.name for task in document.tasks] == ["Inside"]


def test_decode_reads_inline_tag_list():
    document = decode("---\ntags: [a, 'b']\n---\n| Completed | Task |\n")

    assert document.metadata.tags == ["a", "b"]


def test_split_row_keeps_escaped_pipes():
    assert split_row(r"| a \| b | c |") == ["a | b", "c"]


def test_escape_cell_escapes_pipes_and_newlines():
    assert escape_cell("a|b\nc") == r"a\|b<br>c"
    assert escape_cell(None) == ""


def test_literal_br_and_backslashes_survive_round_trip():
    data = TaskData(
        uncompleted=[
            Task(name="Fix <br> tag", description="use <br> here"),
            Task(name="Backup", description="C:\\path\\", link="https://example.com/a\\"),
            Task(name="Mixed", description="a\\<br>b\nc|d"),
        ]
    )

    document = decode(encode(data, Metadata()))

    assert document.issues == []
    assert document.task_data == data


def test_escape_cell_marks_literal_br():
    assert escape_cell("x<br>y") == r"x\<br>y"
    assert split_row(r"| x\<br>y | a<br>b | c\\ |") == ["x<br>y", "a\nb", "c\\"]


def test_parse_tags_lowercases_and_dedupes():
    assert parse_tags("#Work #home #work") == ["work", "home"]
    assert parse_tags("") == []


def test_parse_row_reports_missing_required_cells():
    columns = resolve_columns("| Completed | Task |")

    result = parse_row(["[ ]"], columns, 12)

    assert result.task is None
    assert result.issue.line_number == 12
    assert result.issue.level == "error"
