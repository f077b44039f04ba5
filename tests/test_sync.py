from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from conftest import TinyWorkspace, locked_database
from todosync.models import ItemStatus
from todosync.sync import Location, clear_due_date_text, mark_done_text, set_due_date_text
from todosync.utils.identity import generate_id

MARCH_FIRST = date(2024, 3, 1)


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("// TODO: fix parser", "// TODO(@2024-03-01): fix parser"),
        ("    # FIXME fix parser", "    # FIXME(@2024-03-01): fix parser"),
        ("// TODO:", "// TODO(@2024-03-01):"),
        ("# TODO(@2023-12-24): wrap gifts", "# TODO(@2024-03-01): wrap gifts"),
        ("# TODO: ship @tomorrow", "# TODO: ship @2024-03-01"),
        ("plain text", "plain text @2024-03-01"),
    ],
)
def test_set_due_date_text(line: str, expected: str) -> None:
    assert set_due_date_text(line, MARCH_FIRST) == expected


def test_clear_and_done_text() -> None:
    assert clear_due_date_text("// TODO(@2024-03-01): fix parser") == "// TODO: fix parser"
    assert clear_due_date_text("# TODO: ship @tomorrow please") == "# TODO: ship please"
    assert clear_due_date_text("# TODO: nothing to strip") == "# TODO: nothing to strip"
    assert clear_due_date_text("# TODO: ping @todayish team") == "# TODO: ping @todayish team"
    assert mark_done_text("// fixme: tidy") == "// DONE: tidy"


def _scan_single(workspace: TinyWorkspace, relative: str, content: str):
    path = workspace.write(relative, content)
    items = workspace.scanner.scan_file(path)
    assert len(items) == 1
    return path, items[0]


def test_set_due_date_rewrites_and_rescans(tiny_workspace: TinyWorkspace) -> None:
    path, item = _scan_single(tiny_workspace, "src/app.js", "const x = 1;\n// TODO: fix parser\n")
    engine = tiny_workspace.engine()

    assert engine.set_due_date(item, MARCH_FIRST)

    assert path.read_text(encoding="utf-8") == "const x = 1;\n// TODO(@2024-03-01): fix parser\n"
    rescanned = tiny_workspace.scanner.get_item(item.id)
    assert rescanned.due_date == MARCH_FIRST
    assert rescanned.due_date_raw == "2024-03-01"
    assert rescanned.description == "fix parser"

    assert engine.clear_due_date(item.id)
    assert path.read_text(encoding="utf-8") == "const x = 1;\n// TODO: fix parser\n"
    assert tiny_workspace.scanner.get_item(item.id).due_date is None


def test_mark_done_rewrites_keyword_and_completes(tiny_workspace: TinyWorkspace) -> None:
    path, item = _scan_single(tiny_workspace, "main.py", "# TODO: remove flag\nprint('hi')\n")
    engine = tiny_workspace.engine()

    assert engine.mark_done(item.id)

    assert path.read_text(encoding="utf-8") == "# DONE: remove flag\nprint('hi')\n"
    completed = tiny_workspace.scanner.get_item(item.id)
    assert completed.status is ItemStatus.COMPLETED
    assert tiny_workspace.store.get(item.id).status is ItemStatus.COMPLETED


def test_mark_done_is_undone_when_status_cannot_be_saved(tiny_workspace: TinyWorkspace) -> None:
    path, item = _scan_single(tiny_workspace, "locked.py", "x = 1\n# TODO: x\n")
    messages: list[str] = []
    engine = tiny_workspace.engine(notify=messages.append)

    with locked_database(tiny_workspace.db_path):
        assert not engine.mark_done(item)

    assert path.read_text(encoding="utf-8") == "x = 1\n# TODO: x\n"
    assert tiny_workspace.scanner.get_item(item.id).status is ItemStatus.OPEN
    assert tiny_workspace.store.get(item.id).status is ItemStatus.OPEN
    assert messages == ["Failed to mark done: the item's status could not be saved"]

    assert engine.mark_done(item)
    assert path.read_text(encoding="utf-8") == "x = 1\n# DONE: x\n"


def test_delete_line_requires_confirmation(tiny_workspace: TinyWorkspace) -> None:
    path = tiny_workspace.write("list.py", "# TODO: first\n# BUG: second\n")
    first, second = tiny_workspace.scanner.scan_file(path)
    prompts: list[str] = []

    declining = tiny_workspace.engine(confirm=lambda message: prompts.append(message) or False)
    assert not declining.delete_line(first)
    assert prompts == ['Delete this TODO comment?\n"first"']
    assert path.read_text(encoding="utf-8") == "# TODO: first\n# BUG: second\n"

    engine = tiny_workspace.engine(confirm=lambda message: True)
    assert engine.delete_line(first)
    assert path.read_text(encoding="utf-8") == "# BUG: second\n"

    # The surviving marker moved up a line and now owns the first line's identity.
    remaining = tiny_workspace.scanner.all_items()
    assert [(item.type, item.line_number) for item in remaining] == [("BUG", 0)]
    assert remaining[0].id == generate_id(str(path), 0) == first.id
    assert tiny_workspace.scanner.get_item(second.id) is None


def test_stale_edit_is_rejected(tiny_workspace: TinyWorkspace) -> None:
    path, item = _scan_single(tiny_workspace, "stale.py", "# TODO: original\n")
    path.write_text("x = 1\n# TODO: original\n", encoding="utf-8")
    messages: list[str] = []
    engine = tiny_workspace.engine(notify=messages.append)

    assert not engine.set_due_date(item, MARCH_FIRST)
    assert not engine.delete_line(item, confirmed=True)

    assert path.read_text(encoding="utf-8") == "x = 1\n# TODO: original\n"
    assert len(messages) == 2
    assert all("changed since the last scan" in message for message in messages)


def test_unreadable_file_reports_failure(tiny_workspace: TinyWorkspace) -> None:
    path, item = _scan_single(tiny_workspace, "gone.py", "# TODO: vanish\n")
    path.unlink()
    messages: list[str] = []
    engine = tiny_workspace.engine(notify=messages.append)

    assert not engine.mark_done(item)
    assert messages and messages[0].startswith("Failed to mark done")
    assert tiny_workspace.scanner.get_item(item.id).status is ItemStatus.OPEN
    assert engine.navigate(item) is None


def test_unknown_id_is_reported(tiny_workspace: TinyWorkspace) -> None:
    messages: list[str] = []
    engine = tiny_workspace.engine(notify=messages.append)
    assert not engine.set_due_date("missing", MARCH_FIRST)
    assert messages == ["No detected item with id missing"]


def test_navigate_opens_location(tiny_workspace: TinyWorkspace) -> None:
    path, item = _scan_single(tiny_workspace, "nav.py", "a = 1\nb = 2\n# XXX: look here\n")
    opened: list[Location] = []
    engine = tiny_workspace.engine(open_location=opened.append)

    location = engine.navigate(item.id)

    assert location == Location(path=Path(str(path)), line=2, column=0)
    assert opened == [location]
