from __future__ import annotations

from pathlib import Path

from todosync.workspace import LineEdit, TextDocument, Workspace, glob_to_regex


def test_glob_translation() -> None:
    assert glob_to_regex("**/*.py").match("main.py")
    assert glob_to_regex("**/*.py").match("src/pkg/main.py")
    assert not glob_to_regex("src/*.py").match("src/pkg/main.py")
    assert glob_to_regex("**/*.{ts,js}").match("web/app.JS")
    assert glob_to_regex("**/node_modules/**").match("node_modules")
    assert glob_to_regex("**/node_modules/**").match("web/node_modules/lib/index.js")


def test_find_files_honours_include_exclude_and_limit(tmp_path: Path) -> None:
    for relative in ("a.py", "src/b.py", "src/c.txt", "node_modules/d.py", "src/node_modules/e.py"):
        target = tmp_path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("x\n", encoding="utf-8")

    workspace = Workspace([tmp_path])
    found = workspace.find_files(["**/*.py"], ["**/node_modules/**"])
    relative = sorted(workspace.relative_path(path) for path in found)
    assert relative == ["a.py", "src/b.py"]

    assert len(workspace.find_files(["**/*"], [], max_results=2)) == 2


def test_document_replace_preserves_line_endings(tmp_path: Path) -> None:
    path = tmp_path / "win.py"
    path.write_bytes(b"first\r\n# TODO: x\r\nlast")
    document = TextDocument.open(path)
    assert document.line_count == 3
    assert document.line_at(1) == "# TODO: x"

    assert document.apply(LineEdit(line_number=1, expected="TODO", replacement="# DONE: x"))
    document.save()
    assert path.read_bytes() == b"first\r\n# DONE: x\r\nlast"


def test_document_rejects_stale_edits(tmp_path: Path) -> None:
    path = tmp_path / "code.py"
    path.write_text("a\nb\n", encoding="utf-8")
    document = TextDocument.open(path)
    assert not document.apply(LineEdit(line_number=5, expected="a", replacement="z"))
    assert not document.apply(LineEdit(line_number=0, expected="TODO", replacement="z"))
    assert not document.dirty


def test_deleting_last_unterminated_line(tmp_path: Path) -> None:
    path = tmp_path / "tail.py"
    path.write_text("keep\n# TODO: drop", encoding="utf-8")
    document = TextDocument.open(path)
    assert document.apply(LineEdit(line_number=1, expected="TODO"))
    document.save()
    assert path.read_text(encoding="utf-8") == "keep"
