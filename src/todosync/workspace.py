"""Workspace file discovery and line-addressed document editing."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

__all__ = [
    "LineEdit",
    "TextDocument",
    "Workspace",
    "glob_to_regex",
    "matches_any",
    "split_lines",
]


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> Pattern[str]:
    """Translate a workspace glob (``**``, ``*``, ``?``, ``{a,b}``) into a regex."""
    out: List[str] = []
    index = 0
    length = len(pattern)
    brace_depth = 0
    while index < length:
        char = pattern[index]
        if pattern.startswith("**/", index):
            out.append("(?:.*/)?")
            index += 3
            continue
        if pattern.startswith("/**", index) and index + 3 == length:
            out.append("(?:/.*)?")
            index += 3
            continue
        if pattern.startswith("**", index):
            out.append(".*")
            index += 2
            continue
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "{":
            brace_depth += 1
            out.append("(?:")
        elif char == "}" and brace_depth:
            brace_depth -= 1
            out.append(")")
        elif char == "," and brace_depth:
            out.append("|")
        else:
            out.append(re.escape(char))
        index += 1
    return re.compile("^" + "".join(out) + "$", re.IGNORECASE)


def split_lines(text: str) -> List[str]:
    """Split on LF only, keeping terminators (CRLF stays attached to its line)."""
    parts = text.split("\n")
    lines = [f"{part}\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        try:
            if glob_to_regex(pattern).match(relative_path):
                return True
        except re.error:
            continue
    return False


class Workspace:
    """Set of root folders whose files are candidates for scanning."""

    def __init__(self, folders: Sequence[Path | str] = ()) -> None:
        self.folders: Tuple[Path, ...] = tuple(Path(folder).resolve() for folder in folders)

    def relative_path(self, path: Path | str) -> Optional[str]:
        """Return ``path`` relative to the first folder containing it, POSIX style."""
        candidate = Path(path).resolve()
        for folder in self.folders:
            try:
                return candidate.relative_to(folder).as_posix()
            except ValueError:
                continue
        return None

    def find_files(
        self,
        include: Sequence[str],
        exclude: Sequence[str],
        max_results: Optional[int] = None,
    ) -> List[Path]:
        """Enumerate files matching ``include`` and not ``exclude``, sorted per folder."""
        results: List[Path] = []
        for folder in self.folders:
            for root, dirnames, filenames in os.walk(folder):
                root_path = Path(root)
                relative_root = root_path.relative_to(folder).as_posix()
                prefix = "" if relative_root == "." else f"{relative_root}/"
                dirnames[:] = sorted(
                    name for name in dirnames if not matches_any(f"{prefix}{name}", exclude)
                )
                for name in sorted(filenames):
                    relative = f"{prefix}{name}"
                    if matches_any(relative, exclude) or not matches_any(relative, include):
                        continue
                    results.append(root_path / name)
                    if max_results is not None and len(results) >= max_results:
                        return results
        return results


@dataclass(frozen=True)
class LineEdit:
    """Replace (or delete, when ``replacement`` is ``None``) one line of a document.

    ``expected`` is the text the line must still contain for the edit to apply.
    """

    line_number: int
    expected: str
    replacement: Optional[str] = None


class TextDocument:
    """Whole-file text buffer addressed by 0-based line numbers."""

    def __init__(self, path: Path, text: str, *, encoding: str = "utf-8") -> None:
        self.path = path
        self.encoding = encoding
        self._lines: List[str] = split_lines(text)
        self.dirty = False

    @classmethod
    def open(cls, path: Path | str, *, encoding: str = "utf-8") -> "TextDocument":
        target = Path(path)
        with target.open("r", encoding=encoding, newline="") as handle:
            return cls(target, handle.read(), encoding=encoding)

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def get_text(self) -> str:
        return "".join(self._lines)

    def line_at(self, line_number: int) -> str:
        """Return the line's text without its terminator."""
        if line_number < 0 or line_number >= len(self._lines):
            raise IndexError(f"Line {line_number} is out of range for {self.path}")
        return self._lines[line_number].rstrip("\r\n")

    def _terminator(self, line_number: int) -> str:
        raw = self._lines[line_number]
        return raw[len(raw.rstrip("\r\n")):]

    def apply(self, edit: LineEdit) -> bool:
        """Apply ``edit`` if the target line still holds the expected text."""
        if edit.line_number < 0 or edit.line_number >= len(self._lines):
            return False
        if edit.expected not in self.line_at(edit.line_number):
            return False
        if edit.replacement is None:
            self._delete_line(edit.line_number)
        else:
            terminator = self._terminator(edit.line_number)
            self._lines[edit.line_number] = edit.replacement + terminator
        self.dirty = True
        return True

    def _delete_line(self, line_number: int) -> None:
        is_last = line_number == len(self._lines) - 1
        if is_last and line_number > 0 and not self._terminator(line_number):
            # Removing an unterminated last line also drops the preceding terminator.
            previous = self._lines[line_number - 1]
            self._lines[line_number - 1] = previous.rstrip("\r\n")
        del self._lines[line_number]

    def save(self) -> None:
        with self.path.open("w", encoding=self.encoding, newline="") as handle:
            handle.write(self.get_text())
        self.dirty = False
