"""Write structured changes (due dates, completion, deletion) back into source comments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional, Union

from .due_dates import DATE_TOKEN_PATTERN, format_date, remove_date_tokens
from .models import DetectedItem
from .patterns import MARKER_KEYWORD_PATTERN, MARKER_PREFIX_PATTERN
from .scanner import Scanner
from .workspace import LineEdit, TextDocument

__all__ = [
    "DONE_TOKEN",
    "Location",
    "SyncEngine",
    "clear_due_date_text",
    "mark_done_text",
    "set_due_date_text",
]

LOGGER = logging.getLogger(__name__)

DONE_TOKEN = "DONE"

Notifier = Callable[[str], None]
Confirmer = Callable[[str], bool]
ItemRef = Union[str, DetectedItem]


@dataclass(frozen=True)
class Location:
    """Cursor position inside a file (0-based line and column)."""

    path: Path
    line: int
    column: int = 0


def set_due_date_text(line: str, due: date | datetime) -> str:
    """Return ``line`` with its date token replaced, or a new ``(@date)`` token inserted."""
    stamp = format_date(due)
    existing = DATE_TOKEN_PATTERN.search(line)
    if existing is not None:
        start, end = existing.span("at")
        return f"{line[:start]}@{stamp}{line[end:]}"

    marker = MARKER_PREFIX_PATTERN.search(line)
    if marker is None:
        return f"{line.rstrip()} @{stamp}"
    prefix = line[: marker.end(1)]
    suffix = line[marker.end():].strip()
    if not suffix:
        return f"{prefix}(@{stamp}):"
    return f"{prefix}(@{stamp}): {suffix}"


def clear_due_date_text(line: str) -> str:
    """Return ``line`` without any date token."""
    return remove_date_tokens(line)


def mark_done_text(line: str) -> str:
    """Replace each marker keyword on the line with ``DONE``."""
    return MARKER_KEYWORD_PATTERN.sub(DONE_TOKEN, line)


def _default_notify(message: str) -> None:
    LOGGER.warning(message)


def _decline(_: str) -> bool:
    return False


class SyncEngine:
    """Applies single-line edits for detected items and rescans the edited file.

    Failures never propagate: they are logged, passed to ``notify`` and
    reported as ``False``.
    """

    def __init__(
        self,
        scanner: Scanner,
        *,
        notify: Optional[Notifier] = None,
        confirm: Optional[Confirmer] = None,
        open_location: Optional[Callable[[Location], None]] = None,
    ) -> None:
        self.scanner = scanner
        self._notify = notify or _default_notify
        self._confirm = confirm or _decline
        self._open_location = open_location

    def _resolve(self, ref: ItemRef) -> Optional[DetectedItem]:
        if isinstance(ref, DetectedItem):
            return ref
        item = self.scanner.get_item(ref)
        if item is None:
            self._notify(f"No detected item with id {ref}")
        return item

    def _rewrite(
        self,
        item: DetectedItem,
        transform: Optional[Callable[[str], str]],
        *,
        action: str,
    ) -> Optional[str]:
        """Apply ``transform`` (or a deletion when ``None``) to the item's line and save.

        Returns the line's previous text, or ``None`` when nothing was written.
        """
        try:
            document = TextDocument.open(item.file_path)
            if item.line_number >= document.line_count:
                return self._reject(item, action)
            previous = document.line_at(item.line_number)
            edit = LineEdit(
                line_number=item.line_number,
                expected=item.raw_text,
                replacement=transform(previous) if transform is not None else None,
            )
            if not document.apply(edit):
                return self._reject(item, action)
            document.save()
        except (OSError, UnicodeDecodeError) as error:
            LOGGER.error("Error trying to %s for %s:%d: %s", action, item.file_path, item.line_number + 1, error)
            self._notify(f"Failed to {action}: {error}")
            return None
        return previous

    def _reject(self, item: DetectedItem, action: str) -> None:
        LOGGER.warning(
            "Line %d of %s no longer holds %r; cannot %s",
            item.line_number + 1,
            item.file_path,
            item.raw_text,
            action,
        )
        self._notify(f"Failed to {action}: {item.file_path} changed since the last scan")
        return None

    def _restore_line(self, item: DetectedItem, written: str, previous: str) -> None:
        try:
            document = TextDocument.open(item.file_path)
            if document.apply(LineEdit(line_number=item.line_number, expected=written, replacement=previous)):
                document.save()
                return
        except (OSError, UnicodeDecodeError) as error:
            LOGGER.error("Error restoring %s:%d: %s", item.file_path, item.line_number + 1, error)
            return
        LOGGER.error("Could not restore line %d of %s", item.line_number + 1, item.file_path)

    def set_due_date(self, ref: ItemRef, due: date | datetime) -> bool:
        item = self._resolve(ref)
        if item is None:
            return False
        previous = self._rewrite(item, lambda line: set_due_date_text(line, due), action="add reminder")
        if previous is None:
            return False
        self.scanner.scan_file(item.file_path)
        return True

    def clear_due_date(self, ref: ItemRef) -> bool:
        item = self._resolve(ref)
        if item is None:
            return False
        previous = self._rewrite(item, clear_due_date_text, action="remove reminder")
        if previous is None:
            return False
        self.scanner.scan_file(item.file_path)
        return True

    def mark_done(self, ref: ItemRef) -> bool:
        """Rewrite the marker to ``DONE`` and mark the item complete.

        The file is not rescanned: the rewritten line no longer matches a
        marker and the completed item stays in the index. When the status
        cannot be persisted the line is put back and ``False`` is returned.
        """
        item = self._resolve(ref)
        if item is None:
            return False
        previous = self._rewrite(item, mark_done_text, action="mark done")
        if previous is None:
            return False
        if self.scanner.mark_complete(item.id):
            return True
        self._restore_line(item, mark_done_text(previous), previous)
        self._notify("Failed to mark done: the item's status could not be saved")
        return False

    def delete_line(self, ref: ItemRef, confirmed: Optional[bool] = None) -> bool:
        """Remove the item's whole line after confirmation, then rescan the file."""
        item = self._resolve(ref)
        if item is None:
            return False
        if confirmed is None:
            confirmed = self._confirm(f'Delete this {item.type} comment?\n"{item.description}"')
        if not confirmed:
            return False
        if self._rewrite(item, None, action="delete line") is None:
            return False
        self.scanner.scan_file(item.file_path)
        return True

    def navigate(self, ref: ItemRef) -> Optional[Location]:
        item = self._resolve(ref)
        if item is None:
            return None
        path = Path(item.file_path)
        try:
            document = TextDocument.open(path)
        except (OSError, UnicodeDecodeError) as error:
            LOGGER.error("Error navigating to %s: %s", path, error)
            self._notify(f"Failed to open file: {path}")
            return None
        line = min(item.line_number, max(document.line_count - 1, 0))
        location = Location(path=path, line=line)
        if self._open_location is not None:
            self._open_location(location)
        return location
