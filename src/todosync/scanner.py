"""Workspace scanner that reconciles marker comments with persisted user state."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .due_dates import end_of_week, parse_due_annotation, remove_date_tokens, to_day, today
from .events import EventBus, ItemsChanged, ScanCompleted, ScanStarted
from .index import ItemIndex
from .models import DetectedItem, ItemStatus, ScannerConfig, utc_now
from .patterns import MarkerPattern, build_patterns, match_line, priority_for_type
from .store import MetadataStore
from .utils.identity import generate_id
from .workspace import TextDocument, Workspace, matches_any

__all__ = ["DEFAULT_BATCH_SIZE", "DEFAULT_MAX_FILES", "Scanner", "iter_batches"]

LOGGER = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 20
DEFAULT_MAX_FILES = 1000


def iter_batches(paths: Sequence[Path], size: int) -> Iterator[Sequence[Path]]:
    """Yield consecutive slices of ``paths`` holding at most ``size`` entries."""
    step = max(size, 1)
    for start in range(0, len(paths), step):
        yield paths[start:start + step]


class Scanner:
    """Detects marker comments and keeps the in-memory index in sync with them.

    The scanner is the only writer of its :class:`ItemIndex`. Status changes go
    through the :class:`MetadataStore`, which persists them; plain rescans only
    create missing records and never alter existing ones.
    """

    def __init__(
        self,
        workspace: Workspace,
        store: MetadataStore,
        config: Optional[ScannerConfig] = None,
        *,
        events: Optional[EventBus] = None,
        index: Optional[ItemIndex] = None,
    ) -> None:
        self.workspace = workspace
        self.store = store
        self.events = events if events is not None else EventBus()
        self.index = index if index is not None else ItemIndex()
        self.config = config or ScannerConfig()
        self._patterns: List[MarkerPattern] = build_patterns(self.config.custom_patterns)

    # Configuration ---------------------------------------------------------------
    def update_config(self, config: ScannerConfig) -> None:
        """Swap in new settings and recompile patterns without rescanning."""
        self.config = config
        self._patterns = build_patterns(config.custom_patterns)

    def should_scan_file(self, path: Path | str) -> bool:
        relative = self.workspace.relative_path(path)
        if relative is None:
            return False
        if matches_any(relative, self.config.exclude):
            return False
        return matches_any(relative, self.config.include)

    # Scanning ----------------------------------------------------------------------
    def scan_workspace(self) -> List[DetectedItem]:
        """Rebuild the whole index from the workspace files.

        Files are read in fixed-size batches; the reads of one batch overlap,
        batches run one after the other.
        """
        self.events.publish(ScanStarted())
        self.index.clear()

        if not self.workspace.folders:
            self.events.publish(ScanCompleted(count=0))
            return []

        try:
            files = self.workspace.find_files(
                self.config.include,
                self.config.exclude,
                max_results=self.config.max_files,
            )
            created = False
            for number, batch in enumerate(iter_batches(files, self.config.batch_size), start=1):
                LOGGER.debug("Scanning batch %d (%d file(s))", number, len(batch))
                created = self._scan_batch(batch) or created
            if created:
                self.store.flush()
        except Exception:
            LOGGER.error("Error scanning workspace", exc_info=True)
            self.events.publish(ScanCompleted(count=0))
            return self.open_items()

        self._publish_items_changed()
        self.events.publish(ScanCompleted(count=len(self.index)))
        return self.open_items()

    def _scan_batch(self, batch: Sequence[Path]) -> bool:
        """Read a batch concurrently, then ingest the results on this thread."""
        with ThreadPoolExecutor(max_workers=max(len(batch), 1)) as pool:
            documents = list(pool.map(self._read_document, batch))
        created = False
        for path, document in zip(batch, documents):
            if document is None:
                continue
            _, file_created = self._ingest(path, document)
            created = created or file_created
        return created

    def scan_file(self, path: Path | str, emit_event: bool = True) -> List[DetectedItem]:
        """Re-derive every item of one file, replacing whatever was indexed for it."""
        target = Path(path).resolve()
        document = self._read_document(target)
        if document is None:
            return []
        had_items = any(item.file_path == str(target) for item in self.index)
        items, created = self._ingest(target, document)
        if emit_event:
            if created:
                self.store.flush()
            if items or had_items:
                self._publish_items_changed()
        return items

    def _read_document(self, path: Path) -> Optional[TextDocument]:
        try:
            return TextDocument.open(path)
        except (OSError, UnicodeDecodeError) as error:
            LOGGER.warning("Error scanning file %s: %s", path, error)
            return None

    def _ingest(self, path: Path, document: TextDocument) -> Tuple[List[DetectedItem], bool]:
        file_path = str(path)
        self.index.remove_file(file_path)

        found: dict[str, DetectedItem] = {}
        created = False
        for line_number in range(document.line_count):
            line = document.line_at(line_number)
            for hit in match_line(line, self._patterns):
                item, was_created = self._build_item(file_path, line_number, hit.type, hit.raw_text, hit.description)
                created = created or was_created
                self.index.put(item)
                found[item.id] = item
        return list(found.values()), created

    def _build_item(
        self,
        file_path: str,
        line_number: int,
        marker_type: str,
        raw_text: str,
        description: str,
    ) -> Tuple[DetectedItem, bool]:
        item_id = generate_id(file_path, line_number)
        meta, created = self.store.ensure(item_id)
        annotation = parse_due_annotation(description)
        item = DetectedItem(
            id=item_id,
            file_path=file_path,
            line_number=line_number,
            type=marker_type,
            raw_text=raw_text,
            description=annotation.description or remove_date_tokens(raw_text).strip(),
            due_date=annotation.due_date,
            due_date_raw=annotation.raw,
            priority=priority_for_type(marker_type),
            status=meta.status,
            created_at=meta.created_at,
            completed_at=meta.completed_at,
            snoozed_until=meta.snoozed_until,
        )
        return item, created

    # Editor lifecycle hooks ----------------------------------------------------------
    def on_document_saved(self, path: Path | str) -> List[DetectedItem]:
        if not self.config.scan_on_save or not self.should_scan_file(path):
            return []
        return self.scan_file(path)

    def on_files_deleted(self, paths: Iterable[Path | str]) -> None:
        removed = False
        for path in paths:
            removed = bool(self.index.remove_file(str(Path(path).resolve()))) or removed
        if removed:
            self._publish_items_changed()

    # Queries -------------------------------------------------------------------------
    def open_items(self) -> List[DetectedItem]:
        """Items not yet completed (snoozed ones included)."""
        return self.index.filter(lambda item: item.status != ItemStatus.COMPLETED)

    def all_items(self) -> List[DetectedItem]:
        return self.index.values()

    def get_item(self, item_id: str) -> Optional[DetectedItem]:
        return self.index.get(item_id)

    def _dated_open_items(self) -> Iterator[Tuple[DetectedItem, date]]:
        for item in self.open_items():
            if item.due_date is None or item.status != ItemStatus.OPEN:
                continue
            yield item, to_day(item.due_date)

    def overdue_items(self, *, reference: Optional[date] = None) -> List[DetectedItem]:
        current = reference or today()
        return [item for item, due in self._dated_open_items() if due < current]

    def due_today_items(self, *, reference: Optional[date] = None) -> List[DetectedItem]:
        current = reference or today()
        return [item for item, due in self._dated_open_items() if due == current]

    def due_this_week_items(self, *, reference: Optional[date] = None) -> List[DetectedItem]:
        current = reference or today()
        tomorrow = current + timedelta(days=1)
        week_end = end_of_week(current)
        return [item for item, due in self._dated_open_items() if tomorrow <= due <= week_end]

    def no_due_date_items(self) -> List[DetectedItem]:
        return [item for item in self.open_items() if item.due_date is None and item.status == ItemStatus.OPEN]

    def completed_items(self) -> List[DetectedItem]:
        return self.index.filter(lambda item: item.status == ItemStatus.COMPLETED)

    def open_count(self) -> int:
        return sum(1 for item in self.open_items() if item.status == ItemStatus.OPEN)

    def due_count(self, *, reference: Optional[date] = None) -> int:
        return len(self.overdue_items(reference=reference)) + len(self.due_today_items(reference=reference))

    # Status mutations ----------------------------------------------------------------
    # Each returns False, leaving index and store untouched, when the store
    # could not persist the change.
    def mark_complete(self, item_id: str) -> bool:
        completed_at = utc_now()
        if self.store.set_status(item_id, ItemStatus.COMPLETED, completed_at=completed_at) is None:
            return False
        self._update_item(item_id, status=ItemStatus.COMPLETED, completed_at=completed_at)
        return True

    def mark_open(self, item_id: str) -> bool:
        if self.store.set_status(item_id, ItemStatus.OPEN) is None:
            return False
        self._update_item(item_id, status=ItemStatus.OPEN, completed_at=None, snoozed_until=None)
        return True

    def snooze(self, item_id: str, until: date | datetime) -> bool:
        until_day = to_day(until)
        if self.store.set_status(item_id, ItemStatus.SNOOZED, snoozed_until=until_day) is None:
            return False
        self._update_item(item_id, status=ItemStatus.SNOOZED, snoozed_until=until_day)
        return True

    def _update_item(self, item_id: str, **changes: object) -> None:
        item = self.index.get(item_id)
        if item is not None:
            self.index.put(item.model_copy(update=changes))
        self._publish_items_changed()

    def _publish_items_changed(self) -> None:
        self.events.publish(ItemsChanged(items=tuple(self.open_items())))
