"""In-memory index of the items found by the most recent scans."""

from __future__ import annotations

from typing import Callable, Dict, Iterator, List, Optional

from .models import DetectedItem


class ItemIndex:
    """Id-keyed map of detected items, owned and written by a single scanner."""

    def __init__(self) -> None:
        self._items: Dict[str, DetectedItem] = {}

    def put(self, item: DetectedItem) -> None:
        self._items[item.id] = item

    def get(self, item_id: str) -> Optional[DetectedItem]:
        return self._items.get(item_id)

    def remove_file(self, file_path: str) -> List[str]:
        """Drop every item belonging to ``file_path`` and return the removed ids."""
        removed = [item_id for item_id, item in self._items.items() if item.file_path == file_path]
        for item_id in removed:
            del self._items[item_id]
        return removed

    def clear(self) -> None:
        self._items.clear()

    def values(self) -> List[DetectedItem]:
        return list(self._items.values())

    def filter(self, predicate: Callable[[DetectedItem], bool]) -> List[DetectedItem]:
        return [item for item in self._items.values() if predicate(item)]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[DetectedItem]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)
