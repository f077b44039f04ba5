"""Durable storage for user-controlled marker state."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import sqlite3
import tempfile
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

from pydantic import ValidationError

from .models import ItemStatus, PersistedMeta, utc_now

DEFAULT_DB_PATH = Path(".todosync/state.sqlite")
META_KEY = "todosync.todos.meta"
LOGGER = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when no writable location exists for the state database."""


def _as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a timezone-aware ISO 8601 string."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


def _dump_meta(meta: PersistedMeta) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": meta.id,
        "status": meta.status.value,
        "created_at": _as_iso(meta.created_at),
    }
    if meta.completed_at is not None:
        payload["completed_at"] = _as_iso(meta.completed_at)
    if meta.snoozed_until is not None:
        payload["snoozed_until"] = meta.snoozed_until.isoformat()
    return payload


class MetadataStore:
    """SQLite-backed key/value store holding the serialised metadata list.

    The whole list lives under a single key. It is materialised into memory on
    open and rewritten wholesale by :meth:`flush`.
    """

    @staticmethod
    def _is_writable(path: Path) -> bool:
        parent = path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        if path.exists():
            return os.access(path, os.W_OK)
        return os.access(parent, os.W_OK)

    @staticmethod
    def _fallback_db_path(source: Path) -> Path:
        digest = hashlib.sha1(source.as_posix().encode("utf-8")).hexdigest()[:12]
        fallback_dir = Path(tempfile.gettempdir()) / "todosync" / "db" / digest
        fallback_dir.mkdir(parents=True, exist_ok=True)
        return fallback_dir / source.name

    @classmethod
    def _resolve_db_path(cls, requested: Path) -> Path:
        resolved = requested.resolve()
        if cls._is_writable(resolved):
            return resolved
        fallback = cls._fallback_db_path(resolved)
        if not fallback.exists():
            if resolved.exists() and os.access(resolved, os.R_OK):
                try:
                    shutil.copy2(resolved, fallback)
                except OSError:
                    fallback.touch(exist_ok=True)
            else:
                fallback.touch(exist_ok=True)
        if not cls._is_writable(fallback):
            raise StoreError(f"Unable to locate writable database path (attempted {requested})")
        return fallback

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH, *, timeout: float = 5.0) -> None:
        self.timeout = timeout
        requested_path = Path(db_path)
        self.db_path = self._resolve_db_path(requested_path)
        if self.db_path != requested_path.resolve():
            LOGGER.warning(
                "Database path %s is not writable; using fallback %s",
                requested_path,
                self.db_path,
            )
        self._conn: Optional[sqlite3.Connection] = self._open_connection()
        self._bootstrap()
        self._records: Dict[str, PersistedMeta] = self._load()

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "MetadataStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, base_path: Optional[Path] = None) -> "MetadataStore":
        paths = config.get("paths") or {}
        db_value = paths.get("db_path") if isinstance(paths, Mapping) else None
        db_path = Path(db_value) if isinstance(db_value, str) and db_value.strip() else DEFAULT_DB_PATH
        if not db_path.is_absolute() and base_path is not None:
            db_path = base_path / db_path
        return cls(db_path)

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        connection.row_factory = sqlite3.Row
        return connection

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _load(self) -> Dict[str, PersistedMeta]:
        row = self._conn.execute("SELECT value FROM state WHERE key = ?", (META_KEY,)).fetchone()
        if not row:
            return {}
        try:
            payload = json.loads(row["value"])
        except json.JSONDecodeError:
            LOGGER.warning("Stored marker metadata in %s is not valid JSON; starting empty", self.db_path)
            return {}
        records: Dict[str, PersistedMeta] = {}
        if not isinstance(payload, list):
            return records
        for entry in payload:
            try:
                meta = PersistedMeta.model_validate(entry)
            except ValidationError as error:
                LOGGER.warning("Skipping malformed metadata record %r: %s", entry, error)
                continue
            records[meta.id] = meta
        return records

    def flush(self) -> bool:
        """Rewrite the persisted metadata list from the in-memory map.

        Returns ``False`` when the database rejects the write (for example
        while another process holds a lock); the in-memory map is kept so a
        later flush can persist it.
        """
        serialised = json.dumps([_dump_meta(meta) for meta in self._records.values()])
        try:
            with self._transaction():
                self._conn.execute(
                    """
                    INSERT INTO state (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (META_KEY, serialised),
                )
        except sqlite3.Error as error:
            LOGGER.warning("Failed to persist marker metadata to %s: %s", self.db_path, error)
            return False
        return True

    # Record operations ---------------------------------------------------------------
    def get(self, item_id: str) -> Optional[PersistedMeta]:
        return self._records.get(item_id)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def ensure(self, item_id: str) -> tuple[PersistedMeta, bool]:
        """Return the record for ``item_id``, creating an ``open`` one if absent."""
        existing = self._records.get(item_id)
        if existing is not None:
            return existing, False
        record = PersistedMeta(id=item_id, status=ItemStatus.OPEN, created_at=utc_now())
        self._records[item_id] = record
        return record, True

    def set_status(
        self,
        item_id: str,
        status: ItemStatus,
        *,
        completed_at: Optional[datetime] = None,
        snoozed_until: Optional[date] = None,
    ) -> Optional[PersistedMeta]:
        """Apply a status change to the record and flush the whole map.

        Returns ``None`` and leaves the previous record in place when the
        flush fails.
        """
        previous = self._records.get(item_id)
        record, _ = self.ensure(item_id)
        update: Dict[str, Any] = {"status": status}
        if status == ItemStatus.COMPLETED:
            update["completed_at"] = completed_at or utc_now()
        elif status == ItemStatus.OPEN:
            update["completed_at"] = None
            update["snoozed_until"] = None
        if status == ItemStatus.SNOOZED:
            update["snoozed_until"] = snoozed_until
        updated = record.model_copy(update=update)
        self._records[item_id] = updated
        if self.flush():
            return updated
        if previous is None:
            del self._records[item_id]
        else:
            self._records[item_id] = previous
        return None
