from __future__ import annotations

import json
import os
import sqlite3
from datetime import date

import pytest

from conftest import locked_database
from todosync.models import ItemStatus
from todosync.store import META_KEY, MetadataStore
from todosync.utils.identity import generate_id


def test_identity_is_positional_and_deterministic() -> None:
    first = generate_id("/repo/src/app.py", 5)
    assert first == generate_id("/repo/src/app.py", 5)
    assert len(first) == 12
    assert first != generate_id("/repo/src/app.py", 6)
    assert first != generate_id("/repo/src/other.py", 5)


def test_metadata_survives_reopen(tmp_path) -> None:
    db_path = tmp_path / "state.sqlite"
    with MetadataStore(db_path) as store:
        record, created = store.ensure("abc123")
        assert created
        assert record.status == ItemStatus.OPEN
        store.set_status("abc123", ItemStatus.COMPLETED)
        store.set_status("snoozy", ItemStatus.SNOOZED, snoozed_until=date(2030, 1, 1))

    with MetadataStore(db_path) as reopened:
        completed = reopened.get("abc123")
        assert completed is not None
        assert completed.status == ItemStatus.COMPLETED
        assert completed.completed_at is not None
        snoozed = reopened.get("snoozy")
        assert snoozed is not None
        assert snoozed.status == ItemStatus.SNOOZED
        assert snoozed.snoozed_until == date(2030, 1, 1)

        reopened.set_status("abc123", ItemStatus.OPEN)
        assert reopened.get("abc123").completed_at is None
        reopened.set_status("snoozy", ItemStatus.OPEN)
        assert reopened.get("snoozy").snoozed_until is None


def test_metadata_is_stored_under_a_single_key(tmp_path) -> None:
    db_path = tmp_path / "state.sqlite"
    with MetadataStore(db_path) as store:
        store.ensure("one")
        store.ensure("two")
        store.flush()

    connection = sqlite3.connect(str(db_path))
    try:
        rows = connection.execute("SELECT key, value FROM state").fetchall()
    finally:
        connection.close()
    assert [row[0] for row in rows] == [META_KEY]
    payload = json.loads(rows[0][1])
    assert {entry["id"] for entry in payload} == {"one", "two"}


def test_unflushed_records_are_not_persisted(tmp_path) -> None:
    db_path = tmp_path / "state.sqlite"
    with MetadataStore(db_path) as store:
        store.ensure("pending")

    with MetadataStore(db_path) as reopened:
        assert reopened.get("pending") is None


def test_locked_database_keeps_previous_state(tmp_path) -> None:
    db_path = tmp_path / "state.sqlite"
    with MetadataStore(db_path, timeout=0.1) as store:
        store.ensure("kept")
        assert store.flush()

        with locked_database(db_path):
            assert not store.flush()
            assert store.set_status("kept", ItemStatus.COMPLETED) is None
            assert store.set_status("fresh", ItemStatus.COMPLETED) is None

        assert store.get("kept").status is ItemStatus.OPEN
        assert store.get("kept").completed_at is None
        assert "fresh" not in store
        assert store.set_status("kept", ItemStatus.COMPLETED) is not None


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores file permissions")
def test_store_falls_back_when_db_path_readonly(tmp_path) -> None:
    readonly_dir = tmp_path / "readonly"
    readonly_dir.mkdir()
    db_path = readonly_dir / "state.sqlite"
    db_path.write_text("", encoding="utf-8")
    db_path.chmod(0o444)

    with MetadataStore(db_path) as store:
        fallback_path = store.db_path
        store.set_status("fallback", ItemStatus.COMPLETED)

    assert fallback_path != db_path.resolve()
    assert os.access(fallback_path, os.W_OK)
    if fallback_path.exists():
        fallback_path.unlink()
