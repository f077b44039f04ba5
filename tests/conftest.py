from __future__ import annotations

import sqlite3
import sys
import textwrap
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from todosync.config import DEFAULT_CONFIG_TEMPLATE  # noqa: E402
from todosync.models import ScannerConfig  # noqa: E402
from todosync.scanner import Scanner  # noqa: E402
from todosync.store import MetadataStore  # noqa: E402
from todosync.sync import SyncEngine  # noqa: E402
from todosync.workspace import Workspace  # noqa: E402


@dataclass(slots=True)
class TinyWorkspace:
    """Fixture payload bundling a synthetic workspace with its scanner."""

    root: Path
    db_path: Path
    store: MetadataStore
    scanner: Scanner

    def write(self, relative: str, content: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")
        return path.resolve()

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")

    def engine(self, **kwargs) -> SyncEngine:
        return SyncEngine(self.scanner, **kwargs)


@contextmanager
def locked_database(db_path: Path) -> Iterator[None]:
    """Hold an exclusive lock on ``db_path`` from a second connection."""

    blocker = sqlite3.connect(str(db_path), isolation_level=None)
    try:
        blocker.execute("BEGIN EXCLUSIVE")
        yield
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()


def default_scanner_config(**overrides) -> ScannerConfig:
    settings = dict(DEFAULT_CONFIG_TEMPLATE["todos"])
    settings.update(overrides)
    return ScannerConfig.model_validate(settings)


@pytest.fixture()
def tiny_workspace(tmp_path: Path) -> Iterator[TinyWorkspace]:
    """Create an empty workspace folder with a metadata store and scanner."""

    root = tmp_path / "workspace"
    root.mkdir()
    db_path = tmp_path / "state" / "state.sqlite"
    store = MetadataStore(db_path, timeout=0.1)
    scanner = Scanner(Workspace([root]), store, default_scanner_config())
    try:
        yield TinyWorkspace(root=root, db_path=db_path, store=store, scanner=scanner)
    finally:
        store.close()
