"""CLI commands for scanning marker comments and syncing their state."""

from __future__ import annotations

import os
import shlex
import subprocess
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    default_config,
    load_config,
    scanner_config,
    workspace_folders,
    write_config,
)
from .due_dates import format_date, parse_due_date
from .logging_config import configure_logging
from .models import DetectedItem
from .scanner import Scanner
from .store import MetadataStore, StoreError
from .sync import Location, SyncEngine
from .workspace import Workspace

APP_HELP = "Track TODO/FIXME comments and sync due dates and status back into code."

app = typer.Typer(help=APP_HELP)

CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_NAME,
    "--config",
    "-c",
    help="Path to the todosync configuration file.",
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    ),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level)


def _notify(message: str) -> None:
    typer.echo(message, err=True)


def _open_in_editor(location: Location) -> None:
    editor = os.environ.get("EDITOR", "").strip()
    if not editor:
        typer.echo(f"{location.path}:{location.line + 1}")
        return
    command = [*shlex.split(editor), f"+{location.line + 1}", str(location.path)]
    subprocess.run(command, check=False)  # noqa: S603 - editor chosen by the user


@contextmanager
def _session(config: str, *, confirm: bool = False) -> Iterator[Tuple[Scanner, SyncEngine]]:
    """Load config, open the metadata store and run a fresh workspace scan."""
    config_path = Path(config)
    try:
        config_data = load_config(config_path)
        settings = scanner_config(config_data)
    except ConfigError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error

    workspace = Workspace(workspace_folders(config_data, config_path))
    try:
        store = MetadataStore.from_config(config_data, base_path=config_path.resolve().parent)
    except StoreError as error:
        typer.echo(f"Failed to open state database: {error}", err=True)
        raise typer.Exit(code=1) from error

    with store:
        scanner = Scanner(workspace, store, settings)
        scanner.scan_workspace()
        engine = SyncEngine(
            scanner,
            notify=_notify,
            confirm=(lambda _: True) if confirm else (lambda prompt: typer.confirm(prompt, default=False)),
            open_location=_open_in_editor,
        )
        yield scanner, engine


def _require_item(scanner: Scanner, item_id: str) -> DetectedItem:
    item = scanner.get_item(item_id)
    if item is not None:
        return item
    candidates = [candidate for candidate in scanner.all_items() if candidate.id.startswith(item_id)]
    if len(candidates) == 1:
        return candidates[0]
    if candidates:
        typer.echo(f"Ambiguous id prefix '{item_id}' ({len(candidates)} matches).", err=True)
    else:
        typer.echo(f"No detected item with id '{item_id}'.", err=True)
    raise typer.Exit(code=1)


def _parse_date_argument(value: str) -> date:
    resolved = parse_due_date(value)
    if resolved is None:
        raise typer.BadParameter(
            f"Unrecognised date '{value}' (use YYYY-MM-DD, today, tomorrow, next-week or next-month)."
        )
    return resolved


def _render_item(scanner: Scanner, item: DetectedItem) -> str:
    location = scanner.workspace.relative_path(item.file_path) or item.file_path
    due = f" (due {format_date(item.due_date)})" if item.due_date else ""
    return (
        f"[{item.status.value}] {item.id} {item.type} "
        f"{location}:{item.line_number + 1} {item.description}{due}"
    )


@app.command()
def init(
    config: str = CONFIG_OPTION,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration template."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        raise typer.Exit(code=1)
    write_config(config_path, default_config())
    typer.echo(f"Wrote default configuration to {config_path}")


@app.command()
def scan(config: str = CONFIG_OPTION) -> None:
    """Scan the workspace and report how many items were found."""
    with _session(config) as (scanner, _):
        typer.echo(f"Found {len(scanner.open_items())} TODO items")


@app.command("list")
def list_items(
    config: str = CONFIG_OPTION,
    include_all: bool = typer.Option(False, "--all", help="Include completed items."),
    overdue: bool = typer.Option(False, "--overdue", help="Only items past their due date."),
    due_today: bool = typer.Option(False, "--today", help="Only items due today."),
    this_week: bool = typer.Option(False, "--week", help="Only items due later this week."),
    no_date: bool = typer.Option(False, "--no-date", help="Only open items without a due date."),
    completed: bool = typer.Option(False, "--completed", help="Only completed items."),
) -> None:
    """List detected items."""
    with _session(config) as (scanner, _):
        items: List[DetectedItem]
        if overdue:
            items = scanner.overdue_items()
        elif due_today:
            items = scanner.due_today_items()
        elif this_week:
            items = scanner.due_this_week_items()
        elif no_date:
            items = scanner.no_due_date_items()
        elif completed:
            items = scanner.completed_items()
        elif include_all:
            items = scanner.all_items()
        else:
            items = scanner.open_items()

        if not items:
            typer.echo("No matching items.")
            return
        for item in sorted(items, key=lambda entry: (entry.file_path, entry.line_number)):
            typer.echo(_render_item(scanner, item))


@app.command()
def status(config: str = CONFIG_OPTION) -> None:
    """Report open and due/overdue counts."""
    with _session(config) as (scanner, _):
        open_count = scanner.open_count()
        due_count = scanner.due_count()
        if open_count == 0:
            typer.echo("No TODOs found.")
        elif due_count:
            typer.echo(f"{open_count} TODOs ({due_count} due/overdue)")
        else:
            typer.echo(f"{open_count} TODOs")


@app.command()
def complete(item_id: str = typer.Argument(..., help="Item id or unique id prefix."), config: str = CONFIG_OPTION) -> None:
    """Mark an item complete without touching the source file."""
    with _session(config) as (scanner, _):
        item = _require_item(scanner, item_id)
        if not scanner.mark_complete(item.id):
            raise typer.Exit(code=1)
        typer.echo(f"Marked {item.id} as complete.")


@app.command()
def reopen(item_id: str = typer.Argument(..., help="Item id or unique id prefix."), config: str = CONFIG_OPTION) -> None:
    """Mark a completed or snoozed item open again."""
    with _session(config) as (scanner, _):
        item = _require_item(scanner, item_id)
        if not scanner.mark_open(item.id):
            raise typer.Exit(code=1)
        typer.echo(f"Reopened {item.id}.")


@app.command()
def snooze(
    item_id: str = typer.Argument(..., help="Item id or unique id prefix."),
    until: str = typer.Argument(..., help="YYYY-MM-DD or a relative keyword."),
    config: str = CONFIG_OPTION,
) -> None:
    """Snooze an item until a date."""
    until_day = _parse_date_argument(until)
    with _session(config) as (scanner, _):
        item = _require_item(scanner, item_id)
        if not scanner.snooze(item.id, until_day):
            raise typer.Exit(code=1)
        typer.echo(f"Snoozed {item.id} until {format_date(until_day)}.")


@app.command()
def due(
    item_id: str = typer.Argument(..., help="Item id or unique id prefix."),
    when: str = typer.Argument(..., help="YYYY-MM-DD or a relative keyword."),
    config: str = CONFIG_OPTION,
) -> None:
    """Write a due-date annotation into the item's comment."""
    due_day = _parse_date_argument(when)
    with _session(config) as (scanner, engine):
        item = _require_item(scanner, item_id)
        if not engine.set_due_date(item, due_day):
            raise typer.Exit(code=1)
        typer.echo(f"Set due date {format_date(due_day)} on {item.id}.")


@app.command()
def undue(item_id: str = typer.Argument(..., help="Item id or unique id prefix."), config: str = CONFIG_OPTION) -> None:
    """Remove the due-date annotation from the item's comment."""
    with _session(config) as (scanner, engine):
        item = _require_item(scanner, item_id)
        if not engine.clear_due_date(item):
            raise typer.Exit(code=1)
        typer.echo(f"Cleared due date on {item.id}.")


@app.command()
def done(item_id: str = typer.Argument(..., help="Item id or unique id prefix."), config: str = CONFIG_OPTION) -> None:
    """Rewrite the marker keyword to DONE and mark the item complete."""
    with _session(config) as (scanner, engine):
        item = _require_item(scanner, item_id)
        if not engine.mark_done(item):
            raise typer.Exit(code=1)
        typer.echo(f"Marked {item.id} as DONE in {item.file_path}.")


@app.command()
def delete(
    item_id: str = typer.Argument(..., help="Item id or unique id prefix."),
    config: str = CONFIG_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Delete without asking for confirmation."),
) -> None:
    """Delete the item's comment line from its source file."""
    with _session(config, confirm=yes) as (scanner, engine):
        item = _require_item(scanner, item_id)
        if not engine.delete_line(item):
            typer.echo("Nothing deleted.")
            raise typer.Exit(code=1)
        typer.echo(f"Deleted line {item.line_number + 1} of {item.file_path}.")


@app.command("open")
def open_item(item_id: str = typer.Argument(..., help="Item id or unique id prefix."), config: str = CONFIG_OPTION) -> None:
    """Open the item's file at its line in $EDITOR (or print the location)."""
    with _session(config) as (scanner, engine):
        item = _require_item(scanner, item_id)
        if engine.navigate(item) is None:
            raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
