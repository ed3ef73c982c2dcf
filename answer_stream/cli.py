"""Command-line tools for replaying captured answer streams."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from . import exceptions as error_kinds
from .config import EngineSettings, load_settings
from .controller import StreamController
from .events import StreamEvent, drive, parse_event
from .exceptions import StreamEngineError
from .policy import ContextFlags
from .protocols import NullDisplay, get_renderer
from .scheduler import DeferredScheduler


def _read_events(path: Path) -> list[StreamEvent]:
    events: list[StreamEvent] = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            data = json.loads(stripped)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            events.append(parse_event(data))
        except ValueError as exc:
            raise click.ClickException(f"{path}:{lineno}: {exc}") from exc
    return events


def _format_history(controller: StreamController) -> list[str]:
    lines = []
    for index, entry in enumerate(controller.history):
        marker = "*" if index == controller.active_index else " "
        lines.append(f"{marker} [{index}] {entry.time}  {entry.summary}")
    return lines


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log engine transitions to stderr.")
def cli(verbose: bool) -> None:
    """answer-stream: streaming answer aggregation tools."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            stream=sys.stderr,
        )


@cli.command()
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--settings", "settings_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--keep-context/--no-keep-context", default=None, help="Override keepContext.")
@click.option("--overwrite-next", is_flag=True, help="Regenerate the newest answer in place.")
@click.option("--raw", is_flag=True, help="Print the active answer's raw text, not markup.")
@click.option("--details", is_flag=True, help="Include the raw error detail.")
@click.option("--strict", is_flag=True, help="Exit with status 2 if the replay ends in error.")
def replay(
    events_file: Path,
    settings_file: Path | None,
    keep_context: bool | None,
    overwrite_next: bool,
    raw: bool,
    details: bool,
    strict: bool,
) -> None:
    """Replay a JSON-lines capture of backend stream events."""
    settings = load_settings(settings_file) if settings_file is not None else EngineSettings()
    if keep_context is not None:
        settings.keep_context = keep_context

    display = NullDisplay()
    scheduler = DeferredScheduler()
    controller = StreamController(
        settings,
        flags=ContextFlags(overwrite_next=overwrite_next),
        display=display,
        scheduler=scheduler,
    )

    events = _read_events(events_file)
    asyncio.run(drive(controller, events))
    scheduler.flush()

    active = controller.history.active_entry
    if raw:
        click.echo(active.full if active is not None else "")
    else:
        click.echo(controller.content)

    click.echo("")
    click.echo(f"History ({len(controller.history)}):")
    for line in _format_history(controller):
        click.echo(line)

    panel = controller.error_state
    if panel.visible:
        click.echo("")
        click.echo(f"{panel.icon} {panel.title}: {panel.description}", err=True)
        if details:
            click.echo(f"Details: {panel.raw_detail}", err=True)
        if strict:
            kind = getattr(error_kinds, panel.kind, StreamEngineError)
            raise kind(panel.raw_detail)


@cli.command()
@click.argument("markdown_file", type=click.File("r", encoding="utf-8"))
def render(markdown_file) -> None:
    """Print the default markup for a Markdown file ('-' for stdin)."""
    click.echo(get_renderer().render(markdown_file.read()))


def cli_entry() -> None:
    try:
        cli()
    except StreamEngineError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    cli_entry()
