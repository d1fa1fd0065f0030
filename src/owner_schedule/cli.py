"""CLI for the owner schedule — inspect and edit the event calendar."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

import click

from owner_schedule.config import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_FILENAME,
    ConfigError,
    ScheduleConfig,
    load_config,
)
from owner_schedule.core.logging import configure_logging
from owner_schedule.core.telemetry import init_telemetry
from owner_schedule.scheduling import (
    CalendarSession,
    EventPatch,
    EventStatus,
    EventType,
    EventValidationError,
    Occurrence,
    ScheduleError,
    ViewGranularity,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DATETIME_FORMATS = ["%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S"]


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    envvar=CONFIG_PATH_ENV,
    type=click.Path(path_type=Path),
    default=Path(DEFAULT_CONFIG_FILENAME),
    show_default=True,
    help="Path to owner_schedule.toml (or its directory)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path) -> None:
    """Owner schedule — typed events with recurrence on a remote calendar."""
    ctx.obj = config_path


@cli.command()
@click.option(
    "--view",
    type=click.Choice([v.value for v in ViewGranularity], case_sensitive=False),
    default=None,
    help="Calendar view (defaults to the configured view)",
)
@click.option(
    "--date",
    "anchor",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Date inside the range to show (defaults to today)",
)
@click.pass_obj
def agenda(config_path: Path, view: str | None, anchor: datetime | None) -> None:
    """Print the occurrences inside the visible calendar range."""
    config = _load(config_path)

    async def _run(session: CalendarSession) -> list[Occurrence]:
        await session.start()
        if view is not None:
            session.viewport.set_view(view)
        if anchor is not None:
            session.viewport.go_to(anchor)
        return session.visible_occurrences()

    occurrences, title = _run_session(config, _run, with_title=True)
    click.echo(title)
    click.echo("-" * len(title))
    if not occurrences:
        click.echo("(no events)")
        return
    for occurrence in occurrences:
        click.echo(format_occurrence(occurrence))


@cli.command()
@click.option(
    "--type",
    "event_type",
    type=click.Choice([t.value for t in EventType], case_sensitive=False),
    default=EventType.MEETING.value,
    show_default=True,
)
@click.option("--meeting-type", default=None, help="MORNING, LEADERS, CLIENT, OWNER or OTHER")
@click.option("--host", default=None, help="Host for first appointments and presentations")
@click.option("--location", default=None, help="Location for EVENT entries")
@click.option(
    "--start", "start_time", type=click.DateTime(formats=_DATETIME_FORMATS), required=True
)
@click.option(
    "--end", "end_time", type=click.DateTime(formats=_DATETIME_FORMATS), required=True
)
@click.option("--repeat", "recurrence_rule", default="NONE", show_default=True)
@click.option("--notes", default="")
@click.option("--link", default=None)
@click.option("--title", default=None)
@click.pass_obj
def create(
    config_path: Path,
    event_type: str,
    meeting_type: str | None,
    host: str | None,
    location: str | None,
    start_time: datetime,
    end_time: datetime,
    recurrence_rule: str,
    notes: str,
    link: str | None,
    title: str | None,
) -> None:
    """Create an event through the scheduling form."""
    config = _load(config_path)

    async def _run(session: CalendarSession):
        session.select_slot(start_time, end_time)
        session.form.set_event_type(event_type.upper())
        session.form.update_draft(
            meeting_type=meeting_type.upper() if meeting_type else None,
            host=host.upper() if host else None,
            location=location,
            recurrence_rule=recurrence_rule.upper(),
            notes=notes,
            link=link,
            title=title,
        )
        return await session.save()

    record = _run_session(config, _run)
    click.echo(f"Created event #{record.id}: {record.display_title}")


@cli.command("set-status")
@click.argument("event_id")
@click.argument(
    "status",
    type=click.Choice([s.name for s in EventStatus], case_sensitive=False),
)
@click.pass_obj
def set_status(config_path: Path, event_id: str, status: str) -> None:
    """Change the status of one event."""
    config = _load(config_path)
    patch = EventPatch(status=EventStatus[status.upper()])

    async def _run(session: CalendarSession):
        return await session.update_fields(event_id, patch)

    record = _run_session(config, _run)
    click.echo(f"Event #{record.id} is now {record.status.label}")


@cli.command()
@click.argument("event_id")
@click.pass_obj
def delete(config_path: Path, event_id: str) -> None:
    """Delete one event."""
    config = _load(config_path)

    async def _run(session: CalendarSession):
        return await session.delete_event(event_id)

    deleted = _run_session(config, _run)
    click.echo(f"Deleted event #{deleted}")


def format_occurrence(occurrence: Occurrence) -> str:
    record = occurrence.record
    when = (
        f"{occurrence.start_time.strftime('%a %d %b %H:%M')}"
        f"–{occurrence.end_time.strftime('%H:%M')}"
    )
    detail = record.companion_value
    if record.meeting_type is not None:
        detail = record.meeting_type.label
    elif record.host is not None:
        detail = record.host.label
    line = f"{when}  {record.display_title} · {detail}  [{record.status.label}]  #{record.id}"
    if occurrence.is_recurring:
        line = f"{line} ({record.recurrence_rule.label})"
    return line


def _load(config_path: Path) -> ScheduleConfig:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(1)
    _configure_logging(config)
    return config


def _configure_logging(config: ScheduleConfig) -> None:
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=config.logging.log_root,
        session_name="owner",
    )
    init_telemetry("owner-schedule")


def _build_session(config: ScheduleConfig) -> CalendarSession:
    return CalendarSession(config)


def _run_session(
    config: ScheduleConfig,
    action: Callable[[CalendarSession], Awaitable[T]],
    *,
    with_title: bool = False,
):
    """Run *action* on a fresh session and map core errors to exit codes.

    Validation errors exit with status 2 (one ``field: message`` line each),
    transport and data errors with status 1.
    """

    async def _main():
        async with _build_session(config) as session:
            result = await action(session)
            if with_title:
                return result, session.viewport.title()
            return result

    try:
        return asyncio.run(_main())
    except EventValidationError as exc:
        for name, message in exc.errors.items():
            click.echo(f"{name}: {message}", err=True)
        sys.exit(2)
    except ScheduleError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
