"""CLI for summarizing exported member activity."""

from __future__ import annotations

import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

import click

from .activity import summarize_activity
from .dates import normalize_timezone_name
from .logging import setup_logging


def _load_rows(path: Path | None, label: str) -> list[dict[str, Any]]:
    if path is None:
        return []
    try:
        rows = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{label} file {path} is not valid JSON: {exc}") from exc
    if not isinstance(rows, list):
        raise click.ClickException(f"{label} file {path} must contain a JSON array")
    return [row for row in rows if isinstance(row, dict)]


@click.group()
@click.option("--log-format", type=click.Choice(["json", "text"]), default="text", show_default=True)
def main(log_format: str):
    """Gym member activity tools."""
    setup_logging(log_format)


@main.command()
@click.option(
    "--checkins",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON array of check-in rows (check_in_time, ...).",
)
@click.option(
    "--workouts",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON array of workout rows with nested exercises.",
)
@click.option("--timezone", "timezone_name", default="UTC", show_default=True, help="IANA timezone for calendar days.")
@click.option(
    "--today",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Evaluate the streak as of this day (default: today).",
)
def summarize(
    checkins: Path | None,
    workouts: Path | None,
    timezone_name: str,
    today,
):
    """Print streak, monthly visits, and personal records as JSON."""
    normalized_tz = normalize_timezone_name(timezone_name)
    if normalized_tz is None:
        click.echo(f"Error: Unknown timezone {timezone_name!r}.", err=True)
        sys.exit(1)

    reference: date | None = today.date() if today is not None else None
    summary = summarize_activity(
        _load_rows(checkins, "Check-in"),
        _load_rows(workouts, "Workout"),
        today=reference,
        timezone_name=normalized_tz,
    )
    click.echo(json.dumps(summary.to_dict(), indent=2))


if __name__ == "__main__":
    main()
