"""CLI helpers for report date ranges."""

from datetime import date

import click

from payledger.utils.date_parser import PERIOD_RANGES, get_date_range, parse_date

PERIODS = tuple(PERIOD_RANGES)


def period_option(command):
    """Add a ``--period`` option selecting a named date range."""
    return click.option(
        "--period",
        type=click.Choice(PERIODS),
        help="Named date range; cannot be combined with --start-date or --end-date",
    )(command)


def _parse_bound(ctx, value: str, label: str) -> date:
    try:
        return parse_date(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label} date: {e}", err=True)
        ctx.exit(1)


def resolve_report_range(
    ctx,
    *,
    start_date: str | None,
    end_date: str | None,
    period: str | None,
    today: date | None = None,
) -> tuple[date, date]:
    """Resolve the inclusive date range of a report.

    A named period is used as is. Otherwise a missing end date means today
    and a missing start date means the first day of the end date's month,
    so no options at all give the current month to date.
    """
    if period is not None:
        if start_date or end_date:
            click.echo("Error: --period cannot be combined with --start-date or --end-date.", err=True)
            ctx.exit(1)
        return get_date_range(period, today)

    end = _parse_bound(ctx, end_date, "end") if end_date else (today or date.today())
    start = _parse_bound(ctx, start_date, "start") if start_date else end.replace(day=1)
    return start, end
