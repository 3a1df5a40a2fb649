"""Tests for CLI report date range helper."""

from datetime import date

import click
import pytest

from payledger.cli.date_filters import PERIODS, resolve_report_range
from payledger.utils.date_parser import get_date_range


def _ctx() -> click.Context:
    return click.Context(click.Command("report"))


@pytest.mark.parametrize("period", PERIODS)
def test_named_period(period):
    assert resolve_report_range(_ctx(), start_date=None, end_date=None, period=period) == get_date_range(period)


def test_period_with_explicit_date_is_rejected(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_report_range(_ctx(), start_date=None, end_date="2024-01-31", period="last-month")

    assert excinfo.value.exit_code == 1
    assert "--period cannot be combined" in capsys.readouterr().err


def test_defaults_to_month_to_date():
    today = date(2024, 2, 17)

    assert resolve_report_range(_ctx(), start_date=None, end_date=None, period=None, today=today) == (
        date(2024, 2, 1),
        today,
    )


def test_explicit_range():
    start, end = resolve_report_range(_ctx(), start_date="2024-01-02", end_date="2024-03-31", period=None)

    assert (start, end) == (date(2024, 1, 2), date(2024, 3, 31))


def test_end_only_starts_at_month_start():
    start, end = resolve_report_range(_ctx(), start_date=None, end_date="2024-03-20", period=None)

    assert (start, end) == (date(2024, 3, 1), date(2024, 3, 20))


def test_start_only_ends_today():
    today = date(2024, 5, 4)
    start, end = resolve_report_range(_ctx(), start_date="2024-01-01", end_date=None, period=None, today=today)

    assert (start, end) == (date(2024, 1, 1), today)


@pytest.mark.parametrize("field", ["start_date", "end_date"])
def test_invalid_date(capsys, field):
    kwargs = {"start_date": None, "end_date": None, field: "not-a-date"}

    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_report_range(_ctx(), period=None, **kwargs)

    assert excinfo.value.exit_code == 1
    label = field.split("_")[0]
    assert f"Invalid {label} date" in capsys.readouterr().err
