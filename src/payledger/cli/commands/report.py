"""Ledger report commands."""

import click

from payledger.cli.date_filters import period_option, resolve_report_range
from payledger.cli.error_handling import handle_domain_error
from payledger.domain.entities import PaymentType, ReportGroupBy
from payledger.domain.errors import DomainError
from payledger.domain.report import LedgerReportService
from payledger.utils.date_parser import parse_iso_datetime


@click.group()
def report_group():
    """Build ledger reports."""
    pass


@report_group.command("ledger")
@click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'last month', 'this year')")
@click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today')")
@period_option
@click.option("--group-by", type=click.Choice([g.value for g in ReportGroupBy]), help="Group rows by payer or debt center")
@click.option("--as-of", help="Balances and statuses as of this instant (ISO 8601); defaults to now")
@click.option("--type", "payment_type", type=click.Choice([t.value for t in PaymentType]), help="Only payments of this type")
@click.pass_context
def ledger_report(
    ctx,
    start_date: str | None,
    end_date: str | None,
    period: str | None,
    group_by: str | None,
    as_of: str | None,
    payment_type: str | None,
):
    """Show ledger events in a date range with point-in-time payment status.

    Defaults to the current month.

    Examples:
        payledger report ledger --period last-month --group-by payer
        payledger report ledger --start-date 2024-01-01 --end-date 2024-03-31 --as-of 2024-04-01
    """
    start, end = resolve_report_range(ctx, start_date=start_date, end_date=end_date, period=period)

    service = LedgerReportService(ctx.obj["db"])
    try:
        report = service.build_ledger_report(
            start_date=start,
            end_date=end,
            group_by=group_by,
            as_of=parse_iso_datetime(as_of) if as_of else None,
            payment_type=PaymentType(payment_type) if payment_type else None,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"\nLedger {report.start_date} - {report.end_date} as of {report.as_of.isoformat()}")
    if not report.groups:
        click.echo("No events found.")
    for group in report.groups:
        if group.group_id is not None:
            click.echo(f"\n{group.group_label} ({group.group_id})")
        click.echo("-" * 100)
        if not group.rows:
            click.echo("No events found.")
            continue
        for row in group.rows:
            click.echo(
                f"{row.event.time.date()} | {row.payment.payment_number} | {row.payment.title[:25]:25s} | "
                f"{row.event.type.value:9s} | {str(row.event.amount):>14s} | "
                f"{str(row.balance):>14s} | {row.status.value}"
            )


def register_commands(cli):
    """Register report commands with main CLI."""
    cli.add_command(report_group, name="report")
