"""Bank statement commands."""

from pathlib import Path

import click

from payledger.cli.error_handling import handle_domain_error
from payledger.domain.errors import DomainError
from payledger.domain.reconciliation import BankReconciliationService


@click.group()
def statement_group():
    """Import and inspect bank statements."""
    pass


@statement_group.command("import")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--workers", type=click.IntRange(min=1), default=1, show_default=True, help="Parallel registration workers")
@click.pass_context
def import_statement(ctx, statement_file: str, workers: int):
    """Import a camt.053 XML bank statement.

    Transactions are matched to payments by reference number. Importing the
    same statement again does not create duplicates.
    """
    service = BankReconciliationService(ctx.obj["db"])

    try:
        result = service.ingest(Path(statement_file).read_bytes(), workers=workers)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    counts = {"registered": 0, "duplicate": 0, "unmatched": 0}
    for registration in result.registrations:
        counts[registration.outcome.value] += 1

    click.echo(f"\nImported statement {result.statement.id} for {result.statement.account}:")
    click.echo(f"  Transactions: {len(result.transactions)}")
    click.echo(f"  Registered: {counts['registered']}")
    click.echo(f"  Already registered: {counts['duplicate']}")
    click.echo(f"  Unmatched: {counts['unmatched']}")
    if result.errors:
        click.echo(f"  Errors: {len(result.errors)}")
        for error in result.errors:
            click.echo(f"    {error}", err=True)


@statement_group.command("list")
@click.option("--account", "iban", required=True, help="Bank account IBAN")
@click.pass_context
def list_statements(ctx, iban: str):
    """List statements imported for a bank account."""
    service = BankReconciliationService(ctx.obj["db"])

    try:
        statements = service.list_account_statements(iban)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if not statements:
        click.echo("No statements found.")
        return

    for stmt in statements:
        click.echo(
            f"{stmt.id:20s} | {stmt.opening_balance.date} - {stmt.closing_balance.date} | "
            f"{stmt.opening_balance.amount} -> {stmt.closing_balance.amount}"
        )


@statement_group.command("show")
@click.argument("statement_id")
@click.pass_context
def show_statement(ctx, statement_id: str):
    """Show a statement and its transactions."""
    service = BankReconciliationService(ctx.obj["db"])

    try:
        transactions = service.list_statement_transactions(statement_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    stmt = service.get_statement(statement_id)

    click.echo(f"Statement: {stmt.id}")
    click.echo(f"Account:   {stmt.account}")
    click.echo(f"Generated: {stmt.generated_at.isoformat()}")
    click.echo(f"Opening:   {stmt.opening_balance.amount} ({stmt.opening_balance.date})")
    click.echo(f"Closing:   {stmt.closing_balance.amount} ({stmt.closing_balance.date})")
    click.echo("-" * 80)
    for tx in transactions:
        click.echo(f"{tx.id:20s} | {tx.value_date} | {str(tx.amount):>14s} | {tx.counterparty.name}")


def register_commands(cli):
    """Register statement commands with main CLI."""
    cli.add_command(statement_group, name="statement")
