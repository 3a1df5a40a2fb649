"""Bank transaction commands."""

import click

from payledger.cli.error_handling import handle_domain_error
from payledger.domain.entities import RegistrationOutcome
from payledger.domain.errors import DomainError
from payledger.domain.reconciliation import BankReconciliationService


@click.group()
def transaction_group():
    """Inspect and register bank transactions."""
    pass


@transaction_group.command("list")
@click.option("--account", "iban", help="Only transactions of this bank account")
@click.option("--unregistered", is_flag=True, help="Show only transactions without a payment event")
@click.option("--verbose", "-v", is_flag=True, help="Show reference and message columns")
@click.pass_context
def list_transactions(ctx, iban: str | None, unregistered: bool, verbose: bool):
    """List bank transactions."""
    service = BankReconciliationService(ctx.obj["db"])

    try:
        if unregistered:
            transactions = service.get_unregistered_transactions(iban)
        elif iban is not None:
            transactions = service.list_account_transactions(iban)
        else:
            transactions = service.list_transactions()
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if not transactions:
        click.echo("No transactions found.")
        return

    for tx in transactions:
        line = f"{tx.id:20s} | {tx.value_date} | {str(tx.amount):>14s} | {tx.counterparty.name:25s}"
        if verbose:
            line += f" | {tx.reference or '':25s} | {tx.message or ''}"
        click.echo(line)


@transaction_group.command("register")
@click.argument("transaction_id")
@click.option("--payment", "payment_id", type=int, help="Register to this payment instead of matching by reference")
@click.pass_context
def register_transaction(ctx, transaction_id: str, payment_id: int | None):
    """Register a bank transaction as a payment event.

    Examples:
        payledger transaction register 2024011500001
        payledger transaction register 2024011500001 --payment 12
    """
    service = BankReconciliationService(ctx.obj["db"])

    try:
        registration = service.register_transaction(transaction_id, payment_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if registration.outcome == RegistrationOutcome.REGISTERED:
        click.echo(
            f"Registered transaction {transaction_id} to payment {registration.event.payment_id} "
            f"(event {registration.event.id})"
        )
    elif registration.is_duplicate:
        click.echo(f"Transaction {transaction_id} is already registered")
    else:
        click.echo(f"No payment matches transaction {transaction_id}")


@transaction_group.command("show")
@click.argument("transaction_id")
@click.pass_context
def show_transaction(ctx, transaction_id: str):
    """Show a bank transaction and its registration."""
    service = BankReconciliationService(ctx.obj["db"])

    try:
        events = service.get_transaction_registrations(transaction_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    tx = service.get_transaction(transaction_id)

    click.echo(f"Transaction:  {tx.id}")
    click.echo(f"Account:      {tx.account}")
    click.echo(f"Amount:       {tx.amount} ({tx.direction.value})")
    click.echo(f"Booking date: {tx.booking_date}")
    click.echo(f"Value date:   {tx.value_date}")
    click.echo(f"Other party:  {tx.counterparty.name}")
    click.echo(f"Reference:    {tx.reference or ''}")
    click.echo(f"Message:      {tx.message or ''}")
    if events:
        click.echo(f"Registered:   payment {events[0].payment_id} (event {events[0].id})")
    else:
        click.echo("Registered:   no")


def register_commands(cli: click.Group) -> None:
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
