"""Bank account management commands."""

import click

from payledger.cli.error_handling import handle_domain_error
from payledger.domain.errors import DomainError
from payledger.domain.reconciliation import BankReconciliationService


@click.group()
def account_group():
    """Manage bank accounts."""
    pass


@account_group.command("create")
@click.argument("iban", metavar="IBAN")
@click.argument("name", metavar="NAME")
@click.pass_context
def create_account(ctx, iban: str, name: str):
    """Create a bank account that statements can be imported for.

    Examples:
        payledger account create "FI79 4405 2020 0360 82" "Main account"
    """
    service = BankReconciliationService(ctx.obj["db"])

    try:
        account = service.create_bank_account(iban=iban, name=name)
        click.echo(f"Created bank account '{account.name}' ({account.iban})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all bank accounts."""
    service = BankReconciliationService(ctx.obj["db"])

    accounts = service.list_bank_accounts()
    if not accounts:
        click.echo("No bank accounts found.")
        return

    click.echo("\nBank accounts:")
    click.echo("-" * 60)
    for acc in accounts:
        click.echo(f"{acc.iban:34s} | {acc.name}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
