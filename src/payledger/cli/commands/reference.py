"""Reference number commands."""

import click

from payledger.cli.error_handling import handle_domain_error
from payledger.domain import reference_number
from payledger.domain.errors import DomainError


@click.group()
def reference_group():
    """Generate and validate reference numbers."""
    pass


@reference_group.command("generate")
@click.option("--series", type=int, default=0, show_default=True, help="Invoice series (0-9)")
@click.option("--year", type=int, required=True, help="Two-digit accounting year (0-99)")
@click.option("--sequence", type=int, required=True, help="Running number within the year (0-9999)")
@click.pass_context
def generate_reference(ctx, series: int, year: int, sequence: int):
    """Generate an RF creditor reference.

    Examples:
        payledger reference generate --series 1 --year 24 --sequence 42
    """
    try:
        ref = reference_number.generate(series, year, sequence)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(ref.formatted)
    click.echo(f"Finnish: {ref.finnish}")


@reference_group.command("validate")
@click.argument("reference")
@click.pass_context
def validate_reference(ctx, reference: str):
    """Validate an RF or Finnish reference number.

    Exits with status 1 if the reference is invalid.
    """
    compact = reference_number.compact_reference(reference)
    if compact.startswith("RF"):
        valid = reference_number.validate(compact)
    else:
        valid = reference_number.validate_finnish(compact)

    if valid:
        click.echo(f"Valid: {reference_number.format_reference(compact)}")
    else:
        click.echo(f"Error: Invalid reference number '{reference}'", err=True)
        ctx.exit(1)


def register_commands(cli):
    """Register reference commands with main CLI."""
    cli.add_command(reference_group, name="reference")
