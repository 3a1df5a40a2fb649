"""CLI error handling helpers."""

import click

from payledger.domain.errors import DomainError, DuplicateRegistration


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit.

    Recording something that was already recorded is not a failure: the
    message goes to stdout and the command exits with 0.
    """
    if isinstance(error, DuplicateRegistration):
        click.echo(f"Nothing to do: {error}")
        ctx.exit(0)
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)
