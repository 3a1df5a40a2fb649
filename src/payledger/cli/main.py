"""Main CLI entry point."""

import click

from payledger.database.factories import create_database
from payledger.logging_config import setup_logging

# Import and register all commands at module level
from payledger.cli.commands import (
    account,
    statement,
    transaction,
    payment,
    reference,
    report,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to SQLite database file (overrides PAYLEDGER_DB_PATH environment variable)",
    envvar="PAYLEDGER_DB_PATH",
)
@click.option(
    "--database-url",
    help="SQLAlchemy database URL; takes precedence over --db-path",
    envvar="PAYLEDGER_DATABASE_URL",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level (overrides PAYLEDGER_LOG_LEVEL environment variable)",
    envvar="PAYLEDGER_LOG_LEVEL",
)
@click.option("--log-text", is_flag=True, help="Log plain text lines instead of JSON")
@click.pass_context
def cli(ctx, db_path: str | None, database_url: str | None, log_level: str, log_text: bool):
    """Payledger - Payment ledger and bank reconciliation.

    Track what each payment owes, import camt.053 bank statements and match
    their transactions to payments by reference number.
    """
    ctx.ensure_object(dict)
    setup_logging(level=log_level, json_format=not log_text)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None and "db" not in ctx.obj:
        db = create_database(database_url=database_url, database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
statement.register_commands(cli)
transaction.register_commands(cli)
payment.register_commands(cli)
reference.register_commands(cli)
report.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
