"""Payment commands."""

import click

from payledger.cli.error_handling import handle_domain_error
from payledger.domain.entities import EventType, PaymentType
from payledger.domain.errors import DomainError, ParseError
from payledger.domain.ledger import DEDUP_KEY, PaymentLedgerService
from payledger.domain.money import Money
from payledger.domain.reconciliation import BankReconciliationService
from payledger.domain.reference_number import format_reference
from payledger.utils.amount_parser import parse_amount, parse_signed_amount
from payledger.utils.date_parser import parse_date, parse_iso_datetime, start_of_day


def _parse_debts(values: tuple[str, ...]) -> dict[str, Money]:
    """Parse ``DEBT_ID=AMOUNT`` pairs."""
    debts = {}
    for value in values:
        debt_id, separator, amount = value.partition("=")
        if not separator or not debt_id.strip():
            raise ParseError(f"Invalid debt '{value}': expected DEBT_ID=AMOUNT")
        debts[debt_id.strip()] = parse_amount(amount.strip())
    return debts


def _display_reference(payment) -> str:
    if payment.reference_number:
        return format_reference(payment.reference_number)
    return payment.finnish_reference or ""


@click.group()
def payment_group():
    """Manage payments and their ledger events."""
    pass


@payment_group.command("create")
@click.option("--type", "payment_type", type=click.Choice([t.value for t in PaymentType]), default="invoice", show_default=True)
@click.option("--title", required=True, help="Payment title")
@click.option("--debt", "debts", multiple=True, required=True, help="Covered debt and owed amount, e.g. D-17=25.00")
@click.option("--message", default="", help="Message shown to the payer")
@click.option("--reference", help="Manual reference number (RF or Finnish); generated for invoices if omitted")
@click.option("--series", type=click.IntRange(0, 9), default=0, show_default=True, help="Invoice series for generated references")
@click.option("--date", "created", help="Creation date (YYYY-MM-DD or relative like 'today')")
@click.option("--payer-id", help="Payer id used for report grouping")
@click.option("--payer-name", help="Payer name used for report grouping")
@click.option("--center-id", help="Debt center id used for report grouping")
@click.option("--center-name", help="Debt center name used for report grouping")
@click.pass_context
def create_payment(
    ctx,
    payment_type: str,
    title: str,
    debts: tuple[str, ...],
    message: str,
    reference: str | None,
    series: int,
    created: str | None,
    payer_id: str | None,
    payer_name: str | None,
    center_id: str | None,
    center_name: str | None,
):
    """Create a payment covering one or more debts.

    Already imported bank transactions carrying the new invoice's reference
    number are registered to it right away.

    Examples:
        payledger payment create --title "Membership 2024" --debt D-1=25.00
        payledger payment create --type cash --title "Sauna" --debt D-2=5.00 --debt D-3=2.50
    """
    db = ctx.obj["db"]
    ledger = PaymentLedgerService(db)
    reconciliation = BankReconciliationService(db, ledger=ledger)

    try:
        created_at = start_of_day(parse_date(created)) if created else None
        payment = ledger.create_payment(
            payment_type=payment_type,
            title=title,
            debts=_parse_debts(debts),
            message=message,
            reference_number=reference,
            series=series,
            created_at=created_at,
            payer_id=payer_id,
            payer_name=payer_name,
            debt_center_id=center_id,
            debt_center_name=center_name,
        )
        registrations = reconciliation.register_backlog_for_payment(payment.id)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Created payment {payment.payment_number} (ID: {payment.id})")
    if payment.reference_number or payment.finnish_reference:
        click.echo(f"Reference: {_display_reference(payment)}")
    registered = [r for r in registrations if r.event is not None]
    if registered:
        click.echo(f"Registered {len(registered)} earlier bank transaction(s)")


@payment_group.command("show")
@click.argument("payment_id", type=int)
@click.option("--as-of", help="Show balance and status as of this instant (ISO 8601)")
@click.pass_context
def show_payment(ctx, payment_id: int, as_of: str | None):
    """Show a payment with its balance, status and events."""
    ledger = PaymentLedgerService(ctx.obj["db"])

    try:
        cutoff = parse_iso_datetime(as_of) if as_of else None
        status = ledger.get_status(payment_id, cutoff)
        effective = ledger.effective_status(payment_id, cutoff)
        events = ledger.list_events(payment_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    payment = ledger.get_payment(payment_id)

    click.echo(f"Payment:   {payment.payment_number} (ID: {payment.id})")
    click.echo(f"Type:      {payment.type.value}")
    click.echo(f"Title:     {payment.title}")
    if payment.reference_number or payment.finnish_reference:
        click.echo(f"Reference: {_display_reference(payment)}")
    click.echo(f"Debts:     {', '.join(payment.debt_ids)}")
    click.echo(f"Balance:   {status.balance}")
    click.echo(f"Status:    {effective.value}")
    click.echo("\nEvents:")
    click.echo("-" * 80)
    for event in events:
        if cutoff is not None and event.time >= cutoff:
            continue
        source = event.transaction_id or event.source_key or ""
        click.echo(f"{event.time.isoformat():25s} | {event.type.value:9s} | {str(event.amount):>14s} | {source}")


@payment_group.command("list")
@click.option("--type", "payment_type", type=click.Choice([t.value for t in PaymentType]), help="Only payments of this type")
@click.pass_context
def list_payments(ctx, payment_type: str | None):
    """List payments with their current status."""
    ledger = PaymentLedgerService(ctx.obj["db"])

    payments = ledger.list_payments(PaymentType(payment_type) if payment_type else None)
    if not payments:
        click.echo("No payments found.")
        return

    for payment in payments:
        status = ledger.get_status(payment.id)
        effective = ledger.effective_status(payment.id)
        click.echo(
            f"{payment.id:4d} | {payment.payment_number} | {payment.title[:30]:30s} | "
            f"{str(status.balance):>14s} | {effective.value}"
        )


@payment_group.command("credit")
@click.argument("payment_id", type=int)
@click.option("--reason", help="Reason for crediting")
@click.pass_context
def credit_payment(ctx, payment_id: int, reason: str | None):
    """Mark a payment as credited."""
    ledger = PaymentLedgerService(ctx.obj["db"])

    try:
        payment = ledger.credit_payment(payment_id, reason)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return
    click.echo(f"Credited payment {payment.payment_number}")


@payment_group.command("credit-debt")
@click.argument("debt_id")
@click.option("--reason", help="Reason for crediting")
@click.pass_context
def credit_debt(ctx, debt_id: str, reason: str | None):
    """Credit every payment covering a debt."""
    ledger = PaymentLedgerService(ctx.obj["db"])

    credited = ledger.credit_debt(debt_id, reason)
    if not credited:
        click.echo(f"No open payments cover debt {debt_id}")
        return
    for payment in credited:
        click.echo(f"Credited payment {payment.payment_number}")


@payment_group.command("event")
@click.argument("payment_id", type=int)
@click.option(
    "--type",
    "event_type",
    type=click.Choice([t.value for t in EventType if t != EventType.CREATED]),
    required=True,
)
@click.option("--amount", required=True, help="Signed amount, e.g. 25.00 or -5.00")
@click.option("--time", "event_time", help="Event time (ISO 8601); defaults to now")
@click.option("--dedup-key", help="External source key; recording the same key twice is a no-op")
@click.option("--note", help="Free-form note stored with the event")
@click.pass_context
def record_event(
    ctx,
    payment_id: int,
    event_type: str,
    amount: str,
    event_time: str | None,
    dedup_key: str | None,
    note: str | None,
):
    """Record a manual ledger event on a payment.

    Examples:
        payledger payment event 3 --type payment --amount 25.00
        payledger payment event 3 --type canceled --amount 0.00 --note "Duplicate invoice"
    """
    ledger = PaymentLedgerService(ctx.obj["db"])

    data = {}
    if dedup_key:
        data[DEDUP_KEY] = dedup_key
    if note:
        data["note"] = note

    try:
        event = ledger.record_event(
            payment_id,
            event_type,
            parse_signed_amount(amount),
            data=data,
            time=parse_iso_datetime(event_time) if event_time else None,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    status = ledger.get_status(payment_id)
    click.echo(f"Recorded {event.type.value} event {event.id} of {event.amount}")
    click.echo(f"Balance: {status.balance} ({status.status.value})")


def register_commands(cli):
    """Register payment commands with main CLI."""
    cli.add_command(payment_group, name="payment")
