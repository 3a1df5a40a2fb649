"""Payment ledger domain service.

A payment's balance is the sum of its events and its status is derived from
the event set on every read. Events are only ever appended, so any past
status can be recomputed with :meth:`PaymentLedgerService.status_as_of`.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, Optional, Union

from payledger.database.base import Database
from payledger.domain.entities import (
    EventType,
    LedgerStatus,
    Payment,
    PaymentEvent,
    PaymentStatus,
    PaymentType,
)
from payledger.domain.errors import (
    NotFoundError,
    ValidationError,
    invalid_reference,
    payment_not_found,
)
from payledger.domain.money import Money
from payledger.domain.reference_number import (
    MAX_SEQUENCE,
    compact_reference,
    generate,
    normalize_reference,
    parse_reference,
    validate_finnish,
)
from payledger.utils.date_parser import ensure_utc

logger = logging.getLogger(__name__)

DEDUP_KEY = "dedup_key"

StatusListener = Callable[[int, PaymentStatus, PaymentStatus], None]


def derive_status(events: Iterable[PaymentEvent]) -> LedgerStatus:
    """Derive balance and status from a set of events.

    Precedence: any ``canceled`` event wins, then a payment without any
    ``payment`` event is unpaid, then a non-zero balance is mispaid, and
    otherwise the payment is paid.
    """
    balance = Money.zero()
    canceled = False
    has_payment = False
    for event in events:
        balance = balance + event.amount
        if event.type == EventType.CANCELED:
            canceled = True
        elif event.type == EventType.PAYMENT:
            has_payment = True

    if canceled:
        status = PaymentStatus.CANCELED
    elif not has_payment:
        status = PaymentStatus.UNPAID
    elif not balance.is_zero():
        status = PaymentStatus.MISPAID
    else:
        status = PaymentStatus.PAID
    return LedgerStatus(balance=balance, status=status)


def _event_type(kind: Union[EventType, str]) -> EventType:
    if isinstance(kind, EventType):
        return kind
    try:
        return EventType(kind)
    except ValueError:
        valid = ", ".join(t.value for t in EventType)
        raise ValidationError(f"Unknown event type '{kind}'. Valid types: {valid}")


class PaymentLedgerService:
    """Service for payments and their append-only event ledger."""

    def __init__(self, db: Database, clock: Optional[Callable[[], datetime]] = None):
        """Initialize payment ledger service.

        Args:
            db: Database instance
            clock: Returns the current time; defaults to UTC now
        """
        self.db = db
        self.clock = clock or (lambda: datetime.now(UTC))
        self._listeners: list[StatusListener] = []

    def with_database(self, db: Database) -> "PaymentLedgerService":
        """Return a service over another database sharing clock and listeners."""
        service = PaymentLedgerService(db, clock=self.clock)
        service._listeners = self._listeners
        return service

    def add_status_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked as ``listener(payment_id, old, new)``."""
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        """Unregister a status callback."""
        self._listeners.remove(listener)

    # Payments
    def create_payment(
        self,
        payment_type: Union[PaymentType, str],
        title: str,
        debts: dict[str, Money],
        message: str = "",
        reference_number: Optional[str] = None,
        series: int = 0,
        created_at: Optional[datetime] = None,
        payer_id: Optional[str] = None,
        payer_name: Optional[str] = None,
        debt_center_id: Optional[str] = None,
        debt_center_name: Optional[str] = None,
    ) -> Payment:
        """Create a payment and its single ``created`` event.

        Args:
            payment_type: ``invoice`` or ``cash``
            title: Payment title
            debts: Owed amount per debt id; the created event carries the
                negated total
            message: Free-form message
            reference_number: Manually entered reference; must pass its
                checksums. Invoices without one get a generated reference.
            series: Invoice series used for generated references
            created_at: Creation time; defaults to now
            payer_id: Payer id for reporting
            payer_name: Payer name for reporting
            debt_center_id: Debt center id for reporting
            debt_center_name: Debt center name for reporting

        Returns:
            The created Payment

        Raises:
            ValidationError: If the title or debts are missing, an amount is
                negative, the reference number is invalid or the year has
                run out of payment numbers
        """
        if isinstance(payment_type, str):
            try:
                payment_type = PaymentType(payment_type)
            except ValueError:
                raise ValidationError(f"Unknown payment type '{payment_type}'")

        if not title or not title.strip():
            raise ValidationError("Payment title cannot be empty")
        if not debts:
            raise ValidationError("A payment must cover at least one debt")
        for debt_id, amount in debts.items():
            if not isinstance(amount, Money):
                raise TypeError(f"Owed amount for debt '{debt_id}' must be Money")
            if amount.is_negative():
                raise ValidationError(f"Owed amount for debt '{debt_id}' cannot be negative")

        created_at = ensure_utc(created_at) if created_at is not None else self.clock()
        owed = Money.total(debts.values())

        # Validate a manual reference before consuming a payment number
        manual = self._manual_reference(reference_number) if reference_number is not None else None

        sequence = self.db.next_payment_number(created_at.year, limit=MAX_SEQUENCE)
        payment_number = f"{created_at.year}-{sequence:04d}"

        if manual is not None:
            rf_reference, finnish_reference = manual
        elif payment_type == PaymentType.INVOICE:
            generated = generate(series, created_at.year % 100, sequence)
            rf_reference, finnish_reference = generated.compact, generated.finnish
        else:
            rf_reference, finnish_reference = None, None

        payment = self.db.create_payment(
            payment_number=payment_number,
            payment_type=payment_type,
            title=title.strip(),
            message=message,
            owed=owed,
            debt_ids=list(debts),
            created_at=created_at,
            reference_number=rf_reference,
            finnish_reference=finnish_reference,
            payer_id=payer_id,
            payer_name=payer_name,
            debt_center_id=debt_center_id,
            debt_center_name=debt_center_name,
        )
        logger.info(
            "Created payment %s owing %s",
            payment.payment_number,
            owed,
            extra={"action": "payment_created", "payment_id": payment.id},
        )
        return payment

    def _manual_reference(self, reference: str) -> tuple[Optional[str], str]:
        """Return (RF reference, Finnish reference) for a manual entry."""
        compact = compact_reference(reference)
        if compact.startswith("RF"):
            parsed = parse_reference(compact)
            return compact, parsed.finnish
        if validate_finnish(compact):
            return None, normalize_reference(compact)
        raise ValidationError(invalid_reference(reference))

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get payment by ID."""
        return self.db.get_payment(payment_id)

    def _require_payment(self, payment_id: int) -> Payment:
        payment = self.db.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(payment_not_found(payment_id))
        return payment

    def get_payment_by_reference(self, reference: str) -> Optional[Payment]:
        """Get the oldest payment carrying a reference number."""
        normalized = normalize_reference(reference)
        if normalized is None:
            return None
        payments = self.db.find_payments_by_reference(normalized)
        return payments[0] if payments else None

    def list_payments(self, payment_type: Optional[PaymentType] = None) -> list[Payment]:
        """List payments ordered by creation time."""
        return self.db.list_payments(payment_type)

    # Status
    def list_events(self, payment_id: int) -> list[PaymentEvent]:
        """List events of a payment ordered by time."""
        self._require_payment(payment_id)
        return self.db.list_payment_events(payment_id)

    def get_status(self, payment_id: int, as_of: Optional[datetime] = None) -> LedgerStatus:
        """Get balance and status, optionally as of a past instant."""
        if as_of is not None:
            return self.status_as_of(payment_id, as_of)
        self._require_payment(payment_id)
        return derive_status(self.db.list_payment_events(payment_id))

    def status_as_of(self, payment_id: int, cutoff: datetime) -> LedgerStatus:
        """Balance and status from events with ``time < cutoff`` only.

        Events appended later with a time at or after the cutoff never change
        the result.
        """
        self._require_payment(payment_id)
        return derive_status(self.db.list_payment_events(payment_id, before=ensure_utc(cutoff)))

    def effective_status(self, payment_id: int, as_of: Optional[datetime] = None) -> PaymentStatus:
        """Status for display: ``credited`` overrides the derived status."""
        payment = self._require_payment(payment_id)
        if payment.credited:
            return PaymentStatus.CREDITED
        return self.get_status(payment_id, as_of).status

    def paid_at(self, payment_id: int) -> Optional[datetime]:
        """Time at which the payment was first covered by payments.

        Returns the time of the first event after which at least one payment
        event exists and the running balance is zero or positive, or None.
        """
        balance = Money.zero()
        has_payment = False
        for event in self.list_events(payment_id):
            balance = balance + event.amount
            if event.type == EventType.PAYMENT:
                has_payment = True
            if has_payment and not balance.is_negative():
                return event.time
        return None

    # Events
    def record_event(
        self,
        payment_id: int,
        kind: Union[EventType, str],
        amount: Money,
        data: Optional[dict[str, Any]] = None,
        time: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
    ) -> PaymentEvent:
        """Append an event to a payment's ledger.

        This is the only way events are added after creation. A ``dedup_key``
        in ``data`` becomes the event's source key, and a transaction id gets
        a mapping row; both are unique in storage.

        Raises:
            NotFoundError: If the payment does not exist
            ValidationError: If the kind is unknown or ``created``
            DuplicateRegistration: If the source key or transaction was
                already recorded
            StorageError: If the database fails; nothing is recorded
        """
        event_type = _event_type(kind)
        if event_type == EventType.CREATED:
            raise ValidationError("Created events are only written when the payment is created")
        if not isinstance(amount, Money):
            raise TypeError(f"Event amount must be Money, got {type(amount).__name__}")

        payment = self._require_payment(payment_id)
        data = dict(data or {})
        source_key = data.get(DEDUP_KEY)
        if source_key is not None:
            source_key = str(source_key)

        before = derive_status(self.db.list_payment_events(payment_id))
        event = self.db.append_payment_event(
            payment_id=payment_id,
            event_type=event_type,
            amount=amount,
            time=ensure_utc(time) if time is not None else self.clock(),
            data=data,
            transaction_id=transaction_id,
            source_key=source_key,
        )
        after = derive_status(self.db.list_payment_events(payment_id))

        logger.info(
            "Recorded %s event of %s on payment %s, balance %s -> %s",
            event_type.value,
            amount,
            payment.payment_number,
            before.balance,
            after.balance,
            extra={
                "action": "event_recorded",
                "payment_id": payment_id,
                "event_id": event.id,
                "transaction_id": transaction_id,
            },
        )

        if before.status != after.status:
            self._status_changed(payment, before.status, after.status)
        return event

    def _status_changed(self, payment: Payment, old: PaymentStatus, new: PaymentStatus) -> None:
        logger.info(
            "Payment %s status changed from %s to %s",
            payment.payment_number,
            old.value,
            new.value,
            extra={"action": "status_changed", "payment_id": payment.id, "status": new.value},
        )
        if new == PaymentStatus.PAID:
            self._credit_siblings(payment)
        for listener in list(self._listeners):
            listener(payment.id, old, new)

    # Crediting
    def credit_payment(self, payment_id: int, reason: Optional[str] = None) -> Payment:
        """Mark a payment as credited. Crediting twice is a no-op."""
        payment = self._require_payment(payment_id)
        if payment.credited:
            return payment
        self.db.set_payment_credited(payment_id, True)
        logger.info(
            "Credited payment %s%s",
            payment.payment_number,
            f": {reason}" if reason else "",
            extra={"action": "payment_credited", "payment_id": payment_id},
        )
        return self._require_payment(payment_id)

    def credit_debt(self, debt_id: str, reason: Optional[str] = None) -> list[Payment]:
        """Credit every payment covering a debt.

        Returns:
            Payments that were newly credited
        """
        credited = []
        for payment in self.db.list_payments_for_debt(debt_id):
            if not payment.credited:
                credited.append(self.credit_payment(payment.id, reason))
        return credited

    def _credit_siblings(self, paid: Payment) -> None:
        """Credit other open payments sharing a debt with a paid payment."""
        seen = {paid.id}
        for debt_id in paid.debt_ids:
            for sibling in self.db.list_payments_for_debt(debt_id):
                if sibling.id in seen:
                    continue
                seen.add(sibling.id)
                if sibling.credited:
                    continue
                if derive_status(self.db.list_payment_events(sibling.id)).status == PaymentStatus.PAID:
                    continue
                self.credit_payment(
                    sibling.id,
                    reason=f"Debt {debt_id} paid by payment {paid.payment_number}",
                )
