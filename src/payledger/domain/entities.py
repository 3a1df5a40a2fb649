"""Domain model entities for payledger.

These are pure data classes representing business concepts, independent of
database schema. Storage implementations convert their rows into these
entities through the mapper layer.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Any, Optional

from payledger.domain.money import Money


class PaymentType(Enum):
    """Kind of payment issued by the billing system."""

    INVOICE = "invoice"
    CASH = "cash"


class EventType(Enum):
    """Kind of ledger event."""

    CREATED = "created"
    PAYMENT = "payment"
    CANCELED = "canceled"
    OTHER = "other"


class PaymentStatus(Enum):
    """Payment status derived from the event log.

    ``CREDITED`` is never derived from events; it only appears as the
    effective status of a payment whose ``credited`` flag is set.
    """

    UNPAID = "unpaid"
    PAID = "paid"
    MISPAID = "mispaid"
    CANCELED = "canceled"
    CREDITED = "credited"


class Direction(Enum):
    """Bank transaction direction as seen from the statement account."""

    CREDIT = "credit"
    DEBIT = "debit"


class RegistrationOutcome(Enum):
    """Result category of registering a bank transaction."""

    REGISTERED = "registered"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"


class ReportGroupBy(Enum):
    """Grouping key for ledger reports."""

    PAYER = "payer"
    CENTER = "center"


@dataclass(frozen=True)
class BankAccount:
    """Bank account that statements are imported for."""

    iban: str
    name: str
    created_at: datetime


@dataclass(frozen=True)
class Payment:
    """Payment domain entity.

    ``credited`` is a flag layered on top of the ledger and is not derived
    from events.
    """

    id: int
    payment_number: str
    type: PaymentType
    title: str
    message: str
    created_at: datetime
    credited: bool
    reference_number: Optional[str]
    finnish_reference: Optional[str]
    debt_ids: tuple[str, ...]
    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    debt_center_id: Optional[str] = None
    debt_center_name: Optional[str] = None


@dataclass(frozen=True)
class PaymentEvent:
    """Immutable ledger event."""

    id: int
    payment_id: int
    type: EventType
    amount: Money
    time: datetime
    data: dict[str, Any]
    transaction_id: Optional[str] = None
    source_key: Optional[str] = None


@dataclass(frozen=True)
class Counterparty:
    """Other party of a bank transaction."""

    name: str
    account: Optional[str] = None


@dataclass(frozen=True)
class BankTransaction:
    """Bank transaction; ``amount`` is signed (debits negative)."""

    id: str
    account: str
    amount: Money
    direction: Direction
    booking_date: date
    value_date: date
    counterparty: Counterparty
    reference: Optional[str]
    message: Optional[str]


@dataclass(frozen=True)
class Balance:
    """Statement balance on a given date."""

    date: date
    amount: Money


@dataclass(frozen=True)
class BankStatement:
    """Imported bank statement."""

    id: str
    account: str
    generated_at: datetime
    imported_at: datetime
    opening_balance: Balance
    closing_balance: Balance


@dataclass(frozen=True)
class AccountDetails:
    """Statement account as reported in a CAMT document."""

    iban: str
    currency: str


@dataclass(frozen=True)
class ServicerDetails:
    """Account servicing bank."""

    bic: str
    name: str
    postal_address: str


@dataclass(frozen=True)
class StatementEntry:
    """Single ``Ntry`` element of a CAMT statement.

    ``amount`` is the unsigned amount as written in the document; use
    ``signed_amount`` for ledger arithmetic.
    """

    id: str
    amount: Money
    direction: Direction
    booking_date: date
    value_date: date
    other_party: Counterparty
    reference: Optional[str]
    message: Optional[str]

    @property
    def signed_amount(self) -> Money:
        if self.direction == Direction.DEBIT:
            return -self.amount
        return self.amount


@dataclass(frozen=True)
class CamtStatement:
    """Parsed camt.053 account report."""

    id: str
    creation_datetime: datetime
    account: AccountDetails
    servicer: ServicerDetails
    opening_balance: Balance
    closing_balance: Balance
    entries: tuple[StatementEntry, ...]


@dataclass(frozen=True)
class LedgerStatus:
    """Balance and derived status of a payment."""

    balance: Money
    status: PaymentStatus


@dataclass(frozen=True)
class Registration:
    """Outcome of registering one bank transaction to the ledger."""

    transaction_id: str
    outcome: RegistrationOutcome
    event: Optional[PaymentEvent] = None

    @property
    def is_duplicate(self) -> bool:
        return self.outcome == RegistrationOutcome.DUPLICATE


@dataclass(frozen=True)
class IngestResult:
    """Result of importing one bank statement."""

    statement: BankStatement
    transactions: tuple[BankTransaction, ...]
    registrations: tuple[Registration, ...]
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class LedgerRow:
    """One ledger event with the as-of state of its payment."""

    event: PaymentEvent
    payment: Payment
    balance: Money
    status: PaymentStatus


@dataclass(frozen=True)
class LedgerGroup:
    """Rows sharing a grouping key."""

    group_id: Optional[str]
    group_label: Optional[str]
    rows: tuple[LedgerRow, ...]


@dataclass(frozen=True)
class LedgerReport:
    """Point-in-time ledger report."""

    start_date: date
    end_date: date
    as_of: datetime
    group_by: Optional[ReportGroupBy]
    groups: tuple[LedgerGroup, ...] = field(default_factory=tuple)
