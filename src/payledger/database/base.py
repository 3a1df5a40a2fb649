"""Abstract database interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

# Import entities directly to avoid circular import through domain/__init__.py
from payledger.domain.entities import (
    BankAccount,
    BankStatement,
    BankTransaction,
    CamtStatement,
    EventType,
    Payment,
    PaymentEvent,
    PaymentType,
)
from payledger.domain.money import Money


class Database(ABC):
    """Abstract database interface for payledger.

    Operations raise StorageError when the store fails, and the instance
    stays usable for later operations.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def fork(self) -> "Database":
        """Return a new instance on the same store with its own session.

        Used to give each concurrent worker a separate connection.
        """
        pass

    @property
    def supports_concurrent_sessions(self) -> bool:
        """Whether forked instances may be used from several threads at once."""
        return True

    # Bank account operations
    @abstractmethod
    def create_bank_account(self, iban: str, name: str) -> BankAccount:
        """Create a bank account. Raises ConflictError if the IBAN exists."""
        pass

    @abstractmethod
    def get_bank_account(self, iban: str) -> Optional[BankAccount]:
        """Get bank account by IBAN."""
        pass

    @abstractmethod
    def list_bank_accounts(self) -> list[BankAccount]:
        """List all bank accounts."""
        pass

    # Bank statement operations
    @abstractmethod
    def save_bank_statement(self, statement: CamtStatement) -> tuple[BankStatement, list[BankTransaction]]:
        """Store a parsed statement, its transactions and statement mappings.

        Runs as one database transaction. Transactions already stored under
        the same bank id are reused and only mapped to the statement. A
        statement id that was imported before is reused as well.

        Returns:
            Tuple of (statement, transactions in document order)
        """
        pass

    @abstractmethod
    def get_bank_statement(self, statement_id: str) -> Optional[BankStatement]:
        """Get bank statement by ID."""
        pass

    @abstractmethod
    def list_bank_statements(self, account: Optional[str] = None) -> list[BankStatement]:
        """List bank statements, optionally for one account."""
        pass

    @abstractmethod
    def list_statement_transactions(self, statement_id: str) -> list[BankTransaction]:
        """List transactions mapped to a statement."""
        pass

    # Bank transaction operations
    @abstractmethod
    def get_bank_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        """Get bank transaction by bank-assigned ID."""
        pass

    @abstractmethod
    def list_bank_transactions(self, account: Optional[str] = None) -> list[BankTransaction]:
        """List bank transactions ordered by value date."""
        pass

    @abstractmethod
    def list_unregistered_transactions(
        self,
        account: Optional[str] = None,
        references: Optional[list[str]] = None,
    ) -> list[BankTransaction]:
        """List transactions without a payment event.

        Args:
            account: Only transactions of this account
            references: Only transactions whose normalized reference is one of these
        """
        pass

    @abstractmethod
    def get_registered_event(self, transaction_id: str) -> Optional[PaymentEvent]:
        """Get the payment event a transaction was registered as, if any."""
        pass

    # Payment operations
    @abstractmethod
    def next_payment_number(self, year: int, limit: Optional[int] = None) -> int:
        """Allocate the next running payment number for an accounting year.

        Raises ValidationError, consuming nothing, once ``limit`` numbers
        have been allocated for the year.
        """
        pass

    @abstractmethod
    def create_payment(
        self,
        payment_number: str,
        payment_type: PaymentType,
        title: str,
        message: str,
        owed: Money,
        debt_ids: list[str],
        created_at: datetime,
        reference_number: Optional[str] = None,
        finnish_reference: Optional[str] = None,
        payer_id: Optional[str] = None,
        payer_name: Optional[str] = None,
        debt_center_id: Optional[str] = None,
        debt_center_name: Optional[str] = None,
    ) -> Payment:
        """Create a payment with its debt links and its single created event.

        The created event carries ``-owed`` and is written in the same
        database transaction as the payment row.
        """
        pass

    @abstractmethod
    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get payment by ID."""
        pass

    @abstractmethod
    def list_payments(self, payment_type: Optional[PaymentType] = None) -> list[Payment]:
        """List payments ordered by creation time."""
        pass

    @abstractmethod
    def find_payments_by_reference(self, reference: str) -> list[Payment]:
        """Find payments whose stored reference equals a normalized reference.

        Results are ordered oldest first.
        """
        pass

    @abstractmethod
    def list_payments_for_debt(self, debt_id: str) -> list[Payment]:
        """List payments covering a debt, oldest first."""
        pass

    @abstractmethod
    def set_payment_credited(self, payment_id: int, credited: bool = True) -> None:
        """Set the credited flag of a payment."""
        pass

    # Payment event operations
    @abstractmethod
    def append_payment_event(
        self,
        payment_id: int,
        event_type: EventType,
        amount: Money,
        time: datetime,
        data: Optional[dict[str, Any]] = None,
        transaction_id: Optional[str] = None,
        source_key: Optional[str] = None,
    ) -> PaymentEvent:
        """Append an event, and its transaction mapping, in one transaction.

        Raises:
            DuplicateRegistration: If the transaction is already mapped to an
                event or the source key was already recorded
        """
        pass

    @abstractmethod
    def get_payment_event(self, event_id: int) -> Optional[PaymentEvent]:
        """Get payment event by ID."""
        pass

    @abstractmethod
    def list_payment_events(self, payment_id: int, before: Optional[datetime] = None) -> list[PaymentEvent]:
        """List events of a payment ordered by time.

        Args:
            payment_id: Payment ID
            before: Only events with ``time < before``
        """
        pass

    @abstractmethod
    def list_events_in_range(
        self,
        start: datetime,
        end: datetime,
        payment_type: Optional[PaymentType] = None,
        event_types: Optional[list[EventType]] = None,
    ) -> list[PaymentEvent]:
        """List events with ``start <= time < end`` ordered by time."""
        pass
