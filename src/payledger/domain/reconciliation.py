"""Bank reconciliation domain service.

Imports camt.053 statements and turns their transactions into ledger events.
Registration is idempotent: the storage layer allows one event per bank
transaction, and a lost race surfaces as a duplicate outcome, not a failure.
"""

import dataclasses
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

from payledger.database.base import Database
from payledger.domain.camt import CamtStatementParser
from payledger.domain.entities import (
    BankAccount,
    BankStatement,
    BankTransaction,
    EventType,
    IngestResult,
    Payment,
    PaymentEvent,
    PaymentStatus,
    Registration,
    RegistrationOutcome,
)
from payledger.domain.errors import (
    DomainError,
    DuplicateRegistration,
    NotFoundError,
    ReconciliationConflict,
    ValidationError,
    ambiguous_reference,
    bank_account_not_found,
    payment_not_found,
    statement_not_found,
    transaction_not_found,
)
from payledger.domain.ledger import PaymentLedgerService, derive_status
from payledger.domain.reference_number import normalize_reference
from payledger.utils.date_parser import start_of_day

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_iban(iban: str) -> str:
    """Remove whitespace and upper-case an IBAN."""
    return _WHITESPACE.sub("", iban).upper()


class BankReconciliationService:
    """Service for importing bank statements and registering transactions."""

    def __init__(
        self,
        db: Database,
        ledger: Optional[PaymentLedgerService] = None,
        parser: Optional[CamtStatementParser] = None,
        strict_matching: bool = False,
    ):
        """Initialize bank reconciliation service.

        Args:
            db: Database instance
            ledger: Ledger service used to append events; created over ``db``
                if omitted
            parser: Statement parser
            strict_matching: Raise ReconciliationConflict instead of picking a
                payment when a reference matches several payments
        """
        self.db = db
        self.ledger = ledger or PaymentLedgerService(db)
        self.parser = parser or CamtStatementParser()
        self.strict_matching = strict_matching

    def with_database(self, db: Database) -> "BankReconciliationService":
        """Return a service over another database with the same settings."""
        return BankReconciliationService(
            db,
            ledger=self.ledger.with_database(db),
            parser=self.parser,
            strict_matching=self.strict_matching,
        )

    # Bank accounts
    def create_bank_account(self, iban: str, name: str) -> BankAccount:
        """Create a bank account.

        Raises:
            ValidationError: If the IBAN or name is empty
            ConflictError: If the account already exists
        """
        iban = normalize_iban(iban or "")
        if not iban:
            raise ValidationError("IBAN cannot be empty")
        if not name or not name.strip():
            raise ValidationError("Bank account name cannot be empty")
        account = self.db.create_bank_account(iban, name.strip())
        logger.info("Created bank account %s", iban, extra={"action": "bank_account_created"})
        return account

    def get_bank_account(self, iban: str) -> Optional[BankAccount]:
        """Get bank account by IBAN."""
        return self.db.get_bank_account(normalize_iban(iban))

    def list_bank_accounts(self) -> list[BankAccount]:
        """List all bank accounts."""
        return self.db.list_bank_accounts()

    # Statements
    def ingest(self, content: Union[bytes, str], workers: int = 1) -> IngestResult:
        """Import a camt.053 statement and register its transactions.

        Parsing happens before anything is written, so a malformed document
        leaves storage untouched. The statement and its transactions are
        stored in one database transaction; each registration then commits
        on its own, and a failed registration is reported in ``errors``
        without affecting the others.

        Args:
            content: camt.053 XML document
            workers: Number of threads registering transactions in parallel

        Returns:
            IngestResult with the statement, its transactions in document
            order and one registration per successfully processed transaction

        Raises:
            ParseError: If the document is malformed
            NotFoundError: If the statement account is not a known bank account
            ConflictError: If the statement id belongs to another account
        """
        if workers < 1:
            raise ValidationError("Worker count must be at least 1")

        statement = self.parser.parse(content)
        iban = normalize_iban(statement.account.iban)
        if self.db.get_bank_account(iban) is None:
            raise NotFoundError(bank_account_not_found(iban))
        statement = dataclasses.replace(
            statement, account=dataclasses.replace(statement.account, iban=iban)
        )

        stored, transactions = self.db.save_bank_statement(statement)
        logger.info(
            "Imported bank statement %s with %d transactions",
            stored.id,
            len(transactions),
            extra={"action": "statement_imported", "statement_id": stored.id},
        )

        registrations, errors = self._register_all(transactions, workers)
        return IngestResult(
            statement=stored,
            transactions=tuple(transactions),
            registrations=tuple(registrations),
            errors=tuple(errors),
        )

    def _register_all(
        self, transactions: list[BankTransaction], workers: int
    ) -> tuple[list[Registration], list[str]]:
        if workers > 1 and not self.db.supports_concurrent_sessions:
            logger.info(
                "Database cannot be shared between threads, registering sequentially",
                extra={"action": "parallel_registration_disabled"},
            )
            workers = 1

        if workers == 1 or len(transactions) <= 1:
            outcomes = [self._try_register(self, tx.id) for tx in transactions]
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(self._register_in_worker, [tx.id for tx in transactions]))

        registrations = [outcome for outcome in outcomes if isinstance(outcome, Registration)]
        errors = [outcome for outcome in outcomes if isinstance(outcome, str)]
        return registrations, errors

    def _register_in_worker(self, transaction_id: str) -> Union[Registration, str]:
        db = self.db.fork()
        try:
            return self._try_register(self.with_database(db), transaction_id)
        finally:
            db.disconnect()

    @staticmethod
    def _try_register(service: "BankReconciliationService", transaction_id: str) -> Union[Registration, str]:
        try:
            return service.register_transaction(transaction_id)
        except DomainError as e:
            logger.exception(
                "Registering transaction %s failed",
                transaction_id,
                extra={"action": "registration_failed", "transaction_id": transaction_id},
            )
            return f"{transaction_id}: {e}"

    def get_statement(self, statement_id: str) -> Optional[BankStatement]:
        """Get bank statement by ID."""
        return self.db.get_bank_statement(statement_id)

    def list_statement_transactions(self, statement_id: str) -> list[BankTransaction]:
        """List transactions of a statement.

        Raises:
            NotFoundError: If the statement does not exist
        """
        if self.db.get_bank_statement(statement_id) is None:
            raise NotFoundError(statement_not_found(statement_id))
        return self.db.list_statement_transactions(statement_id)

    def list_account_statements(self, iban: str) -> list[BankStatement]:
        """List statements imported for a bank account."""
        return self.db.list_bank_statements(self._require_account(iban))

    def list_account_transactions(self, iban: str) -> list[BankTransaction]:
        """List transactions of a bank account."""
        return self.db.list_bank_transactions(self._require_account(iban))

    def _require_account(self, iban: str) -> str:
        iban = normalize_iban(iban)
        if self.db.get_bank_account(iban) is None:
            raise NotFoundError(bank_account_not_found(iban))
        return iban

    # Transactions
    def get_transaction(self, transaction_id: str) -> Optional[BankTransaction]:
        """Get bank transaction by ID."""
        return self.db.get_bank_transaction(transaction_id)

    def list_transactions(self) -> list[BankTransaction]:
        """List all bank transactions ordered by value date."""
        return self.db.list_bank_transactions()

    def get_unregistered_transactions(self, iban: Optional[str] = None) -> list[BankTransaction]:
        """List transactions that have not produced a payment event."""
        account = normalize_iban(iban) if iban is not None else None
        return self.db.list_unregistered_transactions(account=account)

    def get_transaction_registrations(self, transaction_id: str) -> list[PaymentEvent]:
        """List events created from a transaction; there is at most one."""
        if self.db.get_bank_transaction(transaction_id) is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        event = self.db.get_registered_event(transaction_id)
        return [event] if event is not None else []

    def register_transaction(self, transaction_id: str, payment_id: Optional[int] = None) -> Registration:
        """Register a bank transaction as a payment event.

        Args:
            transaction_id: Bank-assigned transaction ID
            payment_id: Target payment; resolved from the transaction's
                reference number when omitted

        Returns:
            Registration with outcome ``registered`` and the new event,
            ``duplicate`` if the transaction already has an event, or
            ``unmatched`` if no payment could be resolved

        Raises:
            NotFoundError: If the transaction or explicit payment does not exist
            ReconciliationConflict: In strict mode, if the reference matches
                several payments
        """
        transaction = self.db.get_bank_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))

        if payment_id is not None:
            payment = self.db.get_payment(payment_id)
            if payment is None:
                raise NotFoundError(payment_not_found(payment_id))
        else:
            payment = None

        if self.db.get_registered_event(transaction_id) is not None:
            return self._duplicate(transaction_id)

        if payment is None:
            payment = self._match_payment(transaction)
        if payment is None:
            logger.info(
                "No payment matches transaction %s with reference %r",
                transaction_id,
                transaction.reference,
                extra={"action": "transaction_unmatched", "transaction_id": transaction_id},
            )
            return Registration(transaction_id=transaction_id, outcome=RegistrationOutcome.UNMATCHED)

        try:
            event = self.ledger.record_event(
                payment.id,
                EventType.PAYMENT,
                transaction.amount,
                data={"transaction": transaction_id},
                time=start_of_day(transaction.value_date),
                transaction_id=transaction_id,
            )
        except DuplicateRegistration:
            # A concurrent run registered the transaction first
            return self._duplicate(transaction_id)

        logger.info(
            "Registered transaction %s to payment %s",
            transaction_id,
            payment.payment_number,
            extra={
                "action": "transaction_registered",
                "transaction_id": transaction_id,
                "payment_id": payment.id,
            },
        )
        return Registration(
            transaction_id=transaction_id,
            outcome=RegistrationOutcome.REGISTERED,
            event=event,
        )

    def _duplicate(self, transaction_id: str) -> Registration:
        logger.info(
            "Transaction %s is already registered",
            transaction_id,
            extra={"action": "transaction_duplicate", "transaction_id": transaction_id},
        )
        return Registration(transaction_id=transaction_id, outcome=RegistrationOutcome.DUPLICATE)

    def _match_payment(self, transaction: BankTransaction) -> Optional[Payment]:
        """Resolve the payment a transaction's reference number points to.

        Several payments with the same reference resolve to the oldest one
        that is not yet paid, or the oldest one if all are paid.
        """
        reference = normalize_reference(transaction.reference)
        if reference is None:
            return None

        candidates = self.db.find_payments_by_reference(reference)
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        message = ambiguous_reference(reference, [p.id for p in candidates])
        if self.strict_matching:
            raise ReconciliationConflict(message)
        logger.warning(
            message,
            extra={"action": "reconciliation_conflict", "transaction_id": transaction.id},
        )
        for candidate in candidates:
            status = derive_status(self.db.list_payment_events(candidate.id)).status
            if status != PaymentStatus.PAID:
                return candidate
        return candidates[0]

    def register_backlog_for_payment(self, payment_id: int) -> list[Registration]:
        """Register already-imported transactions carrying a payment's reference.

        Used after a payment is created, for transactions that arrived
        before it existed.
        """
        payment = self.db.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(payment_not_found(payment_id))

        references = [ref for ref in (payment.finnish_reference, payment.reference_number) if ref]
        if not references:
            return []

        registrations = []
        for transaction in self.db.list_unregistered_transactions(references=references):
            registrations.append(self.register_transaction(transaction.id, payment_id))
        return registrations
