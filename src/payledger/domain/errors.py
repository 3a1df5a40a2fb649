"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ParseError(DomainError):
    """Malformed or incomplete input document or amount string."""


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class DuplicateRegistration(ValidationError):
    """An event for this bank transaction or external source key already exists.

    Reconciliation treats this as a no-op rather than a failure.
    """


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class ReconciliationConflict(ConflictError):
    """More than one payment shares the same reference number."""


class StorageError(DomainError):
    """The database failed to complete an operation; retrying may succeed."""


def payment_not_found(payment_id: int) -> str:
    """Return message for missing payment."""
    return f"Payment {payment_id} not found"


def transaction_not_found(transaction_id: str) -> str:
    """Return message for missing bank transaction."""
    return f"Bank transaction '{transaction_id}' not found"


def statement_not_found(statement_id: str) -> str:
    """Return message for missing bank statement."""
    return f"Bank statement '{statement_id}' not found"


def bank_account_not_found(iban: str) -> str:
    """Return message for missing bank account."""
    return f"Bank account '{iban}' not found"


def bank_account_exists(iban: str) -> str:
    """Return message for duplicate bank account."""
    return f"Bank account '{iban}' already exists"


def missing_field(path: str) -> str:
    """Return message for a required document field that is absent."""
    return f"Could not parse CAMT statement: Not found: {path}"


def duplicate_transaction_registration(transaction_id: str) -> str:
    """Return message when a bank transaction is already registered."""
    return f"Bank transaction '{transaction_id}' is already registered to a payment event"


def duplicate_source_key(source_key: str) -> str:
    """Return message when an external source key has already been recorded."""
    return f"An event with source key '{source_key}' has already been recorded"


def ambiguous_reference(reference: str, payment_ids: list[int]) -> str:
    """Return message when several payments share a reference number."""
    ids = ", ".join(str(pid) for pid in payment_ids)
    return f"Reference '{reference}' matches multiple payments: {ids}"


def invalid_reference(reference: str) -> str:
    """Return message for a reference number failing its checksums."""
    return f"Invalid reference number '{reference}'"


def storage_failure(operation: str, detail: object) -> str:
    """Return message for a database operation that did not complete."""
    return f"Storage operation '{operation}' failed: {detail}"


def payment_numbers_exhausted(year: int, limit: int) -> str:
    """Return message when a year has run out of payment numbers."""
    return f"Payment numbers for {year} are exhausted (at most {limit} per year)"
