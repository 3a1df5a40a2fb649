"""Job executors for the worker layer.

Executors never raise for domain or storage failures; they return a tagged
:class:`JobSuccess` or :class:`JobError`. ``soft`` errors are worth retrying
(storage hiccups, conflicts), hard ones are not (malformed input, unknown ids).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from payledger.domain.entities import RegistrationOutcome
from payledger.domain.errors import (
    ConflictError,
    DomainError,
    NotFoundError,
    ParseError,
    StorageError,
    ValidationError,
)
from payledger.domain.reconciliation import BankReconciliationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobSuccess:
    """Job finished; ``data`` is JSON-serializable."""

    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class JobError:
    """Job failed with a machine-readable code."""

    code: str
    message: str
    soft: bool = False

    @property
    def ok(self) -> bool:
        return False


JobResult = Union[JobSuccess, JobError]

# Checked in order; subclasses before their bases
_ERROR_CODES: list[tuple[type, str, bool]] = [
    (StorageError, "storage_error", True),
    (ParseError, "parse_error", False),
    (NotFoundError, "not_found", False),
    (ConflictError, "conflict", True),
    (ValidationError, "validation_error", False),
    (DomainError, "domain_error", False),
]


def to_job_error(error: Exception) -> JobError:
    """Map a domain exception to a JobError."""
    for error_type, code, soft in _ERROR_CODES:
        if isinstance(error, error_type):
            return JobError(code=code, message=str(error), soft=soft)
    raise TypeError(f"No job error code for {type(error).__name__}")


def run_job(name: str, action: Callable[[], dict[str, Any]]) -> JobResult:
    """Run ``action`` and wrap its outcome in a JobResult."""
    try:
        return JobSuccess(data=action())
    except DomainError as e:
        error = to_job_error(e)
        logger.exception("Job %s failed with %s", name, error.code, extra={"action": f"job_{name}"})
        return error


def import_statement_job(
    service: BankReconciliationService, content: Union[bytes, str], workers: int = 1
) -> JobResult:
    """Import a camt.053 statement and summarize the registrations."""

    def action() -> dict[str, Any]:
        result = service.ingest(content, workers=workers)
        counts = {outcome.value: 0 for outcome in RegistrationOutcome}
        for registration in result.registrations:
            counts[registration.outcome.value] += 1
        return {
            "statement": result.statement.id,
            "transactions": [tx.id for tx in result.transactions],
            **counts,
            "errors": list(result.errors),
        }

    return run_job("import_statement", action)


def register_transaction_job(
    service: BankReconciliationService, transaction_id: str, payment_id: Optional[int] = None
) -> JobResult:
    """Register one bank transaction."""

    def action() -> dict[str, Any]:
        registration = service.register_transaction(transaction_id, payment_id)
        return {
            "transaction": registration.transaction_id,
            "outcome": registration.outcome.value,
            "event": registration.event.id if registration.event is not None else None,
        }

    return run_job("register_transaction", action)
