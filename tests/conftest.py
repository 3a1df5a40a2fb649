"""Shared pytest fixtures for payledger tests."""

import logging
import tempfile
import os
from datetime import UTC, datetime
from pathlib import Path
import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from payledger.database.factories import create_sqlite_database
from payledger.domain.ledger import PaymentLedgerService
from payledger.domain.money import Money
from payledger.domain.reconciliation import BankReconciliationService
from payledger.domain.report import LedgerReportService

TEST_IBAN = "FI7993594446835768"
SINGLE_PAYMENT_REFERENCE = "RF78 0000 1337 0024 0042 0015"


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    db.session_factory.kw["bind"].dispose()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture(autouse=True)
def reset_payledger_logger():
    """Undo handlers installed by CLI invocations so caplog sees records."""
    yield
    logger = logging.getLogger("payledger")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def ledger_service(temp_db):
    """Create a PaymentLedgerService with a temporary database."""
    return PaymentLedgerService(temp_db)


@pytest.fixture
def reconciliation_service(temp_db, ledger_service):
    """Create a BankReconciliationService sharing the ledger service."""
    return BankReconciliationService(temp_db, ledger=ledger_service)


@pytest.fixture
def report_service(temp_db, ledger_service):
    """Create a LedgerReportService sharing the ledger service."""
    return LedgerReportService(temp_db, ledger=ledger_service)


@pytest.fixture
def bank_account(reconciliation_service):
    """Create the bank account the CAMT fixtures are issued for."""
    return reconciliation_service.create_bank_account("FI79 9359 4446 8357 68", "Test Account")


@pytest.fixture
def make_payment(ledger_service):
    """Factory creating payments with sensible defaults."""

    def _make_payment(
        amount: int = 1000,
        debt_id: str = "D-1",
        payment_type: str = "invoice",
        created_at: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=UTC),
        **kwargs,
    ):
        title = kwargs.pop("title", "Membership fee")
        return ledger_service.create_payment(
            payment_type=payment_type,
            title=title,
            debts={debt_id: Money(amount)},
            created_at=created_at,
            **kwargs,
        )

    return _make_payment


@pytest.fixture
def single_payment_invoice(make_payment):
    """Invoice whose reference appears in camt/single-payment.xml."""
    return make_payment(amount=1000, reference_number=SINGLE_PAYMENT_REFERENCE)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def read_camt(fixtures_dir):
    """Read a CAMT fixture as bytes."""

    def _read(name: str) -> bytes:
        return (fixtures_dir / "camt" / name).read_bytes()

    return _read


@pytest.fixture
def fail_inserts():
    """Make inserts of a model fail as if the database were locked.

    Call with the ORM model and a predicate on the row being inserted.
    """
    listeners = []

    def _fail(model, should_fail=lambda row: True):
        def before_insert(mapper, connection, target):
            if should_fail(target):
                raise OperationalError("INSERT", {}, Exception("database is locked"))

        event.listen(model, "before_insert", before_insert)
        listeners.append((model, before_insert))

    yield _fail

    for model, listener in listeners:
        event.remove(model, "before_insert", listener)
