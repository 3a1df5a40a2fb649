"""Tests for BankReconciliationService."""

from datetime import UTC, date, datetime

import pytest

from payledger.database.models import TransactionEventMapping
from payledger.database.sqlalchemy_db import SQLAlchemyDatabase
from payledger.domain.entities import (
    Direction,
    EventType,
    PaymentStatus,
    RegistrationOutcome,
)
from payledger.domain.errors import (
    ConflictError,
    NotFoundError,
    ParseError,
    ReconciliationConflict,
    ValidationError,
)
from payledger.domain.money import Money
from payledger.domain.ledger import PaymentLedgerService
from payledger.domain.reconciliation import BankReconciliationService, normalize_iban

TEST_IBAN = "FI7993594446835768"


def _outcomes(result):
    return {r.transaction_id: r.outcome for r in result.registrations}


class TestBankAccounts:
    """Test cases for bank account management."""

    def test_create_normalizes_iban(self, bank_account, reconciliation_service):
        assert bank_account.iban == TEST_IBAN
        assert bank_account.name == "Test Account"
        assert reconciliation_service.get_bank_account("fi79 9359 4446 8357 68") == bank_account

    def test_duplicate_account(self, bank_account, reconciliation_service):
        with pytest.raises(ConflictError, match="already exists"):
            reconciliation_service.create_bank_account(TEST_IBAN, "Other")

    def test_empty_values(self, reconciliation_service):
        with pytest.raises(ValidationError, match="IBAN"):
            reconciliation_service.create_bank_account("  ", "Name")
        with pytest.raises(ValidationError, match="name"):
            reconciliation_service.create_bank_account(TEST_IBAN, "")

    def test_list(self, reconciliation_service):
        reconciliation_service.create_bank_account("FI2112345600000785", "Savings")
        reconciliation_service.create_bank_account(TEST_IBAN, "Main")

        assert [a.name for a in reconciliation_service.list_bank_accounts()] == ["Main", "Savings"]

    def test_normalize_iban(self):
        assert normalize_iban(" fi79 9359\t4446 8357 68 ") == TEST_IBAN


class TestIngest:
    """Test cases for importing statements."""

    def test_single_payment_is_registered(
        self, bank_account, single_payment_invoice, reconciliation_service, ledger_service, read_camt
    ):
        result = reconciliation_service.ingest(read_camt("single-payment.xml"))

        assert result.statement.id == "721d579e6fed739950fc4f50148e1c81"
        assert result.statement.account == TEST_IBAN
        assert [tx.id for tx in result.transactions] == ["dc2705347c720a4bc1484cf99671a499"]
        assert result.errors == ()

        registration = result.registrations[0]
        assert registration.outcome == RegistrationOutcome.REGISTERED
        assert registration.event.payment_id == single_payment_invoice.id
        assert registration.event.type == EventType.PAYMENT
        assert registration.event.amount == Money(1000)
        assert registration.event.time == datetime(2024, 1, 2, tzinfo=UTC)
        assert registration.event.transaction_id == "dc2705347c720a4bc1484cf99671a499"
        assert registration.event.data == {"transaction": "dc2705347c720a4bc1484cf99671a499"}

        status = ledger_service.get_status(single_payment_invoice.id)
        assert status.status == PaymentStatus.PAID
        assert status.balance.is_zero()

    def test_statement_is_stored(self, bank_account, reconciliation_service, read_camt):
        reconciliation_service.ingest(read_camt("multiple-payments.xml"))

        statement = reconciliation_service.get_statement("statement-2024-02")
        assert statement.account == TEST_IBAN
        assert statement.opening_balance.amount == Money(1000)
        assert statement.opening_balance.date == date(2024, 2, 1)
        assert statement.closing_balance.amount == Money(2766)
        assert statement.imported_at is not None
        assert [s.id for s in reconciliation_service.list_account_statements(TEST_IBAN)] == ["statement-2024-02"]

    def test_transactions_are_stored(self, bank_account, reconciliation_service, read_camt):
        reconciliation_service.ingest(read_camt("multiple-payments.xml"))

        debit = reconciliation_service.get_transaction("tx-feb-002")
        assert debit.account == TEST_IBAN
        assert debit.amount == Money(-1234)
        assert debit.direction == Direction.DEBIT
        assert debit.counterparty.name == "Sauna Oy"
        assert debit.counterparty.account == "FI5810171000000122"
        assert debit.reference is None
        assert debit.message == "Sauna booking February"

        statement_txs = reconciliation_service.list_statement_transactions("statement-2024-02")
        assert [tx.id for tx in statement_txs] == ["tx-feb-001", "tx-feb-002", "tx-feb-003"]

    def test_finnish_reference_with_leading_zeros_matches(
        self, bank_account, make_payment, reconciliation_service, ledger_service, read_camt
    ):
        payment = make_payment(amount=2500, reference_number="12344")

        result = reconciliation_service.ingest(read_camt("multiple-payments.xml"))

        assert _outcomes(result) == {
            "tx-feb-001": RegistrationOutcome.REGISTERED,
            "tx-feb-002": RegistrationOutcome.UNMATCHED,
            "tx-feb-003": RegistrationOutcome.UNMATCHED,
        }
        assert ledger_service.get_status(payment.id).status == PaymentStatus.PAID

    def test_unmatched_transactions_stay_unregistered(
        self, bank_account, make_payment, reconciliation_service, read_camt
    ):
        make_payment(amount=2500, reference_number="12344")
        reconciliation_service.ingest(read_camt("multiple-payments.xml"))

        unregistered = reconciliation_service.get_unregistered_transactions()
        assert [tx.id for tx in unregistered] == ["tx-feb-002", "tx-feb-003"]
        assert reconciliation_service.get_unregistered_transactions("FI21 1234 5600 0007 85") == []

    def test_reimport_is_idempotent(
        self, bank_account, single_payment_invoice, reconciliation_service, ledger_service, read_camt
    ):
        content = read_camt("single-payment.xml")
        reconciliation_service.ingest(content)
        events_before = ledger_service.list_events(single_payment_invoice.id)
        status_before = ledger_service.get_status(single_payment_invoice.id)

        result = reconciliation_service.ingest(content)

        assert result.statement.id == "721d579e6fed739950fc4f50148e1c81"
        assert _outcomes(result) == {"dc2705347c720a4bc1484cf99671a499": RegistrationOutcome.DUPLICATE}
        assert result.registrations[0].is_duplicate
        assert ledger_service.list_events(single_payment_invoice.id) == events_before
        assert ledger_service.get_status(single_payment_invoice.id) == status_before
        assert len(reconciliation_service.list_transactions()) == 1
        assert len(reconciliation_service.list_statement_transactions(result.statement.id)) == 1

    def test_overlapping_statements_share_transactions(
        self, bank_account, single_payment_invoice, reconciliation_service, ledger_service, read_camt
    ):
        reconciliation_service.ingest(read_camt("multiple-payments.xml"))
        result = reconciliation_service.ingest(read_camt("overlapping.xml"))

        assert [tx.id for tx in result.transactions] == ["tx-feb-003", "tx-mar-001"]
        assert _outcomes(result) == {
            "tx-feb-003": RegistrationOutcome.UNMATCHED,
            "tx-mar-001": RegistrationOutcome.REGISTERED,
        }
        assert len(reconciliation_service.list_transactions()) == 4
        assert [s.id for s in reconciliation_service.list_account_statements(TEST_IBAN)] == [
            "statement-2024-02",
            "statement-2024-02-03",
        ]
        # 25.00 paid on a 10.00 invoice
        status = ledger_service.get_status(single_payment_invoice.id)
        assert status.status == PaymentStatus.MISPAID
        assert status.balance == Money(1500)

    def test_unknown_account(self, reconciliation_service, read_camt):
        with pytest.raises(NotFoundError, match=TEST_IBAN):
            reconciliation_service.ingest(read_camt("single-payment.xml"))

        assert reconciliation_service.list_transactions() == []
        assert reconciliation_service.get_statement("721d579e6fed739950fc4f50148e1c81") is None

    def test_parse_error_persists_nothing(self, bank_account, reconciliation_service, read_camt):
        content = read_camt("multiple-payments.xml").decode().replace(">12.34<", ">12.3<")

        with pytest.raises(ParseError):
            reconciliation_service.ingest(content)

        assert reconciliation_service.list_transactions() == []
        assert reconciliation_service.get_statement("statement-2024-02") is None

    def test_statement_id_reused_for_other_account(self, bank_account, reconciliation_service, read_camt):
        reconciliation_service.create_bank_account("FI2112345600000785", "Savings")
        reconciliation_service.ingest(read_camt("single-payment.xml"))
        content = read_camt("single-payment.xml").decode().replace(
            "<IBAN>FI7993594446835768</IBAN>", "<IBAN>FI2112345600000785</IBAN>"
        )

        with pytest.raises(ConflictError, match="already imported"):
            reconciliation_service.ingest(content)

    def test_invalid_worker_count(self, bank_account, reconciliation_service, read_camt):
        with pytest.raises(ValidationError, match="at least 1"):
            reconciliation_service.ingest(read_camt("single-payment.xml"), workers=0)

    def test_parallel_registration(
        self, bank_account, single_payment_invoice, make_payment, reconciliation_service, ledger_service, read_camt
    ):
        finnish = make_payment(amount=2500, reference_number="12344")
        reconciliation_service.ingest(read_camt("multiple-payments.xml"), workers=3)
        result = reconciliation_service.ingest(read_camt("overlapping.xml"), workers=2)

        assert result.errors == ()
        assert _outcomes(result)["tx-mar-001"] == RegistrationOutcome.REGISTERED
        assert ledger_service.get_status(finnish.id).status == PaymentStatus.PAID
        assert len(reconciliation_service.get_unregistered_transactions()) == 2

    @pytest.mark.parametrize("workers", [1, 3])
    def test_storage_failure_does_not_block_other_transactions(
        self, bank_account, make_payment, reconciliation_service, ledger_service, read_camt, fail_inserts, workers
    ):
        payment = make_payment(amount=2500, reference_number="12344")
        locked = {"tx-feb-001"}
        fail_inserts(TransactionEventMapping, lambda row: row.bank_transaction_id in locked)

        result = reconciliation_service.ingest(read_camt("multiple-payments.xml"), workers=workers)

        assert len(result.errors) == 1
        assert result.errors[0].startswith("tx-feb-001: Storage operation 'append_payment_event' failed")
        assert _outcomes(result) == {
            "tx-feb-002": RegistrationOutcome.UNMATCHED,
            "tx-feb-003": RegistrationOutcome.UNMATCHED,
        }
        assert len(ledger_service.list_events(payment.id)) == 1

        locked.clear()
        retry = reconciliation_service.ingest(read_camt("multiple-payments.xml"), workers=workers)

        assert retry.errors == ()
        assert _outcomes(retry)["tx-feb-001"] == RegistrationOutcome.REGISTERED
        assert ledger_service.get_status(payment.id).status == PaymentStatus.PAID

    def test_parallel_workers_on_in_memory_database(self, read_camt):
        db = SQLAlchemyDatabase("sqlite://")
        ledger = PaymentLedgerService(db)
        service = BankReconciliationService(db, ledger=ledger)
        try:
            service.create_bank_account(TEST_IBAN, "Memory")
            payment = ledger.create_payment(
                payment_type="invoice",
                title="Fee",
                debts={"D-1": Money(2500)},
                created_at=datetime(2024, 1, 1, tzinfo=UTC),
                reference_number="12344",
            )

            result = service.ingest(read_camt("multiple-payments.xml"), workers=2)

            assert result.errors == ()
            assert _outcomes(result) == {
                "tx-feb-001": RegistrationOutcome.REGISTERED,
                "tx-feb-002": RegistrationOutcome.UNMATCHED,
                "tx-feb-003": RegistrationOutcome.UNMATCHED,
            }
            assert ledger.get_status(payment.id).status == PaymentStatus.PAID
        finally:
            db.disconnect()


class TestRegisterTransaction:
    """Test cases for registering single transactions."""

    @pytest.fixture
    def imported(self, bank_account, reconciliation_service, read_camt):
        return reconciliation_service.ingest(read_camt("multiple-payments.xml"))

    def test_register_to_explicit_payment(self, imported, make_payment, reconciliation_service, ledger_service):
        payment = make_payment(amount=500, payment_type="cash")

        registration = reconciliation_service.register_transaction("tx-feb-003", payment.id)

        assert registration.outcome == RegistrationOutcome.REGISTERED
        assert registration.event.payment_id == payment.id
        assert registration.event.time == datetime(2024, 2, 20, tzinfo=UTC)
        assert ledger_service.get_status(payment.id).status == PaymentStatus.PAID
        assert reconciliation_service.get_transaction_registrations("tx-feb-003") == [registration.event]

    def test_register_twice_is_duplicate(self, imported, make_payment, reconciliation_service, ledger_service):
        payment = make_payment(amount=500)
        reconciliation_service.register_transaction("tx-feb-003", payment.id)

        again = reconciliation_service.register_transaction("tx-feb-003", payment.id)
        other = make_payment(amount=500)
        elsewhere = reconciliation_service.register_transaction("tx-feb-003", other.id)

        assert again.outcome == RegistrationOutcome.DUPLICATE
        assert again.event is None
        assert elsewhere.outcome == RegistrationOutcome.DUPLICATE
        assert len(ledger_service.list_events(payment.id)) == 2
        assert len(ledger_service.list_events(other.id)) == 1

    def test_lost_race_is_duplicate(self, imported, make_payment, reconciliation_service, temp_db, monkeypatch):
        """A registration that passed the read check still ends as a duplicate."""
        payment = make_payment(amount=500)
        reconciliation_service.register_transaction("tx-feb-003", payment.id)
        monkeypatch.setattr(temp_db, "get_registered_event", lambda transaction_id: None)

        registration = reconciliation_service.register_transaction("tx-feb-003", payment.id)

        assert registration.outcome == RegistrationOutcome.DUPLICATE
        monkeypatch.undo()
        assert len(reconciliation_service.get_transaction_registrations("tx-feb-003")) == 1

    def test_unmatched_without_reference(self, imported, reconciliation_service):
        registration = reconciliation_service.register_transaction("tx-feb-002")

        assert registration.outcome == RegistrationOutcome.UNMATCHED
        assert registration.event is None
        assert reconciliation_service.get_transaction_registrations("tx-feb-002") == []

    def test_unknown_transaction(self, imported, reconciliation_service):
        with pytest.raises(NotFoundError, match="tx-none"):
            reconciliation_service.register_transaction("tx-none")
        with pytest.raises(NotFoundError):
            reconciliation_service.get_transaction_registrations("tx-none")

    def test_unknown_payment(self, imported, reconciliation_service):
        with pytest.raises(NotFoundError, match="Payment 999"):
            reconciliation_service.register_transaction("tx-feb-001", 999)

    def test_unknown_statement(self, reconciliation_service):
        with pytest.raises(NotFoundError):
            reconciliation_service.list_statement_transactions("nope")

    def test_unknown_account_listing(self, reconciliation_service):
        with pytest.raises(NotFoundError):
            reconciliation_service.list_account_transactions(TEST_IBAN)

    def test_account_transactions(self, imported, reconciliation_service):
        transactions = reconciliation_service.list_account_transactions(TEST_IBAN)
        assert [tx.id for tx in transactions] == ["tx-feb-001", "tx-feb-002", "tx-feb-003"]


class TestAmbiguousReference:
    """Test cases for several payments sharing a reference."""

    def test_oldest_unpaid_payment_wins(
        self, bank_account, make_payment, reconciliation_service, ledger_service, read_camt, caplog
    ):
        first = make_payment(
            amount=2500, reference_number="12344", debt_id="D-1", created_at=datetime(2024, 1, 1, tzinfo=UTC)
        )
        second = make_payment(
            amount=2500, reference_number="12344", debt_id="D-2", created_at=datetime(2024, 1, 2, tzinfo=UTC)
        )
        ledger_service.record_event(first.id, EventType.PAYMENT, Money(2500), time=datetime(2024, 1, 3, tzinfo=UTC))

        result = reconciliation_service.ingest(read_camt("multiple-payments.xml"))

        registration = next(r for r in result.registrations if r.transaction_id == "tx-feb-001")
        assert registration.event.payment_id == second.id
        assert "matches multiple payments" in caplog.text

    def test_all_paid_falls_back_to_oldest(self, bank_account, make_payment, reconciliation_service, ledger_service, read_camt):
        first = make_payment(amount=2500, reference_number="12344", debt_id="D-1")
        second = make_payment(amount=2500, reference_number="12344", debt_id="D-2")
        for payment in (first, second):
            ledger_service.record_event(payment.id, EventType.PAYMENT, Money(2500), time=datetime(2024, 1, 3, tzinfo=UTC))

        result = reconciliation_service.ingest(read_camt("multiple-payments.xml"))

        registration = next(r for r in result.registrations if r.transaction_id == "tx-feb-001")
        assert registration.event.payment_id == first.id

    def test_strict_matching_raises(self, bank_account, make_payment, ledger_service, temp_db, read_camt):
        make_payment(amount=2500, reference_number="12344", debt_id="D-1")
        make_payment(amount=2500, reference_number="12344", debt_id="D-2")
        strict = BankReconciliationService(temp_db, ledger=ledger_service, strict_matching=True)

        result = strict.ingest(read_camt("multiple-payments.xml"))

        assert len(result.errors) == 1
        assert result.errors[0].startswith("tx-feb-001: ")
        assert "tx-feb-001" not in _outcomes(result)
        with pytest.raises(ReconciliationConflict):
            strict.register_transaction("tx-feb-001")
        assert [tx.id for tx in strict.get_unregistered_transactions()][0] == "tx-feb-001"


class TestBacklog:
    """Test cases for registering transactions that predate their payment."""

    def test_backlog_registration(self, bank_account, make_payment, reconciliation_service, ledger_service, read_camt):
        reconciliation_service.ingest(read_camt("multiple-payments.xml"))
        payment = make_payment(amount=2500, reference_number="12344")

        registrations = reconciliation_service.register_backlog_for_payment(payment.id)

        assert [(r.transaction_id, r.outcome) for r in registrations] == [
            ("tx-feb-001", RegistrationOutcome.REGISTERED)
        ]
        assert ledger_service.get_status(payment.id).status == PaymentStatus.PAID
        assert reconciliation_service.register_backlog_for_payment(payment.id) == []

    def test_backlog_without_reference(self, make_payment, reconciliation_service):
        payment = make_payment(payment_type="cash")
        assert reconciliation_service.register_backlog_for_payment(payment.id) == []

    def test_backlog_unknown_payment(self, reconciliation_service):
        with pytest.raises(NotFoundError):
            reconciliation_service.register_backlog_for_payment(999)
