"""Mapper functions to convert between domain models and SQLAlchemy models.

Amounts are stored as integer cents and rebuilt into :class:`Money` here, so
nothing above the storage layer sees raw integers.
"""

from payledger.domain import entities as domain
from payledger.domain.money import Money
from payledger.database.models import (
    BankAccount as ORMBankAccount,
    BankStatement as ORMBankStatement,
    BankTransaction as ORMBankTransaction,
    Payment as ORMPayment,
    PaymentEvent as ORMPaymentEvent,
)


def bank_account_to_domain(orm_account: ORMBankAccount) -> domain.BankAccount:
    """Convert SQLAlchemy BankAccount model to domain BankAccount entity."""
    return domain.BankAccount(
        iban=orm_account.iban,
        name=orm_account.name,
        created_at=orm_account.created_at,
    )


def payment_to_domain(orm_payment: ORMPayment) -> domain.Payment:
    """Convert SQLAlchemy Payment model to domain Payment entity."""
    return domain.Payment(
        id=orm_payment.id,
        payment_number=orm_payment.payment_number,
        type=domain.PaymentType(orm_payment.type),
        title=orm_payment.title,
        message=orm_payment.message,
        created_at=orm_payment.created_at,
        credited=orm_payment.credited,
        reference_number=orm_payment.reference_number,
        finnish_reference=orm_payment.finnish_reference,
        debt_ids=tuple(sorted(mapping.debt_id for mapping in orm_payment.debt_mappings)),
        payer_id=orm_payment.payer_id,
        payer_name=orm_payment.payer_name,
        debt_center_id=orm_payment.debt_center_id,
        debt_center_name=orm_payment.debt_center_name,
    )


def payment_event_to_domain(orm_event: ORMPaymentEvent) -> domain.PaymentEvent:
    """Convert SQLAlchemy PaymentEvent model to domain PaymentEvent entity."""
    mapping = orm_event.transaction_mapping
    return domain.PaymentEvent(
        id=orm_event.id,
        payment_id=orm_event.payment_id,
        type=domain.EventType(orm_event.type),
        amount=Money(orm_event.amount),
        time=orm_event.time,
        data=dict(orm_event.data or {}),
        transaction_id=mapping.bank_transaction_id if mapping is not None else None,
        source_key=orm_event.source_key,
    )


def bank_transaction_to_domain(orm_transaction: ORMBankTransaction) -> domain.BankTransaction:
    """Convert SQLAlchemy BankTransaction model to domain BankTransaction entity."""
    return domain.BankTransaction(
        id=orm_transaction.id,
        account=orm_transaction.account,
        amount=Money(orm_transaction.amount),
        direction=domain.Direction(orm_transaction.direction),
        booking_date=orm_transaction.booking_date,
        value_date=orm_transaction.value_date,
        counterparty=domain.Counterparty(
            name=orm_transaction.other_party_name,
            account=orm_transaction.other_party_account,
        ),
        reference=orm_transaction.reference,
        message=orm_transaction.message,
    )


def bank_statement_to_domain(orm_statement: ORMBankStatement) -> domain.BankStatement:
    """Convert SQLAlchemy BankStatement model to domain BankStatement entity."""
    return domain.BankStatement(
        id=orm_statement.id,
        account=orm_statement.account,
        generated_at=orm_statement.generated_at,
        imported_at=orm_statement.imported_at,
        opening_balance=domain.Balance(
            date=orm_statement.opening_balance_date,
            amount=Money(orm_statement.opening_balance),
        ),
        closing_balance=domain.Balance(
            date=orm_statement.closing_balance_date,
            amount=Money(orm_statement.closing_balance),
        ),
    )
