"""SQLAlchemy models for the payledger database."""

from datetime import datetime, UTC
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timestamp stored as naive UTC and returned as aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BankAccount(Base):
    """Bank account model."""

    __tablename__ = "bank_accounts"

    iban = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    # Relationships
    statements = relationship("BankStatement", back_populates="bank_account")


class PaymentNumber(Base):
    """Running payment number per accounting year."""

    __tablename__ = "payment_numbers"

    year = Column(Integer, primary_key=True)
    number = Column(Integer, nullable=False, default=0)


class Payment(Base):
    """Payment model.

    There is no status column; status is derived from ``payment_events``.
    """

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    payment_number = Column(String, unique=True, nullable=False)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False, default="")
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)
    credited = Column(Boolean, default=False, nullable=False)
    reference_number = Column(String, nullable=True, index=True)
    finnish_reference = Column(String, nullable=True, index=True)
    payer_id = Column(String, nullable=True)
    payer_name = Column(String, nullable=True)
    debt_center_id = Column(String, nullable=True)
    debt_center_name = Column(String, nullable=True)

    # Relationships
    debt_mappings = relationship(
        "PaymentDebtMapping", back_populates="payment", cascade="all, delete-orphan"
    )
    events = relationship("PaymentEvent", back_populates="payment", order_by="PaymentEvent.id")


class PaymentDebtMapping(Base):
    """Debts covered by a payment (many-to-many)."""

    __tablename__ = "payment_debt_mappings"

    id = Column(Integer, primary_key=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False)
    debt_id = Column(String, nullable=False, index=True)

    __table_args__ = (UniqueConstraint("payment_id", "debt_id", name="uq_payment_debt"),)

    # Relationships
    payment = relationship("Payment", back_populates="debt_mappings")


class PaymentEvent(Base):
    """Append-only ledger event. Rows are never updated or deleted."""

    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    time = Column(UTCDateTime, nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)
    source_key = Column(String, nullable=True, unique=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    # Relationships
    payment = relationship("Payment", back_populates="events")
    transaction_mapping = relationship(
        "TransactionEventMapping", back_populates="payment_event", uselist=False
    )


class BankTransaction(Base):
    """Bank transaction model; the id is assigned by the bank."""

    __tablename__ = "bank_transactions"

    id = Column(String, primary_key=True)
    account = Column(String, ForeignKey("bank_accounts.iban"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    direction = Column(String, nullable=False)
    booking_date = Column(Date, nullable=False)
    value_date = Column(Date, nullable=False)
    other_party_name = Column(String, nullable=False)
    other_party_account = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    normalized_reference = Column(String, nullable=True, index=True)
    message = Column(String, nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    # Relationships
    event_mapping = relationship("TransactionEventMapping", back_populates="transaction", uselist=False)


class BankStatement(Base):
    """Imported bank statement."""

    __tablename__ = "bank_statements"

    id = Column(String, primary_key=True)
    account = Column(String, ForeignKey("bank_accounts.iban"), nullable=False, index=True)
    generated_at = Column(UTCDateTime, nullable=False)
    imported_at = Column(UTCDateTime, default=_utcnow, nullable=False)
    opening_balance_date = Column(Date, nullable=False)
    opening_balance = Column(Integer, nullable=False)
    closing_balance_date = Column(Date, nullable=False)
    closing_balance = Column(Integer, nullable=False)

    # Relationships
    bank_account = relationship("BankAccount", back_populates="statements")


class StatementTransactionMapping(Base):
    """Transactions contained in a statement; overlapping imports share rows."""

    __tablename__ = "bank_statement_transaction_mapping"

    id = Column(Integer, primary_key=True)
    bank_statement_id = Column(String, ForeignKey("bank_statements.id"), nullable=False)
    bank_transaction_id = Column(String, ForeignKey("bank_transactions.id"), nullable=False)

    __table_args__ = (
        UniqueConstraint("bank_statement_id", "bank_transaction_id", name="uq_statement_transaction"),
    )


class TransactionEventMapping(Base):
    """Links a bank transaction to the single event it produced.

    The unique constraint on ``bank_transaction_id`` is the idempotency
    guard for concurrent reconciliation runs.
    """

    __tablename__ = "payment_event_transaction_mapping"

    id = Column(Integer, primary_key=True)
    payment_event_id = Column(Integer, ForeignKey("payment_events.id"), nullable=False, unique=True)
    bank_transaction_id = Column(String, ForeignKey("bank_transactions.id"), nullable=False)

    __table_args__ = (UniqueConstraint("bank_transaction_id", name="uq_transaction_event"),)

    # Relationships
    payment_event = relationship("PaymentEvent", back_populates="transaction_mapping")
    transaction = relationship("BankTransaction", back_populates="event_mapping")


def is_memory_sqlite(database_url: str) -> bool:
    """Return True for an in-memory SQLite URL such as ``sqlite://``."""
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def create_session_factory(database_url: str, echo: bool = False) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine_args = {}
    if database_url.startswith("sqlite"):
        # Sessions are handed to worker threads during parallel registration
        engine_args["connect_args"] = {"check_same_thread": False}
    if is_memory_sqlite(database_url):
        # One connection holds the whole in-memory database
        engine_args["poolclass"] = StaticPool
    engine = create_engine(database_url, echo=echo, **engine_args)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
