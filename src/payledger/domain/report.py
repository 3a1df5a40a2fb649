"""Ledger report domain service."""

from datetime import UTC, date, datetime
from typing import Optional, Union

from payledger.database.base import Database
from payledger.domain.entities import (
    EventType,
    LedgerGroup,
    LedgerReport,
    LedgerRow,
    LedgerStatus,
    Payment,
    PaymentType,
    ReportGroupBy,
)
from payledger.domain.errors import ValidationError
from payledger.domain.ledger import PaymentLedgerService
from payledger.utils.date_parser import end_of_day_exclusive, ensure_utc, start_of_day

UNKNOWN_GROUP_ID = "unknown"
UNKNOWN_GROUP_LABEL = "Unknown"


def _group_key(payment: Payment, group_by: ReportGroupBy) -> tuple[str, str]:
    if group_by == ReportGroupBy.PAYER:
        group_id, label = payment.payer_id, payment.payer_name
    else:
        group_id, label = payment.debt_center_id, payment.debt_center_name
    if group_id is None:
        return UNKNOWN_GROUP_ID, UNKNOWN_GROUP_LABEL
    return group_id, label or group_id


class LedgerReportService:
    """Service for building point-in-time ledger reports."""

    def __init__(self, db: Database, ledger: Optional[PaymentLedgerService] = None):
        """Initialize ledger report service.

        Args:
            db: Database instance
            ledger: Ledger service used for as-of status queries
        """
        self.db = db
        self.ledger = ledger or PaymentLedgerService(db)

    def build_ledger_report(
        self,
        start_date: date,
        end_date: date,
        group_by: Optional[Union[ReportGroupBy, str]] = None,
        as_of: Optional[datetime] = None,
        payment_type: Optional[PaymentType] = None,
        event_types: Optional[list[EventType]] = None,
    ) -> LedgerReport:
        """Build a ledger report for events within a date range.

        Every row is an event with ``start_date <= time < end_date + 1 day``
        and ``time < as_of``, paired with its payment's balance and status
        as of ``as_of``. The same arguments always give the same report.

        Args:
            start_date: First day of the range (inclusive)
            end_date: Last day of the range (inclusive)
            group_by: Group rows by payer or debt center; one group when None
            as_of: Cutoff for balances and statuses; defaults to now
            payment_type: Only events of this payment type
            event_types: Only events of these types

        Returns:
            LedgerReport with groups ordered by label and rows ordered by time

        Raises:
            ValidationError: If the range is empty or the grouping is unknown
        """
        if end_date < start_date:
            raise ValidationError(f"Report end date {end_date} is before start date {start_date}")
        if isinstance(group_by, str):
            try:
                group_by = ReportGroupBy(group_by)
            except ValueError:
                raise ValidationError(f"Unknown report grouping '{group_by}'. Valid groupings: payer, center")

        as_of = ensure_utc(as_of) if as_of is not None else datetime.now(UTC)
        end = min(end_of_day_exclusive(end_date), as_of)
        events = self.db.list_events_in_range(start_of_day(start_date), end, payment_type, event_types)

        payments: dict[int, tuple[Payment, LedgerStatus]] = {}
        rows = []
        for event in events:
            if event.payment_id not in payments:
                payment = self.db.get_payment(event.payment_id)
                payments[event.payment_id] = (payment, self.ledger.status_as_of(payment.id, as_of))
            payment, status = payments[event.payment_id]
            rows.append(LedgerRow(event=event, payment=payment, balance=status.balance, status=status.status))

        if group_by is None:
            groups = (LedgerGroup(group_id=None, group_label=None, rows=tuple(rows)),)
        else:
            grouped: dict[tuple[str, str], list[LedgerRow]] = {}
            for row in rows:
                grouped.setdefault(_group_key(row.payment, group_by), []).append(row)
            groups = tuple(
                LedgerGroup(group_id=group_id, group_label=label, rows=tuple(group_rows))
                for (group_id, label), group_rows in sorted(grouped.items(), key=lambda item: (item[0][1], item[0][0]))
            )

        return LedgerReport(
            start_date=start_date,
            end_date=end_date,
            as_of=as_of,
            group_by=group_by,
            groups=groups,
        )
