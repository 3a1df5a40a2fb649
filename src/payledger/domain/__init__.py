"""Domain layer for payledger application.

Services are imported lazily: the storage layer imports domain entities, and
the services import the storage layer.
"""

_SERVICES = {
    "PaymentLedgerService": "payledger.domain.ledger",
    "BankReconciliationService": "payledger.domain.reconciliation",
    "LedgerReportService": "payledger.domain.report",
    "CamtStatementParser": "payledger.domain.camt",
}

__all__ = list(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        from importlib import import_module

        return getattr(import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
