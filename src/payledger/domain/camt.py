"""CAMT.053 bank statement parser.

Parses the ``BkToCstmrAcctRpt`` report of an ISO 20022 camt.053 document into
a :class:`CamtStatement`. Parsing is all-or-nothing: any missing or malformed
required field raises :class:`ParseError` naming the offending path, and no
partial statement is returned.
"""

import xml.etree.ElementTree as ET
from typing import Optional, Union

from payledger.domain.entities import (
    AccountDetails,
    Balance,
    CamtStatement,
    Counterparty,
    Direction,
    ServicerDetails,
    StatementEntry,
)
from payledger.domain.errors import ParseError, missing_field
from payledger.domain.money import EUR, Money
from payledger.utils.amount_parser import parse_amount
from payledger.utils.date_parser import parse_iso_date, parse_iso_datetime

REPORT_PATH = "BkToCstmrAcctRpt/Rpt"
OPENING_BALANCE = "OPBD"
CLOSING_BALANCE = "CLBD"

_DIRECTIONS = {
    "DBIT": Direction.DEBIT,
    "CRDT": Direction.CREDIT,
}


def _strip_namespaces(root: ET.Element) -> None:
    """Reduce every tag to its local name so paths ignore the schema version."""
    for element in root.iter():
        if isinstance(element.tag, str) and "}" in element.tag:
            element.tag = element.tag.split("}", 1)[1]


class _Scope:
    """An element plus the document path that leads to it, for error messages."""

    def __init__(self, element: ET.Element, path: str):
        self.element = element
        self.path = path

    def find(self, selector: str) -> Optional[str]:
        node = self.element.find(selector)
        if node is None or node.text is None:
            return None
        text = node.text.strip()
        return text or None

    def require(self, selector: str) -> str:
        value = self.find(selector)
        if value is None:
            raise ParseError(missing_field(f"{self.path}/{selector}"))
        return value

    def require_amount(self, selector: str) -> Money:
        node = self.element.find(selector)
        if node is None or not (node.text or "").strip():
            raise ParseError(missing_field(f"{self.path}/{selector}"))
        currency = node.get("Ccy")
        if currency is not None and currency != EUR:
            raise ParseError(f"Unsupported currency '{currency}' at {self.path}/{selector}")
        try:
            return parse_amount(node.text.strip())
        except ParseError as e:
            raise ParseError(f"{e} at {self.path}/{selector}") from e

    def children(self, tag: str) -> list["_Scope"]:
        return [
            _Scope(child, f"{self.path}/{tag}[{index}]")
            for index, child in enumerate(self.element.findall(tag), start=1)
        ]


def _parse_direction(scope: _Scope) -> Direction:
    indicator = scope.find("CdtDbtInd")
    if indicator not in _DIRECTIONS:
        raise ParseError(f"Invalid statement entry CdtDbtInd at {scope.path}: {indicator!r}")
    return _DIRECTIONS[indicator]


def _parse_balance(scope: _Scope) -> tuple[str, Balance]:
    balance_type = scope.require("Tp/CdOrPrtry/Cd")
    amount = scope.require_amount("Amt")
    if scope.find("CdtDbtInd") is not None and _parse_direction(scope) == Direction.DEBIT:
        amount = -amount
    balance_date = parse_iso_date(scope.require("Dt/Dt"))
    return balance_type, Balance(date=balance_date, amount=amount)


def _parse_entry(scope: _Scope) -> StatementEntry:
    direction = _parse_direction(scope)

    # The other party is the creditor for outgoing and the debtor for incoming money
    if direction == Direction.DEBIT:
        party, party_account = "Cdtr", "CdtrAcct"
    else:
        party, party_account = "Dbtr", "DbtrAcct"

    return StatementEntry(
        id=scope.require("NtryDtls/TxDtls/Refs/MsgId"),
        amount=scope.require_amount("NtryDtls/TxDtls/AmtDtls/TxAmt/Amt"),
        direction=direction,
        booking_date=parse_iso_date(scope.require("BookgDt/Dt")),
        value_date=parse_iso_date(scope.require("ValDt/Dt")),
        other_party=Counterparty(
            name=scope.require(f"NtryDtls/TxDtls/RltdPties/{party}/Nm"),
            account=scope.find(f"NtryDtls/TxDtls/RltdPties/{party_account}/Id/IBAN"),
        ),
        reference=scope.find("NtryDtls/TxDtls/RmtInf/Strd/CdtrRefInf/Ref"),
        message=scope.find("NtryDtls/TxDtls/RmtInf/Ustrd"),
    )


def parse_camt_statement(content: Union[bytes, str]) -> CamtStatement:
    """Parse a camt.053 document.

    Args:
        content: Raw XML document

    Returns:
        CamtStatement with entries in document order

    Raises:
        ParseError: If the document is malformed, a required field is
            missing, an amount is not of the form ``^\\d+\\.\\d{2}$``, a
            ``CdtDbtInd`` is unknown or a currency other than EUR is used
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ParseError(f"Could not parse CAMT statement: {e}") from e

    _strip_namespaces(root)
    if root.tag != "Document":
        raise ParseError(missing_field("Document"))

    report_node = root.find(REPORT_PATH)
    if report_node is None:
        raise ParseError(missing_field(f"Document/{REPORT_PATH}"))
    report = _Scope(report_node, f"Document/{REPORT_PATH}")

    currency = report.require("Acct/Ccy")
    if currency != EUR:
        raise ParseError(f"Unsupported account currency '{currency}': only EUR is accepted")

    balances: dict[str, Balance] = {}
    for scope in report.children("Bal"):
        balance_type, balance = _parse_balance(scope)
        balances.setdefault(balance_type, balance)

    if OPENING_BALANCE not in balances or CLOSING_BALANCE not in balances:
        raise ParseError("Opening or closing balance not present in the CAMT statement")

    entries = tuple(_parse_entry(scope) for scope in report.children("Ntry"))

    return CamtStatement(
        id=report.require("Id"),
        creation_datetime=parse_iso_datetime(report.require("CreDtTm")),
        account=AccountDetails(
            iban=report.require("Acct/Id/IBAN"),
            currency=currency,
        ),
        servicer=ServicerDetails(
            bic=report.require("Acct/Svcr/FinInstnId/BIC"),
            name=report.require("Acct/Svcr/FinInstnId/Nm"),
            postal_address=report.require("Acct/Svcr/FinInstnId/PstlAdr/StrtNm"),
        ),
        opening_balance=balances[OPENING_BALANCE],
        closing_balance=balances[CLOSING_BALANCE],
        entries=entries,
    )


class CamtStatementParser:
    """Service wrapper around :func:`parse_camt_statement`."""

    def parse(self, content: Union[bytes, str]) -> CamtStatement:
        return parse_camt_statement(content)
