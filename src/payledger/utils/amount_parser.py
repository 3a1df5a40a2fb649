"""Amount parsing utilities."""

import re

from payledger.domain.errors import ParseError
from payledger.domain.money import Money

_AMOUNT_PATTERN = re.compile(r"^(\d+)\.(\d{2})$")


def parse_amount(amount_str: str) -> Money:
    """Parse a bank amount string into Money.

    Only the exact shape ``^\\d+\\.\\d{2}$`` is accepted: a fixed ``.``
    separator, exactly two decimals, no sign, currency symbol or grouping
    characters. Anything else is rejected rather than rounded.

    Args:
        amount_str: Amount string, e.g. "12.34"

    Returns:
        Money amount (1234 cents for "12.34")

    Raises:
        ParseError: If the string does not have the exact expected shape
    """
    if amount_str is None:
        raise ParseError("Empty amount string")

    match = _AMOUNT_PATTERN.match(amount_str)
    if match is None:
        raise ParseError(f"Invalid currency value: '{amount_str}'")

    euros, cents = match.groups()
    return Money(int(euros) * 100 + int(cents))


def parse_signed_amount(amount_str: str) -> Money:
    """Parse an amount that may carry a leading minus sign.

    Used for manually entered ledger events; the unsigned part follows the
    same strict rules as :func:`parse_amount`.
    """
    if amount_str is None or not amount_str.strip():
        raise ParseError("Empty amount string")

    amount_str = amount_str.strip()
    if amount_str.startswith("-"):
        return -parse_amount(amount_str[1:])
    return parse_amount(amount_str)
