"""Finnish and ISO 11649 (RF) creditor reference numbers.

A generated reference nests two checksums: the payload is a Finnish
reference (mod-10 with cyclic weights 7, 3, 1) and the whole is wrapped as an
RF creditor reference (mod 97 over the ISO 11649 rearrangement, where the
letters ``RF`` map to ``2715``).
"""

import re
from dataclasses import dataclass
from typing import Optional

from payledger.domain.errors import ValidationError, invalid_reference

ORGANIZATION_PREFIX = 1337
FINNISH_WEIGHTS = (7, 3, 1)
# "RF00": R=27, F=15, 00 checksum placeholder
RF_SUFFIX = 271500
PAYLOAD_WIDTH = 20
MAX_SEQUENCE = 9999

_RF_PATTERN = re.compile(r"^RF(\d{2})(\d{1,21})$")
_SEPARATORS = re.compile(r"[^A-Za-z0-9]")


def finnish_checksum(number: int) -> int:
    """Return the Finnish reference check digit for ``number``.

    Digits are weighted least significant first with the cycle 7, 3, 1.
    """
    if number < 0:
        raise ValidationError("Reference base must be non-negative")
    total = 0
    for index, digit in enumerate(reversed(str(number))):
        total += int(digit) * FINNISH_WEIGHTS[index % 3]
    return (10 - total % 10) % 10


def rf_checksum(payload: int) -> int:
    """Return the ISO 11649 check digits for a numeric payload."""
    return 98 - (payload * 10**6 + RF_SUFFIX) % 97


def group_in_fours(text: str) -> str:
    """Split ``text`` into space-separated blocks of four characters."""
    return " ".join(text[i : i + 4] for i in range(0, len(text), 4))


def compact_reference(text: str) -> str:
    """Remove whitespace and separators and upper-case a reference."""
    return _SEPARATORS.sub("", text).upper()


def normalize_reference(text: Optional[str]) -> Optional[str]:
    """Normalize a reference for matching.

    Separators are dropped, letters upper-cased and leading zeros stripped,
    so ``"0000 0012 345"`` and ``"12345"`` compare equal. Returns None for
    empty input.
    """
    if text is None:
        return None
    compact = compact_reference(text).lstrip("0")
    return compact or None


@dataclass(frozen=True)
class ReferenceNumber:
    """RF creditor reference wrapping a Finnish reference payload."""

    rf_check: int
    payload: int

    @property
    def finnish(self) -> str:
        """The bare Finnish reference, without leading zeros."""
        return str(self.payload)

    @property
    def compact(self) -> str:
        """RF reference without spaces, payload zero-padded to 20 digits."""
        return f"RF{self.rf_check:02d}{self.payload:0{PAYLOAD_WIDTH}d}"

    @property
    def formatted(self) -> str:
        """Human-readable form, e.g. ``RF78 0000 1337 0024 0042 0015``."""
        return f"RF{self.rf_check:02d} " + group_in_fours(f"{self.payload:0{PAYLOAD_WIDTH}d}")

    def __str__(self) -> str:
        return self.formatted


def generate(series: int, year: int, sequence: int) -> ReferenceNumber:
    """Generate the reference number for an invoice.

    Args:
        series: Invoice series, 0-9
        year: Two-digit accounting year, 0-99
        sequence: Running payment number within the year, 0-9999

    Returns:
        ReferenceNumber whose Finnish and RF checksums both validate

    Raises:
        ValidationError: If any argument is out of range
    """
    if not 0 <= series <= 9:
        raise ValidationError(f"Series must be between 0 and 9, got {series}")
    if not 0 <= year <= 99:
        raise ValidationError(f"Year must be between 0 and 99, got {year}")
    if not 0 <= sequence <= MAX_SEQUENCE:
        raise ValidationError(f"Sequence must be between 0 and {MAX_SEQUENCE}, got {sequence}")

    composed = ORGANIZATION_PREFIX * 10**11 + year * 10**7 + sequence * 10**3 + series
    payload = composed * 10 + finnish_checksum(composed)
    return ReferenceNumber(rf_check=rf_checksum(payload), payload=payload)


def validate_finnish(reference: str) -> bool:
    """Check the mod-10 check digit of a bare Finnish reference."""
    digits = compact_reference(reference)
    if not digits.isdigit() or not 2 <= len(digits) <= PAYLOAD_WIDTH:
        return False
    base, check = int(digits[:-1]), int(digits[-1])
    return finnish_checksum(base) == check


def validate_rf(reference: str) -> bool:
    """Check only the ISO 11649 mod-97 checksum of an RF reference."""
    match = _RF_PATTERN.match(compact_reference(reference))
    if match is None:
        return False
    check, payload = match.groups()
    return (int(payload) * 10**6 + RF_SUFFIX + int(check)) % 97 == 1


def validate(reference: str) -> bool:
    """Validate an RF reference produced by :func:`generate`.

    Both the RF mod-97 checksum and the Finnish check digit of the payload
    must hold. Spaces are optional and letters are case-insensitive.
    """
    match = _RF_PATTERN.match(compact_reference(reference))
    if match is None:
        return False
    if not validate_rf(reference):
        return False
    return validate_finnish(match.group(2).lstrip("0") or "0")


def parse_reference(reference: str) -> ReferenceNumber:
    """Parse a manually entered RF reference.

    Raises:
        ValidationError: If the reference fails either checksum
    """
    match = _RF_PATTERN.match(compact_reference(reference))
    if match is None or not validate(reference):
        raise ValidationError(invalid_reference(reference))
    check, payload = match.groups()
    return ReferenceNumber(rf_check=int(check), payload=int(payload))


def format_reference(reference: str) -> str:
    """Format any reference into blocks of four for display."""
    return group_in_fours(compact_reference(reference))
