"""Integer-cent money value type.

Only EUR is supported. Amounts are whole cents held in an ``int``; floats are
never accepted, so there is no rounding anywhere in the ledger.
"""

from dataclasses import dataclass
from typing import Iterable

from payledger.domain.errors import ValidationError

EUR = "EUR"


@dataclass(frozen=True)
class Money:
    """Immutable EUR amount in cents."""

    cents: int
    currency: str = EUR

    def __post_init__(self):
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(
                f"Money amount must be an integer number of cents, got {type(self.cents).__name__}"
            )
        if self.currency != EUR:
            raise ValidationError(f"Unsupported currency '{self.currency}': only EUR is accepted")

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def euros(cls, amount: int) -> "Money":
        """Create from a whole number of euros."""
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TypeError("Euro amount must be an integer")
        return cls(amount * 100)

    @classmethod
    def total(cls, amounts: Iterable["Money"]) -> "Money":
        """Sum an iterable of Money values; an empty iterable sums to zero."""
        result = cls.zero()
        for amount in amounts:
            result = result + amount
        return result

    def _check_currency(self, other: "Money", verb: str) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot {verb} Money and {type(other).__name__}")
        if self.currency != other.currency:
            raise ValidationError(f"Cannot {verb} {self.currency} and {other.currency}")

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other, "add")
        return Money(self.cents + other.cents, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other, "subtract")
        return Money(self.cents - other.cents, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.cents, self.currency)

    def __abs__(self) -> "Money":
        return Money(abs(self.cents), self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.cents < other.cents

    def __le__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.cents <= other.cents

    def __gt__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.cents > other.cents

    def __ge__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.cents >= other.cents

    def is_zero(self) -> bool:
        return self.cents == 0

    def is_negative(self) -> bool:
        return self.cents < 0

    def is_positive(self) -> bool:
        return self.cents > 0

    def to_string(self) -> str:
        """Format for display, e.g. ``EUR -1,234.50``."""
        sign = "-" if self.cents < 0 else ""
        euros, cents = divmod(abs(self.cents), 100)
        return f"{self.currency} {sign}{euros:,}.{cents:02d}"

    def __str__(self) -> str:
        return self.to_string()
