"""Utility functions for payledger."""

from payledger.utils.date_parser import parse_date, parse_iso_date, parse_iso_datetime
from payledger.utils.amount_parser import parse_amount, parse_signed_amount

__all__ = [
    "parse_date",
    "parse_iso_date",
    "parse_iso_datetime",
    "parse_amount",
    "parse_signed_amount",
]
