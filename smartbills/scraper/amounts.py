"""Decoding of rendered money/quantity cells."""

from __future__ import annotations

import re
from decimal import Decimal

from .utils import clean_text, strip_unicode_spaces

_CURRENCY_AND_GROUPING = re.compile(r"[\u20b9,]")
_CREDIT_DEBIT = re.compile(r"CR|DR", re.I)
_PARENTHESIZED = re.compile(r"^\((.*)\)$")
_NON_NUMERIC = re.compile(r"[^\d.\-]")


def parse_amount(text: str | None) -> float:
    """Decode a rendered amount into a signed float.

    ``"₹1,234.50 CR"`` → ``1234.5``; ``"(200.00)"`` → ``-200.0``. Anything
    that still does not read as a number after normalisation decodes to
    ``0.0``.
    """

    value = strip_unicode_spaces(clean_text(text))
    value = _CURRENCY_AND_GROUPING.sub("", value)
    value = _CREDIT_DEBIT.sub("", value).strip()
    value = _PARENTHESIZED.sub(r"-\1", value)
    value = _NON_NUMERIC.sub("", value)
    if not value:
        return 0.0
    try:
        return float(value)
    except ValueError:
        return 0.0


def format_amount(value: float | int) -> str:
    """Render ``value`` in positional notation that :func:`parse_amount` reads back."""

    number = float(value)
    if number.is_integer():
        return str(int(number))
    return format(Decimal(repr(number)), "f")


__all__ = ["parse_amount", "format_amount"]
