"""Helpers for integer minor-unit (cents) arithmetic."""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]


def round_half_up(value: Number) -> int:
    """Round to the nearest integer with halves away from zero.

    Python's built-in ``round`` uses banker's rounding, which would make
    ``round(0.5) == 0``; prices must round 0.5 cents up.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, percent: Number) -> int:
    """Return ``amount_cents * percent / 100`` rounded half-up."""
    return round_half_up(Decimal(amount_cents) * Decimal(str(percent)) / Decimal(100))


def apply_rate(amount_cents: int, rate: Number) -> int:
    """Return ``amount_cents * rate`` rounded half-up (rate is a fraction)."""
    return round_half_up(Decimal(amount_cents) * Decimal(str(rate)))


def format_price(cents: int) -> str:
    return f"${cents / 100:.2f}"
