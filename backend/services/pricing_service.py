"""Deterministic booking price calculation."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Union


_CENT = Decimal("0.01")
_SECONDS_PER_HOUR = Decimal(3600)


def compute_price(
    hourly_rate: Union[Decimal, int, str],
    start: datetime,
    end: datetime,
) -> Decimal:
    """Return ``hourly_rate * hours(end - start)`` rounded half-up to cents.

    Decimal arithmetic throughout; a zero rate or zero duration is 0.00.
    Callers have already rejected inverted intervals.
    """
    rate = Decimal(str(hourly_rate))
    duration = end - start
    # timedelta keeps integer microseconds, so the quotient stays exact.
    microseconds = (
        duration.days * 86_400_000_000
        + duration.seconds * 1_000_000
        + duration.microseconds
    )
    price = (rate * Decimal(microseconds)) / (_SECONDS_PER_HOUR * Decimal(1_000_000))
    return price.quantize(_CENT, rounding=ROUND_HALF_UP)
