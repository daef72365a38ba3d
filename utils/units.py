"""Conversions between native integer token units and human amounts."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation


def to_human(raw_amount: int, decimals: int) -> float:
    """Native integer amount -> float in whole-token units."""
    if int(decimals) <= 0:
        return float(int(raw_amount))
    return float(Decimal(int(raw_amount)) / (Decimal(10) ** int(decimals)))


def to_raw(amount: float, decimals: int, *, max_fraction_digits: int | None = None) -> int:
    """Whole-token amount -> native integer amount, rounded down.

    `max_fraction_digits` clamps the precision before scaling so that a float
    like 0.0123456789123 never turns into more digits than the token supports.
    """
    dec = max(0, int(decimals))
    places = dec if max_fraction_digits is None else max(0, min(dec, int(max_fraction_digits)))
    try:
        value = Decimal(repr(float(amount)))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid token amount: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"invalid token amount: {amount!r}")
    quantum = Decimal(1).scaleb(-places)
    clamped = value.quantize(quantum, rounding=ROUND_DOWN)
    return int(clamped.scaleb(dec))
