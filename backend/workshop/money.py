# Overview: Fixed-point money helpers (2 decimal places, half-up).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce int/str/float/Decimal to a 2dp Decimal, rounding half-up."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, float):
        # go through str() so 0.1 stays 0.1
        d = Decimal(str(value))
    else:
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"not a monetary amount: {value!r}") from exc
    if not d.is_finite():
        raise ValueError(f"not a monetary amount: {value!r}")
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def money_json(value) -> float | None:
    if value is None:
        return None
    return float(to_money(value))
