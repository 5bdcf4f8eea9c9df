# Overview: Weighted-average unit cost for stock-in.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from workshop.money import CENT, to_money


def moving_average_cost(stock_before: int, old_cost, qty_in: int, price_in) -> Decimal:
    """
    (stock_before × old_cost + qty_in × price_in) / (stock_before + qty_in),
    rounded half-up to 2 places. Cost is unchanged when the denominator is 0.
    """
    old_cost = to_money(old_cost)
    denominator = stock_before + qty_in
    if denominator == 0:
        return old_cost
    numerator = Decimal(stock_before) * old_cost + Decimal(qty_in) * to_money(price_in)
    return (numerator / Decimal(denominator)).quantize(CENT, rounding=ROUND_HALF_UP)
