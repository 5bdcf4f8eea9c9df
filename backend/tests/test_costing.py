"""
Weighted-average cost tests.
"""

from decimal import Decimal

from workshop.services.costing import moving_average_cost


class TestMovingAverageCost:
    def test_blends_existing_and_incoming_cost(self):
        # (20 × 250000 + 10 × 300000) / 30
        assert moving_average_cost(20, Decimal("250000"), 10, Decimal("300000")) == Decimal("266666.67")

    def test_rounds_half_up_to_cents(self):
        # (1 × 0.01 + 2 × 0.02) / 3 = 0.016666...
        assert moving_average_cost(1, "0.01", 2, "0.02") == Decimal("0.02")

    def test_empty_stock_takes_incoming_price(self):
        assert moving_average_cost(0, Decimal("0"), 5, Decimal("120000")) == Decimal("120000.00")

    def test_zero_denominator_keeps_cost(self):
        assert moving_average_cost(0, Decimal("1500.50"), 0, Decimal("9999")) == Decimal("1500.50")
