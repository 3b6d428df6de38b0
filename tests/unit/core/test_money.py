from decimal import Decimal

import pytest

from modules.core.money import line_total, money_sum, to_money

pytestmark = pytest.mark.unit


class TestMoney:
    def test_to_money_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(3) == Decimal("3.00")

    def test_line_total_uses_quantized_unit_price(self):
        assert line_total(Decimal("33.333"), 3) == Decimal("99.99")

    def test_money_sum_of_subtotals(self):
        assert money_sum([Decimal("300.00"), Decimal("100.00")]) == Decimal("400.00")
        assert money_sum([]) == Decimal("0.00")
