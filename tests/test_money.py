from decimal import Decimal

from storefront.utils.money import apply_rate, format_price, percent_of, round_half_up


def test_round_half_up_is_not_bankers_rounding():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(Decimal("2.49")) == 2


def test_percent_of():
    assert percent_of(3333, 15) == 500
    assert percent_of(1000, Decimal("12.5")) == 125
    assert percent_of(0, 50) == 0


def test_apply_rate():
    assert apply_rate(200, 0.0825) == 17
    assert apply_rate(10000, 0.0825) == 825


def test_format_price():
    assert format_price(2599) == "$25.99"
    assert format_price(0) == "$0.00"
