from decimal import Decimal

from gstpos.domain.discount import clamp_discount, next_discount, prev_discount


def test_next_discount_stops_at_next_hundred():
    assert next_discount(1540, 0) == 25
    assert next_discount(1540, 25) == 40
    assert next_discount(1540, 40) == 65


def test_next_discount_takes_full_step_on_round_total():
    assert next_discount(1500, 0) == 25
    assert next_discount(3000, 0) == 25


def test_next_discount_is_noop_when_nothing_left_to_discount():
    assert next_discount(100, 100) == 100
    assert next_discount(0, 0) == 0


def test_three_steps_up_then_three_down_returns_to_zero():
    d = Decimal(0)
    seen = []
    for _ in range(3):
        d = next_discount(1540, d)
        seen.append(d)
    for _ in range(3):
        d = prev_discount(1540, d)
        seen.append(d)

    assert seen == [25, 40, 65, 40, 15, 0]


def test_prev_discount_is_not_an_exact_inverse():
    # from 40 a press of "-" lands on 15, not back on 25
    assert prev_discount(1540, 40) == 15
    assert prev_discount(1540, 0) == 0
    assert prev_discount(1540, 10) == 0


def test_clamp_discount_bounds_to_subtotal():
    assert clamp_discount(-5, 100) == 0
    assert clamp_discount(150, 100) == 100
    assert clamp_discount(Decimal("37.50"), 100) == Decimal("37.50")
