from core import pricing
from core.pricing import compute_totals, line_total, parts_add_up, service_fee_for


def test_cart_totals_for_two_lines():
    totals = compute_totals(
        [{"unit_price": 20000, "quantity": 2}, {"unit_price": 15000, "quantity": 1}],
        delivery_fee=5000,
    )
    assert totals.subtotal == 55000
    assert totals.service_fee == 2750
    assert totals.delivery_fee == 5000
    assert totals.total == 62750


def test_empty_items_cost_only_delivery():
    totals = compute_totals([], delivery_fee=5000)
    assert totals.subtotal == 0
    assert totals.service_fee == 0
    assert totals.total == 5000


def test_service_fee_rounds_half_up():
    assert service_fee_for(12345) == 617
    assert service_fee_for(12350) == 618
    assert service_fee_for(10) == 1


def test_total_is_sum_of_parts():
    totals = compute_totals([{"unit_price": 12350, "quantity": 1}], delivery_fee=2000)
    assert totals.total == totals.subtotal + totals.delivery_fee + totals.service_fee


def test_line_total_and_missing_delivery_fee():
    assert line_total(15000, 3) == 45000
    assert compute_totals([{"unit_price": 1000, "quantity": 1}], None).delivery_fee == 0


def test_accepts_objects_with_price_attributes():
    class Line:
        unit_price = 20000
        quantity = 2

    assert compute_totals([Line()], 0).subtotal == 40000


def test_cent_amounts_round_every_field(monkeypatch):
    monkeypatch.setattr(pricing, "MONEY_DECIMALS", 2)
    totals = compute_totals([{"unit_price": 0.1, "quantity": 1}], delivery_fee=0.2)
    assert (totals.subtotal, totals.delivery_fee, totals.service_fee, totals.total) == (0.1, 0.2, 0.01, 0.31)
    assert parts_add_up(totals)

    totals = compute_totals([{"unit_price": 0.125, "quantity": 1}], delivery_fee=1.005)
    assert (totals.subtotal, totals.delivery_fee) == (0.13, 1.01)
    assert parts_add_up(totals)
