from decimal import Decimal

from conftest import line
from store_grouper import assignment_total, calculate_total, group_by_store

THRESHOLD = Decimal("35.00")
FEE = Decimal("4.99")


def test_groups_keep_first_seen_store_order():
    items = [
        line("1", "Bananas", "1.00", "kroger"),
        line("2", "Milk", "3.00", "safeway"),
        line("3", "Eggs", "4.00", "kroger", 2),
    ]

    groups = group_by_store(items, THRESHOLD, FEE)

    assert [g.store for g in groups] == ["kroger", "safeway"]
    kroger = groups[0]
    assert kroger.subtotal == Decimal("9.00")
    assert kroger.item_count == 3  # units, not lines
    assert [i.product_id for i in kroger.items] == ["1", "3"]


def test_fee_charged_below_threshold():
    groups = group_by_store([line("1", "Milk", "3.50", "safeway")], THRESHOLD, FEE)

    assert groups[0].delivery_fee == FEE
    assert groups[0].total == Decimal("8.49")
    assert not groups[0].qualifies_for_free_delivery


def test_free_delivery_at_exact_threshold():
    groups = group_by_store([line("1", "Turkey", "35.00", "kroger")], THRESHOLD, FEE)

    assert groups[0].qualifies_for_free_delivery
    assert groups[0].delivery_fee == Decimal("0")
    assert groups[0].total == Decimal("35.00")


def test_single_store_cart_over_threshold_ships_free():
    items = [
        line("1", "Salmon", "18.00", "StoreA", 2),
        line("2", "Rice", "4.00", "StoreA"),
    ]

    (group,) = group_by_store(items, THRESHOLD, FEE)

    assert group.delivery_fee == Decimal("0")
    assert group.qualifies_for_free_delivery is True


def test_calculate_total_sums_fees_and_subtotals():
    items = [
        line("1", "Bananas", "2.00", "StoreA", 2),
        line("2", "Milk", "3.50", "StoreB"),
    ]
    groups = group_by_store(items, THRESHOLD, FEE)

    assert calculate_total(groups) == Decimal("17.48")
    assert assignment_total(items, THRESHOLD, FEE) == Decimal("17.48")


def test_empty_input_has_no_groups():
    assert group_by_store([], THRESHOLD, FEE) == []
    assert calculate_total([]) == Decimal("0")
