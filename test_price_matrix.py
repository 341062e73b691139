import math

import pytest

from cart_models import ProductAlternative
from conftest import line
from price_matrix import PriceMatrix, build_price_matrix


def test_matrix_rows_are_items_and_columns_are_stores():
    eggs = line("eggs", "Eggs", "5.00", "kroger")
    milk = line("milk", "Milk", "3.50", "safeway")
    alternatives = {
        "eggs": [
            ProductAlternative.for_item(eggs, "w-eggs", "Eggs", "4.00", "walmart"),
            ProductAlternative.for_item(eggs, "s-eggs", "Eggs", "4.50", "safeway"),
        ],
        "milk": [],
    }

    frame = build_price_matrix([eggs, milk], alternatives)

    assert list(frame.index) == ["eggs", "milk"]
    assert list(frame.columns) == ["kroger", "safeway", "walmart"]
    assert frame.loc["eggs", "walmart"] == 4.0
    assert frame.loc["eggs", "safeway"] == 4.5
    assert math.isnan(frame.loc["milk", "kroger"])
    assert frame.loc["milk", "safeway"] == 3.5


def test_offer_keeps_lowest_price():
    matrix = PriceMatrix(["eggs"], ["kroger"])
    matrix.offer("eggs", "kroger", 5.0)
    matrix.offer("eggs", "kroger", 6.0)
    matrix.offer("eggs", "kroger", 4.5)

    assert matrix.get_price("eggs", "kroger") == 4.5


def test_cheapest_store_and_coverage():
    matrix = PriceMatrix(["eggs", "milk"], ["kroger", "walmart"])
    matrix.offer("eggs", "kroger", 5.0)
    matrix.offer("eggs", "walmart", 4.0)
    matrix.offer("milk", "kroger", 3.0)

    assert matrix.cheapest_stores().to_dict() == {"eggs": "walmart", "milk": "kroger"}
    assert matrix.store_coverage().to_dict() == {"kroger": 2, "walmart": 1}


def test_unknown_cells_are_rejected():
    matrix = PriceMatrix(["eggs"], ["kroger"])

    with pytest.raises(ValueError):
        matrix.offer("milk", "kroger", 1.0)
    with pytest.raises(ValueError):
        matrix.offer("eggs", "target", 1.0)
