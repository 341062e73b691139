"""Shared pytest fixtures for the cart optimizer tests."""

from decimal import Decimal

import pytest

from cart_models import CartLineItem
from catalog_client import CatalogProduct, InMemoryCatalog
from config import EngineSettings


def line(product_id, name, price, store, quantity=1, **kwargs):
    return CartLineItem(product_id, name, price, store, quantity, **kwargs)


def catalog_of(*rows):
    """InMemoryCatalog from (id, name, price, store[, in_stock]) tuples."""
    products = []
    for row in rows:
        pid, name, price, store = row[:4]
        in_stock = row[4] if len(row) > 4 else True
        products.append(CatalogProduct(id=pid, name=name, price=price, store=store, in_stock=in_stock))
    return InMemoryCatalog(products)


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def no_fee_settings():
    """Delivery is always free, so totals reflect item prices only."""
    return EngineSettings(base_delivery_fee=Decimal("0"))


@pytest.fixture
def two_store_cart():
    return [
        line("a-bananas", "Bananas", "2.00", "StoreA", 2),
        line("b-milk", "Milk", "3.50", "StoreB", 1),
    ]
