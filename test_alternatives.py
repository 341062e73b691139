import asyncio
from decimal import Decimal

import pytest

from alternatives import AlternativesResolver, rank_alternatives
from catalog_client import CatalogProduct
from conftest import catalog_of, line


def test_rank_keeps_only_cheaper_in_stock_offers_at_other_stores():
    item = line("a-eggs", "Eggs", "5.00", "StoreA", 2)
    products = [
        CatalogProduct("a-eggs-2", "Eggs", "3.00", "StoreA"),       # same store
        CatalogProduct("a-eggs", "Eggs", "1.00", "StoreZ"),         # same product id
        CatalogProduct("b-eggs", "Eggs", "4.50", "StoreB"),
        CatalogProduct("c-eggs", "Eggs", "3.50", "StoreC"),
        CatalogProduct("d-eggs", "Eggs", "2.00", "StoreD", in_stock=False),
        CatalogProduct("e-eggs", "Eggs", "6.00", "StoreE"),         # pricier
        CatalogProduct("f-eggs", "Eggs", "5.00", "StoreF"),         # no savings
    ]

    ranked = rank_alternatives(item, products)

    assert [a.store for a in ranked] == ["StoreC", "StoreB"]
    assert ranked[0].savings == Decimal("3.00")
    assert ranked[0].savings_percent == Decimal("30")
    assert ranked[1].savings == Decimal("1.00")


def test_rank_ties_keep_catalog_order():
    item = line("a-milk", "Milk", "4.00", "StoreA")
    products = [
        CatalogProduct("b-milk", "Milk", "3.00", "StoreB"),
        CatalogProduct("c-milk", "Milk", "3.00", "StoreC"),
    ]

    assert [a.store for a in rank_alternatives(item, products)] == ["StoreB", "StoreC"]


def test_resolve_returns_entry_per_distinct_product(two_store_cart):
    catalog = catalog_of(("b-bananas", "Bananas", "1.50", "StoreB"))
    resolver = AlternativesResolver(catalog)

    alternatives = asyncio.run(resolver.resolve(two_store_cart + [two_store_cart[0]]))

    assert list(alternatives) == ["a-bananas", "b-milk"]
    assert [a.product_id for a in alternatives["a-bananas"]] == ["b-bananas"]
    assert alternatives["b-milk"] == []


class FlakyCatalog:
    """Fails for one query, answers the rest."""

    def __init__(self, failing_query):
        self.failing_query = failing_query
        self.inner = catalog_of(
            ("b-bananas", "Bananas", "1.50", "StoreB"),
            ("a-milk", "Milk", "2.50", "StoreA"),
        )

    def search(self, query, limit=10):
        if query == self.failing_query:
            raise ConnectionError("catalog unavailable")
        return self.inner.search(query, limit)


def test_failed_lookup_is_contained(two_store_cart, caplog):
    resolver = AlternativesResolver(FlakyCatalog("Bananas"))

    alternatives = asyncio.run(resolver.resolve(two_store_cart))

    assert alternatives["a-bananas"] == []
    assert [a.store for a in alternatives["b-milk"]] == ["StoreA"]
    assert "Alternatives lookup failed for a-bananas" in caplog.text


class SlowCatalog:
    def __init__(self, slow_query, delay):
        self.slow_query = slow_query
        self.delay = delay

    async def search(self, query, limit=10):
        if query == self.slow_query:
            await asyncio.sleep(self.delay)
        return [CatalogProduct(f"x-{query}", query, "0.10", "StoreX")]


def test_slow_lookup_times_out_without_blocking_others(two_store_cart):
    resolver = AlternativesResolver(SlowCatalog("Milk", delay=5), timeout=0.05)

    alternatives = asyncio.run(resolver.resolve(two_store_cart))

    assert alternatives["b-milk"] == []
    assert [a.store for a in alternatives["a-bananas"]] == ["StoreX"]


class CountingCatalog:
    def __init__(self):
        self.in_flight = 0
        self.peak = 0
        self.calls = 0

    async def search(self, query, limit=10):
        self.calls += 1
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return []


def test_concurrency_is_bounded():
    catalog = CountingCatalog()
    resolver = AlternativesResolver(catalog, max_concurrency=2)
    items = [line(f"p{i}", f"Item {i}", "1.00", "StoreA") for i in range(6)]

    asyncio.run(resolver.resolve(items))

    assert catalog.calls == 6
    assert catalog.peak <= 2


def test_duplicate_products_are_looked_up_once():
    catalog = CountingCatalog()
    resolver = AlternativesResolver(catalog)
    item = line("p1", "Bread", "3.00", "StoreA")

    asyncio.run(resolver.resolve([item, item, item]))

    assert catalog.calls == 1


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        AlternativesResolver(catalog_of(), max_concurrency=0)


def test_lines_sharing_a_product_are_each_ranked():
    items = [
        line("milk", "Milk", "4.00", "StoreA"),
        line("milk", "Milk", "5.00", "StoreB"),
    ]
    catalog = catalog_of(
        ("a-milk2", "Milk", "3.50", "StoreA"),
        ("c-milk", "Milk", "4.50", "StoreC"),
    )

    alternatives = asyncio.run(AlternativesResolver(catalog).resolve(items))

    # StoreA's offer is only cheaper for the StoreB line
    assert [a.store for a in alternatives["milk"]] == ["StoreA", "StoreC"]
    assert alternatives["milk"][0].savings == Decimal("1.50")
