#!/usr/bin/env python3
"""
Integration Validation Script
Runs the whole optimizer stack end-to-end: demo catalog -> resolver ->
strategies -> SQL cache -> run history. Works under pytest or standalone.
"""

import asyncio
import sys

from dotenv import load_dotenv


def print_section(title):
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def _demo_cart():
    from cart_models import CartLineItem

    return [
        CartLineItem("kroger-bananas", "Bananas", "0.59", "kroger", 6, category="produce"),
        CartLineItem("safeway-milk", "Whole Milk", "3.99", "safeway", 2, category="dairy"),
        CartLineItem("kroger-chicken", "Chicken Breast", "8.99", "kroger", 2, category="meat"),
        CartLineItem("safeway-bread", "Sourdough Bread", "4.49", "safeway", 1, category="bakery"),
    ]


def test_imports():
    """Test all required imports"""
    print_section("TEST 1: Module Imports")

    modules = [
        ("cart_models", ["CartLineItem", "OptimizationStrategy", "OptimizationResult"]),
        ("alternatives", ["AlternativesResolver"]),
        ("strategies", ["select_optimizer", "STRATEGY_OPTIMIZERS"]),
        ("recommendations", ["generate_recommendations"]),
        ("optimization_cache", ["InMemoryCacheStore", "SQLCacheStore"]),
        ("cart_optimizer", ["CartOptimizer", "strategy_for_mode"]),
        ("database", ["DatabaseManager"]),
        ("server", ["app"]),
    ]

    for module_name, names in modules:
        module = __import__(module_name)
        for name in names:
            assert hasattr(module, name), f"{module_name}.{name} - NOT FOUND"
        print(f"  ✓ {module_name}")


def test_database():
    """Test database initialization"""
    print_section("TEST 2: Database Initialization")

    from database import DatabaseManager
    from models import OptimizationCacheEntry, OptimizationRun

    db_manager = DatabaseManager("sqlite:///:memory:")
    db_manager.init_db()
    assert db_manager.health_check()

    with db_manager.session_scope() as session:
        assert session.query(OptimizationCacheEntry).count() == 0
        assert session.query(OptimizationRun).count() == 0
    print("  ✓ Database initialized (empty cache and history)")
    db_manager.close()


def test_end_to_end_optimization():
    """Optimize the demo cart with every mode against a SQL-backed cache"""
    print_section("TEST 3: End-to-End Optimization")

    from cart_optimizer import CartOptimizer
    from catalog_client import demo_catalog
    from config import EngineSettings
    from database import DatabaseManager
    from optimization_cache import SQLCacheStore
    from optimization_history import summarize_savings

    db_manager = DatabaseManager("sqlite:///:memory:")
    db_manager.init_db()
    optimizer = CartOptimizer(
        demo_catalog(),
        cache_store=SQLCacheStore(db_manager),
        settings=EngineSettings(),
        db_manager=db_manager,
    )
    cart = _demo_cart()

    for mode in ("price", "time", "convenience"):
        result = optimizer.optimize_cart_sync(cart, mode)
        assert result.total_savings >= 0
        print(
            f"  ✓ {mode:<12} {result.strategy.value:<12} "
            f"${float(result.optimized_total):>7.2f}  "
            f"{result.store_count} stores  "
            f"{len(result.recommendations)} recommendations"
        )

    cached = optimizer.optimize_cart_sync(cart, "price")
    fresh = optimizer.optimize_cart_sync(cart, "price")
    assert cached.to_json() == fresh.to_json()
    print("  ✓ Cached result is identical")

    comparison = asyncio.run(optimizer.compare_strategies(cart))
    assert comparison.best_strategy is not None
    print(f"  ✓ Best strategy: {comparison.best_strategy}")

    with db_manager.session_scope() as session:
        summary = summarize_savings(session)
    assert summary["total_runs"] >= 3
    print(f"  ✓ History: {summary['total_runs']} runs, ${summary['total_savings']:.2f} saved")
    db_manager.close()


def main():
    load_dotenv()

    tests = [test_imports, test_database, test_end_to_end_optimization]
    failed = 0
    for test in tests:
        try:
            test()
        except Exception as e:
            print(f"  ✗ {test.__name__} failed: {e}")
            failed += 1

    print_section("SUMMARY")
    print(f"  {len(tests) - failed}/{len(tests)} checks passed")
    return failed == 0


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
