"""
Cart Optimizer - Orchestrator

Public entry point of the engine:
1. Validate the cart and strategy
2. Return a cached result if one exists for (cart, strategy) within the TTL
3. Otherwise: Alternatives Resolver -> Strategy Optimizer -> Store Grouper
   -> savings guard -> Recommendation Generator
4. Cache the serialized result (and record it in run history, if configured)

The caller always gets either a complete OptimizationResult or a single
InvalidCartError. Per-item lookup failures only show up as fewer alternatives.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

from alternatives import AlternativesResolver
from cart_models import (
    CartLineItem,
    DeliveryPreference,
    OptimizationResult,
    OptimizationStrategy,
    ProductAlternative,
    StrategyType,
    ZERO,
)
from config import EngineSettings
from errors import InvalidCartError, OptimizationError
from optimization_cache import InMemoryCacheStore, make_cache_key
from optimization_history import record_run
from recommendations import generate_recommendations
from store_grouper import assignment_total, calculate_total, group_by_store
from strategies import distinct_stores, optimize_convenience, select_optimizer

logger = logging.getLogger(__name__)


def strategy_for_mode(mode: str, settings: EngineSettings) -> OptimizationStrategy:
    """
    Map the cart UI's optimization modes onto strategies.

    price -> budget; time -> convenience over a couple of stores;
    convenience -> everything from one store. Unknown modes get budget.
    """
    if mode == "time":
        return OptimizationStrategy(
            type=StrategyType.CONVENIENCE,
            delivery_preference=DeliveryPreference.FASTEST,
            max_stores=settings.time_mode_max_stores,
        )
    if mode == "convenience":
        return OptimizationStrategy(
            type=StrategyType.CONVENIENCE,
            delivery_preference=DeliveryPreference.SINGLE_TRIP,
            max_stores=1,
        )
    return OptimizationStrategy(type=StrategyType.BUDGET, delivery_preference=DeliveryPreference.CHEAPEST)


# Presets used for side-by-side strategy comparison
COMPARISON_STRATEGIES = [
    OptimizationStrategy(StrategyType.BUDGET, DeliveryPreference.CHEAPEST, max_stores=1),
    OptimizationStrategy(StrategyType.CONVENIENCE, DeliveryPreference.FASTEST, max_stores=2),
    OptimizationStrategy(StrategyType.SPLIT_CART, DeliveryPreference.CHEAPEST, max_stores=4),
    OptimizationStrategy(StrategyType.MEAL_PLAN, DeliveryPreference.SINGLE_TRIP, max_stores=2),
]

STRATEGY_DESCRIPTIONS = [
    {
        "id": StrategyType.BUDGET.value,
        "name": "Budget Optimizer",
        "description": "Find the lowest price for every item across all stores",
        "best_for": "Shoppers maximizing savings on their grocery budget",
        "delivery_preference": DeliveryPreference.CHEAPEST.value,
    },
    {
        "id": StrategyType.CONVENIENCE.value,
        "name": "Convenience Seeker",
        "description": "Fold the cart into the store that already holds most of it",
        "best_for": "Busy shoppers who value one delivery over maximum savings",
        "delivery_preference": DeliveryPreference.FASTEST.value,
    },
    {
        "id": StrategyType.SPLIT_CART.value,
        "name": "Split-Cart Maximizer",
        "description": "Best price per item within your preferred stores, up to a store limit",
        "best_for": "Strategic shoppers willing to split deliveries",
        "delivery_preference": DeliveryPreference.CHEAPEST.value,
    },
    {
        "id": StrategyType.MEAL_PLAN.value,
        "name": "Meal Planner",
        "description": "Keep the stores holding your most valuable, most varied items",
        "best_for": "Meal preppers who want few stores and good coverage",
        "delivery_preference": DeliveryPreference.SINGLE_TRIP.value,
    },
]


def effective_store_cap(strategy: OptimizationStrategy, settings: EngineSettings) -> Optional[int]:
    """Store limit the strategy guarantees (budget guarantees none)."""
    if strategy.type == StrategyType.BUDGET:
        return None
    if strategy.type == StrategyType.CONVENIENCE:
        return strategy.max_stores or 1
    if strategy.type == StrategyType.MEAL_PLAN:
        return strategy.max_stores or settings.meal_plan_default_max_stores
    return strategy.max_stores


def enforce_non_negative_savings(
    items: Sequence[CartLineItem],
    planned: List[CartLineItem],
    strategy: OptimizationStrategy,
    alternatives: Dict[str, List[ProductAlternative]],
    settings: EngineSettings,
) -> List[CartLineItem]:
    """
    Never return a plan that costs more than the cart as submitted.

    Falls back to the original assignment when it fits the strategy's store
    cap, otherwise to a convenience consolidation at that cap (which only
    moves items at equal or lower prices into stores that already exist).
    """
    threshold, fee = settings.free_delivery_threshold, settings.base_delivery_fee
    if assignment_total(planned, threshold, fee) <= assignment_total(items, threshold, fee):
        return planned

    cap = effective_store_cap(strategy, settings)
    if cap is None or len(distinct_stores(items)) <= cap:
        logger.info(f"{strategy.type.value} plan costs more than the cart; keeping original stores")
        return list(items)

    logger.info(f"{strategy.type.value} plan costs more than the cart; consolidating into {cap} stores")
    fallback = OptimizationStrategy(type=StrategyType.CONVENIENCE, max_stores=cap)
    return optimize_convenience(items, alternatives, fallback, settings).items


def build_result(
    items: Sequence[CartLineItem],
    strategy: OptimizationStrategy,
    alternatives: Dict[str, List[ProductAlternative]],
    settings: EngineSettings,
    elapsed_ms: int = 0,
) -> OptimizationResult:
    """Run the selected optimizer over resolved alternatives (no I/O)."""
    optimizer = select_optimizer(strategy.type)
    plan = optimizer(items, alternatives, strategy, settings)

    threshold, fee = settings.free_delivery_threshold, settings.base_delivery_fee
    original_groups = group_by_store(items, threshold, fee)
    original_total = calculate_total(original_groups)

    chosen = enforce_non_negative_savings(items, plan.items, strategy, alternatives, settings)
    optimized_groups = group_by_store(chosen, threshold, fee)
    optimized_total = calculate_total(optimized_groups)

    total_savings = original_total - optimized_total
    savings_percent = total_savings / original_total * 100 if original_total > ZERO else ZERO

    recommendations = generate_recommendations(
        original_groups, optimized_groups, alternatives, plan.unsatisfied, settings
    )

    return OptimizationResult(
        strategy=strategy.type,
        original_total=original_total,
        optimized_total=optimized_total,
        total_savings=total_savings,
        savings_percent=savings_percent,
        store_groups=tuple(optimized_groups),
        recommendations=tuple(recommendations),
        alternatives={pid: list(alts) for pid, alts in alternatives.items()},
        optimization_time_ms=elapsed_ms,
    )


@dataclass
class StrategyComparison:
    """All strategies' results for one cart, plus the best by savings percent"""
    results: Dict[str, Optional[OptimizationResult]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    best_strategy: Optional[str] = None

    def to_dict(self) -> Dict:
        best = self.results.get(self.best_strategy) if self.best_strategy else None
        return {
            "comparisons": [
                {
                    "strategy": name,
                    "result": result.to_dict() if result else None,
                    "error": self.errors.get(name),
                }
                for name, result in self.results.items()
            ],
            "recommendation": None if best is None else {
                "strategy": self.best_strategy,
                "reason": (
                    f"Offers {float(best.savings_percent):.1f}% savings "
                    f"(${float(best.total_savings):.2f})"
                ),
                "result": best.to_dict(),
            },
        }


class CartOptimizer:
    """Main optimization engine with result caching"""

    def __init__(
        self,
        catalog=None,
        cache_store=None,
        settings: Optional[EngineSettings] = None,
        db_manager=None,
        resolver: Optional[AlternativesResolver] = None,
    ):
        """
        Initialize the optimizer.

        Args:
            catalog: Catalog search client (search(query, limit))
            cache_store: Object with get / set_with_expiry (in-memory by default)
            settings: Engine settings (from environment by default)
            db_manager: Optional DatabaseManager; when given, runs are recorded
            resolver: Prebuilt resolver (overrides `catalog`)
        """
        self.settings = settings or EngineSettings.from_env()
        if resolver is None:
            if catalog is None:
                raise ValueError("Either a catalog client or a resolver is required")
            resolver = AlternativesResolver(
                catalog,
                search_limit=self.settings.catalog_search_limit,
                timeout=self.settings.lookup_timeout_seconds,
                max_concurrency=self.settings.max_lookup_concurrency,
            )
        self.resolver = resolver
        self.cache_store = cache_store if cache_store is not None else InMemoryCacheStore()
        self.db_manager = db_manager

    def _coerce_strategy(self, strategy: Union[None, str, OptimizationStrategy]) -> OptimizationStrategy:
        if strategy is None:
            return OptimizationStrategy()
        if isinstance(strategy, OptimizationStrategy):
            return strategy
        if strategy in ("price", "time", "convenience"):
            return strategy_for_mode(strategy, self.settings)
        return OptimizationStrategy(type=StrategyType.parse(strategy))

    def _cache_get(self, key: str) -> Optional[str]:
        try:
            return self.cache_store.get(key)
        except Exception as e:
            logger.error(f"Cache read failed, recomputing: {e}")
            return None

    def _cache_set(self, key: str, payload: str) -> None:
        try:
            self.cache_store.set_with_expiry(key, payload, self.settings.cache_ttl_seconds)
        except Exception as e:
            logger.error(f"Cache write failed: {e}")

    def _record(self, result: OptimizationResult) -> None:
        if self.db_manager is None:
            return
        try:
            with self.db_manager.session_scope() as session:
                record_run(session, result)
        except Exception as e:
            logger.error(f"Failed to record optimization run: {e}")

    async def optimize_cart(
        self,
        items: Sequence[CartLineItem],
        strategy: Union[None, str, OptimizationStrategy] = None,
        alternatives: Optional[Dict[str, List[ProductAlternative]]] = None,
    ) -> OptimizationResult:
        """
        Optimize a cart with one strategy.

        Args:
            items: Cart line items (not mutated)
            strategy: OptimizationStrategy, a strategy name, or a UI mode
                ("price" | "time" | "convenience"); default budget
            alternatives: Already resolved alternatives (skips the catalog)

        Returns:
            OptimizationResult; identical JSON for repeated calls within the TTL

        Raises:
            InvalidCartError: Empty cart or malformed strategy
        """
        items = list(items)
        if not items:
            raise InvalidCartError("Cannot optimize an empty cart")
        strategy = self._coerce_strategy(strategy)

        cache_key = make_cache_key(items, strategy)
        cached = self._cache_get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit for optimization: {strategy.type.value} ({len(items)} items)")
            return OptimizationResult.from_json(cached)

        logger.info(f"Cache miss, optimizing: {strategy.type.value} ({len(items)} items)")
        start = time.perf_counter()
        if alternatives is None:
            alternatives = await self.resolver.resolve(items)

        result = build_result(items, strategy, alternatives, self.settings)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        payload = OptimizationResult.from_dict(
            {**result.to_dict(), "optimization_time_ms": elapsed_ms}
        ).to_json()

        self._cache_set(cache_key, payload)
        result = OptimizationResult.from_json(payload)
        self._record(result)

        logger.info(
            f"Optimization completed: {result.strategy.value} | "
            f"{result.store_count} stores | "
            f"${float(result.optimized_total):.2f} | "
            f"{float(result.savings_percent):.1f}% savings | "
            f"{elapsed_ms}ms"
        )
        return result

    def optimize_cart_sync(self, items, strategy=None) -> OptimizationResult:
        """Blocking wrapper for callers without an event loop (Streamlit, scripts)."""
        return asyncio.run(self.optimize_cart(items, strategy))

    def close(self) -> None:
        """Release the resolver's lookup threads."""
        self.resolver.close()

    async def compare_strategies(self, items: Sequence[CartLineItem]) -> StrategyComparison:
        """
        Run every comparison preset on the same cart.

        Alternatives are resolved once and shared; a strategy that fails is
        reported in `errors` without affecting the others.
        """
        items = list(items)
        if not items:
            raise InvalidCartError("Cannot optimize an empty cart")

        alternatives = await self.resolver.resolve(items)
        comparison = StrategyComparison()

        async def run(strategy):
            try:
                return await self.optimize_cart(items, strategy, alternatives), None
            except OptimizationError as e:
                logger.error(f"Strategy {strategy.type.value} failed: {e}")
                return None, str(e)

        outcomes = await asyncio.gather(*[run(s) for s in COMPARISON_STRATEGIES])
        for strategy, (result, error) in zip(COMPARISON_STRATEGIES, outcomes):
            comparison.results[strategy.type.value] = result
            if error is not None:
                comparison.errors[strategy.type.value] = error

        best_percent = Decimal("-1")
        for name, result in comparison.results.items():
            if result is not None and result.savings_percent > best_percent:
                best_percent = result.savings_percent
                comparison.best_strategy = name
        return comparison

    async def estimate_savings(self, items: Sequence[CartLineItem]) -> Dict:
        """Quick budget-only estimate for cart badges."""
        result = await self.optimize_cart(items, OptimizationStrategy())
        savings = float(result.total_savings)
        percent = float(result.savings_percent)
        return {
            "estimated_savings": savings,
            "savings_percent": percent,
            "optimized_total": float(result.optimized_total),
            "message": f"You could save ${savings:.2f} ({percent:.1f}%) by optimizing your cart",
        }


if __name__ == "__main__":
    from catalog_client import demo_catalog

    logging.basicConfig(level=logging.INFO)

    cart = [
        CartLineItem("kroger-bananas", "Bananas", "0.59", "kroger", 6, category="produce"),
        CartLineItem("safeway-milk", "Whole Milk", "3.99", "safeway", 2, category="dairy"),
        CartLineItem("kroger-eggs", "Organic Eggs", "5.99", "kroger", 1, category="dairy"),
        CartLineItem("safeway-bread", "Sourdough Bread", "4.49", "safeway", 1, category="bakery"),
    ]
    optimizer = CartOptimizer(demo_catalog(), settings=EngineSettings())
    print(optimizer.optimize_cart_sync(cart, "price").to_json(indent=2))
