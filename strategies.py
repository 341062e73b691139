"""
Strategy Optimizers - Re-assign Cart Items to Stores

Four interchangeable policies, one pure function each:
- budget:      cheapest price per item (optional consolidation to max_stores)
- split-cart:  cheapest price per item within preferred stores, capped at max_stores
- convenience: fold the cart into the store(s) already holding the most items
- meal-plan:   keep the stores holding the most valuable / most varied items

Every optimizer has the signature
    optimize(items, alternatives, strategy, settings) -> StrategyPlan
and returns the re-assigned items in cart order. Items keep their product_id
and quantity; only store and unit price change. None of these are exact
solvers: ties and caps are settled greedily with the rules documented on each
function.
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from itertools import combinations
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from cart_models import (
    CartLineItem,
    OptimizationStrategy,
    ProductAlternative,
    StrategyType,
    ZERO,
)
from config import EngineSettings
from errors import ConstraintUnsatisfiableError, InvalidCartError
from store_grouper import assignment_total, group_by_store

logger = logging.getLogger(__name__)

Alternatives = Dict[str, List[ProductAlternative]]
Option = Tuple[str, Decimal]  # (store, unit price)

# Upper bound on stores considered when consolidating a budget plan
MAX_CONSOLIDATION_STORES = 8


@dataclass
class StrategyPlan:
    """Output of an optimizer: the re-assigned items, still ungrouped."""
    items: List[CartLineItem]
    unsatisfied: List[CartLineItem] = field(default_factory=list)


# ============================================================================
# CANDIDATES
# ============================================================================

def require_items(items: Sequence[CartLineItem]) -> None:
    if not items:
        raise InvalidCartError("Cannot optimize an empty cart")


def all_options(item: CartLineItem, alternatives: Alternatives) -> List[Option]:
    """
    Original (store, price) first, then every alternative in rank order.

    Alternatives are shared by all lines of a product, so only offers at
    another store and below this line's price are candidates.
    """
    options = [(item.store, item.unit_price)]
    for alt in alternatives.get(item.product_id, []):
        if alt.store != item.store and alt.price < item.unit_price:
            options.append((alt.store, alt.price))
    return options


def candidate_options(
    item: CartLineItem,
    alternatives: Alternatives,
    preferred_stores: Optional[Sequence[str]] = None,
) -> List[Option]:
    """
    Candidates that survive the item's constraints.

    Raises:
        ConstraintUnsatisfiableError: If max_price / preferred_stores exclude
            every candidate
    """
    options = all_options(item, alternatives)
    if preferred_stores:
        options = [o for o in options if o[0] in preferred_stores]
    if item.max_price is not None:
        options = [o for o in options if o[1] <= item.max_price]
    if not options:
        raise ConstraintUnsatisfiableError(
            item.product_id,
            max_price=item.max_price,
            preferred_stores=list(preferred_stores) if preferred_stores else None,
        )
    return options


def cheapest_option(item: CartLineItem, options: Sequence[Option]) -> Option:
    """Strictly lowest price wins; on a tie the original store is kept."""
    best = None
    for option in options:
        if best is None or option[1] < best[1]:
            best = option
        elif option[1] == best[1] and option[0] == item.store and best[0] != item.store:
            best = option
    return best


def reassign(item: CartLineItem, store: str, price: Decimal) -> CartLineItem:
    if store == item.store and price == item.unit_price:
        return item
    return replace(item, store=store, unit_price=price)


def relocate(
    item: CartLineItem,
    destinations: Sequence[str],
    alternatives: Alternatives,
) -> CartLineItem:
    """
    Move an item into one of `destinations`.

    Takes the cheapest known price at a destination (respecting max_price);
    with no known price there, the item goes to the first destination at its
    own unit price.
    """
    if item.store in destinations:
        return item
    options = [o for o in all_options(item, alternatives) if o[0] in destinations]
    if item.max_price is not None:
        options = [o for o in options if o[1] <= item.max_price]
    if options:
        store, price = cheapest_option(item, options)
        return reassign(item, store, price)
    return replace(item, store=destinations[0])


def distinct_stores(items: Sequence[CartLineItem]) -> List[str]:
    seen = []
    for item in items:
        if item.store not in seen:
            seen.append(item.store)
    return seen


def _rank_groups_by_size(items: Sequence[CartLineItem], settings: EngineSettings) -> List[str]:
    """Stores ordered by item count desc, then subtotal desc, then first seen."""
    groups = group_by_store(items, settings.free_delivery_threshold, settings.base_delivery_fee)
    ranked = sorted(
        enumerate(groups),
        key=lambda pair: (-pair[1].item_count, -pair[1].subtotal, pair[0]),
    )
    return [group.store for _, group in ranked]


def _per_item_cheapest(
    items: Sequence[CartLineItem],
    alternatives: Alternatives,
    preferred_stores: Optional[Sequence[str]] = None,
) -> StrategyPlan:
    plan = StrategyPlan(items=[])
    for item in items:
        try:
            options = candidate_options(item, alternatives, preferred_stores)
        except ConstraintUnsatisfiableError as e:
            logger.info(f"Keeping original: {e}")
            plan.items.append(item)
            plan.unsatisfied.append(item)
            continue
        store, price = cheapest_option(item, options)
        plan.items.append(reassign(item, store, price))
    return plan


def _unsatisfied(items: Sequence[CartLineItem], alternatives: Alternatives) -> List[CartLineItem]:
    unsatisfied = []
    for item in items:
        try:
            candidate_options(item, alternatives)
        except ConstraintUnsatisfiableError as e:
            logger.info(str(e))
            unsatisfied.append(item)
    return unsatisfied


# ============================================================================
# BUDGET
# ============================================================================

def consolidate_to_store_limit(
    items: Sequence[CartLineItem],
    assigned: List[CartLineItem],
    alternatives: Alternatives,
    max_stores: int,
    settings: EngineSettings,
    locked: Set[int] = frozenset(),
) -> List[CartLineItem]:
    """
    Merge a per-item assignment into at most `max_stores` stores.

    Evaluates every store subset of size 1..max_stores from the candidate
    stores (capped at MAX_CONSOLIDATION_STORES, most widely stocked first) and
    keeps the feasible subset with the lowest total including delivery fees.
    Items at `locked` indexes must stay at their original store. When no
    subset can serve every item, the per-item assignment is returned.
    """
    if len(distinct_stores(assigned)) <= max_stores:
        return assigned

    coverage: Dict[str, int] = {}
    for item in items:
        for store in {o[0] for o in all_options(item, alternatives)}:
            coverage[store] = coverage.get(store, 0) + 1
    pool = sorted(coverage, key=lambda s: -coverage[s])[:MAX_CONSOLIDATION_STORES]

    best_items = None
    best_total = None
    for size in range(1, min(max_stores, len(pool)) + 1):
        for subset in combinations(pool, size):
            candidate = []
            for idx, item in enumerate(items):
                if idx in locked:
                    if item.store not in subset:
                        break
                    candidate.append(item)
                    continue
                options = [o for o in all_options(item, alternatives) if o[0] in subset]
                if item.max_price is not None:
                    options = [o for o in options if o[1] <= item.max_price]
                if not options:
                    break
                store, price = cheapest_option(item, options)
                candidate.append(reassign(item, store, price))
            else:
                total = assignment_total(
                    candidate, settings.free_delivery_threshold, settings.base_delivery_fee
                )
                if best_total is None or total < best_total:
                    best_total = total
                    best_items = candidate

    if best_items is None:
        logger.info(f"No store set of size <= {max_stores} carries every item; keeping per-item plan")
        return assigned
    return best_items


def optimize_budget(
    items: Sequence[CartLineItem],
    alternatives: Alternatives,
    strategy: OptimizationStrategy,
    settings: EngineSettings,
) -> StrategyPlan:
    """
    Cheapest candidate per item; ties keep the original store.

    max_stores is not a hard cap here: when set, the plan is consolidated
    with consolidate_to_store_limit if a feasible store set exists.
    """
    require_items(items)
    plan = _per_item_cheapest(items, alternatives)
    if strategy.max_stores is not None:
        locked = {idx for idx, item in enumerate(items) if item in plan.unsatisfied}
        plan.items = consolidate_to_store_limit(
            items, plan.items, alternatives, strategy.max_stores, settings, locked
        )
    return plan


# ============================================================================
# SPLIT-CART
# ============================================================================

def _enforce_store_cap(
    items: Sequence[CartLineItem],
    assigned: List[CartLineItem],
    alternatives: Alternatives,
    cap: int,
    preferred_stores: Optional[Sequence[str]],
    unsatisfied: Sequence[CartLineItem],
    settings: EngineSettings,
) -> List[CartLineItem]:
    if len(distinct_stores(assigned)) <= cap:
        return assigned

    final = list(assigned)
    kept: List[str] = []

    # stores pinned by items that could not move
    for item in unsatisfied:
        if item.store not in kept and len(kept) < cap:
            kept.append(item.store)

    # switches claim slots by savings; the ones that don't fit are reverted
    switches = []
    for idx, (original, current) in enumerate(zip(items, assigned)):
        if current.store == original.store:
            continue
        revertible = any(
            o[0] == original.store for o in _safe_options(original, alternatives, preferred_stores)
        )
        savings = (original.unit_price - current.unit_price) * original.quantity
        switches.append((not revertible, savings, idx))
    switches.sort(key=lambda s: (not s[0], -s[1], s[2]))

    for forced, savings, idx in switches:
        target = final[idx].store
        if target in kept or len(kept) < cap:
            if target not in kept:
                kept.append(target)
        elif not forced:
            logger.debug(f"Dropping switch for {items[idx].product_id} (saves {savings})")
            final[idx] = items[idx]

    # remaining slots go to the largest stores left in the plan
    for store in _rank_groups_by_size(final, settings):
        if len(kept) >= cap:
            break
        if store not in kept:
            kept.append(store)

    if len(distinct_stores(final)) <= cap:
        return final

    destinations = [s for s in _rank_groups_by_size(final, settings) if s in kept]
    # overflow items move from their cart line (own store, own price)
    return [
        current if current.store in destinations else relocate(original, destinations, alternatives)
        for original, current in zip(items, final)
    ]


def _safe_options(item, alternatives, preferred_stores) -> List[Option]:
    try:
        return candidate_options(item, alternatives, preferred_stores)
    except ConstraintUnsatisfiableError:
        return []


def optimize_split_cart(
    items: Sequence[CartLineItem],
    alternatives: Alternatives,
    strategy: OptimizationStrategy,
    settings: EngineSettings,
) -> StrategyPlan:
    """
    Cheapest candidate per item among preferred stores, capped at max_stores.

    When the plan spans more than max_stores stores, the highest-savings
    switches keep their store slots and the lowest-savings ones are reverted
    first. If the cart itself spans too many stores, the remaining items are
    folded into the kept stores.
    """
    require_items(items)
    preferred = strategy.preferred_stores or None
    plan = _per_item_cheapest(items, alternatives, preferred)
    if strategy.max_stores is not None:
        plan.items = _enforce_store_cap(
            items, plan.items, alternatives, strategy.max_stores,
            preferred, plan.unsatisfied, settings,
        )
    return plan


# ============================================================================
# CONVENIENCE
# ============================================================================

def optimize_convenience(
    items: Sequence[CartLineItem],
    alternatives: Alternatives,
    strategy: OptimizationStrategy,
    settings: EngineSettings,
) -> StrategyPlan:
    """
    Send everything to the store(s) already holding the most items.

    The destination is the store with the greatest item count (ties: higher
    subtotal, then first seen). With max_stores > 1 the next largest stores
    are added until the cap is reached or every store is covered. Items
    elsewhere move to their cheapest known price at a destination, else to
    the main destination at their own price.
    """
    require_items(items)
    cap = strategy.max_stores or 1
    destinations = _rank_groups_by_size(items, settings)[:cap]
    logger.debug(f"Convenience destinations: {destinations}")
    return StrategyPlan(
        items=[relocate(item, destinations, alternatives) for item in items],
        unsatisfied=_unsatisfied(items, alternatives),
    )


# ============================================================================
# MEAL-PLAN
# ============================================================================

def score_meal_plan_stores(
    items: Sequence[CartLineItem],
    settings: EngineSettings,
) -> List[Tuple[str, float]]:
    """
    Score each original store for the meal-plan heuristic.

    score = subtotal_weight * share of cart spend
          + diversity_weight * share of cart categories
          + item_count_weight * share of cart units

    Returns (store, score) sorted by score desc, ties by first seen.
    """
    groups = group_by_store(items, settings.free_delivery_threshold, settings.base_delivery_fee)
    cart_spend = sum((g.subtotal for g in groups), ZERO)
    cart_units = sum(g.item_count for g in groups)
    cart_categories = {item.category or "uncategorized" for item in items}

    scored = []
    for idx, group in enumerate(groups):
        categories = {item.category or "uncategorized" for item in group.items}
        score = (
            settings.meal_plan_subtotal_weight * float(group.subtotal / cart_spend)
            + settings.meal_plan_diversity_weight * len(categories) / len(cart_categories)
            + settings.meal_plan_item_count_weight * group.item_count / cart_units
        )
        scored.append((idx, group.store, score))

    scored.sort(key=lambda s: (-s[2], s[0]))
    return [(store, score) for _, store, score in scored]


def optimize_meal_plan(
    items: Sequence[CartLineItem],
    alternatives: Alternatives,
    strategy: OptimizationStrategy,
    settings: EngineSettings,
) -> StrategyPlan:
    """
    Keep the few stores that matter most to the plan, then price within them.

    Stores are ranked by score_meal_plan_stores and the top max_stores
    (default meal_plan_default_max_stores) are kept. Each item then takes its
    cheapest candidate inside the kept set.
    """
    require_items(items)
    cap = strategy.max_stores or settings.meal_plan_default_max_stores
    kept = [store for store, _ in score_meal_plan_stores(items, settings)[:cap]]
    logger.debug(f"Meal-plan stores: {kept}")

    unsatisfied = _unsatisfied(items, alternatives)
    assigned = []
    for item in items:
        if item in unsatisfied:
            assigned.append(relocate(item, kept, alternatives))
            continue
        options = [o for o in candidate_options(item, alternatives) if o[0] in kept]
        if options:
            store, price = cheapest_option(item, options)
            assigned.append(reassign(item, store, price))
        else:
            assigned.append(replace(item, store=kept[0]))
    return StrategyPlan(items=assigned, unsatisfied=unsatisfied)


# ============================================================================
# SELECTION
# ============================================================================

Optimizer = Callable[
    [Sequence[CartLineItem], Alternatives, OptimizationStrategy, EngineSettings],
    StrategyPlan,
]

STRATEGY_OPTIMIZERS: Dict[StrategyType, Optimizer] = {
    StrategyType.BUDGET: optimize_budget,
    StrategyType.SPLIT_CART: optimize_split_cart,
    StrategyType.CONVENIENCE: optimize_convenience,
    StrategyType.MEAL_PLAN: optimize_meal_plan,
}


def select_optimizer(strategy_type) -> Optimizer:
    """Optimizer for a strategy type; unknown types get budget."""
    return STRATEGY_OPTIMIZERS[StrategyType.parse(strategy_type)]
