"""
Store Grouper

Partitions line items by store and prices each store's delivery.
Pure functions: no I/O, no shared state.
"""

from decimal import Decimal
from typing import Dict, Iterable, List

from cart_models import CartLineItem, StoreGroup, ZERO


def group_by_store(
    items: Iterable[CartLineItem],
    free_delivery_threshold: Decimal,
    base_delivery_fee: Decimal,
) -> List[StoreGroup]:
    """
    Group line items by store, preserving first-seen store order.

    Args:
        items: Line items (already assigned to their stores)
        free_delivery_threshold: Subtotal at which delivery becomes free
        base_delivery_fee: Fee charged below the threshold

    Returns:
        One StoreGroup per distinct store
    """
    by_store: Dict[str, List[CartLineItem]] = {}
    for item in items:
        by_store.setdefault(item.store, []).append(item)

    groups = []
    for store, store_items in by_store.items():
        subtotal = sum((item.line_total for item in store_items), ZERO)
        qualifies = subtotal >= free_delivery_threshold
        delivery_fee = ZERO if qualifies else base_delivery_fee
        groups.append(
            StoreGroup(
                store=store,
                items=tuple(store_items),
                subtotal=subtotal,
                item_count=sum(item.quantity for item in store_items),
                delivery_fee=delivery_fee,
                total=subtotal + delivery_fee,
                qualifies_for_free_delivery=qualifies,
            )
        )
    return groups


def calculate_total(groups: Iterable[StoreGroup]) -> Decimal:
    """Sum of store totals (subtotals plus delivery fees)."""
    return sum((group.total for group in groups), ZERO)


def assignment_total(
    items: Iterable[CartLineItem],
    free_delivery_threshold: Decimal,
    base_delivery_fee: Decimal,
) -> Decimal:
    """Total cost of an ungrouped assignment."""
    return calculate_total(group_by_store(items, free_delivery_threshold, base_delivery_fee))
