"""
Recommendation Generator

Turns an optimized grouping plus the resolved alternatives into at most
`max_recommendations` savings hints, highest potential savings first.

Hints are diagnostic: switch_store hints always point at the best available
alternative, whether or not the chosen strategy used it.
"""

import logging
from typing import Dict, List, Sequence

from cart_models import (
    CartLineItem,
    ProductAlternative,
    Recommendation,
    RecommendationKind,
    StoreGroup,
    round_money,
)
from config import EngineSettings

logger = logging.getLogger(__name__)


def bundle_recommendations(
    groups: Sequence[StoreGroup],
    settings: EngineSettings,
) -> List[Recommendation]:
    """Nudge stores that are just short of free delivery."""
    recommendations = []
    for group in groups:
        if group.qualifies_for_free_delivery:
            continue
        needed = settings.free_delivery_threshold - group.subtotal
        if needed < settings.bundle_margin:
            recommendations.append(
                Recommendation(
                    kind=RecommendationKind.BUNDLE,
                    message=f"Add ${round_money(needed)} more from {group.store} for free delivery",
                    potential_savings=settings.base_delivery_fee,
                    suggested_store=group.store,
                )
            )
    return recommendations


def switch_store_recommendations(
    alternatives: Dict[str, List[ProductAlternative]],
    settings: EngineSettings,
) -> List[Recommendation]:
    """One hint per item whose best alternative saves more than the minimum."""
    recommendations = []
    for product_id, alts in alternatives.items():
        if not alts:
            continue
        best = alts[0]  # already ranked by savings
        if best.savings > settings.switch_min_savings:
            recommendations.append(
                Recommendation(
                    kind=RecommendationKind.SWITCH_STORE,
                    message=(
                        f"Switch to {best.name} from {best.store} "
                        f"to save ${round_money(best.savings)}"
                    ),
                    potential_savings=best.savings,
                    item_id=product_id,
                    suggested_store=best.store,
                    suggested_product=best,
                )
            )
    return recommendations


def remove_item_recommendations(unsatisfied: Sequence[CartLineItem]) -> List[Recommendation]:
    """Items no candidate could satisfy: suggest dropping them."""
    recommendations = []
    for item in unsatisfied:
        if item.max_price is not None:
            reason = f"no store offers it at or below ${round_money(item.max_price)}"
        else:
            reason = "none of your preferred stores carry it"
        recommendations.append(
            Recommendation(
                kind=RecommendationKind.REMOVE_ITEM,
                message=f"Consider removing {item.name}: {reason}",
                potential_savings=item.line_total,
                item_id=item.product_id,
                suggested_store=item.store,
            )
        )
    return recommendations


def generate_recommendations(
    original_groups: Sequence[StoreGroup],
    optimized_groups: Sequence[StoreGroup],
    alternatives: Dict[str, List[ProductAlternative]],
    unsatisfied: Sequence[CartLineItem],
    settings: EngineSettings,
) -> List[Recommendation]:
    """
    Build the ranked recommendation list.

    Args:
        original_groups: StoreGroups of the cart as submitted
        optimized_groups: StoreGroups of the chosen plan
        alternatives: Resolved alternatives per product id
        unsatisfied: Items kept unchanged because no candidate fit
        settings: Thresholds and limits

    Returns:
        Up to settings.max_recommendations hints, potential savings desc
        (ties keep bundle, switch, remove order). remove_item hints are
        never displaced by other kinds.
    """
    limit = settings.max_recommendations
    # remove_item hints are the only trace of an unsatisfiable item: they keep
    # their slots and the other kinds compete for the rest
    removals = remove_item_recommendations(unsatisfied)[:limit]
    others = (
        bundle_recommendations(optimized_groups, settings)
        + switch_store_recommendations(alternatives, settings)
    )
    others.sort(key=lambda r: r.potential_savings, reverse=True)

    recommendations = others[:limit - len(removals)] + removals
    recommendations.sort(key=lambda r: r.potential_savings, reverse=True)
    logger.debug(
        f"Generated {len(recommendations)} recommendations "
        f"({len(original_groups)} -> {len(optimized_groups)} stores)"
    )
    return recommendations
