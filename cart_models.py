"""
Cart Optimization Data Model

Core value objects passed between the resolver, optimizers, grouper and
recommendation generator:
1. CartLineItem / ProductAlternative: what the shopper has and what else exists
2. OptimizationStrategy: which optimizer runs and under which constraints
3. StoreGroup / Recommendation / OptimizationResult: what the engine returns

All objects are frozen and built fresh per optimization call. Money is kept as
Decimal end to end and rounded to cents once, when a result is serialized.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional, Tuple

from errors import InvalidCartError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def round_money(amount: Decimal) -> Decimal:
    """Round to cents (half up, as shown on receipts)."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _money_out(amount: Decimal) -> float:
    return float(round_money(amount))


# ============================================================================
# ENUMERATIONS
# ============================================================================

class StrategyType(str, Enum):
    BUDGET = "budget"
    SPLIT_CART = "split-cart"
    CONVENIENCE = "convenience"
    MEAL_PLAN = "meal-plan"

    @classmethod
    def parse(cls, value) -> "StrategyType":
        """Unknown or missing strategy names fall back to budget."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.BUDGET


class DeliveryPreference(str, Enum):
    CHEAPEST = "cheapest"
    FASTEST = "fastest"
    SINGLE_TRIP = "single-trip"


class RecommendationKind(str, Enum):
    BUNDLE = "bundle"
    SWITCH_STORE = "switch_store"
    ALTERNATIVE_PRODUCT = "alternative_product"
    REMOVE_ITEM = "remove_item"


# ============================================================================
# INPUT OBJECTS
# ============================================================================

@dataclass(frozen=True)
class CartLineItem:
    """
    One line of the shopper's cart.

    Attributes:
        product_id: Opaque catalog identifier
        name: Display name, also used as the catalog search query
        unit_price: Price per unit at `store`
        store: Store identifier the item is currently bought from
        quantity: Number of units
        max_price: Optional per-unit price ceiling for any replacement
    """
    product_id: str
    name: str
    unit_price: Decimal
    store: str
    quantity: int = 1
    category: Optional[str] = None
    image_url: Optional[str] = None
    max_price: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, "unit_price", to_money(self.unit_price))
        if self.max_price is not None:
            object.__setattr__(self, "max_price", to_money(self.max_price))
        if self.unit_price <= ZERO:
            raise ValueError(f"unit_price must be positive for {self.product_id}")
        if not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError(f"quantity must be a positive integer for {self.product_id}")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": _money_out(self.unit_price),
            "store": self.store,
            "quantity": self.quantity,
            "category": self.category,
            "image_url": self.image_url,
            "max_price": None if self.max_price is None else _money_out(self.max_price),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CartLineItem":
        max_price = data.get("max_price")
        return cls(
            product_id=data["product_id"],
            name=data["name"],
            unit_price=to_money(data["unit_price"]),
            store=data["store"],
            quantity=int(data.get("quantity", 1)),
            category=data.get("category"),
            image_url=data.get("image_url"),
            max_price=None if max_price is None else to_money(max_price),
        )


@dataclass(frozen=True)
class ProductAlternative:
    """A cheaper in-stock substitute for a cart line, found at another store."""
    product_id: str
    name: str
    price: Decimal
    store: str
    in_stock: bool
    savings: Decimal
    savings_percent: Decimal
    category: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def for_item(cls, item: CartLineItem, product_id: str, name: str, price, store: str,
                 in_stock: bool = True, category: Optional[str] = None,
                 image_url: Optional[str] = None) -> "ProductAlternative":
        """Build an alternative, computing savings relative to `item`."""
        price = to_money(price)
        savings = (item.unit_price - price) * item.quantity
        savings_percent = savings / item.line_total * 100
        return cls(
            product_id=product_id,
            name=name,
            price=price,
            store=store,
            in_stock=in_stock,
            savings=savings,
            savings_percent=savings_percent,
            category=category,
            image_url=image_url,
        )

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": _money_out(self.price),
            "store": self.store,
            "in_stock": self.in_stock,
            "savings": _money_out(self.savings),
            "savings_percent": _money_out(self.savings_percent),
            "category": self.category,
            "image_url": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ProductAlternative":
        return cls(
            product_id=data["product_id"],
            name=data["name"],
            price=to_money(data["price"]),
            store=data["store"],
            in_stock=bool(data["in_stock"]),
            savings=to_money(data["savings"]),
            savings_percent=to_money(data["savings_percent"]),
            category=data.get("category"),
            image_url=data.get("image_url"),
        )


@dataclass(frozen=True)
class OptimizationStrategy:
    """Which optimizer to run and the constraints it must honour."""
    type: StrategyType = StrategyType.BUDGET
    delivery_preference: DeliveryPreference = DeliveryPreference.CHEAPEST
    max_stores: Optional[int] = None
    preferred_stores: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "type", StrategyType.parse(self.type))
        try:
            object.__setattr__(
                self, "delivery_preference", DeliveryPreference(self.delivery_preference)
            )
        except ValueError:
            raise InvalidCartError(f"Unknown delivery preference: {self.delivery_preference!r}")
        if self.max_stores is not None:
            if isinstance(self.max_stores, bool) or not isinstance(self.max_stores, int) \
                    or self.max_stores < 1:
                raise InvalidCartError(f"max_stores must be a positive integer, got {self.max_stores!r}")
        if self.preferred_stores is not None:
            object.__setattr__(self, "preferred_stores", tuple(self.preferred_stores))

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "delivery_preference": self.delivery_preference.value,
            "max_stores": self.max_stores,
            "preferred_stores": list(self.preferred_stores) if self.preferred_stores is not None else None,
        }


# ============================================================================
# OUTPUT OBJECTS
# ============================================================================

@dataclass(frozen=True)
class StoreGroup:
    """Line items assigned to one store plus its subtotal and delivery fee."""
    store: str
    items: Tuple[CartLineItem, ...]
    subtotal: Decimal
    item_count: int
    delivery_fee: Decimal
    total: Decimal
    qualifies_for_free_delivery: bool

    def to_dict(self) -> Dict:
        return {
            "store": self.store,
            "items": [item.to_dict() for item in self.items],
            "subtotal": _money_out(self.subtotal),
            "item_count": self.item_count,
            "delivery_fee": _money_out(self.delivery_fee),
            "total": _money_out(self.total),
            "qualifies_for_free_delivery": self.qualifies_for_free_delivery,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "StoreGroup":
        return cls(
            store=data["store"],
            items=tuple(CartLineItem.from_dict(i) for i in data["items"]),
            subtotal=to_money(data["subtotal"]),
            item_count=int(data["item_count"]),
            delivery_fee=to_money(data["delivery_fee"]),
            total=to_money(data["total"]),
            qualifies_for_free_delivery=bool(data["qualifies_for_free_delivery"]),
        )


@dataclass(frozen=True)
class Recommendation:
    """A human-readable savings hint."""
    kind: RecommendationKind
    message: str
    potential_savings: Decimal
    item_id: Optional[str] = None
    suggested_store: Optional[str] = None
    suggested_product: Optional[ProductAlternative] = None

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "potential_savings": _money_out(self.potential_savings),
            "item_id": self.item_id,
            "suggested_store": self.suggested_store,
            "suggested_product": (
                self.suggested_product.to_dict() if self.suggested_product else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Recommendation":
        product = data.get("suggested_product")
        return cls(
            kind=RecommendationKind(data["kind"]),
            message=data["message"],
            potential_savings=to_money(data["potential_savings"]),
            item_id=data.get("item_id"),
            suggested_store=data.get("suggested_store"),
            suggested_product=ProductAlternative.from_dict(product) if product else None,
        )


@dataclass(frozen=True)
class OptimizationResult:
    """Final envelope returned by the orchestrator (and stored in the cache)."""
    strategy: StrategyType
    original_total: Decimal
    optimized_total: Decimal
    total_savings: Decimal
    savings_percent: Decimal
    store_groups: Tuple[StoreGroup, ...]
    recommendations: Tuple[Recommendation, ...]
    alternatives: Dict[str, List[ProductAlternative]] = field(default_factory=dict)
    optimization_time_ms: int = 0

    @property
    def store_count(self) -> int:
        return len(self.store_groups)

    @property
    def item_count(self) -> int:
        return sum(group.item_count for group in self.store_groups)

    def to_dict(self) -> Dict:
        """Convert to a JSON-serializable dict (money rounded to cents)."""
        return {
            "strategy": self.strategy.value,
            "original_total": _money_out(self.original_total),
            "optimized_total": _money_out(self.optimized_total),
            "total_savings": _money_out(self.total_savings),
            "savings_percent": _money_out(self.savings_percent),
            "store_count": self.store_count,
            "item_count": self.item_count,
            "optimization_time_ms": self.optimization_time_ms,
            "store_groups": [group.to_dict() for group in self.store_groups],
            "recommendations": [rec.to_dict() for rec in self.recommendations],
            "alternatives": {
                product_id: [alt.to_dict() for alt in alts]
                for product_id, alts in self.alternatives.items()
            },
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict) -> "OptimizationResult":
        return cls(
            strategy=StrategyType(data["strategy"]),
            original_total=to_money(data["original_total"]),
            optimized_total=to_money(data["optimized_total"]),
            total_savings=to_money(data["total_savings"]),
            savings_percent=to_money(data["savings_percent"]),
            store_groups=tuple(StoreGroup.from_dict(g) for g in data["store_groups"]),
            recommendations=tuple(Recommendation.from_dict(r) for r in data["recommendations"]),
            alternatives={
                product_id: [ProductAlternative.from_dict(a) for a in alts]
                for product_id, alts in data.get("alternatives", {}).items()
            },
            optimization_time_ms=int(data.get("optimization_time_ms", 0)),
        )

    @classmethod
    def from_json(cls, payload: str) -> "OptimizationResult":
        return cls.from_dict(json.loads(payload))
