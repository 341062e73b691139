"""
Error taxonomy for the cart optimization engine.

- InvalidCartError: structurally invalid request (empty cart, malformed strategy).
  Fatal, surfaced to the caller as HTTP 400.
- PartialDataError: an alternatives lookup failed or timed out. Never fatal;
  the affected item just has no alternatives.
- ConstraintUnsatisfiableError: every candidate for a line item was excluded
  by max_price or preferred_stores. The item is kept unchanged and a
  remove_item recommendation is emitted.
"""

from typing import Optional


class OptimizationError(Exception):
    """Base class for all engine errors"""


class InvalidCartError(OptimizationError):
    """Raised when the cart or strategy cannot be optimized at all"""


class PartialDataError(OptimizationError):
    """Alternatives lookup for a single item failed or timed out"""

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Alternatives lookup failed for {product_id}: {reason}")


class ConstraintUnsatisfiableError(OptimizationError):
    """No candidate for a line item survives its constraints"""

    def __init__(self, product_id: str, max_price=None, preferred_stores: Optional[list] = None):
        self.product_id = product_id
        self.max_price = max_price
        self.preferred_stores = preferred_stores
        constraints = []
        if max_price is not None:
            constraints.append(f"max_price={max_price}")
        if preferred_stores:
            constraints.append(f"preferred_stores={preferred_stores}")
        super().__init__(
            f"No candidate for {product_id} satisfies {', '.join(constraints) or 'constraints'}"
        )
