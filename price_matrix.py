"""
Cart Price Matrix

Two-sided view of what the resolver found: rows are cart items (by
product_id), columns are stores, values are the best known unit price of that
item at that store. Unknown prices are NaN.

Used by the Streamlit app to show where each item is cheapest.
"""

from typing import Dict, List, Sequence

import pandas as pd

from cart_models import CartLineItem, ProductAlternative


class PriceMatrix:
    """Item x store unit-price table backed by a DataFrame"""

    def __init__(self, product_ids: List[str], stores: List[str]):
        self.product_ids = product_ids
        self.stores = stores

        # NaN = price not known at that store
        self.data = pd.DataFrame(
            data=float("nan"),
            index=product_ids,
            columns=stores,
            dtype=float,
        )

    def offer(self, product_id: str, store: str, price: float) -> None:
        """Record a price, keeping the lowest one seen for the cell."""
        if product_id not in self.data.index:
            raise ValueError(f"Product '{product_id}' not in price matrix")
        if store not in self.data.columns:
            raise ValueError(f"Store '{store}' not in price matrix")

        current = self.data.loc[product_id, store]
        if pd.isna(current) or price < current:
            self.data.loc[product_id, store] = price

    def get_price(self, product_id: str, store: str) -> float:
        return self.data.loc[product_id, store]

    def cheapest_stores(self) -> pd.Series:
        """Store with the lowest known price for every item."""
        return self.data.idxmin(axis=1)

    def store_coverage(self) -> pd.Series:
        """How many cart items each store has a known price for."""
        return self.data.notna().sum(axis=0)

    def to_dataframe(self) -> pd.DataFrame:
        return self.data.copy()


def build_price_matrix(
    items: Sequence[CartLineItem],
    alternatives: Dict[str, List[ProductAlternative]],
) -> pd.DataFrame:
    """
    Build the item x store matrix from a cart and its resolved alternatives.

    Columns are ordered by first appearance: cart stores first, then stores
    that only appear among alternatives.
    """
    product_ids: List[str] = []
    stores: List[str] = []
    for item in items:
        if item.product_id not in product_ids:
            product_ids.append(item.product_id)
        if item.store not in stores:
            stores.append(item.store)
    for item in items:
        for alt in alternatives.get(item.product_id, []):
            if alt.store not in stores:
                stores.append(alt.store)

    matrix = PriceMatrix(product_ids, stores)
    for item in items:
        matrix.offer(item.product_id, item.store, float(item.unit_price))
        for alt in alternatives.get(item.product_id, []):
            matrix.offer(item.product_id, alt.store, float(alt.price))

    return matrix.to_dataframe()
