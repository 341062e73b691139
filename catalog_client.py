"""
Catalog Search Clients

The optimizer treats catalog search as a black box:
    search(query, limit) -> List[CatalogProduct]

Provides:
- CatalogSearchClient: HTTP client for the catalog service (requests)
- InMemoryCatalog: in-process catalog for tests, demos and the Streamlit UI

Failures are NOT swallowed here. Timeouts, HTTP errors and malformed JSON
propagate so the Alternatives Resolver can contain them per item.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import requests

from cart_models import to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogProduct:
    """A product listing at one store, as returned by catalog search"""
    id: str
    name: str
    price: object  # Decimal after __post_init__
    store: str
    category: Optional[str] = None
    image_url: Optional[str] = None
    in_stock: bool = True

    def __post_init__(self):
        object.__setattr__(self, "price", to_money(self.price))

    @classmethod
    def from_payload(cls, payload: Dict) -> "CatalogProduct":
        """Parse one catalog search hit (camelCase or snake_case keys)."""
        in_stock = payload.get("inStock", payload.get("in_stock", True))
        return cls(
            id=str(payload["id"]),
            name=payload["name"],
            price=payload["price"],
            store=payload["store"],
            category=payload.get("category"),
            image_url=payload.get("imageUrl", payload.get("image_url")),
            # the catalog only reports explicit out-of-stock
            in_stock=in_stock is not False,
        )


class CatalogSearchClient:
    """Client for the catalog service product search endpoint"""

    SEARCH_PATH = "/api/products/search"
    TIMEOUT = 5  # seconds

    def __init__(self, base_url: str, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize catalog client.

        Args:
            base_url: Catalog service root, e.g. http://localhost:3001
            timeout: Per-request timeout in seconds
            session: Optional requests session (connection reuse)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or self.TIMEOUT
        self.session = session or requests.Session()
        logger.info(f"CatalogSearchClient initialized for {self.base_url}")

    def search(self, query: str, limit: int = 10) -> List[CatalogProduct]:
        """
        Search the catalog by free text.

        Raises:
            requests.exceptions.RequestException: On network/HTTP errors
            ValueError: On a malformed JSON body
        """
        logger.debug(f"Catalog search: {query!r} (limit {limit})")
        response = self.session.get(
            f"{self.base_url}{self.SEARCH_PATH}",
            params={"query": query, "limit": limit},
            timeout=self.timeout,
        )
        response.raise_for_status()

        data = response.json()
        products = []
        for hit in data.get("data") or []:
            try:
                products.append(CatalogProduct.from_payload(hit))
            except (KeyError, TypeError, ArithmeticError, ValueError):
                logger.debug(f"Failed to parse catalog hit: {hit}")
                continue

        logger.debug(f"Found {len(products)} catalog results for {query!r}")
        return products[:limit]


class InMemoryCatalog:
    """Catalog backed by a list of products; matches on name tokens."""

    def __init__(self, products: Iterable[CatalogProduct] = ()):
        self.products: List[CatalogProduct] = list(products)

    def add(self, product: CatalogProduct) -> None:
        self.products.append(product)

    def search(self, query: str, limit: int = 10) -> List[CatalogProduct]:
        tokens = [t for t in query.lower().split() if t]
        if not tokens:
            return []
        hits = [
            p for p in self.products
            if all(token in p.name.lower() for token in tokens)
        ]
        return hits[:limit]


def demo_catalog() -> InMemoryCatalog:
    """Small multi-store catalog used by the demo entry points."""
    rows = [
        ("kroger-bananas", "Bananas", "0.59", "kroger", "produce"),
        ("safeway-bananas", "Bananas", "0.69", "safeway", "produce"),
        ("walmart-bananas", "Bananas", "0.50", "walmart", "produce"),
        ("kroger-milk", "Whole Milk", "3.49", "kroger", "dairy"),
        ("safeway-milk", "Whole Milk", "3.99", "safeway", "dairy"),
        ("target-milk", "Whole Milk", "3.29", "target", "dairy"),
        ("kroger-eggs", "Organic Eggs", "5.99", "kroger", "dairy"),
        ("walmart-eggs", "Organic Eggs", "4.98", "walmart", "dairy"),
        ("safeway-bread", "Sourdough Bread", "4.49", "safeway", "bakery"),
        ("target-bread", "Sourdough Bread", "3.99", "target", "bakery"),
        ("kroger-chicken", "Chicken Breast", "8.99", "kroger", "meat"),
        ("walmart-chicken", "Chicken Breast", "7.49", "walmart", "meat"),
        ("safeway-rice", "Jasmine Rice", "6.49", "safeway", "pantry"),
        ("kroger-rice", "Jasmine Rice", "5.79", "kroger", "pantry"),
    ]
    return InMemoryCatalog(
        CatalogProduct(id=pid, name=name, price=price, store=store, category=category)
        for pid, name, price, store, category in rows
    )
