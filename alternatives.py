"""
Alternatives Resolver

For every cart line item, asks the catalog for similar products at other
stores and keeps the cheaper, in-stock ones ranked by savings.

Lookups fan out concurrently (bounded by a semaphore) and each one runs under
its own timeout. Sync catalog clients run on a resolver-owned thread pool,
so a hung call is abandoned at the timeout. A lookup never raises across the
fan-out boundary: it returns a LookupOutcome, and a failed or slow item
simply has no alternatives.
"""

import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from cart_models import CartLineItem, ProductAlternative, ZERO
from errors import PartialDataError

logger = logging.getLogger(__name__)


@dataclass
class LookupOutcome:
    """Result of one item's catalog lookup (success or contained failure)"""
    product_id: str
    alternatives: List[ProductAlternative] = field(default_factory=list)
    error: Optional[PartialDataError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def rank_alternatives(item: CartLineItem, products) -> List[ProductAlternative]:
    """
    Turn raw catalog hits into ranked alternatives for one line item.

    Drops hits from the item's own store or with its own product id, then
    keeps only in-stock hits that actually save money. Sorted by savings
    descending; ties keep catalog order.
    """
    alternatives = []
    for product in products:
        if product.store == item.store or product.id == item.product_id:
            continue
        alternative = ProductAlternative.for_item(
            item,
            product_id=product.id,
            name=product.name,
            price=product.price,
            store=product.store,
            in_stock=product.in_stock,
            category=product.category,
            image_url=product.image_url,
        )
        if alternative.savings > ZERO and alternative.in_stock:
            alternatives.append(alternative)

    alternatives.sort(key=lambda alt: alt.savings, reverse=True)
    return alternatives


def rank_for_lines(lines: Sequence[CartLineItem], products) -> List[ProductAlternative]:
    """
    Rank one product's catalog hits against every cart line carrying it.

    Each line is ranked on its own store, price and quantity; the first
    ranking of a given (product_id, store) offer wins. For a single line this
    is exactly rank_alternatives.
    """
    merged = []
    seen = set()
    for line in lines:
        for alternative in rank_alternatives(line, products):
            key = (alternative.product_id, alternative.store)
            if key not in seen:
                seen.add(key)
                merged.append(alternative)

    merged.sort(key=lambda alt: alt.savings, reverse=True)
    return merged


class AlternativesResolver:
    """Concurrent, failure-isolated alternatives lookup over a catalog client"""

    def __init__(
        self,
        catalog,
        search_limit: int = 10,
        timeout: float = 5.0,
        max_concurrency: int = 8,
    ):
        """
        Args:
            catalog: Object with search(query, limit) (sync or async)
            search_limit: Max catalog hits requested per item
            timeout: Per-lookup timeout in seconds
            max_concurrency: Max lookups in flight at once (also the size of
                the thread pool used for sync catalog clients)
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.catalog = catalog
        self.search_limit = search_limit
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrency,
            thread_name_prefix="catalog-lookup",
        )

    def close(self) -> None:
        """Stop the lookup threads without waiting for hung catalog calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def _search(self, query: str):
        if inspect.iscoroutinefunction(self.catalog.search):
            return await self.catalog.search(query, self.search_limit)
        # own pool: a hung sync call must not hold up asyncio.run's shutdown
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, self.catalog.search, query, self.search_limit
        )

    async def search_products(self, item: CartLineItem):
        """Raw catalog hits for an item's name, bounded by the timeout."""
        return await asyncio.wait_for(self._search(item.name), timeout=self.timeout)

    async def resolve_item(self, item: CartLineItem) -> List[ProductAlternative]:
        """Look up and rank alternatives for a single item (errors propagate)."""
        return rank_alternatives(item, await self.search_products(item))

    async def _lookup(self, lines: List[CartLineItem], semaphore: asyncio.Semaphore) -> LookupOutcome:
        product_id = lines[0].product_id
        async with semaphore:
            try:
                products = await self.search_products(lines[0])
                return LookupOutcome(product_id, rank_for_lines(lines, products))
            except asyncio.TimeoutError:
                error = PartialDataError(product_id, f"timed out after {self.timeout}s")
            except Exception as e:
                error = PartialDataError(product_id, str(e) or type(e).__name__)
        logger.warning(str(error))
        return LookupOutcome(product_id, error=error)

    async def resolve(self, items: Sequence[CartLineItem]) -> Dict[str, List[ProductAlternative]]:
        """
        Resolve alternatives for every distinct product in the cart.

        The catalog is searched once per product id; the hits are ranked
        against each line carrying that product (see rank_for_lines).

        Waits for all lookups (success, failure or timeout) before returning.
        If the caller is cancelled, gather cancels every outstanding lookup
        and nothing partial is returned.

        Returns:
            {product_id: [ProductAlternative, ...]} in cart order; items
            without alternatives map to an empty list
        """
        lines_by_product: Dict[str, List[CartLineItem]] = {}
        for item in items:
            lines_by_product.setdefault(item.product_id, []).append(item)

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *[self._lookup(lines, semaphore) for lines in lines_by_product.values()]
        )

        failed = [o.product_id for o in outcomes if not o.ok]
        if failed:
            logger.warning(f"⚠ Alternatives unavailable for {len(failed)}/{len(outcomes)} items: {failed}")
        else:
            logger.info(f"✓ Resolved alternatives for {len(outcomes)} items")

        return {outcome.product_id: outcome.alternatives for outcome in outcomes}
