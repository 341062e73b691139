"""
Optimization Cache

Memoizes serialized OptimizationResults by a deterministic hash of the cart
and strategy, with a short TTL. Rapid re-optimization of the same cart (e.g.
quantity ticks back and forth) is answered without touching the catalog.

Two stores share the same tiny interface:
    get(key) -> Optional[str]
    set_with_expiry(key, value, ttl_seconds)

- InMemoryCacheStore: per-process dict, entries expire lazily on read
- SQLCacheStore: SQLAlchemy table (optimization_cache) with expires_at

Expiry is checked on read; there is no background sweep.
"""

import hashlib
import json
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Sequence, Tuple

from cart_models import CartLineItem, OptimizationStrategy
from models import OptimizationCacheEntry

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "cart:optimize:"


def make_cache_key(items: Sequence[CartLineItem], strategy: OptimizationStrategy) -> str:
    """
    Deterministic key over the full cart contents and the strategy.

    Cart order is part of the key because it decides first-seen store order
    in the output.
    """
    canonical = {
        "items": [item.to_dict() for item in items],
        "strategy": strategy.to_dict(),
    }
    blob = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return CACHE_KEY_PREFIX + hashlib.sha256(blob.encode("utf-8")).hexdigest()


class InMemoryCacheStore:
    """Thread-safe in-process key/value store with per-entry expiry"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SQLCacheStore:
    """Cache store backed by the optimization_cache table"""

    def __init__(self, db_manager, clock: Callable[[], datetime] = datetime.utcnow):
        """
        Args:
            db_manager: DatabaseManager with an initialized schema
            clock: Source of "now" (UTC), injectable for tests
        """
        self.db_manager = db_manager
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self.db_manager.session_scope() as session:
            entry = session.get(OptimizationCacheEntry, key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                session.delete(entry)
                return None
            return entry.payload

    def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        with self.db_manager.session_scope() as session:
            session.merge(
                OptimizationCacheEntry(
                    cache_key=key,
                    payload=value,
                    created_at=now,
                    expires_at=now + timedelta(seconds=ttl_seconds),
                )
            )
