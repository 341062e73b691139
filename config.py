"""
Engine configuration.

Values come from the environment (optionally a .env file) with the defaults
below. Money values are parsed as Decimal so no float drift leaks into totals.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

load_dotenv()

# Defaults
FREE_DELIVERY_THRESHOLD = "35.00"
BASE_DELIVERY_FEE = "4.99"
BUNDLE_MARGIN = "10.00"  # how close to the threshold a bundle nudge is worth it
SWITCH_MIN_SAVINGS = "1.00"
MAX_RECOMMENDATIONS = 5
CACHE_TTL_SECONDS = 300  # 5 minutes
CATALOG_SEARCH_LIMIT = 10
LOOKUP_TIMEOUT_SECONDS = 5.0
MAX_LOOKUP_CONCURRENCY = 8
MEAL_PLAN_DEFAULT_MAX_STORES = 2
MEAL_PLAN_SUBTOTAL_WEIGHT = 0.5
MEAL_PLAN_DIVERSITY_WEIGHT = 0.3
MEAL_PLAN_ITEM_COUNT_WEIGHT = 0.2
TIME_MODE_MAX_STORES = 2
CATALOG_SERVICE_URL = "http://localhost:3001"


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal amount, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class EngineSettings:
    """Tunable constants for grouping, recommendations, caching and lookups"""
    free_delivery_threshold: Decimal = Decimal(FREE_DELIVERY_THRESHOLD)
    base_delivery_fee: Decimal = Decimal(BASE_DELIVERY_FEE)
    bundle_margin: Decimal = Decimal(BUNDLE_MARGIN)
    switch_min_savings: Decimal = Decimal(SWITCH_MIN_SAVINGS)
    max_recommendations: int = MAX_RECOMMENDATIONS
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    catalog_search_limit: int = CATALOG_SEARCH_LIMIT
    lookup_timeout_seconds: float = LOOKUP_TIMEOUT_SECONDS
    max_lookup_concurrency: int = MAX_LOOKUP_CONCURRENCY
    meal_plan_default_max_stores: int = MEAL_PLAN_DEFAULT_MAX_STORES
    meal_plan_subtotal_weight: float = MEAL_PLAN_SUBTOTAL_WEIGHT
    meal_plan_diversity_weight: float = MEAL_PLAN_DIVERSITY_WEIGHT
    meal_plan_item_count_weight: float = MEAL_PLAN_ITEM_COUNT_WEIGHT
    time_mode_max_stores: int = TIME_MODE_MAX_STORES

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: If a variable is set but cannot be parsed
        """
        return cls(
            free_delivery_threshold=_env_decimal("FREE_DELIVERY_THRESHOLD", FREE_DELIVERY_THRESHOLD),
            base_delivery_fee=_env_decimal("BASE_DELIVERY_FEE", BASE_DELIVERY_FEE),
            bundle_margin=_env_decimal("BUNDLE_MARGIN", BUNDLE_MARGIN),
            switch_min_savings=_env_decimal("SWITCH_MIN_SAVINGS", SWITCH_MIN_SAVINGS),
            max_recommendations=_env_int("MAX_RECOMMENDATIONS", MAX_RECOMMENDATIONS),
            cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", CACHE_TTL_SECONDS),
            catalog_search_limit=_env_int("CATALOG_SEARCH_LIMIT", CATALOG_SEARCH_LIMIT),
            lookup_timeout_seconds=_env_float("LOOKUP_TIMEOUT_SECONDS", LOOKUP_TIMEOUT_SECONDS),
            max_lookup_concurrency=_env_int("MAX_LOOKUP_CONCURRENCY", MAX_LOOKUP_CONCURRENCY),
            meal_plan_default_max_stores=_env_int(
                "MEAL_PLAN_DEFAULT_MAX_STORES", MEAL_PLAN_DEFAULT_MAX_STORES
            ),
            meal_plan_subtotal_weight=_env_float("MEAL_PLAN_SUBTOTAL_WEIGHT", MEAL_PLAN_SUBTOTAL_WEIGHT),
            meal_plan_diversity_weight=_env_float("MEAL_PLAN_DIVERSITY_WEIGHT", MEAL_PLAN_DIVERSITY_WEIGHT),
            meal_plan_item_count_weight=_env_float(
                "MEAL_PLAN_ITEM_COUNT_WEIGHT", MEAL_PLAN_ITEM_COUNT_WEIGHT
            ),
            time_mode_max_stores=_env_int("TIME_MODE_MAX_STORES", TIME_MODE_MAX_STORES),
        )


def get_catalog_service_url() -> str:
    return os.getenv("CATALOG_SERVICE_URL", CATALOG_SERVICE_URL)


def get_database_url() -> str:
    """Database for the SQL cache store and run history (sqlite file by default)"""
    return os.getenv("DATABASE_URL", "sqlite:///cart_optimizer.db")
