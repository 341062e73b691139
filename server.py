"""
Cart Optimizer HTTP API

FastAPI wrapper around CartOptimizer. Request bodies accept either camelCase
(productId, maxStores, ...) or snake_case field names. Every success response
is {"success": true, "data": ...}; a malformed cart or strategy gets a 400.

Run with:
    uvicorn server:app --port 8000
"""

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from cart_models import CartLineItem, DeliveryPreference, OptimizationStrategy, StrategyType
from cart_optimizer import STRATEGY_DESCRIPTIONS, CartOptimizer
from catalog_client import CatalogSearchClient
from config import EngineSettings, get_catalog_service_url
from database import get_db_manager
from errors import InvalidCartError
from optimization_cache import SQLCacheStore
from optimization_history import summarize_savings

logger = logging.getLogger(__name__)

app = FastAPI(title="Cart Optimizer API")

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== REQUEST MODELS ====================

class CartItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId", min_length=1)
    name: str = Field(min_length=1)
    unit_price: float = Field(alias="price", gt=0)
    store: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    category: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    max_price: Optional[float] = Field(default=None, alias="maxPrice", gt=0)

    def to_line_item(self) -> CartLineItem:
        return CartLineItem(
            product_id=self.product_id,
            name=self.name,
            unit_price=self.unit_price,
            store=self.store,
            quantity=self.quantity,
            category=self.category,
            image_url=self.image_url,
            max_price=self.max_price,
        )


class StrategyIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = StrategyType.BUDGET.value
    delivery_preference: str = Field(
        default=DeliveryPreference.CHEAPEST.value, alias="deliveryPreference"
    )
    max_stores: Optional[int] = Field(default=None, alias="maxStores")
    preferred_stores: Optional[List[str]] = Field(default=None, alias="preferredStores")

    def to_strategy(self) -> OptimizationStrategy:
        return OptimizationStrategy(
            type=self.type,
            delivery_preference=self.delivery_preference,
            max_stores=self.max_stores,
            preferred_stores=self.preferred_stores,
        )


class CartRequest(BaseModel):
    items: List[CartItemIn] = Field(min_length=1)

    def line_items(self) -> List[CartLineItem]:
        return [item.to_line_item() for item in self.items]


class OptimizeRequest(CartRequest):
    mode: str = "price"
    strategy: Optional[StrategyIn] = None


# ==================== DEPENDENCIES ====================

_optimizer: Optional[CartOptimizer] = None


def get_optimizer() -> CartOptimizer:
    """Shared optimizer: catalog service client, SQL cache, run history."""
    global _optimizer

    if _optimizer is None:
        db_manager = get_db_manager()
        _optimizer = CartOptimizer(
            CatalogSearchClient(get_catalog_service_url()),
            cache_store=SQLCacheStore(db_manager),
            settings=EngineSettings.from_env(),
            db_manager=db_manager,
        )
    return _optimizer


# ==================== ERROR HANDLERS ====================

@app.exception_handler(InvalidCartError)
async def invalid_cart_handler(request: Request, exc: InvalidCartError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


# ==================== ROUTES ====================

@app.post("/optimize")
async def optimize(request: OptimizeRequest, optimizer: CartOptimizer = Depends(get_optimizer)):
    strategy = request.strategy.to_strategy() if request.strategy else request.mode
    result = await optimizer.optimize_cart(request.line_items(), strategy)
    return {"success": True, "data": result.to_dict()}


@app.post("/optimize/compare")
async def compare(request: CartRequest, optimizer: CartOptimizer = Depends(get_optimizer)):
    comparison = await optimizer.compare_strategies(request.line_items())
    return {"success": True, "data": comparison.to_dict()}


@app.get("/optimize/strategies")
async def strategies():
    return {"success": True, "data": STRATEGY_DESCRIPTIONS}


@app.post("/optimize/estimate-savings")
async def estimate_savings(request: CartRequest, optimizer: CartOptimizer = Depends(get_optimizer)):
    estimate = await optimizer.estimate_savings(request.line_items())
    return {"success": True, "data": estimate}


@app.get("/optimize/savings-summary")
async def savings_summary(strategy: Optional[str] = None, db_manager=Depends(get_db_manager)):
    with db_manager.session_scope() as session:
        summary = summarize_savings(session, strategy)
    return {"success": True, "data": summary}


@app.get("/health")
async def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
