import pytest
from fastapi.testclient import TestClient

import server
from cart_optimizer import CartOptimizer
from catalog_client import demo_catalog
from config import EngineSettings
from database import DatabaseManager, get_db_manager

CART = [
    {"productId": "kroger-bananas", "name": "Bananas", "price": 0.59, "store": "kroger", "quantity": 6},
    {"productId": "safeway-milk", "name": "Whole Milk", "price": 3.99, "store": "safeway", "quantity": 2},
    {"product_id": "kroger-eggs", "name": "Organic Eggs", "unit_price": 5.99, "store": "kroger"},
]


@pytest.fixture
def client():
    db_manager = DatabaseManager("sqlite:///:memory:")
    db_manager.init_db()
    optimizer = CartOptimizer(demo_catalog(), settings=EngineSettings(), db_manager=db_manager)

    server.app.dependency_overrides[server.get_optimizer] = lambda: optimizer
    server.app.dependency_overrides[get_db_manager] = lambda: db_manager
    yield TestClient(server.app)
    server.app.dependency_overrides.clear()
    db_manager.close()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_optimize_price_mode(client):
    response = client.post("/optimize", json={"items": CART, "mode": "price"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["strategy"] == "budget"
    assert body["data"]["total_savings"] > 0
    assert body["data"]["item_count"] == 9


def test_optimize_with_explicit_strategy(client):
    response = client.post(
        "/optimize",
        json={"items": CART, "strategy": {"type": "convenience", "maxStores": 1}},
    )

    assert response.status_code == 200
    assert response.json()["data"]["store_count"] == 1


def test_empty_cart_is_bad_request(client):
    response = client.post("/optimize", json={"items": [], "mode": "price"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_bad_quantity_is_bad_request(client):
    item = dict(CART[0], quantity=0)

    response = client.post("/optimize", json={"items": [item]})

    assert response.status_code == 400


def test_bad_store_limit_is_bad_request(client):
    response = client.post("/optimize", json={"items": CART, "strategy": {"maxStores": 0}})

    assert response.status_code == 400
    assert "max_stores" in response.json()["error"]


def test_compare(client):
    response = client.post("/optimize/compare", json={"items": CART})

    data = response.json()["data"]
    assert {c["strategy"] for c in data["comparisons"]} == {
        "budget", "convenience", "split-cart", "meal-plan"
    }
    assert data["recommendation"]["strategy"] in {"budget", "convenience", "split-cart", "meal-plan"}


def test_strategies_catalogue(client):
    data = client.get("/optimize/strategies").json()["data"]

    assert [s["id"] for s in data] == ["budget", "convenience", "split-cart", "meal-plan"]


def test_estimate_savings(client):
    data = client.post("/optimize/estimate-savings", json={"items": CART}).json()["data"]

    assert data["estimated_savings"] > 0
    assert data["message"].startswith("You could save $")


def test_savings_summary_counts_optimizations(client):
    client.post("/optimize", json={"items": CART, "mode": "price"})
    client.post("/optimize", json={"items": CART, "mode": "time"})

    data = client.get("/optimize/savings-summary").json()["data"]

    assert data["total_runs"] == 2
    assert client.get("/optimize/savings-summary", params={"strategy": "budget"}).json()["data"]["total_runs"] == 1
