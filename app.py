"""
Streamlit UI for the Cart Optimizer

- Edit: cart lines (product, store, unit price, quantity)
- Pick: optimization mode (price / time / convenience)
- Show: per-store groups, savings, recommendations, price matrix
- Compare: all four strategies side by side
"""

import asyncio
import os

import pandas as pd
import streamlit as st
from dotenv import load_dotenv

from cart_models import CartLineItem
from cart_optimizer import CartOptimizer
from catalog_client import CatalogSearchClient, demo_catalog
from config import EngineSettings, get_catalog_service_url
from price_matrix import build_price_matrix

# Load environment variables
load_dotenv()

st.set_page_config(page_title="Cart Optimizer", layout="wide")

st.title("Cart Optimizer 🛒")
st.caption("Cheapest, fastest or one-stop: re-plan your cart across stores")

DEMO_CART = pd.DataFrame(
    [
        {"product_id": "kroger-bananas", "name": "Bananas", "store": "kroger",
         "unit_price": 0.59, "quantity": 6, "category": "produce"},
        {"product_id": "safeway-milk", "name": "Whole Milk", "store": "safeway",
         "unit_price": 3.99, "quantity": 2, "category": "dairy"},
        {"product_id": "kroger-eggs", "name": "Organic Eggs", "store": "kroger",
         "unit_price": 5.99, "quantity": 1, "category": "dairy"},
        {"product_id": "safeway-bread", "name": "Sourdough Bread", "store": "safeway",
         "unit_price": 4.49, "quantity": 1, "category": "bakery"},
    ]
)


# ============================================================================
# ENGINE INITIALIZATION
# ============================================================================

@st.cache_resource
def init_optimizer(use_demo_catalog: bool) -> CartOptimizer:
    """
    Build the optimizer once per session.

    The demo catalog needs no services; otherwise CATALOG_SERVICE_URL is used.
    """
    if use_demo_catalog:
        catalog = demo_catalog()
    else:
        catalog = CatalogSearchClient(get_catalog_service_url())
    return CartOptimizer(catalog, settings=EngineSettings.from_env())


def cart_from_frame(frame: pd.DataFrame):
    items = []
    for row in frame.dropna(subset=["product_id", "name", "store", "unit_price"]).to_dict("records"):
        category = row.get("category")
        items.append(
            CartLineItem(
                product_id=str(row["product_id"]),
                name=str(row["name"]),
                unit_price=float(row["unit_price"]),
                store=str(row["store"]),
                quantity=int(row.get("quantity") or 1),
                category=None if pd.isna(category) else str(category),
            )
        )
    return items


with st.sidebar:
    st.header("Settings")
    use_demo = st.checkbox(
        "Use demo catalog",
        value=not os.getenv("CATALOG_SERVICE_URL"),
        help="Seeded products at kroger, safeway, walmart and target",
    )
    mode = st.radio(
        "Optimize for",
        options=["price", "time", "convenience"],
        format_func=lambda m: {"price": "💰 Price", "time": "⚡ Time", "convenience": "🏪 One store"}[m],
    )

optimizer = init_optimizer(use_demo)

st.header("Your Cart 🧾")
cart_frame = st.data_editor(DEMO_CART, num_rows="dynamic", use_container_width=True)

col_run, col_compare = st.columns(2)
run_clicked = col_run.button("🔍 Optimize Cart", type="primary")
compare_clicked = col_compare.button("📊 Compare Strategies")

if run_clicked or compare_clicked:
    try:
        items = cart_from_frame(cart_frame)
    except ValueError as e:
        st.error(f"❌ Invalid cart: {e}")
        st.stop()

    if not items:
        st.warning("Add at least one item to your cart.")
        st.stop()

if run_clicked:
    try:
        with st.spinner("Looking for cheaper alternatives..."):
            result = optimizer.optimize_cart_sync(items, mode)
    except Exception as e:
        st.error(f"❌ Optimization failed: {e}")
        st.stop()

    col_1, col_2, col_3 = st.columns(3)
    col_1.metric("Original total", f"${float(result.original_total):.2f}")
    col_2.metric(
        "Optimized total",
        f"${float(result.optimized_total):.2f}",
        delta=f"-${float(result.total_savings):.2f}",
        delta_color="inverse",
    )
    col_3.metric("Stores", result.store_count)

    st.subheader("Per-store plan")
    cols = st.columns(max(result.store_count, 1))
    for col, group in zip(cols, result.store_groups):
        with col:
            st.markdown(f"**{group.store}**")
            st.write(f"Subtotal: ${float(group.subtotal):.2f}")
            if group.qualifies_for_free_delivery:
                st.write("Delivery: free ✅")
            else:
                st.write(f"Delivery: ${float(group.delivery_fee):.2f}")
            for item in group.items:
                st.write(f"- {item.name} x{item.quantity}: ${float(item.unit_price):.2f}")

    if result.recommendations:
        st.subheader("Recommendations 💡")
        for rec in result.recommendations:
            st.write(f"- {rec.message} (save ${float(rec.potential_savings):.2f})")

    st.subheader("Price matrix")
    st.dataframe(build_price_matrix(items, result.alternatives), use_container_width=True)

if compare_clicked:
    try:
        with st.spinner("Running all strategies..."):
            comparison = asyncio.run(optimizer.compare_strategies(items))
    except Exception as e:
        st.error(f"❌ Comparison failed: {e}")
        st.stop()

    rows = []
    for name, result in comparison.results.items():
        if result is None:
            rows.append({"strategy": name, "error": comparison.errors.get(name)})
            continue
        rows.append({
            "strategy": name,
            "optimized_total": float(result.optimized_total),
            "total_savings": float(result.total_savings),
            "savings_percent": float(result.savings_percent),
            "stores": result.store_count,
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True)
    if comparison.best_strategy:
        st.success(f"Best strategy for this cart: **{comparison.best_strategy}**")

# Footer
st.markdown("---")
st.caption("Free delivery over the store threshold. Prices from the catalog service.")
