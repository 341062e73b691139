from decimal import Decimal

import pytest

from cart_models import OptimizationResult, StrategyType
from database import DatabaseManager
from models import OptimizationRun
from optimization_history import record_run, summarize_savings


@pytest.fixture
def db_manager():
    manager = DatabaseManager("sqlite:///:memory:")
    manager.init_db()
    yield manager
    manager.close()


def result(strategy, original, optimized):
    original, optimized = Decimal(original), Decimal(optimized)
    return OptimizationResult(
        strategy=strategy,
        original_total=original,
        optimized_total=optimized,
        total_savings=original - optimized,
        savings_percent=(original - optimized) / original * 100,
        store_groups=(),
        recommendations=(),
    )


def test_empty_history_summary(db_manager):
    with db_manager.session_scope() as session:
        summary = summarize_savings(session)

    assert summary == {
        "total_runs": 0,
        "total_original": 0.0,
        "total_savings": 0.0,
        "savings_percent": 0.0,
        "average_savings_per_run": 0.0,
    }


def test_summary_aggregates_and_filters(db_manager):
    with db_manager.session_scope() as session:
        record_run(session, result(StrategyType.BUDGET, "20.00", "15.00"))
        record_run(session, result(StrategyType.BUDGET, "30.00", "27.00"))
        record_run(session, result(StrategyType.CONVENIENCE, "50.00", "50.00"))

    with db_manager.session_scope() as session:
        assert session.query(OptimizationRun).count() == 3
        overall = summarize_savings(session)
        budget = summarize_savings(session, "budget")

    assert overall["total_runs"] == 3
    assert overall["total_original"] == 100.0
    assert overall["total_savings"] == 8.0
    assert overall["savings_percent"] == 8.0

    assert budget["total_runs"] == 2
    assert budget["total_savings"] == 8.0
    assert budget["average_savings_per_run"] == 4.0
    assert budget["savings_percent"] == 16.0
