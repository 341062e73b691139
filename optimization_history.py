"""
Optimization Run History

Records every freshly computed optimization (cache hits are not re-recorded)
and summarizes how much shoppers could have saved.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cart_models import OptimizationResult, ZERO, round_money
from models import OptimizationRun

logger = logging.getLogger(__name__)


def record_run(session: Session, result: OptimizationResult) -> OptimizationRun:
    """Add one history row for `result` (caller commits)."""
    run = OptimizationRun(
        strategy=result.strategy.value,
        item_count=result.item_count,
        store_count=result.store_count,
        original_total=round_money(result.original_total),
        optimized_total=round_money(result.optimized_total),
        total_savings=round_money(result.total_savings),
    )
    session.add(run)
    return run


def summarize_savings(session: Session, strategy: Optional[str] = None) -> Dict:
    """
    Aggregate recorded runs.

    Args:
        session: SQLAlchemy session
        strategy: Optional strategy name to filter on

    Returns:
        {"total_runs", "total_original", "total_savings", "savings_percent",
         "average_savings_per_run"} with money as floats rounded to cents
    """
    query = session.query(
        func.count(OptimizationRun.id),
        func.coalesce(func.sum(OptimizationRun.original_total), 0),
        func.coalesce(func.sum(OptimizationRun.total_savings), 0),
    )
    if strategy:
        query = query.filter(OptimizationRun.strategy == strategy)
    total_runs, total_original, total_savings = query.one()

    total_original = Decimal(str(total_original))
    total_savings = Decimal(str(total_savings))
    savings_percent = total_savings / total_original * 100 if total_original > ZERO else ZERO
    average = total_savings / total_runs if total_runs else ZERO

    return {
        "total_runs": int(total_runs),
        "total_original": float(round_money(total_original)),
        "total_savings": float(round_money(total_savings)),
        "savings_percent": float(round_money(savings_percent)),
        "average_savings_per_run": float(round_money(average)),
    }
