"""
SQLAlchemy ORM Models for the Cart Optimizer Database

Tables:
- optimization_cache: serialized OptimizationResults keyed by cart+strategy hash
- optimization_runs: one row per computed optimization, for savings analytics
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class OptimizationCacheEntry(Base):
    """Cached optimization result with an absolute expiry"""
    __tablename__ = 'optimization_cache'
    __table_args__ = (
        Index('idx_cache_expires_at', 'expires_at'),
    )

    cache_key = Column(String(128), primary_key=True)  # prefix + sha256 hex digest
    payload = Column(Text, nullable=False)  # OptimizationResult.to_json()
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<OptimizationCacheEntry {self.cache_key[:12]} expires={self.expires_at}>"


class OptimizationRun(Base):
    """Historical optimization outcomes for savings summaries"""
    __tablename__ = 'optimization_runs'
    __table_args__ = (
        Index('idx_runs_strategy', 'strategy'),
        Index('idx_runs_created_at', 'created_at'),
    )

    id = Column(Integer, primary_key=True)
    strategy = Column(String(20), nullable=False)  # e.g. "budget", "split-cart"
    item_count = Column(Integer, nullable=False)
    store_count = Column(Integer, nullable=False)
    original_total = Column(Numeric(10, 2), nullable=False)
    optimized_total = Column(Numeric(10, 2), nullable=False)
    total_savings = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<OptimizationRun {self.strategy}: saved ${self.total_savings}>"
