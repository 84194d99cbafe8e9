"""
Optimization Module

Strategy-driven reduction of over-budget context snapshots.

Strategies: compression, truncation, summarization, relevance filtering,
hierarchical. Every run reports token reduction, quality retention and an
audit trail of applied changes.
"""

from .enforcement import BudgetEnforcer
from .models import (
    AppliedOptimization,
    OptimizationResult,
    OptimizationType,
    OptimizeOptions,
    OptimizerState,
    QualityMetrics,
    TokenReduction,
)
from .optimizer import ContextOptimizer
from .planner import STRATEGY_PROFILES, AdjustmentPlan, AdjustmentPlanner, StrategyProfile
from .quality import QualityBaseline, build_recommendations, measure_quality
from .strategies import (
    CompressionStrategy,
    HierarchicalStrategy,
    ReductionStrategy,
    RelevanceFilteringStrategy,
    StrategyContext,
    StrategyOutcome,
    SummarizationStrategy,
    TruncationStrategy,
    default_strategies,
)

__all__ = [
    # Optimizer
    "ContextOptimizer",
    "OptimizeOptions",
    "OptimizationResult",
    "OptimizerState",
    "OptimizationType",
    "AppliedOptimization",
    "TokenReduction",
    "QualityMetrics",
    # Strategies
    "ReductionStrategy",
    "StrategyContext",
    "StrategyOutcome",
    "CompressionStrategy",
    "TruncationStrategy",
    "SummarizationStrategy",
    "RelevanceFilteringStrategy",
    "HierarchicalStrategy",
    "default_strategies",
    "BudgetEnforcer",
    # Quality
    "QualityBaseline",
    "measure_quality",
    "build_recommendations",
    # Planning
    "AdjustmentPlanner",
    "AdjustmentPlan",
    "StrategyProfile",
    "STRATEGY_PROFILES",
]
