"""
Optimization Models

Options, audit records and results for context optimization.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..budget_management.models import BudgetAllocation
from ..config.schemas import BudgetStrategy, CompressionLevel, OptimizationStrategy, OptimizerConfig
from ..context.models import ContextSnapshot
from ..errors import EngineWarning, ErrorCode


class OptimizerState(str, Enum):
    """States of one optimization pass."""

    UNOPTIMIZED = "unoptimized"
    COMPRESSING = "compressing"
    TRUNCATING = "truncating"
    SUMMARIZING = "summarizing"
    FILTERING = "filtering"
    HIERARCHICAL = "hierarchical"
    OPTIMIZED = "optimized"


STRATEGY_STATES: dict[OptimizationStrategy, OptimizerState] = {
    OptimizationStrategy.COMPRESSION: OptimizerState.COMPRESSING,
    OptimizationStrategy.TRUNCATION: OptimizerState.TRUNCATING,
    OptimizationStrategy.SUMMARIZATION: OptimizerState.SUMMARIZING,
    OptimizationStrategy.RELEVANCE_FILTERING: OptimizerState.FILTERING,
    OptimizationStrategy.HIERARCHICAL: OptimizerState.HIERARCHICAL,
}


class OptimizationType(str, Enum):
    """Kinds of change recorded in AppliedOptimization."""

    COMPRESSION = "compression"
    TRUNCATION = "truncation"
    SUMMARIZATION = "summarization"
    FILTERING = "filtering"
    REMOVAL = "removal"


class OptimizeOptions(BaseModel):
    """Per-call optimizer options. Defaults come from OptimizerConfig."""

    model_config = ConfigDict(frozen=True)

    preserve_critical: bool = True
    preserve_recent: bool = True
    compression_level: CompressionLevel = CompressionLevel.MEDIUM
    relevance_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    query: str | None = None
    quality_requirement: float = Field(default=0.8, ge=0.0, le=1.0)
    enforce_budget: bool = True

    @classmethod
    def from_config(cls, config: OptimizerConfig, **overrides: Any) -> "OptimizeOptions":
        values = {
            "preserve_critical": config.preserve_critical,
            "preserve_recent": config.preserve_recent,
            "compression_level": config.compression_level,
            "relevance_threshold": config.relevance_threshold,
            "quality_requirement": config.quality_requirement,
            "enforce_budget": config.enforce_budget,
        }
        values.update(overrides)
        return cls(**values)


class AppliedOptimization(BaseModel):
    """Audit record of one change made to a snapshot."""

    model_config = ConfigDict(frozen=True)

    type: OptimizationType
    description: str
    tokens_affected: int = Field(ge=0, description="Tokens removed or saved by this change")
    quality_impact: float = Field(ge=0.0, le=1.0, description="Estimated quality cost")
    item_ids: tuple[str, ...] = Field(default=(), description="Items touched by this change")


class TokenReduction(BaseModel):
    """Token counts before and after optimization."""

    model_config = ConfigDict(frozen=True)

    original_tokens: int = Field(ge=0)
    optimized_tokens: int = Field(ge=0)
    reduction_ratio: float = Field(ge=0.0, le=1.0)
    tokens_saved: int = Field(ge=0)

    @classmethod
    def from_counts(cls, original: int, optimized: int) -> "TokenReduction":
        saved = max(0, original - optimized)
        return cls(
            original_tokens=original,
            optimized_tokens=optimized,
            reduction_ratio=saved / original if original else 0.0,
            tokens_saved=saved,
        )


class QualityMetrics(BaseModel):
    """Retention of the original snapshot's value after optimization."""

    model_config = ConfigDict(frozen=True)

    relevance_retention: float = Field(default=1.0, ge=0.0, le=1.0)
    completeness_retention: float = Field(default=1.0, ge=0.0, le=1.0)
    critical_info_preserved: bool = True
    recent_info_preserved: bool = True


class OptimizationResult(BaseModel):
    """Outcome of one optimization call."""

    model_config = ConfigDict(frozen=True)

    optimization_id: str
    original_snapshot: ContextSnapshot
    optimized_snapshot: ContextSnapshot
    strategy: OptimizationStrategy
    budget_strategy: BudgetStrategy
    max_tokens: int
    token_reduction: TokenReduction
    quality: QualityMetrics = Field(default_factory=QualityMetrics)
    applied_optimizations: tuple[AppliedOptimization, ...] = ()
    recommendations: tuple[str, ...] = ()
    budget_allocations: tuple[BudgetAllocation, ...] = ()
    warnings: tuple[EngineWarning, ...] = ()
    state_trace: tuple[OptimizerState, ...] = ()
    processing_time_ms: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def state(self) -> OptimizerState:
        return self.state_trace[-1] if self.state_trace else OptimizerState.UNOPTIMIZED

    @property
    def budget_exceeded(self) -> bool:
        return self.optimized_snapshot.total_tokens > self.max_tokens

    @property
    def strategy_failed(self) -> bool:
        return any(w.code == ErrorCode.STRATEGY_FAILURE for w in self.warnings)

    @property
    def is_passthrough(self) -> bool:
        return self.state_trace == (OptimizerState.UNOPTIMIZED, OptimizerState.OPTIMIZED)
