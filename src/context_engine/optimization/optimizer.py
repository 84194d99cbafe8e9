"""
Context Optimizer

Brings an over-budget snapshot under its token ceiling with one of five
reduction strategies, then reports token reduction, quality retention and
an audit trail of every change.

State machine:
    Unoptimized -> Compressing | Truncating | Summarizing | Filtering | Hierarchical -> Optimized
    Unoptimized -> Optimized (pass-through when already within budget)

A failing strategy never propagates: the original snapshot is returned
unchanged with a STRATEGY_FAILURE warning.
"""

import logging
import time
from uuid import uuid4

from ..budget_management.allocator import BudgetAllocator
from ..budget_management.models import BudgetAllocation, allocation_overrun, total_allocated
from ..config.schemas import BudgetStrategy, OptimizationStrategy, OptimizerConfig
from ..context.models import ContextSnapshot
from ..errors import BudgetOverrunError, EngineWarning, ErrorCode, StrategyFailureError
from ..observability.monitoring import ObservabilityAdapter
from ..relevance.scorer import RelevanceScorer
from ..token_optimization.counter import TokenCounter
from .enforcement import BudgetEnforcer
from .models import (
    STRATEGY_STATES,
    AppliedOptimization,
    OptimizationResult,
    OptimizeOptions,
    OptimizerState,
    QualityMetrics,
    TokenReduction,
)
from .quality import QualityBaseline, build_recommendations, measure_quality
from .strategies import ReductionStrategy, StrategyContext, default_strategies

logger = logging.getLogger(__name__)


class ContextOptimizer:
    """
    Strategy-driven context optimizer.

    Features:
    - Pass-through when the snapshot already fits
    - Five interchangeable reduction strategies
    - Budget enforcement after each strategy
    - Quality metrics from measurements captured before any change
    - Rolling statistics for monitoring
    """

    def __init__(
        self,
        counter: TokenCounter | None = None,
        scorer: RelevanceScorer | None = None,
        allocator: BudgetAllocator | None = None,
        config: OptimizerConfig | None = None,
        strategies: dict[OptimizationStrategy, ReductionStrategy] | None = None,
        observability: ObservabilityAdapter | None = None,
    ):
        self.counter = counter or TokenCounter()
        self.scorer = scorer or RelevanceScorer()
        self.allocator = allocator or BudgetAllocator(self.scorer)
        self.config = config or OptimizerConfig()
        self.strategies = strategies or default_strategies()
        self.enforcer = BudgetEnforcer()
        self.observability = observability or ObservabilityAdapter()

        self.stats = {
            "total_optimizations": 0,
            "passthrough": 0,
            "strategy_failures": 0,
            "total_tokens_saved": 0,
            "avg_reduction_ratio": 0.0,
        }

    def default_options(self, **overrides: object) -> OptimizeOptions:
        return OptimizeOptions.from_config(self.config, **overrides)

    def optimize(
        self,
        snapshot: ContextSnapshot,
        max_tokens: int,
        strategy: OptimizationStrategy | None = None,
        budget_strategy: BudgetStrategy | None = None,
        options: OptimizeOptions | None = None,
    ) -> OptimizationResult:
        """
        Optimize a snapshot to fit max_tokens.

        Args:
            snapshot: Snapshot to optimize (never modified)
            max_tokens: Token ceiling, at least 1
            strategy: Reduction strategy (default from config)
            budget_strategy: Allocation strategy (default from config)
            options: Preserve flags, compression level, threshold and query

        Returns:
            OptimizationResult; on strategy failure the optimized snapshot is
            the original and a STRATEGY_FAILURE warning is attached
        """
        start = time.perf_counter()
        strategy = strategy or self.config.default_strategy
        budget_strategy = budget_strategy or self.config.default_budget_strategy
        options = options or self.default_options()
        warnings: list[EngineWarning] = []

        if max_tokens < 1:
            warnings.append(
                EngineWarning(
                    code=ErrorCode.INVALID_INPUT,
                    message=f"max_tokens must be at least 1, got {max_tokens}",
                    details={"max_tokens": max_tokens},
                )
            )
            max_tokens = 1

        trace = [OptimizerState.UNOPTIMIZED]
        original_tokens = snapshot.total_tokens

        with self.observability.trace("optimizer.optimize", {"strategy": strategy.value}):
            if original_tokens <= max_tokens:
                trace.append(OptimizerState.OPTIMIZED)
                self.stats["total_optimizations"] += 1
                self.stats["passthrough"] += 1
                self.observability.increment("optimizer.passthrough")
                return OptimizationResult(
                    optimization_id=self._new_id(),
                    original_snapshot=snapshot,
                    optimized_snapshot=snapshot,
                    strategy=strategy,
                    budget_strategy=budget_strategy,
                    max_tokens=max_tokens,
                    token_reduction=TokenReduction.from_counts(original_tokens, original_tokens),
                    warnings=tuple(warnings),
                    state_trace=tuple(trace),
                    processing_time_ms=(time.perf_counter() - start) * 1000,
                )

            optimized, applied, allocations, quality, failed = self._run_strategy(
                snapshot, max_tokens, strategy, budget_strategy, options, trace, warnings
            )
            trace.append(OptimizerState.OPTIMIZED)

            if optimized.total_tokens > max_tokens and not failed:
                warnings.append(
                    EngineWarning(
                        code=ErrorCode.BUDGET_OVERRUN,
                        message="Optimized snapshot still exceeds the token budget",
                        details={"optimized_tokens": optimized.total_tokens, "max_tokens": max_tokens},
                    )
                )

            reduction = TokenReduction.from_counts(original_tokens, optimized.total_tokens)
            result = OptimizationResult(
                optimization_id=self._new_id(),
                original_snapshot=snapshot,
                optimized_snapshot=optimized,
                strategy=strategy,
                budget_strategy=budget_strategy,
                max_tokens=max_tokens,
                token_reduction=reduction,
                quality=quality,
                applied_optimizations=tuple(applied),
                recommendations=tuple(build_recommendations(strategy, budget_strategy, quality, max_tokens)),
                budget_allocations=tuple(allocations),
                warnings=tuple(warnings),
                state_trace=tuple(trace),
                processing_time_ms=(time.perf_counter() - start) * 1000,
            )

        self._update_stats(result)
        logger.info(
            f"Optimized context with {strategy.value}",
            extra={
                "strategy": strategy.value,
                "original_tokens": original_tokens,
                "optimized_tokens": reduction.optimized_tokens,
                "reduction_ratio": round(reduction.reduction_ratio, 3),
                "applied": len(applied),
                "warnings": len(warnings),
            },
        )
        return result

    def _run_strategy(
        self,
        snapshot: ContextSnapshot,
        max_tokens: int,
        strategy: OptimizationStrategy,
        budget_strategy: BudgetStrategy,
        options: OptimizeOptions,
        trace: list[OptimizerState],
        warnings: list[EngineWarning],
    ) -> tuple[ContextSnapshot, list[AppliedOptimization], list[BudgetAllocation], QualityMetrics, bool]:
        trace.append(STRATEGY_STATES[strategy])
        mark = len(warnings)
        try:
            now = self.scorer.now()
            query = options.query if options.query is not None else snapshot.query
            scores = {item.id: self.scorer.score(item, query, now).final_score for item in snapshot.items()}
            baseline = QualityBaseline.capture(snapshot, scores, now, self.config.recent_window_hours)

            allocations = self.allocator.allocate(snapshot, max_tokens, budget_strategy)
            overrun = allocation_overrun(allocations, max_tokens)
            if overrun:
                warnings.append(BudgetOverrunError(total_allocated(allocations), max_tokens).to_warning())

            ctx = StrategyContext(
                counter=self.counter,
                scorer=self.scorer,
                options=options,
                max_tokens=max_tokens,
                now=now,
                scores=scores,
                allocations=allocations,
                recent_window_hours=self.config.recent_window_hours,
                min_protected_item_tokens=self.config.min_protected_item_tokens,
            )

            outcome = self.strategies[strategy].apply(snapshot, ctx)
            optimized = outcome.snapshot
            applied = list(outcome.applied)

            if options.enforce_budget and optimized.total_tokens > max_tokens:
                optimized, enforced, enforcement_warnings = self.enforcer.enforce(
                    optimized, ctx, outcome.protected_ids
                )
                applied.extend(enforced)
                warnings.extend(enforcement_warnings)

            quality = measure_quality(baseline, optimized)
            return optimized, applied, allocations, quality, False
        except Exception as e:
            logger.error(
                f"Optimization strategy {strategy.value} failed, returning original snapshot: {e}",
                extra={"strategy": strategy.value, "user_id": snapshot.user_id, "error": str(e)},
                exc_info=True,
            )
            # Drop warnings from the abandoned pass
            del warnings[mark:]
            warnings.append(StrategyFailureError(strategy.value, e).to_warning())
            self.observability.increment("optimizer.strategy_failures", tags={"strategy": strategy.value})
            return snapshot, [], [], QualityMetrics(), True

    @staticmethod
    def _new_id() -> str:
        return f"opt_{int(time.time() * 1000)}_{uuid4().hex[:9]}"

    def _update_stats(self, result: OptimizationResult) -> None:
        self.stats["total_optimizations"] += 1
        if result.strategy_failed:
            self.stats["strategy_failures"] += 1
        self.stats["total_tokens_saved"] += result.token_reduction.tokens_saved

        # Rolling average over non-passthrough optimizations
        n = self.stats["total_optimizations"] - self.stats["passthrough"]
        prev = self.stats["avg_reduction_ratio"]
        self.stats["avg_reduction_ratio"] = (prev * (n - 1) + result.token_reduction.reduction_ratio) / n

        self.observability.increment("optimizer.optimizations", tags={"strategy": result.strategy.value})
        self.observability.histogram("optimizer.reduction_ratio", result.token_reduction.reduction_ratio)

    def get_stats(self) -> dict[str, float | int]:
        return dict(self.stats)
