"""
Context Engine

Service object that fetches upstream data, builds level snapshots, scores
relevance, allocates budgets, optimizes over-budget contexts and caches the
results. Collaborators are injected; the engine owns its cache, its sweep
thread and its observability adapter.
"""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .budget_management import BudgetAllocation, BudgetAllocator
from .cache import ResultCache, make_cache_key, snapshot_fingerprint
from .config import BudgetStrategy, EngineConfig, OptimizationStrategy, load_config
from .context import (
    ContextLevel,
    ContextMetadata,
    ContextSnapshot,
    ExternalEntry,
    KnowledgeFetcher,
    KnowledgeFilters,
    KnowledgeRecord,
    LevelBuilder,
    MemoryFetcher,
    MemoryRecord,
    ProfileData,
    ProfileFetcher,
    RawContextData,
    SystemStatus,
    context_relevance,
)
from .errors import DataUnavailableError, EngineWarning, ErrorCode
from .observability import ObservabilityAdapter, configure_logging
from .optimization import AdjustmentPlan, AdjustmentPlanner, ContextOptimizer, OptimizationResult, OptimizeOptions
from .relevance import RelevanceResult, RelevanceScorer
from .token_optimization import TokenCounter

logger = logging.getLogger(__name__)


class BuildOptions(BaseModel):
    """Per-request options for build_context."""

    model_config = ConfigDict(frozen=True)

    query: str | None = None
    include_memories: bool = True
    include_preferences: bool = True
    memory_limit: int | None = Field(default=None, ge=0, description="Defaults to builder.memory_limit")
    knowledge_filters: KnowledgeFilters = Field(default_factory=KnowledgeFilters)
    external: tuple[ExternalEntry, ...] = ()
    system: SystemStatus | None = None
    strategy: OptimizationStrategy | None = None
    budget_strategy: BudgetStrategy | None = None
    optimize: OptimizeOptions | None = None
    use_cache: bool = True


class BuildReport(BaseModel):
    """Outcome of build_context_report."""

    model_config = ConfigDict(frozen=True)

    snapshot: ContextSnapshot
    optimization: OptimizationResult | None = Field(
        default=None, description="None when the built snapshot already fit the budget"
    )
    warnings: tuple[EngineWarning, ...] = ()
    cache_hit: bool = False
    context_relevance: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Query relevance of the final profile text; None without a query"
    )
    metadata: ContextMetadata | None = None


class ContextEngine:
    """
    Context compression and token budget engine.

    Usage:
        with ContextEngine(config, profile_fetcher=..., memory_fetcher=...) as engine:
            snapshot = engine.build_context("user-1", ContextLevel.SELECTIVE, max_tokens=300)
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        profile_fetcher: ProfileFetcher | None = None,
        memory_fetcher: MemoryFetcher | None = None,
        knowledge_fetcher: KnowledgeFetcher | None = None,
        counter: TokenCounter | None = None,
        scorer: RelevanceScorer | None = None,
        cache: ResultCache | None = None,
        observability: ObservabilityAdapter | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config or EngineConfig()
        self.profile_fetcher = profile_fetcher
        self.memory_fetcher = memory_fetcher
        self.knowledge_fetcher = knowledge_fetcher
        clock = clock or (lambda: datetime.now(UTC))

        self.counter = counter or TokenCounter(
            encoding_name=self.config.tokens.encoding,
            use_tiktoken=self.config.tokens.use_tiktoken,
        )
        self.scorer = scorer or RelevanceScorer(self.config.relevance, clock=clock)
        self.observability = observability or ObservabilityAdapter()
        self.builder = LevelBuilder(self.counter, self.config.builder, clock=clock)
        self.allocator = BudgetAllocator(self.scorer)
        self.optimizer = ContextOptimizer(
            counter=self.counter,
            scorer=self.scorer,
            allocator=self.allocator,
            config=self.config.optimizer,
            observability=self.observability,
        )
        self.planner = AdjustmentPlanner()
        self.cache = cache or ResultCache(
            max_size=self.config.cache.max_size,
            default_ttl=self.config.cache.ttl_seconds,
            sweep_interval=self.config.cache.sweep_interval_seconds,
            namespace=self.config.cache.namespace,
        )

        logger.info(
            "Context engine initialized",
            extra={
                "environment": self.config.environment.value,
                "cache_enabled": self.config.cache.enabled,
                "token_method": self.counter.method,
            },
        )

    @classmethod
    def from_env(cls, env_file: str | None = None, **collaborators: Any) -> "ContextEngine":
        """Load config from the environment, configure logging and build an engine."""
        config = load_config(env_file)
        configure_logging(config.log_level.value, config.json_logs)
        return cls(config, **collaborators)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.config.cache.enabled:
            self.cache.start()

    def close(self) -> None:
        self.cache.close()
        logger.info("Context engine closed")

    def __enter__(self) -> "ContextEngine":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Upstream fetches
    # ------------------------------------------------------------------

    def _fetch_profile(self, user_id: str, warnings: list[EngineWarning]) -> ProfileData | None:
        if self.profile_fetcher is None:
            warnings.append(DataUnavailableError("profile", {"reason": "no profile fetcher"}).to_warning())
            return None
        try:
            profile = self.profile_fetcher.fetch_profile(user_id)
        except Exception as e:
            logger.error(
                f"Profile fetch failed for {user_id}: {e}",
                extra={"user_id": user_id, "error": str(e)},
                exc_info=True,
            )
            warnings.append(DataUnavailableError("profile", {"error": str(e)}).to_warning())
            self.observability.increment("engine.fetch_errors", tags={"source": "profile"})
            return None
        if profile is None:
            warnings.append(DataUnavailableError("profile", {"reason": "no profile for user"}).to_warning())
        return profile

    def _fetch_memories(self, user_id: str, limit: int, warnings: list[EngineWarning]) -> list[MemoryRecord]:
        if self.memory_fetcher is None or limit == 0:
            return []
        try:
            return list(self.memory_fetcher.fetch_recent_memories(user_id, limit))[:limit]
        except Exception as e:
            logger.error(
                f"Memory fetch failed for {user_id}: {e}",
                extra={"user_id": user_id, "limit": limit, "error": str(e)},
                exc_info=True,
            )
            warnings.append(DataUnavailableError("memories", {"error": str(e)}).to_warning())
            self.observability.increment("engine.fetch_errors", tags={"source": "memories"})
            return []

    def _fetch_knowledge(
        self, query: str | None, filters: KnowledgeFilters, warnings: list[EngineWarning]
    ) -> list[KnowledgeRecord]:
        if self.knowledge_fetcher is None or filters.limit == 0:
            return []
        try:
            records = self.knowledge_fetcher.fetch_knowledge(query, filters)
        except Exception as e:
            logger.error(
                f"Knowledge fetch failed: {e}",
                extra={"query": query, "error": str(e)},
                exc_info=True,
            )
            warnings.append(DataUnavailableError("knowledge", {"error": str(e)}).to_warning())
            self.observability.increment("engine.fetch_errors", tags={"source": "knowledge"})
            return []
        return [r for r in records if r.reliability >= filters.min_reliability][: filters.limit]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _build_key(self, user_id: str, level: ContextLevel, max_tokens: int, options: BuildOptions) -> str:
        return make_cache_key(
            user_id,
            level.value,
            options.query,
            max_tokens=max_tokens,
            include_memories=options.include_memories,
            include_preferences=options.include_preferences,
            memory_limit=options.memory_limit,
            knowledge_filters=options.knowledge_filters.model_dump(mode="json"),
            external=[entry.model_dump(mode="json") for entry in options.external],
            system=options.system.model_dump(mode="json") if options.system else None,
            strategy=options.strategy.value if options.strategy else None,
            budget_strategy=options.budget_strategy.value if options.budget_strategy else None,
            optimize=options.optimize.model_dump(mode="json") if options.optimize else None,
        )

    def build_context_report(
        self,
        user_id: str,
        level: ContextLevel,
        max_tokens: int,
        options: BuildOptions | None = None,
    ) -> BuildReport:
        """
        Build a level snapshot that fits max_tokens, with diagnostics.

        Upstream failures degrade to a fallback snapshot or empty item lists
        and are reported as DATA_UNAVAILABLE warnings. Results built without
        warnings are cached.
        """
        options = options or BuildOptions()
        use_cache = self.config.cache.enabled and options.use_cache
        key = self._build_key(user_id, level, max_tokens, options) if use_cache else None

        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                self.observability.increment("engine.cache_hits")
                return cached.model_copy(update={"cache_hit": True})
            self.observability.increment("engine.cache_misses")

        start = time.perf_counter()
        warnings: list[EngineWarning] = []
        with self.observability.trace("engine.build_context", {"level": level.value}):
            profile = self._fetch_profile(user_id, warnings)
            memory_limit = options.memory_limit if options.memory_limit is not None else self.config.builder.memory_limit
            memories = self._fetch_memories(user_id, memory_limit, warnings) if options.include_memories else []
            knowledge = self._fetch_knowledge(options.query, options.knowledge_filters, warnings)

            raw = RawContextData(
                profile=profile,
                memories=memories,
                knowledge=knowledge,
                external=list(options.external),
                system=options.system,
            )
            snapshot = self.builder.build(
                user_id,
                level,
                raw,
                query=options.query,
                include_memories=options.include_memories,
                include_preferences=options.include_preferences,
            )

            optimization = None
            if snapshot.total_tokens > max_tokens:
                optimization = self.optimizer.optimize(
                    snapshot,
                    max_tokens,
                    strategy=options.strategy,
                    budget_strategy=options.budget_strategy,
                    options=options.optimize,
                )
                snapshot = optimization.optimized_snapshot
                warnings.extend(optimization.warnings)

            summary = snapshot.profile.summary if snapshot.profile is not None else ""
            relevance = context_relevance(summary, options.query)
            metadata = self.builder.describe(snapshot, raw)

        report = BuildReport(
            snapshot=snapshot,
            optimization=optimization,
            warnings=tuple(warnings),
            context_relevance=relevance,
            metadata=metadata,
        )
        if key is not None and not any(w.code == ErrorCode.DATA_UNAVAILABLE for w in warnings):
            self.cache.put(key, report)

        self.observability.histogram("engine.build_ms", (time.perf_counter() - start) * 1000)
        logger.info(
            f"Built {level.value} context for {user_id}",
            extra={
                "user_id": user_id,
                "level": level.value,
                "max_tokens": max_tokens,
                "total_tokens": snapshot.total_tokens,
                "optimized": optimization is not None,
                "warnings": len(warnings),
            },
        )
        return report

    def build_context(
        self,
        user_id: str,
        level: ContextLevel,
        max_tokens: int,
        options: BuildOptions | None = None,
    ) -> ContextSnapshot:
        """Build a level snapshot that fits max_tokens."""
        return self.build_context_report(user_id, level, max_tokens, options).snapshot

    def optimize_context(
        self,
        snapshot: ContextSnapshot,
        max_tokens: int,
        strategy: OptimizationStrategy | None = None,
        budget_strategy: BudgetStrategy | None = None,
        options: OptimizeOptions | None = None,
    ) -> OptimizationResult:
        """Optimize an existing snapshot; identical requests are served from cache."""
        strategy = strategy or self.config.optimizer.default_strategy
        budget_strategy = budget_strategy or self.config.optimizer.default_budget_strategy
        options = options or self.optimizer.default_options()

        key = None
        if self.config.cache.enabled:
            key = make_cache_key(
                snapshot.user_id,
                snapshot.level.value if snapshot.level else "none",
                options.query,
                snapshot=snapshot_fingerprint(snapshot),
                max_tokens=max_tokens,
                strategy=strategy.value,
                budget_strategy=budget_strategy.value,
                options=options.model_dump(mode="json"),
            )
            cached = self.cache.get(key)
            if cached is not None:
                self.observability.increment("engine.cache_hits")
                return cached

        result = self.optimizer.optimize(snapshot, max_tokens, strategy, budget_strategy, options)
        if key is not None and not result.strategy_failed:
            self.cache.put(key, result)
        return result

    def score_relevance(
        self,
        snapshot: ContextSnapshot,
        user_id: str | None = None,
        query: str | None = None,
    ) -> list[RelevanceResult]:
        """Score every entry of the snapshot, highest first."""
        if user_id is not None and user_id != snapshot.user_id:
            logger.warning(
                "Scoring snapshot for a different user",
                extra={"user_id": user_id, "snapshot_user_id": snapshot.user_id},
            )
        return self.scorer.score_snapshot(snapshot, query)

    def allocate_budget(
        self,
        snapshot: ContextSnapshot,
        total_budget: int,
        strategy: BudgetStrategy | None = None,
    ) -> list[BudgetAllocation]:
        return self.allocator.allocate(snapshot, total_budget, strategy or self.config.optimizer.default_budget_strategy)

    def plan_adjustment(
        self,
        snapshot: ContextSnapshot,
        target_tokens: int,
        quality_requirement: float | None = None,
        time_constraint_ms: float | None = None,
    ) -> AdjustmentPlan:
        if quality_requirement is None:
            quality_requirement = self.config.optimizer.quality_requirement
        return self.planner.plan(snapshot, target_tokens, quality_requirement, time_constraint_ms)

    def get_stats(self) -> dict[str, Any]:
        return {
            "optimizer": self.optimizer.get_stats(),
            "cache": self.cache.get_stats(),
            "metrics": self.observability.get_metrics(),
            "token_counter": self.counter.method,
        }
