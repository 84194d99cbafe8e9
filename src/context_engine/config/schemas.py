"""
Context Engine - Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is defined here and validated when the engine is constructed.

Every recognized option is enumerated with its default; there are no
free-form option bags.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

WEIGHT_SUM_TOLERANCE = 1e-9


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CompressionLevel(str, Enum):
    """Text compression aggressiveness, least to most lossy."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    AGGRESSIVE = "aggressive"

    @property
    def rank(self) -> int:
        return _COMPRESSION_RANK[self]


_COMPRESSION_RANK = {
    CompressionLevel.LOW: 0,
    CompressionLevel.MEDIUM: 1,
    CompressionLevel.HIGH: 2,
    CompressionLevel.AGGRESSIVE: 3,
}


class OptimizationStrategy(str, Enum):
    """Reduction strategies applied to over-budget snapshots."""

    COMPRESSION = "compression"
    TRUNCATION = "truncation"
    SUMMARIZATION = "summarization"
    RELEVANCE_FILTERING = "relevance_filtering"
    HIERARCHICAL = "hierarchical"


class BudgetStrategy(str, Enum):
    """Token budget allocation strategies."""

    STRICT = "strict"
    FLEXIBLE = "flexible"
    ADAPTIVE = "adaptive"
    PRIORITY_BASED = "priority_based"


class RelevanceWeights(BaseModel):
    """Relevance factor weights. Must sum to 1.0."""

    model_config = ConfigDict(frozen=True)

    recency: float = Field(default=0.25, ge=0.0, le=1.0, description="Weight of the recency factor")
    quality: float = Field(default=0.25, ge=0.0, le=1.0, description="Weight of the quality factor")
    query_match: float = Field(default=0.20, ge=0.0, le=1.0, description="Weight of the query-match factor")
    importance: float = Field(default=0.15, ge=0.0, le=1.0, description="Weight of the importance factor")
    frequency: float = Field(default=0.10, ge=0.0, le=1.0, description="Weight of the access-frequency factor")
    cross_reference: float = Field(default=0.05, ge=0.0, le=1.0, description="Weight of the cross-reference factor")

    @model_validator(mode="after")
    def validate_sum(self) -> "RelevanceWeights":
        """Ensure weights sum to 1.0."""
        total = self.total()
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"relevance weights must sum to 1.0, got {total!r}")
        return self

    def total(self) -> float:
        return (
            self.recency + self.quality + self.query_match + self.importance + self.frequency + self.cross_reference
        )

    def as_dict(self) -> dict[str, float]:
        return self.model_dump()


class RelevanceConfig(BaseModel):
    """Relevance scoring configuration."""

    weights: RelevanceWeights = Field(default_factory=RelevanceWeights)
    recency_window_hours: float = Field(default=24.0, gt=0.0, description="Hours until recency decays to its floor")
    recency_floor: float = Field(default=0.1, ge=0.0, le=1.0, description="Minimum recency factor")
    min_query_token_length: int = Field(
        default=3, ge=1, description="Query tokens shorter than this are ignored for matching"
    )
    neutral_query_score: float = Field(default=0.5, ge=0.0, le=1.0, description="Query factor when no query is given")


class BuilderConfig(BaseModel):
    """Level builder configuration."""

    compression_aggressiveness: CompressionLevel = Field(
        default=CompressionLevel.HIGH,
        description="How far the level text compression pass may go before hard truncation",
    )
    max_items_per_category: int = Field(default=200, ge=1, description="Cap on items per snapshot category")
    memory_limit: int = Field(default=10, ge=0, description="Recent memories fetched per build")
    memory_highlights: int = Field(default=3, ge=0, description="Memories rendered into Selective/Full text")
    enrich_low_relevance: bool = Field(
        default=True, description="Append query-driven profile sections when level text scores below the threshold"
    )
    min_context_relevance: float = Field(
        default=0.6, ge=0.0, le=1.0, description="Query relevance below which level text is enriched"
    )


class OptimizerConfig(BaseModel):
    """Optimizer defaults, copied into OptimizeOptions when not overridden."""

    default_strategy: OptimizationStrategy = Field(default=OptimizationStrategy.HIERARCHICAL)
    default_budget_strategy: BudgetStrategy = Field(default=BudgetStrategy.ADAPTIVE)
    preserve_critical: bool = Field(default=True, description="Never remove critical items")
    preserve_recent: bool = Field(default=True, description="Never remove items younger than recent_window_hours")
    compression_level: CompressionLevel = Field(default=CompressionLevel.MEDIUM)
    relevance_threshold: float = Field(default=0.5, ge=0.0, le=1.0, description="Relevance filtering cutoff")
    quality_requirement: float = Field(default=0.8, ge=0.0, le=1.0, description="Minimum acceptable retention")
    enforce_budget: bool = Field(default=True, description="Run budget enforcement after each strategy")
    recent_window_hours: float = Field(default=2.0, gt=0.0, description="Age under which an item counts as recent")
    min_protected_item_tokens: int = Field(
        default=8, ge=1, description="Floor for hard-truncated protected items under budget pressure"
    )


class CacheConfig(BaseModel):
    """Result cache configuration."""

    enabled: bool = Field(default=True, description="Cache build and optimization results")
    ttl_seconds: int = Field(default=600, ge=1, description="Entry TTL in seconds")
    max_size: int = Field(default=1000, ge=1, description="Max cache entries")
    sweep_interval_seconds: float = Field(default=300.0, gt=0.0, description="Background sweep period")
    namespace: str = Field(default="context", description="Cache key namespace/prefix")


class TokenConfig(BaseModel):
    """Token counting configuration."""

    encoding: str = Field(default="cl100k_base", description="tiktoken encoding name")
    use_tiktoken: bool = Field(default=True, description="Use tiktoken; estimate len/4 otherwise")


class EngineConfig(BaseModel):
    """Root configuration for the context engine."""

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    log_level: LogLevel = Field(default=LogLevel.INFO)
    json_logs: bool = Field(default=False, description="Emit JSON formatted log lines")

    relevance: RelevanceConfig = Field(default_factory=RelevanceConfig)
    builder: BuilderConfig = Field(default_factory=BuilderConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION
