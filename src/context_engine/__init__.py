"""
Context Engine

Context compression and token budget optimization for LLM requests:
level-based context building, weighted relevance scoring, per-category
budget allocation, strategy-driven reduction with quality metrics, and a
TTL result cache.
"""

from .budget_management import BudgetAllocation, BudgetAllocator
from .cache import ResultCache, make_cache_key
from .config import BudgetStrategy, CompressionLevel, EngineConfig, OptimizationStrategy, load_config
from .context import (
    ContextLevel,
    ContextSnapshot,
    ConversationTurn,
    ExternalEntry,
    ImportanceTier,
    KnowledgeEntry,
    LevelBuilder,
    UserProfile,
)
from .engine import BuildOptions, BuildReport, ContextEngine
from .errors import ContextEngineError, EngineWarning, ErrorCode
from .optimization import AdjustmentPlanner, ContextOptimizer, OptimizationResult, OptimizeOptions
from .relevance import RelevanceResult, RelevanceScorer
from .token_optimization import TokenCounter

__version__ = "0.1.0"

__all__ = [
    "ContextEngine",
    "BuildOptions",
    "BuildReport",
    "load_config",
    "EngineConfig",
    "ContextLevel",
    "ContextSnapshot",
    "ConversationTurn",
    "KnowledgeEntry",
    "ExternalEntry",
    "UserProfile",
    "ImportanceTier",
    "LevelBuilder",
    "RelevanceScorer",
    "RelevanceResult",
    "BudgetAllocator",
    "BudgetAllocation",
    "BudgetStrategy",
    "ContextOptimizer",
    "OptimizeOptions",
    "OptimizationResult",
    "OptimizationStrategy",
    "CompressionLevel",
    "AdjustmentPlanner",
    "ResultCache",
    "make_cache_key",
    "TokenCounter",
    "ContextEngineError",
    "EngineWarning",
    "ErrorCode",
    "__version__",
]
