"""
Context Engine - Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import load_config
from .schemas import (
    BudgetStrategy,
    BuilderConfig,
    CacheConfig,
    CompressionLevel,
    EngineConfig,
    Environment,
    LogLevel,
    OptimizationStrategy,
    OptimizerConfig,
    RelevanceConfig,
    RelevanceWeights,
    TokenConfig,
)

__all__ = [
    # Loader
    "load_config",
    # Main config
    "EngineConfig",
    # Enums
    "Environment",
    "LogLevel",
    "CompressionLevel",
    "OptimizationStrategy",
    "BudgetStrategy",
    # Config sections
    "RelevanceWeights",
    "RelevanceConfig",
    "BuilderConfig",
    "OptimizerConfig",
    "CacheConfig",
    "TokenConfig",
]
