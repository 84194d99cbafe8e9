"""
Context Engine - Configuration Tests

Tests schema defaults, weight validation and environment loading.
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from context_engine.config import (
    BudgetStrategy,
    CompressionLevel,
    EngineConfig,
    Environment,
    OptimizationStrategy,
    RelevanceWeights,
    load_config,
)
from context_engine.errors import ConfigurationError, ErrorCode


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run in an empty directory with no CONTEXT_* variables set."""
    for name in list(os.environ):
        if name.startswith("CONTEXT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestSchemas:
    """Test suite for configuration schemas."""

    def test_defaults(self) -> None:
        """Test documented defaults."""
        config = EngineConfig()
        assert config.environment == Environment.DEVELOPMENT
        assert config.optimizer.default_strategy == OptimizationStrategy.HIERARCHICAL
        assert config.optimizer.default_budget_strategy == BudgetStrategy.ADAPTIVE
        assert config.optimizer.compression_level == CompressionLevel.MEDIUM
        assert config.cache.ttl_seconds == 600
        assert config.cache.max_size == 1000
        assert config.cache.sweep_interval_seconds == 300
        assert config.builder.compression_aggressiveness == CompressionLevel.HIGH

    def test_default_weights_sum_to_one(self) -> None:
        """Test that default relevance weights sum to 1.0."""
        assert abs(RelevanceWeights().total() - 1.0) <= 1e-9

    def test_weights_must_sum_to_one(self) -> None:
        """Test that unbalanced weights are rejected."""
        with pytest.raises(ValidationError):
            RelevanceWeights(recency=0.5)

    def test_rebalanced_weights_accepted(self) -> None:
        """Test a custom weight set that still sums to 1.0."""
        weights = RelevanceWeights(
            recency=0.4, quality=0.2, query_match=0.2, importance=0.1, frequency=0.05, cross_reference=0.05
        )
        assert weights.as_dict()["recency"] == 0.4

    def test_compression_level_rank(self) -> None:
        """Test that levels are ordered least to most lossy."""
        ranks = [level.rank for level in CompressionLevel]
        assert ranks == sorted(ranks)


class TestLoadConfig:
    """Test suite for load_config."""

    def test_load_defaults(self, clean_env: Path) -> None:
        """Test loading with no variables set."""
        config = load_config()
        assert config == EngineConfig(json_logs=False)

    def test_each_call_returns_fresh_config(self, clean_env: Path) -> None:
        """Test that there is no shared singleton."""
        assert load_config() is not load_config()

    def test_environment_overrides(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test CONTEXT_* variables."""
        monkeypatch.setenv("CONTEXT_ENVIRONMENT", "production")
        monkeypatch.setenv("CONTEXT_DEFAULT_STRATEGY", "truncation")
        monkeypatch.setenv("CONTEXT_DEFAULT_BUDGET_STRATEGY", "strict")
        monkeypatch.setenv("CONTEXT_CACHE_TTL_SECONDS", "900")
        monkeypatch.setenv("CONTEXT_CACHE_ENABLED", "false")
        monkeypatch.setenv("CONTEXT_USE_TIKTOKEN", "0")
        monkeypatch.setenv("CONTEXT_LOG_LEVEL", "debug")

        config = load_config()
        assert config.is_production()
        assert config.optimizer.default_strategy == OptimizationStrategy.TRUNCATION
        assert config.optimizer.default_budget_strategy == BudgetStrategy.STRICT
        assert config.cache.ttl_seconds == 900
        assert config.cache.enabled is False
        assert config.tokens.use_tiktoken is False
        assert config.log_level.value == "DEBUG"

    def test_relevance_weights_from_env(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the name=value weight list format."""
        monkeypatch.setenv(
            "CONTEXT_RELEVANCE_WEIGHTS",
            "recency=0.3,quality=0.2,query_match=0.2,importance=0.15,frequency=0.1,cross_reference=0.05",
        )
        config = load_config()
        assert config.relevance.weights.recency == pytest.approx(0.3)

    def test_unbalanced_weights_raise_configuration_error(
        self, clean_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that invalid weights surface as ConfigurationError."""
        monkeypatch.setenv("CONTEXT_RELEVANCE_WEIGHTS", "recency=0.9")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config()
        assert exc_info.value.code == ErrorCode.CONFIGURATION_ERROR

    def test_malformed_weights(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a weight entry without '='."""
        monkeypatch.setenv("CONTEXT_RELEVANCE_WEIGHTS", "recency")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_context_relevance_threshold(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the enrichment threshold default, override and range check."""
        assert load_config().builder.min_context_relevance == 0.6
        monkeypatch.setenv("CONTEXT_MIN_CONTEXT_RELEVANCE", "0.4")
        assert load_config().builder.min_context_relevance == pytest.approx(0.4)
        monkeypatch.setenv("CONTEXT_MIN_CONTEXT_RELEVANCE", "1.5")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_invalid_strategy(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that an unknown strategy name is rejected."""
        monkeypatch.setenv("CONTEXT_DEFAULT_STRATEGY", "magic")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_env_file(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading values from a .env file."""
        env_file = clean_env / "custom.env"
        env_file.write_text("CONTEXT_MEMORY_LIMIT=4\nCONTEXT_COMPRESSION_LEVEL=high\n")

        try:
            config = load_config(str(env_file))
        finally:
            # load_dotenv writes straight into os.environ
            os.environ.pop("CONTEXT_MEMORY_LIMIT", None)
            os.environ.pop("CONTEXT_COMPRESSION_LEVEL", None)

        assert config.builder.memory_limit == 4
        assert config.optimizer.compression_level == CompressionLevel.HIGH
