"""
Context Engine - Configuration Loader

Loads and validates configuration from environment variables and .env files.
Each call returns a fresh EngineConfig; the engine owns its instance.
"""

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import EngineConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "CONTEXT_"


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _put(section: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        section[key] = value


def _weights_from_env() -> dict[str, str]:
    raw = _env("RELEVANCE_WEIGHTS")
    if not raw:
        return {}
    weights: dict[str, str] = {}
    for pair in raw.split(","):
        if not pair.strip():
            continue
        name, sep, value = pair.partition("=")
        if not sep:
            raise ConfigurationError(
                f"Malformed relevance weight entry: {pair!r}",
                details={"variable": f"{ENV_PREFIX}RELEVANCE_WEIGHTS"},
            )
        weights[name.strip()] = value.strip()
    return weights


def load_config(env_file: str | None = None) -> EngineConfig:
    """
    Load configuration from environment variables and .env file.

    Recognized variables (all optional):
        CONTEXT_ENVIRONMENT, CONTEXT_LOG_LEVEL, CONTEXT_JSON_LOGS,
        CONTEXT_RELEVANCE_WEIGHTS ("recency=0.25,quality=0.25,..."),
        CONTEXT_RELEVANCE_THRESHOLD, CONTEXT_DEFAULT_STRATEGY,
        CONTEXT_DEFAULT_BUDGET_STRATEGY, CONTEXT_COMPRESSION_LEVEL,
        CONTEXT_BUILDER_AGGRESSIVENESS, CONTEXT_MEMORY_LIMIT, CONTEXT_MIN_CONTEXT_RELEVANCE,
        CONTEXT_CACHE_ENABLED, CONTEXT_CACHE_TTL_SECONDS, CONTEXT_CACHE_MAX_SIZE,
        CONTEXT_CACHE_SWEEP_INTERVAL, CONTEXT_TOKEN_ENCODING, CONTEXT_USE_TIKTOKEN

    Args:
        env_file: Path to .env file (default: .env in working directory)

    Returns:
        Validated EngineConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            logger.error(
                f"Failed to load .env file from {env_path}: {e}",
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    config_dict: dict[str, Any] = {"relevance": {}, "builder": {}, "optimizer": {}, "cache": {}, "tokens": {}}
    _put(config_dict, "environment", _env("ENVIRONMENT"))
    _put(config_dict, "log_level", (_env("LOG_LEVEL") or "INFO").upper())
    config_dict["json_logs"] = _env_bool("JSON_LOGS", False)

    weights = _weights_from_env()
    if weights:
        config_dict["relevance"]["weights"] = weights

    _put(config_dict["optimizer"], "relevance_threshold", _env("RELEVANCE_THRESHOLD"))
    _put(config_dict["optimizer"], "default_strategy", _env("DEFAULT_STRATEGY"))
    _put(config_dict["optimizer"], "default_budget_strategy", _env("DEFAULT_BUDGET_STRATEGY"))
    _put(config_dict["optimizer"], "compression_level", _env("COMPRESSION_LEVEL"))

    _put(config_dict["builder"], "compression_aggressiveness", _env("BUILDER_AGGRESSIVENESS"))
    _put(config_dict["builder"], "memory_limit", _env("MEMORY_LIMIT"))
    _put(config_dict["builder"], "min_context_relevance", _env("MIN_CONTEXT_RELEVANCE"))

    config_dict["cache"]["enabled"] = _env_bool("CACHE_ENABLED", True)
    _put(config_dict["cache"], "ttl_seconds", _env("CACHE_TTL_SECONDS"))
    _put(config_dict["cache"], "max_size", _env("CACHE_MAX_SIZE"))
    _put(config_dict["cache"], "sweep_interval_seconds", _env("CACHE_SWEEP_INTERVAL"))

    _put(config_dict["tokens"], "encoding", _env("TOKEN_ENCODING"))
    config_dict["tokens"]["use_tiktoken"] = _env_bool("USE_TIKTOKEN", True)

    try:
        config = EngineConfig(**config_dict)
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"errors": e.errors(include_url=False)},
        )
        raise ConfigurationError(
            "Invalid configuration",
            details={"errors": e.errors(include_url=False)},
        ) from e

    logger.info(
        "Configuration loaded",
        extra={
            "environment": config.environment.value,
            "default_strategy": config.optimizer.default_strategy.value,
            "cache_enabled": config.cache.enabled,
        },
    )
    return config
