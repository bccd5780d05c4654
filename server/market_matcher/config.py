"""
Market Matcher Configuration

All environment variables MUST be read here. No os.getenv() calls elsewhere.
The entry point loads .env (python-dotenv) before calling load_settings().
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from market_matcher.errors import ConfigurationError
from market_matcher.rate_governor import RateLimitPolicy


def _require_env(name: str, description: str) -> str:
    """Get a required environment variable or raise ConfigurationError."""
    value = os.environ.get(name)
    if not value:
        raise ConfigurationError(
            f"Missing required environment variable: {name}\n"
            f"Description: {description}\n"
            f"Please set this in your .env file or environment."
        )
    return value


def _optional_env(name: str, default: str = "") -> str:
    """Get an optional environment variable with a default."""
    return os.environ.get(name, default)


def _optional_env_int(name: str, default: int) -> int:
    """Get an optional integer environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {value}")


def _optional_env_float(name: str, default: Optional[float]) -> Optional[float]:
    """Get an optional float environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid float value for {name}: {value}")


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding provider configuration."""
    api_key: str
    model: str = "text-embedding-004"
    batch_size: int = 50
    timeout_s: float = 60.0

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ConfigurationError(
                f"EMBEDDING_BATCH_SIZE must be positive, got {self.batch_size}"
            )


@dataclass(frozen=True)
class MatchingConfig:
    """Market matching configuration."""
    top_n: int = 50
    min_similarity: Optional[float] = None
    max_concurrent_lookups: int = 4

    def validate(self) -> list[str]:
        """Return a list of problems; empty when valid."""
        errors = []
        if self.top_n < 1:
            errors.append(f"top_n must be >= 1, got {self.top_n}")
        if self.min_similarity is not None and not (-1.0 <= self.min_similarity <= 1.0):
            errors.append(
                f"min_similarity must be in [-1.0, 1.0], got {self.min_similarity}"
            )
        if self.max_concurrent_lookups < 1:
            errors.append(
                f"max_concurrent_lookups must be >= 1, got {self.max_concurrent_lookups}"
            )
        return errors


@dataclass(frozen=True)
class RedisConfig:
    """Redis connection for the market / contract store."""
    url: str


@dataclass(frozen=True)
class Settings:
    """Root configuration container."""
    embedding: EmbeddingConfig
    embedding_rate_limit: RateLimitPolicy
    matching: MatchingConfig
    redis: RedisConfig


def load_settings(*, require_api_key: bool = True) -> Settings:
    """
    Load all settings from environment variables.

    Args:
        require_api_key: When False (offline/mock runs) a missing
            GEMINI_API_KEY is allowed.

    Raises:
        ConfigurationError: On missing or invalid values.
    """
    if require_api_key:
        api_key = _require_env("GEMINI_API_KEY", "Google Gemini API key for embeddings")
    else:
        api_key = _optional_env("GEMINI_API_KEY", "")

    embedding = EmbeddingConfig(
        api_key=api_key,
        model=_optional_env("EMBEDDING_MODEL", "text-embedding-004"),
        batch_size=_optional_env_int("EMBEDDING_BATCH_SIZE", 50),
    )

    rate_limit = RateLimitPolicy(
        min_delay_ms=_optional_env_int("EMBEDDING_MIN_DELAY_MS", 100),
        requests_per_minute=_optional_env_int("EMBEDDING_RPM", 0),
        max_retries=_optional_env_int("EMBEDDING_MAX_RETRIES", 5),
        base_backoff_ms=_optional_env_int("EMBEDDING_BASE_BACKOFF_MS", 1000),
        max_backoff_ms=_optional_env_int("EMBEDDING_MAX_BACKOFF_MS", 30000),
    )

    matching = MatchingConfig(
        top_n=_optional_env_int("MATCH_TOP_N", 50),
        min_similarity=_optional_env_float("MATCH_MIN_SIMILARITY", None),
        max_concurrent_lookups=_optional_env_int("MATCH_MAX_CONCURRENCY", 4),
    )
    errors = matching.validate()
    if errors:
        raise ConfigurationError("Invalid matching configuration: " + "; ".join(errors))

    redis = RedisConfig(url=_optional_env("REDIS_URL", "redis://localhost:6379/0"))

    return Settings(
        embedding=embedding,
        embedding_rate_limit=rate_limit,
        matching=matching,
        redis=redis,
    )
