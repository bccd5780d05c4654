"""
Core Exceptions

Error taxonomy for the matching pipeline. Infrastructure failures
(throttling, timeouts, 5xx) are raised close to the HTTP call; semantic
"nothing came back" outcomes are turned into empty results by the callers.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional


class MarketMatcherError(Exception):
    """Base exception for all market matcher errors."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(MarketMatcherError):
    """Raised when required configuration is missing or invalid."""


class RateLimitedError(MarketMatcherError):
    """Raised when a provider answers with a throttling signal (HTTP 429)."""

    def __init__(
        self,
        message: str,
        service: str,
        headers: Optional[Mapping[str, str]] = None,
        status: int = 429,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["service"] = service
        ctx["status"] = status
        super().__init__(message, ctx)
        self.service = service
        self.status = status
        self.headers: Mapping[str, str] = headers or {}


class RateLimitExhaustedError(MarketMatcherError):
    """Raised when a request is still throttled after the maximum retries."""

    def __init__(
        self,
        message: str,
        service: str,
        retry_count: int,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["service"] = service
        ctx["retry_count"] = retry_count
        super().__init__(message, ctx)
        self.service = service
        self.retry_count = retry_count


class ProviderUnavailableError(MarketMatcherError):
    """Raised when a provider fails for a reason other than throttling."""

    def __init__(
        self,
        message: str,
        service: str,
        status: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["service"] = service
        if status is not None:
            ctx["status"] = status
        super().__init__(message, ctx)
        self.service = service
        self.status = status


class MalformedResponseError(ProviderUnavailableError):
    """Raised when a provider response does not have the expected shape."""


class EmbeddingUnavailableError(ProviderUnavailableError):
    """Raised when the embedding provider returns no embedding data."""


class StoreError(MarketMatcherError):
    """Raised when the market or contract store fails."""


class MatcherError(MarketMatcherError):
    """Raised when the matcher is used incorrectly."""
