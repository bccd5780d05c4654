"""
Rate Governor

Per-provider request pacing shared by every outbound HTTP call:

  1. sliding 60 s window capped at ``requests_per_minute``
  2. minimum spacing of ``min_delay_ms`` between request starts
  3. capped exponential backoff on throttling responses, raised to the
     provider's Retry-After hint when that is longer

One governor belongs to exactly one external API identity. Build one per
provider and inject it into the adapter that talks to that provider; never
share it between unrelated quotas.

Usage:
    governor = RateGovernor(RateLimitPolicy(min_delay_ms=100, requests_per_minute=60), "gemini")
    vector = await with_governed_call(governor, lambda: provider.embed_content(text))
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional, TypeVar

import aiohttp

from market_matcher.errors import (
    ConfigurationError,
    RateLimitedError,
    RateLimitExhaustedError,
)
from market_matcher.rate_limit_headers import RateLimitHints, parse_rate_limit_headers

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]

WINDOW_S = 60.0
WINDOW_MARGIN_S = 0.1


@dataclass(frozen=True)
class RateLimitPolicy:
    """Pacing and retry limits for one provider. ``requests_per_minute=0`` disables the window."""

    min_delay_ms: int = 0
    requests_per_minute: int = 0
    max_retries: int = 5
    base_backoff_ms: int = 1000
    max_backoff_ms: int = 30000

    def __post_init__(self) -> None:
        for name in ("min_delay_ms", "requests_per_minute", "max_retries"):
            if getattr(self, name) < 0:
                raise ConfigurationError(
                    f"{name} must be non-negative, got {getattr(self, name)}"
                )
        if self.base_backoff_ms <= 0:
            raise ConfigurationError(
                f"base_backoff_ms must be positive, got {self.base_backoff_ms}"
            )
        if self.max_backoff_ms < self.base_backoff_ms:
            raise ConfigurationError(
                f"max_backoff_ms ({self.max_backoff_ms}) must be >= "
                f"base_backoff_ms ({self.base_backoff_ms})"
            )


@dataclass(frozen=True)
class RateGovernorState:
    """Read-only snapshot of a governor. Times are on the governor's clock."""

    last_request_at: Optional[float]
    request_times: tuple[float, ...]
    failure_count: int
    remaining: Optional[int]
    reset_at: Optional[float]
    cooldown_until: float


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for throttling signals — the only errors the governor retries."""
    if isinstance(exc, RateLimitedError):
        return True
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status == 429
    return False


class RateGovernor:
    """
    Paces requests to one provider and decides when throttled calls retry.

    Callers of before_request() are released in arrival order (asyncio.Lock
    wakes waiters FIFO). Independent governors never block each other.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        name: str = "rate-governor",
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._policy = policy
        self._name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

        self._last_request_at: Optional[float] = None
        self._request_times: deque[float] = deque()
        self._failure_count = 0
        self._remaining: Optional[int] = None
        self._reset_at: Optional[float] = None
        self._cooldown_until = 0.0

    @property
    def name(self) -> str:
        return self._name

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    @property
    def state(self) -> RateGovernorState:
        return RateGovernorState(
            last_request_at=self._last_request_at,
            request_times=tuple(self._request_times),
            failure_count=self._failure_count,
            remaining=self._remaining,
            reset_at=self._reset_at,
            cooldown_until=self._cooldown_until,
        )

    def reset(self) -> None:
        """Return to the freshly-constructed state."""
        self._last_request_at = None
        self._request_times.clear()
        self._failure_count = 0
        self._remaining = None
        self._reset_at = None
        self._cooldown_until = 0.0

    # ── Pacing ────────────────────────────────────────────────────────────────

    async def before_request(self) -> None:
        """Suspend until one more request is allowed, then record it."""
        async with self._lock:
            await self._wait_for_cooldown()

            if self._policy.requests_per_minute > 0:
                self._prune_window(self._clock())
                if len(self._request_times) >= self._policy.requests_per_minute:
                    oldest = self._request_times[0]
                    wait_s = WINDOW_S - (self._clock() - oldest) + WINDOW_MARGIN_S
                    if wait_s > 0:
                        logger.debug(
                            "Sliding window full for %s, waiting %.2fs (%d/%d)",
                            self._name,
                            wait_s,
                            len(self._request_times),
                            self._policy.requests_per_minute,
                        )
                        await self._sleep(wait_s)
                    self._prune_window(self._clock())

            min_delay_s = self._policy.min_delay_ms / 1000.0
            if self._last_request_at is not None and min_delay_s > 0:
                elapsed = self._clock() - self._last_request_at
                if elapsed < min_delay_s:
                    await self._sleep(min_delay_s - elapsed)

            now = self._clock()
            self._last_request_at = now
            if self._policy.requests_per_minute > 0:
                self._request_times.append(now)

    def _prune_window(self, now: float) -> None:
        while self._request_times and now - self._request_times[0] >= WINDOW_S:
            self._request_times.popleft()

    async def _wait_for_cooldown(self) -> None:
        wait_s = self._cooldown_until - self._clock()
        if wait_s > 0:
            logger.debug("%s cooling down for %.2fs", self._name, wait_s)
            await self._sleep(wait_s)

    # ── Outcomes ──────────────────────────────────────────────────────────────

    def on_success(self) -> None:
        """Clear the consecutive-failure counter."""
        self._failure_count = 0

    def compute_backoff(self, attempt: int) -> float:
        """Backoff in seconds for the *attempt*-th consecutive throttle (1-based)."""
        backoff_ms = self._policy.base_backoff_ms * (2 ** (max(attempt, 1) - 1))
        return min(backoff_ms, self._policy.max_backoff_ms) / 1000.0

    async def on_rate_limited(self, error: Optional[BaseException] = None) -> bool:
        """
        Handle one throttling response.

        Sleeps for the backoff (or the server's Retry-After when longer) and
        returns True if the caller should retry. Returns False once
        ``max_retries`` consecutive throttles have been spent; the counter is
        then cleared so the next request starts with a fresh budget.
        """
        self._failure_count += 1

        if self._failure_count > self._policy.max_retries:
            logger.error(
                "Max retries exceeded for rate limit",
                extra={
                    "service": self._name,
                    "retries": self._failure_count - 1,
                    "max_retries": self._policy.max_retries,
                },
            )
            self._failure_count = 0
            return False

        wait_s = self.compute_backoff(self._failure_count)

        hints = parse_rate_limit_headers(_headers_of(error))
        self._record_hints(hints)
        if hints.retry_after_s is not None and hints.retry_after_s > wait_s:
            wait_s = hints.retry_after_s

        self._cooldown_until = max(self._cooldown_until, self._clock() + wait_s)

        logger.warning(
            "Rate limited, backing off",
            extra={
                "service": self._name,
                "attempt": self._failure_count,
                "max_retries": self._policy.max_retries,
                "wait_seconds": round(wait_s, 3),
                "retry_after": hints.retry_after_s,
            },
        )

        await self._sleep(wait_s)
        return True

    def update_from_headers(self, headers: Optional[Mapping[str, str]]) -> None:
        """
        Record quota hints from any response.

        An exhausted quota (remaining == 0) with a known reset opens a
        cooldown so the next request waits for the reset instead of
        spending a retry on a certain 429.
        """
        hints = parse_rate_limit_headers(headers)
        if hints.empty:
            return
        self._record_hints(hints)
        if hints.remaining == 0 and hints.reset_after_s:
            self._cooldown_until = max(
                self._cooldown_until, self._clock() + hints.reset_after_s
            )
            logger.info(
                "%s quota exhausted, pausing %.2fs until reset",
                self._name,
                hints.reset_after_s,
            )

    def _record_hints(self, hints: RateLimitHints) -> None:
        if hints.remaining is not None:
            self._remaining = hints.remaining
        if hints.reset_after_s is not None:
            self._reset_at = self._clock() + hints.reset_after_s


def _headers_of(error: Optional[BaseException]) -> Optional[Mapping[str, str]]:
    headers = getattr(error, "headers", None)
    return headers if headers else None


async def with_governed_call(
    governor: RateGovernor,
    fn: Callable[[], Awaitable[T]],
) -> T:
    """
    Run *fn* under *governor*, retrying only on throttling signals.

    Any other exception propagates on the first occurrence.

    Raises:
        RateLimitExhaustedError: If the call is still throttled after
            ``policy.max_retries`` retries.
    """
    while True:
        await governor.before_request()
        try:
            result = await fn()
        except Exception as exc:
            if not is_rate_limit_error(exc):
                raise
            if not await governor.on_rate_limited(exc):
                raise RateLimitExhaustedError(
                    "Rate limit exceeded after maximum retries",
                    service=governor.name,
                    retry_count=governor.policy.max_retries,
                ) from exc
            continue
        governor.on_success()
        return result
