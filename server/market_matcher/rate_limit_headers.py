"""
Rate-Limit Header Parsing

Providers spell their quota headers differently. Every spelling we know of
lives in one ordered candidate list per hint; the first key present wins.

Supported value shapes:
    "42"            plain integer / float seconds
    "2m59.56s"      compound duration (h / m / s / ms)
    "1735689600"    epoch seconds (anything above EPOCH_THRESHOLD)
    "Wed, 21 Oct 2025 07:28:00 GMT"   HTTP date (Retry-After only)

Nothing in here raises on missing or malformed headers — an unusable value
is simply treated as absent.
"""
from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional

REMAINING_KEYS: tuple[str, ...] = (
    "x-ratelimit-remaining",
    "x-rate-limit-remaining",
    "ratelimit-remaining",
    "x-ratelimit-remaining-requests",
)

RESET_KEYS: tuple[str, ...] = (
    "x-ratelimit-reset",
    "x-rate-limit-reset",
    "ratelimit-reset",
    "x-ratelimit-reset-requests",
)

RETRY_AFTER_KEYS: tuple[str, ...] = ("retry-after",)

# Values above this are unix timestamps, not relative seconds
EPOCH_THRESHOLD = 1_000_000_000

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_FULL = re.compile(r"^(?:\d+(?:\.\d+)?(?:ms|h|m|s))+$")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


@dataclass(frozen=True)
class RateLimitHints:
    """Quota hints observed on one response. None means "not reported"."""

    remaining: Optional[int] = None
    reset_after_s: Optional[float] = None
    retry_after_s: Optional[float] = None

    @property
    def empty(self) -> bool:
        return (
            self.remaining is None
            and self.reset_after_s is None
            and self.retry_after_s is None
        )


def parse_duration(raw: str) -> Optional[float]:
    """
    Parse a provider duration string into seconds.

    Accepts bare numbers ("30", "0.5") and compound strings such as
    "2m59.56s", "1h2m" or "250ms". Returns None when unparseable or
    not finite ("inf", "nan", "1e400").
    """
    value = raw.strip().lower()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        if not _DURATION_FULL.match(value):
            return None
        seconds = sum(
            float(amount) * _UNIT_SECONDS[unit]
            for amount, unit in _DURATION_PART.findall(value)
        )
    return seconds if math.isfinite(seconds) else None


def _lookup(headers: Mapping[str, str], keys: tuple[str, ...]) -> Optional[str]:
    lowered = {str(k).lower(): v for k, v in headers.items()}
    for key in keys:
        value = lowered.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return None


def _parse_remaining(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        remaining = int(float(raw.strip()))
    except (ValueError, OverflowError):
        return None
    return max(0, remaining)


def _parse_reset(raw: Optional[str], now: float) -> Optional[float]:
    if raw is None:
        return None
    seconds = parse_duration(raw)
    if seconds is None:
        return None
    if seconds > EPOCH_THRESHOLD:
        seconds = seconds - now
    return max(0.0, seconds)


def _parse_retry_after(raw: Optional[str], now: float) -> Optional[float]:
    if raw is None:
        return None
    seconds = _parse_reset(raw, now)
    if seconds is not None:
        return seconds
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    return max(0.0, when.timestamp() - now)


def parse_rate_limit_headers(
    headers: Optional[Mapping[str, str]],
    *,
    now: Optional[float] = None,
) -> RateLimitHints:
    """
    Extract remaining-quota and reset hints from response headers.

    Args:
        headers: Response headers (any mapping; keys matched case-insensitively).
        now:     Wall-clock seconds used to convert epoch values; defaults to time.time().

    Returns:
        RateLimitHints with every unreported or malformed field left as None.
    """
    if not headers:
        return RateLimitHints()
    wall = time.time() if now is None else now
    return RateLimitHints(
        remaining=_parse_remaining(_lookup(headers, REMAINING_KEYS)),
        reset_after_s=_parse_reset(_lookup(headers, RESET_KEYS), wall),
        retry_after_s=_parse_retry_after(_lookup(headers, RETRY_AFTER_KEYS), wall),
    )
