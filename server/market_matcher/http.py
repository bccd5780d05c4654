"""
JSON-over-HTTP send path shared by provider adapters.

Outgoing requests are decorated (auth / signing headers) and then sent in
one place, so status handling is identical everywhere:

    429            -> RateLimitedError (carries the response headers)
    other non-2xx  -> ProviderUnavailableError
    non-JSON body  -> MalformedResponseError
    timeout / transport failure -> ProviderUnavailableError

Run the call inside ``with_governed_call`` to get pacing and 429 retries.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Mapping, Optional

import aiohttp

from market_matcher.errors import (
    MalformedResponseError,
    ProviderUnavailableError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

HeaderDecorator = Callable[[dict[str, str]], dict[str, str]]
HeaderObserver = Callable[[Mapping[str, str]], None]

DEFAULT_TIMEOUT_S = 30.0
BODY_PREVIEW_CHARS = 200


def _error_message(body: str) -> str:
    """Pull ``error.message`` out of a JSON error body, else a preview."""
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        return body[:BODY_PREVIEW_CHARS]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return body[:BODY_PREVIEW_CHARS]


async def send_json(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    service: str,
    json_body: Optional[Any] = None,
    params: Optional[Mapping[str, str]] = None,
    headers: Optional[Mapping[str, str]] = None,
    decorate: Optional[HeaderDecorator] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    on_headers: Optional[HeaderObserver] = None,
) -> Any:
    """
    Send one request and return the decoded JSON body.

    Args:
        session:    Open aiohttp session.
        method:     HTTP method.
        url:        Absolute URL.
        service:    Provider label used in errors and logs.
        json_body:  Request payload, serialized as JSON.
        params:     Query string parameters.
        headers:    Base request headers.
        decorate:   Applied to a copy of *headers* right before sending.
        timeout_s:  Total request timeout in seconds.
        on_headers: Called with the response headers of every response.

    Raises:
        RateLimitedError: On HTTP 429.
        ProviderUnavailableError: On any other failure.
        MalformedResponseError: When the body is not JSON.
    """
    request_headers = dict(headers or {})
    if decorate is not None:
        request_headers = decorate(request_headers)

    try:
        async with session.request(
            method,
            url,
            json=json_body,
            params=params,
            headers=request_headers,
            timeout=aiohttp.ClientTimeout(total=timeout_s),
        ) as resp:
            body = await resp.text()
            if on_headers is not None:
                on_headers(resp.headers)

            if resp.status == 429:
                raise RateLimitedError(
                    f"{service} rate limited",
                    service=service,
                    headers=dict(resp.headers),
                )
            if resp.status >= 400:
                raise ProviderUnavailableError(
                    f"{service} error: {_error_message(body)}",
                    service=service,
                    status=resp.status,
                )
    except asyncio.TimeoutError as exc:
        raise ProviderUnavailableError(
            f"{service} request timed out after {timeout_s}s",
            service=service,
        ) from exc
    except aiohttp.ClientError as exc:
        raise ProviderUnavailableError(
            f"{service} request failed: {exc}",
            service=service,
        ) from exc

    try:
        return json.loads(body)
    except (json.JSONDecodeError, ValueError) as exc:
        logger.warning(
            "Non-JSON response body",
            extra={"service": service, "body_preview": body[:BODY_PREVIEW_CHARS]},
        )
        raise MalformedResponseError(
            f"{service} returned invalid JSON: {exc}",
            service=service,
        ) from exc
