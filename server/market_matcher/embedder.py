"""
Vector Embedder

Turns text into fixed-length vectors through an embedding provider, with
every outbound call paced by the provider's RateGovernor.

Batch discipline:
    texts are chunked to ``batch_size``; a failed chunk falls back to one
    request per text; a text that still fails gets an empty-vector
    placeholder at its own index. Output index i always matches input index i.

Providers:
    GeminiEmbeddingProvider   — Google text-embedding-004 over aiohttp (768 dims)
    HashingEmbeddingProvider  — deterministic offline vectors for --mock runs
"""
from __future__ import annotations

import hashlib
import logging
import math
import re
from typing import Any, Optional, Protocol, runtime_checkable

import aiohttp

from market_matcher.errors import EmbeddingUnavailableError, MalformedResponseError
from market_matcher.http import HeaderObserver, send_json
from market_matcher.rate_governor import RateGovernor, with_governed_call
from market_matcher.schemas import EmbeddingVector

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MODEL = "text-embedding-004"
GEMINI_TIMEOUT_S = 60.0


@runtime_checkable
class EmbeddingProvider(Protocol):
    """External embedding API. Must raise RateLimitedError on throttling."""

    @property
    def name(self) -> str:
        ...

    async def embed_content(self, text: str) -> EmbeddingVector:
        """Embed one text. Returns [] when the provider sent no data."""
        ...

    async def batch_embed_contents(self, texts: list[str]) -> list[EmbeddingVector]:
        """Embed several texts in one request, in input order."""
        ...


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

class GeminiEmbeddingProvider:
    """
    Google Gemini embeddings over HTTP.

    Owns an aiohttp session; use as an async context manager or call
    close() when done.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout_s: float = GEMINI_TIMEOUT_S,
        on_headers: Optional[HeaderObserver] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._on_headers = on_headers
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def model(self) -> str:
        return self._model

    async def __aenter__(self) -> GeminiEmbeddingProvider:
        self._ensure_session()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _sign(self, headers: dict[str, str]) -> dict[str, str]:
        headers["x-goog-api-key"] = self._api_key
        headers["Content-Type"] = "application/json"
        return headers

    def _content(self, text: str) -> dict[str, Any]:
        return {
            "model": f"models/{self._model}",
            "content": {"parts": [{"text": text}]},
        }

    async def _post(self, action: str, payload: dict[str, Any]) -> Any:
        return await send_json(
            self._ensure_session(),
            "POST",
            f"{self._base_url}/models/{self._model}:{action}",
            service=self.name,
            json_body=payload,
            decorate=self._sign,
            timeout_s=self._timeout_s,
            on_headers=self._on_headers,
        )

    async def embed_content(self, text: str) -> EmbeddingVector:
        data = await self._post("embedContent", self._content(text))
        if not isinstance(data, dict):
            raise MalformedResponseError(
                "Unexpected embedContent response shape", service=self.name
            )
        embedding = data.get("embedding") or {}
        if not isinstance(embedding, dict):
            raise MalformedResponseError(
                "Unexpected embedding field shape", service=self.name
            )
        return _as_vector(embedding.get("values"), self.name)

    async def batch_embed_contents(self, texts: list[str]) -> list[EmbeddingVector]:
        payload = {"requests": [self._content(text) for text in texts]}
        data = await self._post("batchEmbedContents", payload)
        if not isinstance(data, dict) or not isinstance(data.get("embeddings"), list):
            raise MalformedResponseError(
                "No embeddings returned from batch request", service=self.name
            )
        return [
            _as_vector(e.get("values") if isinstance(e, dict) else None, self.name)
            for e in data["embeddings"]
        ]


def _as_vector(values: Any, service: str) -> EmbeddingVector:
    if values is None:
        return []
    if not isinstance(values, list):
        raise MalformedResponseError("Embedding values must be a list", service=service)
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as exc:
        raise MalformedResponseError(
            f"Non-numeric embedding value: {exc}", service=service
        ) from exc


# ---------------------------------------------------------------------------
# Offline provider
# ---------------------------------------------------------------------------

_TOKEN = re.compile(r"[a-z0-9]+")


class HashingEmbeddingProvider:
    """
    Signed feature hashing of lowercase tokens, L2-normalised.

    Texts sharing words get nearby vectors, which is enough to exercise the
    whole pipeline without network access.
    """

    def __init__(self, dims: int = 256) -> None:
        if dims <= 0:
            raise ValueError(f"dims must be positive, got {dims}")
        self._dims = dims

    @property
    def name(self) -> str:
        return "hashing"

    def _vector(self, text: str) -> EmbeddingVector:
        vec = [0.0] * self._dims
        for token in _TOKEN.findall(text.lower()):
            h = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16)
            sign = -1.0 if (h >> 11) & 1 else 1.0
            vec[h % self._dims] += sign
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0:
            return []
        return [v / norm for v in vec]

    async def embed_content(self, text: str) -> EmbeddingVector:
        return self._vector(text)

    async def batch_embed_contents(self, texts: list[str]) -> list[EmbeddingVector]:
        return [self._vector(t) for t in texts]


# ---------------------------------------------------------------------------
# Embedder
# ---------------------------------------------------------------------------

class VectorEmbedder:
    """Rate-governed single and batch embedding with per-item fallback."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        governor: RateGovernor,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._provider = provider
        self._governor = governor
        self._batch_size = batch_size

        logger.info(
            "VectorEmbedder initialized",
            extra={"provider": provider.name, "batch_size": batch_size},
        )

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def embed(self, text: str) -> EmbeddingVector:
        """
        Embed one text.

        Raises:
            EmbeddingUnavailableError: If the provider returned no embedding.
            RateLimitExhaustedError: If throttling outlasted the retry budget.
            ProviderUnavailableError: On any other provider failure.
        """
        vector = await with_governed_call(
            self._governor, lambda: self._provider.embed_content(text)
        )
        if not vector:
            raise EmbeddingUnavailableError(
                "No embedding returned", service=self._provider.name
            )
        return vector

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingVector]:
        """
        Embed many texts; never shorter than *texts*.

        Slots that could not be embedded hold [] and must be treated as
        unavailable by the caller.
        """
        results: list[EmbeddingVector] = []
        total_batches = math.ceil(len(texts) / self._batch_size)

        for start in range(0, len(texts), self._batch_size):
            chunk = texts[start:start + self._batch_size]
            try:
                vectors = await self._embed_chunk(chunk)
            except Exception as e:
                logger.warning(
                    "Batch embedding failed, falling back to individual",
                    extra={"error": str(e), "chunk_size": len(chunk)},
                )
                vectors = [await self._embed_or_placeholder(text) for text in chunk]
            else:
                logger.debug(
                    "Batch embedding complete (%d/%d, %d texts)",
                    start // self._batch_size + 1,
                    total_batches,
                    start + len(chunk),
                )
            results.extend(vectors)

        return results

    async def _embed_chunk(self, chunk: list[str]) -> list[EmbeddingVector]:
        vectors = await with_governed_call(
            self._governor, lambda: self._provider.batch_embed_contents(chunk)
        )
        if len(vectors) != len(chunk):
            raise MalformedResponseError(
                f"Batch returned {len(vectors)} embeddings for {len(chunk)} texts",
                service=self._provider.name,
            )
        return vectors

    async def _embed_or_placeholder(self, text: str) -> EmbeddingVector:
        try:
            return await self.embed(text)
        except Exception as e:
            logger.error(
                "Failed to generate individual embedding",
                extra={"error": str(e), "text_preview": text[:80]},
            )
            return []
