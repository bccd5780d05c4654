"""
Tests for market_matcher.embedder

Providers are in-process fakes; the governor runs with no pacing so the
tests exercise only batching and fallback behaviour.
"""
from unittest.mock import AsyncMock

import pytest

from market_matcher.embedder import (
    EmbeddingProvider,
    GeminiEmbeddingProvider,
    HashingEmbeddingProvider,
    VectorEmbedder,
)
from market_matcher.errors import (
    EmbeddingUnavailableError,
    MalformedResponseError,
    ProviderUnavailableError,
    RateLimitedError,
    RateLimitExhaustedError,
)
from market_matcher.rate_governor import RateGovernor, RateLimitPolicy
from market_matcher.similarity import cosine_similarity


class FakeProvider:
    """Deterministic 3-dim vectors derived from text length."""

    name = "fake"

    def __init__(self, fail_batches: bool = False, bad_texts: frozenset = frozenset()):
        self.fail_batches = fail_batches
        self.bad_texts = bad_texts
        self.batch_calls: list[list[str]] = []
        self.single_calls: list[str] = []

    @staticmethod
    def vector_for(text: str) -> list[float]:
        return [float(len(text)), 1.0, 0.0]

    async def embed_content(self, text: str) -> list[float]:
        self.single_calls.append(text)
        if text in self.bad_texts:
            raise ProviderUnavailableError("provider down", service=self.name, status=500)
        return self.vector_for(text)

    async def batch_embed_contents(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        if self.fail_batches:
            raise ProviderUnavailableError("batch endpoint down", service=self.name, status=503)
        return [self.vector_for(t) for t in texts]


async def _no_sleep(_: float) -> None:
    return None


def make_governor(**policy) -> RateGovernor:
    policy.setdefault("base_backoff_ms", 1)
    policy.setdefault("max_backoff_ms", 1)
    return RateGovernor(RateLimitPolicy(**policy), name="fake", sleep=_no_sleep)


# ── embed() ───────────────────────────────────────────────────────────────────

async def test_embed_returns_provider_vector():
    embedder = VectorEmbedder(FakeProvider(), make_governor())
    assert await embedder.embed("abcd") == [4.0, 1.0, 0.0]


async def test_embed_empty_provider_result_raises_unavailable():
    provider = FakeProvider()
    provider.embed_content = AsyncMock(return_value=[])
    embedder = VectorEmbedder(provider, make_governor())

    with pytest.raises(EmbeddingUnavailableError, match="No embedding returned"):
        await embedder.embed("anything")


async def test_embed_propagates_provider_failure():
    embedder = VectorEmbedder(FakeProvider(bad_texts=frozenset({"x"})), make_governor())
    with pytest.raises(ProviderUnavailableError):
        await embedder.embed("x")


async def test_embed_surfaces_exhausted_rate_limit():
    provider = FakeProvider()
    provider.embed_content = AsyncMock(
        side_effect=RateLimitedError("429", service="fake")
    )
    embedder = VectorEmbedder(provider, make_governor(max_retries=2))

    with pytest.raises(RateLimitExhaustedError):
        await embedder.embed("text")
    assert provider.embed_content.await_count == 3


# ── embed_batch() ─────────────────────────────────────────────────────────────

async def test_batch_chunks_by_batch_size_and_keeps_order():
    provider = FakeProvider()
    embedder = VectorEmbedder(provider, make_governor(), batch_size=2)
    texts = ["a", "bb", "ccc"]

    vectors = await embedder.embed_batch(texts)

    assert provider.batch_calls == [["a", "bb"], ["ccc"]]
    assert vectors == [FakeProvider.vector_for(t) for t in texts]


async def test_batch_of_empty_input_makes_no_calls():
    provider = FakeProvider()
    embedder = VectorEmbedder(provider, make_governor())
    assert await embedder.embed_batch([]) == []
    assert provider.batch_calls == []


async def test_failed_chunk_falls_back_to_individual_requests():
    provider = FakeProvider(fail_batches=True)
    embedder = VectorEmbedder(provider, make_governor(), batch_size=10)
    texts = ["one", "three", "seventeen"]

    vectors = await embedder.embed_batch(texts)

    assert provider.single_calls == texts
    assert vectors == [FakeProvider.vector_for(t) for t in texts]


async def test_individual_failures_become_placeholders_in_place():
    provider = FakeProvider(fail_batches=True, bad_texts=frozenset({"bad"}))
    embedder = VectorEmbedder(provider, make_governor(), batch_size=10)

    vectors = await embedder.embed_batch(["good", "bad", "fine"])

    assert len(vectors) == 3
    assert vectors[0] == FakeProvider.vector_for("good")
    assert vectors[1] == []
    assert vectors[2] == FakeProvider.vector_for("fine")


async def test_length_mismatch_from_provider_triggers_fallback():
    provider = FakeProvider()
    provider.batch_embed_contents = AsyncMock(return_value=[[1.0, 0.0, 0.0]])
    embedder = VectorEmbedder(provider, make_governor(), batch_size=5)

    vectors = await embedder.embed_batch(["a", "b"])

    assert vectors == [FakeProvider.vector_for("a"), FakeProvider.vector_for("b")]


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        VectorEmbedder(FakeProvider(), make_governor(), batch_size=0)


# ── HashingEmbeddingProvider ──────────────────────────────────────────────────

async def test_hashing_provider_is_deterministic_and_normalised():
    provider = HashingEmbeddingProvider(dims=64)
    a = await provider.embed_content("Fed cuts rates")
    b = await provider.embed_content("fed CUTS rates")

    assert a == b
    assert len(a) == 64
    assert sum(v * v for v in a) == pytest.approx(1.0)


async def test_hashing_provider_relates_overlapping_texts():
    provider = HashingEmbeddingProvider()
    query, near, far = await provider.batch_embed_contents(
        [
            "bitcoin price rallies",
            "will bitcoin price exceed 150k",
            "local bakery pastry award",
        ]
    )
    assert cosine_similarity(query, near) > cosine_similarity(query, far)


async def test_hashing_provider_returns_empty_for_tokenless_text():
    assert await HashingEmbeddingProvider().embed_content("!!! ---") == []


def test_providers_satisfy_protocol():
    assert isinstance(HashingEmbeddingProvider(), EmbeddingProvider)
    assert isinstance(GeminiEmbeddingProvider("key"), EmbeddingProvider)
    assert isinstance(FakeProvider(), EmbeddingProvider)


# ── GeminiEmbeddingProvider ───────────────────────────────────────────────────

async def test_gemini_embed_content_posts_to_model_endpoint(monkeypatch):
    send = AsyncMock(return_value={"embedding": {"values": [0.1, 0.2]}})
    monkeypatch.setattr("market_matcher.embedder.send_json", send)
    provider = GeminiEmbeddingProvider("secret", session=object())

    assert await provider.embed_content("hello") == [0.1, 0.2]

    _, method, url = send.call_args.args
    assert method == "POST"
    assert url.endswith("/models/text-embedding-004:embedContent")
    assert send.call_args.kwargs["decorate"]({})["x-goog-api-key"] == "secret"


async def test_gemini_batch_maps_each_embedding(monkeypatch):
    send = AsyncMock(return_value={"embeddings": [{"values": [1, 2]}, {}]})
    monkeypatch.setattr("market_matcher.embedder.send_json", send)
    provider = GeminiEmbeddingProvider("secret", session=object())

    assert await provider.batch_embed_contents(["a", "b"]) == [[1.0, 2.0], []]
    assert len(send.call_args.kwargs["json_body"]["requests"]) == 2


async def test_gemini_batch_without_embeddings_is_malformed(monkeypatch):
    monkeypatch.setattr(
        "market_matcher.embedder.send_json", AsyncMock(return_value={"oops": True})
    )
    provider = GeminiEmbeddingProvider("secret", session=object())

    with pytest.raises(MalformedResponseError):
        await provider.batch_embed_contents(["a"])


async def test_gemini_missing_values_means_no_embedding(monkeypatch):
    monkeypatch.setattr(
        "market_matcher.embedder.send_json", AsyncMock(return_value={"embedding": {}})
    )
    provider = GeminiEmbeddingProvider("secret", session=object())
    assert await provider.embed_content("a") == []
