"""
Tests for market_matcher.indexer
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from market_matcher.indexer import MarketIndexer
from market_matcher.schemas import MarketCandidate
from market_store import InMemoryMarketStore


def markets(*ids):
    return [MarketCandidate(id=i, platform="polymarket", title=f"Question {i}") for i in ids]


@pytest.fixture
def store():
    s = InMemoryMarketStore()
    s.seed_markets(markets("m1", "m2", "m3"), embeddings={"m2": [0.0, 1.0]})
    return s


@pytest.fixture
def embedder():
    e = MagicMock()
    e.embed_batch = AsyncMock(side_effect=lambda texts: [[1.0, float(len(t))] for t in texts])
    return e


async def test_index_markets_writes_every_embedding(embedder, store):
    indexer = MarketIndexer(embedder, store)

    written = await indexer.index_markets(markets("m1", "m3"))

    assert written == 2
    assert store.embedding_for("m1") == [1.0, float(len("Question m1"))]
    assert store.embedding_for("m3") is not None


async def test_index_markets_batches_by_batch_size(embedder, store):
    indexer = MarketIndexer(embedder, store, batch_size=2)
    await indexer.index_markets(markets("m1", "m2", "m3"))
    sizes = [len(call.args[0]) for call in embedder.embed_batch.await_args_list]
    assert sizes == [2, 1]


async def test_placeholders_are_skipped(embedder, store):
    embedder.embed_batch = AsyncMock(return_value=[[], [0.5, 0.5]])
    indexer = MarketIndexer(embedder, store)

    written = await indexer.index_markets(markets("m1", "m3"))

    assert written == 1
    assert store.embedding_for("m1") is None
    assert store.embedding_for("m3") == [0.5, 0.5]


async def test_index_pending_only_embeds_missing(embedder, store):
    indexer = MarketIndexer(embedder, store)

    written = await indexer.index_pending()

    assert written == 2
    texts = embedder.embed_batch.await_args.args[0]
    assert texts == ["Question m1", "Question m3"]
    assert await store.count_markets_with_embeddings() == 3


async def test_index_pending_with_nothing_missing_makes_no_calls(embedder, store):
    indexer = MarketIndexer(embedder, store)
    await indexer.index_pending()
    embedder.embed_batch.reset_mock()

    assert await indexer.index_pending() == 0
    embedder.embed_batch.assert_not_awaited()


def test_batch_size_must_be_positive(embedder, store):
    with pytest.raises(ValueError):
        MarketIndexer(embedder, store, batch_size=0)
