"""
Tests for market_store.redis_store

All Redis I/O is replaced with AsyncMock — no live Redis required. The
fake keyspace is a plain dict consulted by the mocked MGET.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import RedisError

from market_matcher.errors import StoreError
from market_matcher.schemas import ContractSnapshot, MarketCandidate
from market_store.redis_store import (
    ACTIVE_KEY,
    RedisMarketStore,
    contracts_key,
    embedding_key,
    market_key,
)
from market_store.serializer import encode_contract, encode_market, encode_vector


def market(market_id):
    return MarketCandidate(id=market_id, platform="polymarket", title=f"Market {market_id}")


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def keyspace():
    return {
        market_key("a"): encode_market(market("a")).encode(),
        market_key("b"): encode_market(market("b")).encode(),
        market_key("c"): encode_market(market("c")).encode(),
        embedding_key("a"): encode_vector([1.0, 0.0]),
        embedding_key("b"): encode_vector([0.6, 0.8]),
    }


@pytest.fixture
def pipe():
    p = MagicMock()
    p.execute = AsyncMock(return_value=[])
    return p


@pytest.fixture
def mock_redis(keyspace, pipe):
    """
    Patch market_store.redis_store.Redis so that Redis.from_url() returns
    an AsyncMock instance backed by *keyspace*.
    """
    with patch("market_store.redis_store.Redis") as mock_cls:
        instance = AsyncMock()
        instance.ping = AsyncMock(return_value=True)
        instance.smembers = AsyncMock(return_value={b"c", b"a", b"b"})
        instance.scard = AsyncMock(return_value=3)
        instance.mget = AsyncMock(side_effect=lambda keys: [keyspace.get(k) for k in keys])
        instance.pipeline = MagicMock(return_value=pipe)
        mock_cls.from_url.return_value = instance
        yield instance


@pytest.fixture
async def store(mock_redis):
    s = RedisMarketStore(redis_url="redis://localhost:6379/0")
    await s.connect()
    yield s
    await s.close()


# ── Lifecycle ─────────────────────────────────────────────────────────────────

async def test_connect_pings(mock_redis):
    s = RedisMarketStore(redis_url="redis://localhost:6379/0")
    await s.connect()
    mock_redis.ping.assert_called_once()
    await s.close()
    mock_redis.aclose.assert_awaited_once()


async def test_connect_failure_raises_store_error(mock_redis):
    mock_redis.ping.side_effect = RedisError("connection refused")
    with pytest.raises(StoreError, match="Cannot connect"):
        await RedisMarketStore(redis_url="redis://localhost:6379/0").connect()


async def test_use_before_connect_raises():
    s = RedisMarketStore(redis_url="redis://localhost:6379/0")
    with pytest.raises(StoreError, match="not connected"):
        await s.count_active_markets()


# ── search_similar() ──────────────────────────────────────────────────────────

async def test_search_ranks_only_embedded_active_markets(store, mock_redis):
    hits = await store.search_similar([1.0, 0.0], 5)

    assert [h.market.id for h in hits] == ["a", "b"]
    assert hits[0].similarity == pytest.approx(1.0, abs=1e-6)
    assert hits[1].similarity == pytest.approx(0.6, abs=1e-6)


async def test_search_respects_limit(store):
    hits = await store.search_similar([0.0, 1.0], 1)
    assert [h.market.id for h in hits] == ["b"]


async def test_search_skips_mismatched_dimensions(store, keyspace):
    keyspace[embedding_key("c")] = encode_vector([1.0, 0.0, 0.0])
    hits = await store.search_similar([1.0, 0.0], 5)
    assert "c" not in [h.market.id for h in hits]


async def test_search_with_no_active_markets(store, mock_redis):
    mock_redis.smembers.return_value = set()
    assert await store.search_similar([1.0, 0.0], 5) == []


async def test_search_redis_failure_raises_store_error(store, mock_redis):
    mock_redis.mget.side_effect = RedisError("boom")
    with pytest.raises(StoreError):
        await store.search_similar([1.0, 0.0], 5)


# ── contracts_for_markets() ───────────────────────────────────────────────────

async def test_contracts_use_one_pipelined_round_trip(store, mock_redis, pipe):
    pipe.execute.return_value = [
        {b"a1": encode_contract(ContractSnapshot("a1", "a", "Yes", 0.4, 0.6)).encode()},
        {},
    ]

    contracts = await store.contracts_for_markets(["a", "b"])

    assert [c.id for c in contracts] == ["a1"]
    mock_redis.pipeline.assert_called_once_with(transaction=False)
    assert [call.args[0] for call in pipe.hgetall.call_args_list] == [
        contracts_key("a"),
        contracts_key("b"),
    ]
    pipe.execute.assert_awaited_once()


async def test_undecodable_contracts_are_skipped(store, pipe):
    pipe.execute.return_value = [{b"x": b"{broken"}]
    assert await store.contracts_for_markets(["a"]) == []


async def test_no_market_ids_means_no_round_trip(store, mock_redis):
    assert await store.contracts_for_markets([]) == []
    mock_redis.pipeline.assert_not_called()


# ── Writes ────────────────────────────────────────────────────────────────────

async def test_put_market_writes_market_membership_and_contracts(store, mock_redis, pipe):
    m = market("z")
    contract = ContractSnapshot("z1", "z", "Yes", 0.5, 0.5)

    await store.put_market(m, [contract])

    mock_redis.pipeline.assert_called_once_with(transaction=True)
    pipe.set.assert_called_once_with(market_key("z"), encode_market(m))
    pipe.sadd.assert_called_once_with(ACTIVE_KEY, "z")
    pipe.hset.assert_called_once_with(
        contracts_key("z"), mapping={"z1": encode_contract(contract)}
    )


async def test_upsert_embedding_stores_float32_bytes(store, mock_redis):
    await store.upsert_embedding("a", [0.25, 0.75])
    mock_redis.set.assert_awaited_once_with(embedding_key("a"), encode_vector([0.25, 0.75]))


# ── Counts ────────────────────────────────────────────────────────────────────

async def test_counts(store, pipe):
    pipe.execute.return_value = [2, 0, 1]

    assert await store.count_active_markets() == 3
    assert await store.count_markets_with_embeddings() == 2
    assert await store.count_active_contracts() == 3


async def test_markets_missing_embeddings(store):
    missing = await store.markets_missing_embeddings(10)
    assert [m.id for m in missing] == ["c"]
