"""
Redis Market Store

Redis-backed MarketVectorStore + ContractStore. Key layout:

    markets:active            set of active market ids
    market:{id}               market JSON
    market:{id}:embedding     float32 vector bytes
    contracts:{market_id}     hash contract_id -> contract JSON

Similarity search pulls every active embedding with one MGET and ranks them
in a single numpy matrix product; contract attachment is one pipelined
round trip regardless of how many markets matched.

Usage:
    async with RedisMarketStore(redis_url="redis://localhost:6379/0") as store:
        hits = await store.search_similar(vector, limit=50)
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np
from redis.asyncio import Redis
from redis.exceptions import RedisError

from market_matcher.errors import StoreError
from market_matcher.schemas import ContractSnapshot, MarketCandidate, MarketHit
from market_matcher.similarity import top_n_matrix

from .serializer import (
    SerializationError,
    decode_contract,
    decode_market,
    decode_vector,
    encode_contract,
    encode_market,
    encode_vector,
)

logger = logging.getLogger(__name__)

ACTIVE_KEY = "markets:active"


def market_key(market_id: str) -> str:
    return f"market:{market_id}"


def embedding_key(market_id: str) -> str:
    return f"market:{market_id}:embedding"


def contracts_key(market_id: str) -> str:
    return f"contracts:{market_id}"


def _text(raw: str | bytes) -> str:
    return raw.decode("utf-8") if isinstance(raw, bytes) else raw


class RedisMarketStore:
    """Markets, embeddings and contracts kept in Redis."""

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: Redis | None = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the Redis connection."""
        self._redis = Redis.from_url(self._redis_url, decode_responses=False)
        try:
            await self._redis.ping()
            logger.info("RedisMarketStore connected to Redis at %s", self._redis_url)
        except RedisError as exc:
            raise StoreError(f"Cannot connect to Redis: {exc}") from exc

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("RedisMarketStore disconnected from Redis")

    async def __aenter__(self) -> RedisMarketStore:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    def _client(self) -> Redis:
        if self._redis is None:
            raise StoreError("RedisMarketStore is not connected — call connect() first")
        return self._redis

    async def _active_ids(self) -> list[str]:
        members = await self._client().smembers(ACTIVE_KEY)
        return sorted(_text(m) for m in members)

    # ── Writes (platform sync side) ───────────────────────────────────────────

    async def put_market(
        self,
        market: MarketCandidate,
        contracts: Iterable[ContractSnapshot] = (),
    ) -> None:
        """Store a market as active and replace its contract set."""
        redis = self._client()
        mapping = {c.id: encode_contract(c) for c in contracts}
        try:
            pipe = redis.pipeline(transaction=True)
            pipe.set(market_key(market.id), encode_market(market))
            pipe.sadd(ACTIVE_KEY, market.id)
            pipe.delete(contracts_key(market.id))
            if mapping:
                pipe.hset(contracts_key(market.id), mapping=mapping)
            await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Redis write failed for market '{market.id}'") from exc

    async def deactivate_market(self, market_id: str) -> None:
        try:
            await self._client().srem(ACTIVE_KEY, market_id)
        except RedisError as exc:
            raise StoreError(f"Redis write failed for market '{market_id}'") from exc

    async def upsert_embedding(self, market_id: str, vector: Sequence[float]) -> None:
        try:
            await self._client().set(embedding_key(market_id), encode_vector(vector))
        except RedisError as exc:
            raise StoreError(f"Redis write failed for embedding of '{market_id}'") from exc

    # ── MarketVectorStore ─────────────────────────────────────────────────────

    async def search_similar(
        self, vector: Sequence[float], limit: int
    ) -> list[MarketHit]:
        if limit <= 0 or len(vector) == 0:
            return []
        redis = self._client()
        try:
            ids = await self._active_ids()
            if not ids:
                return []
            raw_vectors = await redis.mget([embedding_key(i) for i in ids])

            row_ids: list[str] = []
            rows: list[np.ndarray] = []
            for market_id, raw in zip(ids, raw_vectors):
                if not raw:
                    continue
                row = decode_vector(raw)
                if row.shape[0] != len(vector):
                    logger.warning(
                        "Skipping embedding with mismatched dimension",
                        extra={"market_id": market_id, "dims": int(row.shape[0])},
                    )
                    continue
                row_ids.append(market_id)
                rows.append(row)
            if not rows:
                return []

            ranked = top_n_matrix(vector, np.vstack(rows), limit)
            winners = [row_ids[i] for i, _ in ranked]
            raw_markets = await redis.mget([market_key(i) for i in winners])
        except RedisError as exc:
            raise StoreError(f"Redis similarity search failed: {exc}") from exc
        except SerializationError as exc:
            raise StoreError(f"Corrupt embedding in store: {exc}") from exc

        hits: list[MarketHit] = []
        for (_, similarity), market_id, raw in zip(ranked, winners, raw_markets):
            if raw is None:
                continue
            try:
                market = decode_market(raw)
            except SerializationError as exc:
                logger.warning(
                    "Skipping undecodable market",
                    extra={"market_id": market_id, "error": str(exc)},
                )
                continue
            hits.append(MarketHit(market=market, similarity=similarity))
        return hits

    async def markets_missing_embeddings(self, limit: int) -> list[MarketCandidate]:
        if limit <= 0:
            return []
        redis = self._client()
        try:
            ids = await self._active_ids()
            if not ids:
                return []
            raw_vectors = await redis.mget([embedding_key(i) for i in ids])
            missing = [i for i, raw in zip(ids, raw_vectors) if not raw][:limit]
            if not missing:
                return []
            raw_markets = await redis.mget([market_key(i) for i in missing])
        except RedisError as exc:
            raise StoreError(f"Redis lookup failed: {exc}") from exc

        markets: list[MarketCandidate] = []
        for raw in raw_markets:
            if raw is None:
                continue
            try:
                markets.append(decode_market(raw))
            except SerializationError as exc:
                logger.warning("Skipping undecodable market: %s", exc)
        return markets

    async def count_active_markets(self) -> int:
        try:
            return int(await self._client().scard(ACTIVE_KEY))
        except RedisError as exc:
            raise StoreError(f"Redis count failed: {exc}") from exc

    async def count_markets_with_embeddings(self) -> int:
        redis = self._client()
        try:
            ids = await self._active_ids()
            if not ids:
                return 0
            raw_vectors = await redis.mget([embedding_key(i) for i in ids])
        except RedisError as exc:
            raise StoreError(f"Redis count failed: {exc}") from exc
        return sum(1 for raw in raw_vectors if raw)

    # ── ContractStore ─────────────────────────────────────────────────────────

    async def contracts_for_markets(
        self, market_ids: Sequence[str]
    ) -> list[ContractSnapshot]:
        if not market_ids:
            return []
        redis = self._client()
        try:
            pipe = redis.pipeline(transaction=False)
            for market_id in market_ids:
                pipe.hgetall(contracts_key(market_id))
            rows = await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Redis contract lookup failed: {exc}") from exc

        contracts: list[ContractSnapshot] = []
        for market_id, row in zip(market_ids, rows):
            for raw in (row or {}).values():
                try:
                    contracts.append(decode_contract(raw))
                except SerializationError as exc:
                    logger.warning(
                        "Skipping undecodable contract",
                        extra={"market_id": market_id, "error": str(exc)},
                    )
        return contracts

    async def count_active_contracts(self) -> int:
        redis = self._client()
        try:
            ids = await self._active_ids()
            if not ids:
                return 0
            pipe = redis.pipeline(transaction=False)
            for market_id in ids:
                pipe.hlen(contracts_key(market_id))
            counts = await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Redis count failed: {exc}") from exc
        return sum(int(c) for c in counts)
