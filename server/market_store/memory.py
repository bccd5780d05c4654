"""
In-Memory Market Store

Dict-backed implementation of MarketVectorStore and ContractStore for local
development and tests. Similarity search is a brute-force top_n over every
active market with an embedding.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from market_matcher.schemas import ContractSnapshot, MarketCandidate, MarketHit
from market_matcher.similarity import top_n

logger = logging.getLogger(__name__)


class InMemoryMarketStore:
    """
    Dev store that satisfies MarketVectorStore and ContractStore simultaneously.

    Insertion order is preserved, so equal-similarity hits come back in the
    order markets were seeded.
    """

    def __init__(self) -> None:
        self._markets: dict[str, MarketCandidate] = {}
        self._inactive: set[str] = set()
        self._embeddings: dict[str, list[float]] = {}
        self._contracts: dict[str, dict[str, ContractSnapshot]] = {}
        self._inactive_contracts: set[str] = set()

        # lookup log for tests (one entry per batched call)
        self.contract_lookups: list[tuple[str, ...]] = []
        self.search_calls = 0

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed_markets(
        self,
        markets: Iterable[MarketCandidate],
        embeddings: dict[str, Sequence[float]] | None = None,
    ) -> None:
        """Pre-load markets, optionally with their embeddings."""
        count = 0
        for m in markets:
            self._markets[m.id] = m
            self._contracts.setdefault(m.id, {})
            count += 1
        for market_id, vector in (embeddings or {}).items():
            self._embeddings[market_id] = list(vector)
        logger.info(f"Seeded {count} markets")

    def seed_contracts(self, contracts: Iterable[ContractSnapshot]) -> None:
        for c in contracts:
            self._contracts.setdefault(c.market_id, {})[c.id] = c

    def deactivate_market(self, market_id: str) -> None:
        self._inactive.add(market_id)

    def deactivate_contract(self, contract_id: str) -> None:
        self._inactive_contracts.add(contract_id)

    def _active_markets(self) -> list[MarketCandidate]:
        return [m for mid, m in self._markets.items() if mid not in self._inactive]

    # ------------------------------------------------------------------
    # MarketVectorStore
    # ------------------------------------------------------------------

    async def search_similar(
        self, vector: Sequence[float], limit: int
    ) -> list[MarketHit]:
        self.search_calls += 1
        if limit <= 0 or len(vector) == 0:
            return []
        # mismatched dimensions are unavailable, not zero-similarity hits
        candidates = [
            (m, self._embeddings[m.id])
            for m in self._active_markets()
            if len(self._embeddings.get(m.id) or ()) == len(vector)
        ]
        return [
            MarketHit(market=s.item, similarity=s.similarity)
            for s in top_n(vector, candidates, limit)
        ]

    async def upsert_embedding(self, market_id: str, vector: Sequence[float]) -> None:
        if market_id not in self._markets:
            raise KeyError(f"Unknown market {market_id!r}")
        self._embeddings[market_id] = list(vector)

    async def markets_missing_embeddings(self, limit: int) -> list[MarketCandidate]:
        missing = [m for m in self._active_markets() if not self._embeddings.get(m.id)]
        return missing[:limit]

    async def count_active_markets(self) -> int:
        return len(self._active_markets())

    async def count_markets_with_embeddings(self) -> int:
        return sum(1 for m in self._active_markets() if self._embeddings.get(m.id))

    # ------------------------------------------------------------------
    # ContractStore
    # ------------------------------------------------------------------

    async def contracts_for_markets(
        self, market_ids: Sequence[str]
    ) -> list[ContractSnapshot]:
        self.contract_lookups.append(tuple(market_ids))
        result: list[ContractSnapshot] = []
        for mid in market_ids:
            if mid in self._inactive:
                continue
            result.extend(
                c for c in self._contracts.get(mid, {}).values()
                if c.id not in self._inactive_contracts
            )
        return result

    async def count_active_contracts(self) -> int:
        return sum(
            1
            for mid, contracts in self._contracts.items()
            if mid not in self._inactive
            for c in contracts.values()
            if c.id not in self._inactive_contracts
        )

    # ------------------------------------------------------------------
    # Introspection (for tests)
    # ------------------------------------------------------------------

    @property
    def market_count(self) -> int:
        return len(self._markets)

    def embedding_for(self, market_id: str) -> list[float] | None:
        return self._embeddings.get(market_id)
