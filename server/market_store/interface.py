"""
Store Protocol Definitions

Read-side interfaces the matcher depends on. Both the in-memory dev store
and the Redis store satisfy them; a pgvector-backed store would too. The
store, not the matcher, computes vector distance at scale.
"""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from market_matcher.schemas import ContractSnapshot, MarketCandidate, MarketHit


@runtime_checkable
class MarketVectorStore(Protocol):
    """Active markets plus their embeddings, searchable by similarity."""

    async def search_similar(
        self, vector: Sequence[float], limit: int
    ) -> list[MarketHit]:
        """
        Return up to *limit* active markets nearest to *vector*.

        Only markets that have an embedding are considered. Hits are ordered
        by cosine similarity, highest first.
        """
        ...

    async def upsert_embedding(self, market_id: str, vector: Sequence[float]) -> None:
        """Store (or replace) the embedding of one market."""
        ...

    async def markets_missing_embeddings(self, limit: int) -> list[MarketCandidate]:
        """Active markets that have no embedding yet, up to *limit*."""
        ...

    async def count_active_markets(self) -> int:
        ...

    async def count_markets_with_embeddings(self) -> int:
        """Active markets that are ready for matching."""
        ...


@runtime_checkable
class ContractStore(Protocol):
    """Active contracts, looked up per market in one batched call."""

    async def contracts_for_markets(
        self, market_ids: Sequence[str]
    ) -> list[ContractSnapshot]:
        """All active contracts belonging to any of *market_ids*."""
        ...

    async def count_active_contracts(self) -> int:
        ...
