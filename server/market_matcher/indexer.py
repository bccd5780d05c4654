"""
Market Indexer

Keeps market embeddings in the vector store current so the matcher has
something to search. Runs after a platform sync, or on a timer for markets
still missing an embedding.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from market_matcher.embedder import VectorEmbedder
from market_matcher.schemas import MarketCandidate

if TYPE_CHECKING:
    from market_store.interface import MarketVectorStore

logger = logging.getLogger(__name__)

DEFAULT_PENDING_LIMIT = 500


class MarketIndexer:
    """Embeds market texts in batches and writes the vectors to the store."""

    def __init__(
        self,
        embedder: VectorEmbedder,
        market_store: MarketVectorStore,
        batch_size: int = 50,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._embedder = embedder
        self._market_store = market_store
        self._batch_size = batch_size

    async def index_markets(self, markets: Sequence[MarketCandidate]) -> int:
        """
        Embed and store vectors for *markets*.

        Placeholders from failed embeddings are skipped, not written.
        Returns the number of embeddings written.
        """
        written = 0
        for start in range(0, len(markets), self._batch_size):
            batch = markets[start:start + self._batch_size]
            vectors = await self._embedder.embed_batch(
                [m.embedding_text() for m in batch]
            )
            for market, vector in zip(batch, vectors):
                if not vector:
                    logger.warning(
                        "No embedding for market, leaving it unindexed",
                        extra={"market_id": market.id},
                    )
                    continue
                await self._market_store.upsert_embedding(market.id, vector)
                written += 1

        logger.info(
            "Market indexing complete",
            extra={
                "total": len(markets),
                "indexed": written,
                "failed": len(markets) - written,
            },
        )
        return written

    async def index_pending(self, limit: int = DEFAULT_PENDING_LIMIT) -> int:
        """Index active markets the store reports as missing an embedding."""
        pending = await self._market_store.markets_missing_embeddings(limit)
        if not pending:
            logger.debug("No markets pending embedding")
            return 0
        return await self.index_markets(pending)
