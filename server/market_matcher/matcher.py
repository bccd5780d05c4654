"""
Market Matcher

Ranks stored markets against news items by embedding similarity and
attaches each market's active contracts.

Flow per news item:
    embed(title + body + tags) -> store.search_similar(top_n)
        -> drop hits under min_similarity -> one batched contract lookup

An unavailable embedding yields [] without touching the store. Throttle
exhaustion, timeouts and store failures propagate to the caller.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Sequence

from market_matcher.config import MatchingConfig
from market_matcher.embedder import VectorEmbedder
from market_matcher.errors import ConfigurationError, EmbeddingUnavailableError, MatcherError
from market_matcher.schemas import ContractSnapshot, EmbeddingVector, MatchResult, NewsItem

if TYPE_CHECKING:
    from market_store.interface import ContractStore, MarketVectorStore

logger = logging.getLogger(__name__)

MAX_OPTIONS_PER_MARKET = 10


class MarketMatcher:
    """
    Semantic news → market matcher.

    Stores are read-only here; a contract updated between market selection
    and contract attachment is accepted as benign staleness.
    """

    def __init__(
        self,
        embedder: VectorEmbedder,
        market_store: MarketVectorStore,
        contract_store: ContractStore,
        config: MatchingConfig,
    ) -> None:
        self._embedder = embedder
        self._market_store = market_store
        self._contract_store = contract_store
        self._config = config
        self._initialized = False

    @property
    def config(self) -> MatchingConfig:
        return self._config

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """
        Validate configuration. Safe to call more than once; performs no I/O.

        Raises:
            ConfigurationError: If the matching configuration is invalid.
        """
        if self._initialized:
            return
        errors = self._config.validate()
        if errors:
            raise ConfigurationError(
                "Invalid matching configuration: " + "; ".join(errors)
            )
        self._initialized = True
        logger.info(
            "MarketMatcher initialized",
            extra={
                "top_n": self._config.top_n,
                "min_similarity": self._config.min_similarity,
            },
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise MatcherError("MarketMatcher is not initialized — call initialize() first")

    # ── Matching ──────────────────────────────────────────────────────────────

    async def find_matching_markets(self, news_item: NewsItem) -> list[MatchResult]:
        """Top markets for one news item, similarity-descending as the store ranked them."""
        self._require_initialized()

        try:
            vector = await self._embedder.embed(news_item.embedding_text())
        except EmbeddingUnavailableError as e:
            logger.error(
                "Failed to generate embedding for news item",
                extra={"news_id": news_item.id, "error": str(e)},
            )
            return []

        return await self._match_vector(news_item, vector)

    async def find_matching_markets_for_batch(
        self, news_items: Sequence[NewsItem]
    ) -> dict[str, list[MatchResult]]:
        """
        Match many news items with a single batched embedding pass.

        Every input id appears in the result, in input order; items whose
        embedding failed map to [].
        """
        self._require_initialized()
        if not news_items:
            return {}

        vectors = await self._embedder.embed_batch(
            [item.embedding_text() for item in news_items]
        )

        semaphore = asyncio.Semaphore(self._config.max_concurrent_lookups)

        async def _lookup(item: NewsItem, vector: EmbeddingVector) -> list[MatchResult]:
            if not vector:
                logger.warning("Empty embedding for news item", extra={"news_id": item.id})
                return []
            async with semaphore:
                return await self._match_vector(item, vector)

        matches = await asyncio.gather(
            *(_lookup(item, vector) for item, vector in zip(news_items, vectors))
        )
        results = {item.id: found for item, found in zip(news_items, matches)}

        logger.info(
            "Batch matching complete",
            extra={
                "news_item_count": len(news_items),
                "total_matches": sum(len(m) for m in results.values()),
            },
        )
        return results

    async def _match_vector(
        self, news_item: NewsItem, vector: EmbeddingVector
    ) -> list[MatchResult]:
        hits = await self._market_store.search_similar(vector, self._config.top_n)

        min_similarity = self._config.min_similarity
        if min_similarity is not None:
            hits = [h for h in hits if h.similarity >= min_similarity]

        if not hits:
            logger.debug("No similar markets found for %s", news_item.id)
            return []

        contracts = await self._contract_store.contracts_for_markets(
            [h.market.id for h in hits]
        )
        by_market: dict[str, list[ContractSnapshot]] = defaultdict(list)
        for contract in contracts:
            by_market[contract.market_id].append(contract)

        matched = [
            MatchResult(
                market=h.market,
                similarity=h.similarity,
                contracts=tuple(by_market.get(h.market.id, ())),
            )
            for h in hits
        ]

        logger.debug(
            "Found %d matching markets for %s (%s), top similarity %.4f",
            len(matched),
            news_item.id,
            news_item.title[:50],
            matched[0].similarity,
        )
        return matched

    # ── Rendering ─────────────────────────────────────────────────────────────

    def format_markets_for_prompt(
        self, matches: Sequence[MatchResult], max_markets: int = 20
    ) -> str:
        """
        Render the first *max_markets* matches as a prompt digest.

        Input order is kept as-is (it is already ranked); nothing is re-sorted.
        """
        lines: list[str] = []

        for i, match in enumerate(matches[:max(max_markets, 0)], 1):
            market = match.market
            header = (
                f"[{i}] {market.title} ({market.platform}) | "
                f"Similarity: {match.similarity * 100:.1f}%"
            )
            if market.end_date is not None:
                header += f" | Ends: {market.end_date.date().isoformat()}"
            lines.append(header)

            if market.url:
                lines.append(f"    URL: {market.url}")

            if match.contracts:
                lines.append("    Options:")
                for contract in match.contracts[:MAX_OPTIONS_PER_MARKET]:
                    lines.append(
                        f"      - {contract.title}: "
                        f"Yes {contract.yes_price * 100:.0f}% / "
                        f"No {contract.no_price * 100:.0f}%"
                    )
                extra = len(match.contracts) - MAX_OPTIONS_PER_MARKET
                if extra > 0:
                    lines.append(f"      ... and {extra} more options")

            lines.append("")

        return "\n".join(lines)

    # ── Stats ─────────────────────────────────────────────────────────────────

    async def get_stats(self) -> dict[str, Any]:
        """Three independent store counts; not cross-checked against each other."""
        self._require_initialized()
        total_markets, total_contracts, with_embeddings = await asyncio.gather(
            self._market_store.count_active_markets(),
            self._contract_store.count_active_contracts(),
            self._market_store.count_markets_with_embeddings(),
        )
        return {
            "total_active_markets": total_markets,
            "total_active_contracts": total_contracts,
            "markets_with_embeddings": with_embeddings,
        }
