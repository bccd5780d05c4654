"""
market matcher — top-level orchestrator

Wires settings -> rate governor -> embedding provider -> embedder -> store
-> matcher, indexes any markets still missing an embedding, then matches a
batch of headlines and logs the prompt digest for each.

Usage:
    cd server
    python main.py                # live: Gemini embeddings + Redis store
    python main.py --mock         # offline: hashing embeddings + in-memory demo markets
    python main.py --top-n 5 --min-similarity 0.3
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import replace

from dotenv import load_dotenv

load_dotenv(".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s — %(message)s",
)
logger = logging.getLogger("market_matcher")


async def run(*, use_mock: bool = False, top_n: int | None = None,
              min_similarity: float | None = None) -> None:
    from market_matcher.config import load_settings
    from market_matcher.embedder import (
        GeminiEmbeddingProvider,
        HashingEmbeddingProvider,
        VectorEmbedder,
    )
    from market_matcher.indexer import MarketIndexer
    from market_matcher.matcher import MarketMatcher
    from market_matcher.rate_governor import RateGovernor
    from market_store import InMemoryMarketStore, RedisMarketStore

    settings = load_settings(require_api_key=not use_mock)

    matching = settings.matching
    if top_n is not None:
        matching = replace(matching, top_n=top_n)
    if min_similarity is not None:
        matching = replace(matching, min_similarity=min_similarity)

    from demo_data import DEMO_CONTRACTS, DEMO_MARKETS, demo_news

    # One governor per provider identity
    governor = RateGovernor(
        settings.embedding_rate_limit,
        name="hashing" if use_mock else f"gemini:{settings.embedding.model}",
    )

    if use_mock:
        provider = HashingEmbeddingProvider()
        store = InMemoryMarketStore()
        store.seed_markets(DEMO_MARKETS)
        store.seed_contracts(DEMO_CONTRACTS)
    else:
        provider = GeminiEmbeddingProvider(
            settings.embedding.api_key,
            model=settings.embedding.model,
            timeout_s=settings.embedding.timeout_s,
            on_headers=governor.update_from_headers,
        )
        store = RedisMarketStore(settings.redis.url)
        await store.connect()

    news_items = demo_news()

    try:
        embedder = VectorEmbedder(provider, governor, batch_size=settings.embedding.batch_size)

        indexed = await MarketIndexer(embedder, store).index_pending()
        logger.info(f"Indexed {indexed} market(s) missing embeddings")

        matcher = MarketMatcher(embedder, store, store, matching)
        await matcher.initialize()

        stats = await matcher.get_stats()
        logger.info(
            f"Store: {stats['total_active_markets']} markets, "
            f"{stats['total_active_contracts']} contracts, "
            f"{stats['markets_with_embeddings']} embedded"
        )

        results = await matcher.find_matching_markets_for_batch(news_items)
        for item in news_items:
            matches = results.get(item.id, [])
            logger.info(f"{item.title[:70]} → {len(matches)} match(es)")
            if matches:
                logger.info("\n%s", matcher.format_markets_for_prompt(matches, max_markets=5))
    finally:
        if isinstance(provider, GeminiEmbeddingProvider):
            await provider.close()
        if isinstance(store, RedisMarketStore):
            await store.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Match headlines to prediction markets")
    parser.add_argument("--mock", action="store_true", help="offline demo data and hashing embeddings")
    parser.add_argument("--top-n", type=int, default=None, help="markets per headline")
    parser.add_argument("--min-similarity", type=float, default=None, help="drop matches below this")
    args = parser.parse_args()

    asyncio.run(run(use_mock=args.mock, top_n=args.top_n, min_similarity=args.min_similarity))


if __name__ == "__main__":
    main()
