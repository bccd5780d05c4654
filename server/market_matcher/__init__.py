"""
market_matcher — semantic matching of news items to prediction markets.

Public API:
    RateGovernor / with_governed_call — per-provider pacing and 429 retries
    VectorEmbedder                    — batched, rate-governed text embeddings
    cosine_similarity / top_n         — pure similarity ranking
    MarketMatcher                     — news item -> ranked, contract-enriched markets
    MarketIndexer                     — keeps market embeddings in the store current
"""
from market_matcher.errors import (
    ConfigurationError,
    EmbeddingUnavailableError,
    MalformedResponseError,
    MarketMatcherError,
    MatcherError,
    ProviderUnavailableError,
    RateLimitedError,
    RateLimitExhaustedError,
    StoreError,
)
from market_matcher.schemas import (
    ContractSnapshot,
    EmbeddingVector,
    MarketCandidate,
    MarketHit,
    MatchResult,
    NewsItem,
)
from market_matcher.rate_governor import (
    RateGovernor,
    RateLimitPolicy,
    with_governed_call,
)
from market_matcher.similarity import cosine_similarity, top_n
from market_matcher.embedder import (
    GeminiEmbeddingProvider,
    HashingEmbeddingProvider,
    VectorEmbedder,
)
from market_matcher.config import MatchingConfig
from market_matcher.matcher import MarketMatcher
from market_matcher.indexer import MarketIndexer

__all__ = [
    "ConfigurationError",
    "EmbeddingUnavailableError",
    "MalformedResponseError",
    "MarketMatcherError",
    "MatcherError",
    "ProviderUnavailableError",
    "RateLimitedError",
    "RateLimitExhaustedError",
    "StoreError",
    "ContractSnapshot",
    "EmbeddingVector",
    "MarketCandidate",
    "MarketHit",
    "MatchResult",
    "NewsItem",
    "RateGovernor",
    "RateLimitPolicy",
    "with_governed_call",
    "cosine_similarity",
    "top_n",
    "GeminiEmbeddingProvider",
    "HashingEmbeddingProvider",
    "VectorEmbedder",
    "MatchingConfig",
    "MarketMatcher",
    "MarketIndexer",
]
