"""
market_store — vector-capable market store and contract store.

Public API:
    MarketVectorStore   — protocol: similarity search over market embeddings
    ContractStore       — protocol: batched contract lookup per market
    InMemoryMarketStore — dict-backed dev/test implementation of both
    RedisMarketStore    — redis.asyncio implementation of both
"""
from .interface import ContractStore, MarketVectorStore
from .memory import InMemoryMarketStore
from .redis_store import RedisMarketStore
from .serializer import SerializationError

__all__ = [
    "ContractStore",
    "MarketVectorStore",
    "InMemoryMarketStore",
    "RedisMarketStore",
    "SerializationError",
]
