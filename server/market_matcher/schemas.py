"""
Matching Pipeline Data Models

Records flowing between news adapters, the embedder, the stores and the
matcher. All models use frozen dataclasses with __post_init__ validation.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

# Empty list = "embedding unavailable", never a valid vector
EmbeddingVector = list[float]

NEWS_BODY_CHARS = 1000


def _parse_dt(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


# ---------------------------------------------------------------------------
# News item: produced by the news adapters, immutable once fetched
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NewsItem:
    """A fetched news article, the query subject of a match."""

    id: str
    source: str
    title: str
    body: str
    published_at: datetime
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id must be non-empty")
        if not self.title:
            raise ValueError("title must be non-empty")
        if self.published_at.tzinfo is None:
            raise ValueError("published_at must be timezone-aware")

    def embedding_text(self) -> str:
        """Title, the head of the body and the topic tags, as one string."""
        parts = [self.title]
        if self.body:
            parts.append(self.body[:NEWS_BODY_CHARS])
        if self.tags:
            parts.append(f"Topics: {', '.join(self.tags)}")
        return ". ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["published_at"] = self.published_at.isoformat()
        d["tags"] = list(self.tags)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> NewsItem:
        return cls(
            id=d["id"],
            source=d.get("source", ""),
            title=d["title"],
            body=d.get("body", ""),
            published_at=_parse_dt(d["published_at"]),
            tags=tuple(d.get("tags", ())),
        )


# ---------------------------------------------------------------------------
# Contract: one tradable outcome of a market
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContractSnapshot:
    """Point-in-time view of a contract as read from the contract store."""

    id: str
    market_id: str
    title: str
    yes_price: float
    no_price: float
    volume: float = 0.0
    liquidity: float = 0.0

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id must be non-empty")
        if not self.market_id:
            raise ValueError("market_id must be non-empty")
        for name in ("yes_price", "no_price"):
            price = getattr(self, name)
            if not (0.0 <= price <= 1.0):
                raise ValueError(f"{name} must be in [0.0, 1.0], got {price}")
        if self.volume < 0:
            raise ValueError(f"volume must be non-negative, got {self.volume}")
        if self.liquidity < 0:
            raise ValueError(f"liquidity must be non-negative, got {self.liquidity}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ContractSnapshot:
        return cls(
            id=str(d["id"]),
            market_id=str(d["market_id"]),
            title=d.get("title", ""),
            yes_price=float(d["yes_price"]),
            no_price=float(d["no_price"]),
            volume=float(d.get("volume", 0.0)),
            liquidity=float(d.get("liquidity", 0.0)),
        )


# ---------------------------------------------------------------------------
# Market: a question on a betting platform, read-only to the core
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MarketCandidate:
    """A market as stored by the platform sync; contracts are attached per match."""

    id: str
    platform: str
    title: str
    url: str = ""
    category: Optional[str] = None
    end_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("id must be non-empty")
        if not self.title:
            raise ValueError("title must be non-empty")

    def embedding_text(self) -> str:
        parts = [self.title]
        if self.category:
            parts.append(f"Category: {self.category}")
        return ". ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["end_date"] = self.end_date.isoformat() if self.end_date else None
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MarketCandidate:
        return cls(
            id=str(d["id"]),
            platform=d.get("platform", ""),
            title=d["title"],
            url=d.get("url", ""),
            category=d.get("category"),
            end_date=_parse_dt(d.get("end_date")),
        )


@dataclass(frozen=True)
class MarketHit:
    """One row of a vector-store similarity query."""

    market: MarketCandidate
    similarity: float


# ---------------------------------------------------------------------------
# Match result: a market ranked against one news item
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchResult:
    """A matched market, its cosine similarity and its active contracts."""

    market: MarketCandidate
    similarity: float
    contracts: tuple[ContractSnapshot, ...] = ()

    def __post_init__(self) -> None:
        # small tolerance for float error from the store
        if not (-1.0 - 1e-6 <= self.similarity <= 1.0 + 1e-6):
            raise ValueError(
                f"similarity must be in [-1.0, 1.0], got {self.similarity}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "market": self.market.to_dict(),
            "similarity": self.similarity,
            "contracts": [c.to_dict() for c in self.contracts],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MatchResult:
        return cls(
            market=MarketCandidate.from_dict(d["market"]),
            similarity=float(d["similarity"]),
            contracts=tuple(ContractSnapshot.from_dict(c) for c in d.get("contracts", ())),
        )
