"""
Demo markets, contracts and headlines for --mock runs.

A handful of always-on markets matched to current events, plus headlines
written so each one lands near at least one demo market.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from market_matcher.schemas import ContractSnapshot, MarketCandidate, NewsItem

# ---------------------------------------------------------------------------
# Demo markets
# ---------------------------------------------------------------------------

DEMO_MARKETS: list[MarketCandidate] = [
    MarketCandidate(
        id="KXIRNUS-26APR01",
        platform="kalshi",
        title="Will the US conduct a military strike on Iran before April 2026?",
        url="https://kalshi.com/markets/kxirnus",
        category="politics",
        end_date=datetime(2026, 4, 1, tzinfo=timezone.utc),
    ),
    MarketCandidate(
        id="KXCL130-26APR01",
        platform="kalshi",
        title="Will Brent crude oil exceed $130 per barrel before April 2026?",
        url="https://kalshi.com/markets/kxcl130",
        category="financials",
        end_date=datetime(2026, 4, 1, tzinfo=timezone.utc),
    ),
    MarketCandidate(
        id="KXFEDECUT-26APR01",
        platform="kalshi",
        title="Will the Federal Reserve announce an emergency rate cut by April 2026?",
        url="https://kalshi.com/markets/kxfedecut",
        category="economics",
        end_date=datetime(2026, 4, 1, tzinfo=timezone.utc),
    ),
    MarketCandidate(
        id="0xbtc150k",
        platform="polymarket",
        title="Bitcoin above $150,000 before April 2026?",
        url="https://polymarket.com/event/bitcoin-150k",
        category="crypto",
        end_date=datetime(2026, 4, 1, tzinfo=timezone.utc),
    ),
    MarketCandidate(
        id="0xfedchair",
        platform="polymarket",
        title="Who will Trump nominate as the next Fed Chair?",
        url="https://polymarket.com/event/next-fed-chair",
        category="economics",
    ),
]

DEMO_CONTRACTS: list[ContractSnapshot] = [
    ContractSnapshot("KXIRNUS-26APR01-T82", "KXIRNUS-26APR01", "Strike before April 1", 0.82, 0.18, 120000, 45000),
    ContractSnapshot("KXCL130-26APR01-T41", "KXCL130-26APR01", "Brent >= $130", 0.41, 0.59, 38000, 12000),
    ContractSnapshot("KXFEDECUT-26APR01-T23", "KXFEDECUT-26APR01", "Emergency cut", 0.23, 0.77, 54000, 20000),
    ContractSnapshot("0xbtc150k-yes", "0xbtc150k", "Yes", 0.34, 0.66, 910000, 150000),
    ContractSnapshot("0xfedchair-hassett", "0xfedchair", "Kevin Hassett", 0.45, 0.55, 300000, 80000),
    ContractSnapshot("0xfedchair-warsh", "0xfedchair", "Kevin Warsh", 0.30, 0.70, 260000, 70000),
    ContractSnapshot("0xfedchair-waller", "0xfedchair", "Christopher Waller", 0.15, 0.85, 90000, 30000),
]

# ---------------------------------------------------------------------------
# Demo headlines
# ---------------------------------------------------------------------------

HEADLINES: list[tuple[str, str, tuple[str, ...]]] = [
    # (title, body, tags)
    ("Pentagon confirms US military strike options on Iran under review", "", ("politics",)),
    ("Brent crude oil surges past $125 per barrel on Strait of Hormuz fears", "", ("financials",)),
    ("Federal Reserve signals potential emergency rate cut amid market turmoil", "", ("economics",)),
    ("Bitcoin rallies toward $150,000 as ETF inflows hit record", "", ("crypto",)),
    ("Trump says Fed Chair nominee will be announced next week", "", ("economics", "politics")),
    ("Local bakery wins regional pastry award", "", ()),
]


def demo_news() -> list[NewsItem]:
    """One NewsItem per demo headline, stamped now."""
    now = datetime.now(timezone.utc)
    return [
        NewsItem(
            id=str(uuid.uuid4()),
            source="demo",
            title=title,
            body=body,
            published_at=now,
            tags=tags,
        )
        for title, body, tags in HEADLINES
    ]
