"""
Deterministic offline adapters.

Used by ``crypto-newsletter --mock`` and the test suite to run the whole
pipeline without network access.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

from .errors import ClientError
from .models import CoinSummary, MarketSnapshot, NewsItem, NewsVotes, SendResult


logger = logging.getLogger(__name__)


MOCK_MARKET_DATA = {
    "bitcoin": dict(symbol="BTC", name="Bitcoin", current_price=45000.0, price_change_24h=2340.0,
                    price_change_percentage_24h=5.2, volume_24h=28_000_000_000.0,
                    market_cap=850_000_000_000.0),
    "ethereum": dict(symbol="ETH", name="Ethereum", current_price=3200.0, price_change_24h=-92.0,
                     price_change_percentage_24h=-2.8, volume_24h=15_000_000_000.0,
                     market_cap=380_000_000_000.0),
    "solana": dict(symbol="SOL", name="Solana", current_price=110.0, price_change_24h=8.6,
                   price_change_percentage_24h=8.5, volume_24h=3_500_000_000.0,
                   market_cap=48_000_000_000.0),
    "cardano": dict(symbol="ADA", name="Cardano", current_price=0.85, price_change_24h=0.03,
                    price_change_percentage_24h=3.6, volume_24h=890_000_000.0,
                    market_cap=30_000_000_000.0),
}

MOCK_NEWS = [
    ("1", "Bitcoin ETF sees record inflows as institutional demand surges",
     "Major Bitcoin ETF products saw significant institutional inflows this week",
     "CoinDesk", "coindesk.com", ("BTC",), 2),
    ("2", "Ethereum network upgrade completes successfully, gas fees drop",
     "Latest Ethereum upgrade brings significant improvements to network efficiency",
     "The Block", "theblock.co", ("ETH",), 3),
    ("3", "Solana announces partnership with major payment processor",
     "Strategic partnership aims to bring crypto payments to mainstream retail",
     "Decrypt", "decrypt.co", ("SOL",), 4),
    ("4", "Bitcoin hash rate reaches all-time high",
     None,
     "Cointelegraph", "cointelegraph.com", ("BTC",), 6),
]


class MockPriceSource:
    """PriceSource returning fixed market data."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime.now(timezone.utc)

    def fetch(self, coin_ids: list[str]) -> list[MarketSnapshot]:
        if not coin_ids:
            raise ClientError("coin_ids must be a non-empty list")

        snapshots = []
        for coin_id in coin_ids:
            fields = MOCK_MARKET_DATA.get(coin_id) or dict(
                symbol=coin_id.upper()[:3],
                name=coin_id.title(),
                current_price=100.0,
                price_change_24h=0.0,
                price_change_percentage_24h=0.0,
                volume_24h=100_000_000.0,
                market_cap=1_000_000_000.0,
            )
            snapshots.append(MarketSnapshot(id=coin_id, last_updated=self.now, **fields))
        return snapshots


class MockNewsSource:
    """NewsSource returning fixed posts dated relative to ``now``."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime.now(timezone.utc)

    def fetch(self, symbols: list[str], hours_back: int = 48) -> list[NewsItem]:
        if not symbols:
            raise ClientError("symbols must be a non-empty list")

        cutoff = self.now - timedelta(hours=hours_back)
        items = []
        for item_id, title, description, source, domain, currencies, hours_ago in MOCK_NEWS:
            published_at = self.now - timedelta(hours=hours_ago)
            if published_at < cutoff or not set(currencies) & set(symbols):
                continue
            items.append(NewsItem(
                id=item_id,
                title=title,
                description=description,
                published_at=published_at,
                source=source,
                domain=domain,
                url=f"https://example.com/news/{item_id}",
                currencies=currencies,
                votes=NewsVotes(positive=100, negative=5, important=40),
            ))
        return items


class MockSummaryGenerator:
    """SummaryGenerator that writes a template sentence per coin found in the prompt."""

    COIN_LINE = re.compile(r"^Coin: (.+) \(([A-Z0-9]+)\)$", re.MULTILINE)

    def __init__(self):
        self.calls: list[dict[str, Any]] = []

    def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        expected_symbols: Sequence[str],
    ) -> list[CoinSummary]:
        self.calls.append({"prompt": prompt, "schema": schema, "expected_symbols": list(expected_symbols)})

        summaries = []
        for name, symbol in self.COIN_LINE.findall(prompt):
            summaries.append(CoinSummary(
                coin=name.lower(),
                symbol=symbol,
                summary=f"{name} moved over the last 24 hours in line with the supplied market data.",
            ))
        return summaries


class MockMailer:
    """Mailer that records the HTML instead of sending it."""

    def __init__(self, recipients: Optional[list[str]] = None):
        self.recipients = recipients or ["test@example.com"]
        self.sent: list[str] = []

    def send(self, html: str) -> SendResult:
        self.sent.append(html)
        logger.info(f"Mock mailer captured {len(html)} characters of HTML")
        return SendResult(
            success=True,
            message_id=f"mock-{len(self.sent)}",
            recipients=list(self.recipients),
            sent_at=datetime.now(timezone.utc),
            dry_run=True,
        )
