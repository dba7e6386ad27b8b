"""
Data model for a newsletter run.

All records are immutable and created fresh on every run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional


Direction = Literal["up", "down"]
ExplanationBasis = Literal["news", "both", "signals"]


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing 'Z'. Naive values are assumed to be UTC.

    Raises:
        ValueError: If the value is empty or not a timestamp.
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("Empty timestamp")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class MarketSnapshot:
    """24h market data for one tracked asset."""

    id: str
    symbol: str
    name: str
    current_price: Optional[float]
    price_change_24h: Optional[float]
    price_change_percentage_24h: Optional[float]
    volume_24h: Optional[float]
    market_cap: Optional[float]
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class NewsVotes:
    """Community vote counts attached to a news item."""

    positive: int = 0
    negative: int = 0
    important: int = 0


@dataclass(frozen=True)
class NewsItem:
    """Normalized news post."""

    id: str
    title: str
    published_at: datetime
    source: str
    url: str
    currencies: tuple[str, ...]
    description: Optional[str] = None
    domain: str = ""
    kind: str = "news"
    votes: NewsVotes = field(default_factory=NewsVotes)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation, used for caching."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "published_at": self.published_at.isoformat(),
            "source": self.source,
            "domain": self.domain,
            "url": self.url,
            "currencies": list(self.currencies),
            "kind": self.kind,
            "votes": {
                "positive": self.votes.positive,
                "negative": self.votes.negative,
                "important": self.votes.important,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NewsItem":
        votes = data.get("votes") or {}
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description"),
            published_at=parse_timestamp(data["published_at"]),
            source=data.get("source", "Unknown"),
            domain=data.get("domain", ""),
            url=data.get("url", ""),
            currencies=tuple(data.get("currencies", [])),
            kind=data.get("kind", "news"),
            votes=NewsVotes(
                positive=int(votes.get("positive", 0)),
                negative=int(votes.get("negative", 0)),
                important=int(votes.get("important", 0)),
            ),
        )


@dataclass(frozen=True)
class CorrelationRecord:
    """Price movement of one asset paired with the news that may explain it."""

    coin: str
    symbol: str
    name: str
    current_price: Optional[float]
    price_change_24h: Optional[float]
    price_change_percentage_24h: Optional[float]
    volume_24h: Optional[float]
    market_cap: Optional[float]
    direction: Direction
    relevant_news: list[NewsItem]
    fallback_signals: list[str]
    explanation_basis: ExplanationBasis


@dataclass(frozen=True)
class CoinSummary:
    """LLM-written explanation for one coin."""

    coin: str
    symbol: str
    summary: str
    generated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SendResult:
    """Outcome of a newsletter send."""

    success: bool
    message_id: str
    recipients: list[str]
    sent_at: datetime
    dry_run: bool = False
