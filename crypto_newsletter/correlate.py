"""
Correlation engine: pairs each coin's price movement with relevant news.

Pure functions only. Given the same snapshots and news the output is
always identical, which keeps the LLM prompt reproducible.
"""

from typing import Optional, Sequence

from .errors import InvalidInputError
from .models import (
    CorrelationRecord,
    Direction,
    ExplanationBasis,
    MarketSnapshot,
    NewsItem,
)


MAX_RELEVANT_NEWS = 5


def correlate(
    market_snapshots: Sequence[MarketSnapshot],
    news_items: Sequence[NewsItem],
) -> list[CorrelationRecord]:
    """
    Correlate market data with news, one record per snapshot.

    Args:
        market_snapshots: Market data for every tracked coin.
        news_items: News fetched for the lookback window.

    Returns:
        CorrelationRecords in the same order as ``market_snapshots``.

    Raises:
        InvalidInputError: If either argument is not a list or tuple.
    """
    if not isinstance(market_snapshots, (list, tuple)) or not isinstance(news_items, (list, tuple)):
        raise InvalidInputError("market_snapshots and news_items must be sequences")

    return [correlate_coin(snapshot, news_items) for snapshot in market_snapshots]


def correlate_coin(snapshot: MarketSnapshot, news_items: Sequence[NewsItem]) -> CorrelationRecord:
    """Build the correlation record for a single coin."""
    matching = [item for item in news_items if snapshot.symbol in item.currencies]

    # sorted() is stable with reverse=True, so equal timestamps keep input order
    newest_first = sorted(matching, key=lambda item: item.published_at, reverse=True)

    return CorrelationRecord(
        coin=snapshot.id,
        symbol=snapshot.symbol,
        name=snapshot.name,
        current_price=snapshot.current_price,
        price_change_24h=snapshot.price_change_24h,
        price_change_percentage_24h=snapshot.price_change_percentage_24h,
        volume_24h=snapshot.volume_24h,
        market_cap=snapshot.market_cap,
        direction=determine_direction(snapshot.price_change_percentage_24h),
        relevant_news=newest_first[:MAX_RELEVANT_NEWS],
        fallback_signals=generate_fallback_signals(snapshot),
        explanation_basis=determine_explanation_basis(len(matching)),
    )


def determine_direction(percent_change: Optional[float]) -> Direction:
    """'up' only for a strictly positive change; zero counts as 'down'."""
    if percent_change is not None and percent_change > 0:
        return "up"
    return "down"


def determine_explanation_basis(news_count: int) -> ExplanationBasis:
    """Classify by the number of matching news items before truncation."""
    if news_count >= 2:
        return "news"
    if news_count == 1:
        return "both"
    return "signals"


def generate_fallback_signals(snapshot: MarketSnapshot) -> list[str]:
    """Template sentences describing price, volume and market cap."""
    change = snapshot.price_change_percentage_24h
    verb = "increased" if (change or 0) >= 0 else "decreased"

    return [
        f"Price {verb} by {format_percentage(change)} in 24h",
        f"24h trading volume: {format_currency(snapshot.volume_24h)}",
        f"Market cap: {format_currency(snapshot.market_cap)}",
    ]


def format_currency(amount: Optional[float]) -> str:
    """
    Abbreviate a dollar amount.

    Examples:
        28_000_000_000 -> "$28.0B", 3_500_000 -> "$3.5M", 950 -> "$950.00",
        None -> "$0".
    """
    if amount is None:
        return "$0"

    magnitude = abs(amount)

    if magnitude >= 1e9:
        return f"${amount / 1e9:.1f}B"
    elif magnitude >= 1e6:
        return f"${amount / 1e6:.1f}M"
    elif magnitude >= 1e3:
        return f"${amount / 1e3:.1f}K"
    else:
        return f"${amount:.2f}"


def format_percentage(value: Optional[float]) -> str:
    """Signed percentage with two decimals, e.g. '+2.98%' or '-1.45%'."""
    if value is None:
        return "0.00%"
    if value == 0:
        value = 0.0  # drop the sign of -0.0

    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}%"
