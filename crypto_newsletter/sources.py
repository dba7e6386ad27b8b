"""
Adapter interfaces and the factory that wires production implementations.

Each interface has a single method. Production and offline implementations
satisfy them structurally; none subclass a common base.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from .config import Config
from .models import CoinSummary, MarketSnapshot, NewsItem, SendResult


class PriceSource(Protocol):
    def fetch(self, coin_ids: list[str]) -> list[MarketSnapshot]:
        ...


class NewsSource(Protocol):
    def fetch(self, symbols: list[str], hours_back: int = 48) -> list[NewsItem]:
        ...


class SummaryGenerator(Protocol):
    def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        expected_symbols: Sequence[str],
    ) -> list[CoinSummary]:
        ...


class Mailer(Protocol):
    def send(self, html: str) -> SendResult:
        ...


@dataclass
class Adapters:
    """The four external collaborators of a pipeline run."""

    market_data: PriceSource
    news: NewsSource
    llm: SummaryGenerator
    mailer: Mailer


def create_adapters(
    config: Config,
    market_data: Optional[PriceSource] = None,
    news: Optional[NewsSource] = None,
    llm: Optional[SummaryGenerator] = None,
    mailer: Optional[Mailer] = None,
) -> Adapters:
    """
    Build the adapter set, using production adapters for anything not overridden.

    Args:
        config: Application configuration.
        market_data: Replacement price source.
        news: Replacement news source.
        llm: Replacement summary generator.
        mailer: Replacement mailer.

    Returns:
        Adapters ready to pass to run_daily_pipeline().
    """
    # summarizer imports this module; production adapters load only here
    from .cache import TTLCache
    from .email_client import SMTPMailer
    from .llm_client import OllamaSummaryGenerator
    from .market_data import CoinGeckoSource
    from .news_client import CryptoPanicSource

    if news is None:
        cache = TTLCache(
            cache_dir=Path(config.cache_dir),
            enabled=config.cache_enabled,
            default_ttl_minutes=config.cache_ttl_minutes,
        )
        news = CryptoPanicSource(config, cache=cache)

    return Adapters(
        market_data=market_data or CoinGeckoSource(config),
        news=news,
        llm=llm or OllamaSummaryGenerator(config),
        mailer=mailer or SMTPMailer(config),
    )
