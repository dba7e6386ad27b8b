"""
CryptoPanic client for fetching crypto news.

Results are normalized to NewsItem, filtered to the lookback window and
cached by (sorted symbols, window) in the TTL cache.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests

from .cache import TTLCache
from .config import Config, ConfigError
from .errors import ClientError, DataShapeError, classify_http_error
from .models import NewsItem, NewsVotes, parse_timestamp
from .retry import RetryPolicy


logger = logging.getLogger(__name__)


CRYPTOPANIC_BASE_URL = "https://cryptopanic.com/api/developer/v2"

DEFAULT_HOURS_BACK = 48

# Common coin names mapped to their ticker symbols
COIN_NAME_MAP = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "solana": "SOL",
    "cardano": "ADA",
    "ripple": "XRP",
    "dogecoin": "DOGE",
    "polkadot": "DOT",
    "polygon": "MATIC",
    "avalanche": "AVAX",
    "chainlink": "LINK",
}


def make_cache_key(symbols: list[str], hours_back: int) -> str:
    """Deterministic cache key: sorted, comma-joined symbols plus window."""
    return f"cryptopanic-{','.join(sorted(symbols))}-{hours_back}h"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(dt_string: Optional[str]) -> datetime:
    """Parse an API timestamp, falling back to the current time."""
    try:
        return parse_timestamp(dt_string)
    except ValueError:
        logger.debug(f"Could not parse news timestamp: {dt_string!r}")
        return _utc_now()


def extract_currencies_from_text(text: str, available_symbols: list[str]) -> list[str]:
    """
    Find tracked symbols mentioned in free text.

    Matches bare or prefixed tickers ("BTC", "$ETH", "#SOL", "ETH/USD")
    and well-known coin names ("Bitcoin").
    """
    if not text:
        return []

    text_lower = text.lower()
    matches: list[str] = []

    for symbol in available_symbols:
        pattern = rf"(?:^|[^a-z0-9]){re.escape(symbol.lower())}(?:[^a-z]|$)"
        if re.search(pattern, text_lower) and symbol not in matches:
            matches.append(symbol)

    for name, symbol in COIN_NAME_MAP.items():
        if symbol in available_symbols and symbol not in matches:
            if re.search(rf"\b{name}\b", text_lower):
                matches.append(symbol)

    return matches


def _normalize_cryptopanic_item(raw: dict, available_symbols: list[str]) -> NewsItem:
    """Normalize a CryptoPanic post to NewsItem."""
    instruments = raw.get("instruments") or []
    currencies = [i.get("code") for i in instruments if isinstance(i, dict) and i.get("code")]

    # Fall back to text matching when the post has no instrument tags
    if not currencies:
        text = " ".join([raw.get("title") or "", raw.get("description") or ""])
        currencies = extract_currencies_from_text(text, available_symbols)

    source = raw.get("source") or {}
    votes = raw.get("votes") or {}

    return NewsItem(
        id=str(raw["id"]) if raw.get("id") is not None else "unknown",
        title=raw.get("title") or "No title",
        description=raw.get("description") or None,
        published_at=_parse_datetime(raw.get("created_at") or raw.get("published_at")),
        source=source.get("title") or "Unknown",
        domain=source.get("domain") or "",
        url=raw.get("url") or "",
        currencies=tuple(currencies),
        kind=raw.get("kind") or "news",
        votes=NewsVotes(
            positive=int(votes.get("positive") or 0),
            negative=int(votes.get("negative") or 0),
            important=int(votes.get("important") or 0),
        ),
    )


class CryptoPanicSource:
    """NewsSource backed by the CryptoPanic developer API and the TTL cache."""

    def __init__(
        self,
        config: Config,
        cache: Optional[TTLCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
        base_url: str = CRYPTOPANIC_BASE_URL,
        clock: Callable[[], datetime] = _utc_now,
    ):
        if not config.cryptopanic_api_key:
            raise ConfigError("CRYPTOPANIC_API_KEY is required")

        self.api_key = config.cryptopanic_api_key
        self.timeout = config.news_timeout
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=config.max_retries,
            base_delay_ms=config.retry_delay_ms,
        )
        self._clock = clock

    def fetch(self, symbols: list[str], hours_back: int = DEFAULT_HOURS_BACK) -> list[NewsItem]:
        """
        Fetch news for the given symbols published in the last ``hours_back`` hours.

        Args:
            symbols: Ticker symbols such as ["BTC", "ETH"].
            hours_back: Size of the trailing window in hours.

        Returns:
            Normalized news items inside the window.

        Raises:
            ClientError: On an empty symbol list or a 4xx response.
            TransientError: When retries are exhausted.
        """
        if not isinstance(symbols, (list, tuple)) or not symbols:
            raise ClientError("symbols must be a non-empty list")

        symbols = list(symbols)
        cache_key = make_cache_key(symbols, hours_back)

        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                try:
                    items = [NewsItem.from_dict(entry) for entry in cached]
                    logger.info(f"Returning {len(items)} cached news items")
                    return items
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Ignoring malformed cached news: {e}")

        items = self.retry_policy.call(
            lambda: self._perform_fetch(symbols, hours_back),
            description="CryptoPanic API request",
        )

        if self.cache is not None:
            self.cache.set(cache_key, [item.to_dict() for item in items])

        return items

    def _perform_fetch(self, symbols: list[str], hours_back: int) -> list[NewsItem]:
        url = f"{self.base_url}/posts/"

        params = {
            "auth_token": self.api_key,
            "public": "true",
            "kind": "news",
            "currencies": ",".join(symbols),
        }

        try:
            response = requests.get(
                url,
                params=params,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise classify_http_error(e, "CryptoPanic")

        try:
            data = response.json()
        except ValueError:
            raise DataShapeError("CryptoPanic returned a non-JSON response")

        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise DataShapeError("Invalid response format from CryptoPanic API")

        cutoff = self._clock() - timedelta(hours=hours_back)

        items = []
        for raw in data["results"]:
            if not isinstance(raw, dict):
                continue
            try:
                item = _normalize_cryptopanic_item(raw, symbols)
            except (AttributeError, TypeError, ValueError) as e:
                raise DataShapeError(f"Malformed CryptoPanic post {raw.get('id')!r}: {e}")
            if item.published_at >= cutoff:
                items.append(item)

        logger.info(
            f"CryptoPanic: {len(items)} of {len(data['results'])} posts "
            f"within the last {hours_back}h"
        )
        return items
