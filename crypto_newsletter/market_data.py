"""
CoinGecko client for 24-hour market data.

Normalizes the /coins/markets response into MarketSnapshot records.
"""

import logging
from typing import Optional

import requests

from .config import Config, ConfigError
from .errors import ClientError, DataShapeError, classify_http_error
from .models import MarketSnapshot, parse_timestamp
from .retry import RetryPolicy


logger = logging.getLogger(__name__)


COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _normalize_coin(raw: dict) -> MarketSnapshot:
    """Normalize one CoinGecko market entry to a MarketSnapshot."""
    if not isinstance(raw, dict) or not raw.get("id"):
        raise DataShapeError(f"Unexpected CoinGecko market entry: {raw!r}")

    last_updated = None
    if raw.get("last_updated"):
        try:
            last_updated = parse_timestamp(raw["last_updated"])
        except ValueError:
            logger.debug(f"Could not parse last_updated for {raw['id']}: {raw['last_updated']}")

    symbol = raw.get("symbol")
    return MarketSnapshot(
        id=raw["id"],
        symbol=symbol.upper() if symbol else "UNKNOWN",
        name=raw.get("name") or raw["id"],
        current_price=_to_float(raw.get("current_price")),
        price_change_24h=_to_float(raw.get("price_change_24h")),
        price_change_percentage_24h=_to_float(raw.get("price_change_percentage_24h")),
        volume_24h=_to_float(raw.get("total_volume")),
        market_cap=_to_float(raw.get("market_cap")),
        last_updated=last_updated,
    )


class CoinGeckoSource:
    """PriceSource backed by the CoinGecko demo API."""

    def __init__(
        self,
        config: Config,
        retry_policy: Optional[RetryPolicy] = None,
        base_url: str = COINGECKO_BASE_URL,
    ):
        if not config.coingecko_api_key:
            raise ConfigError("COINGECKO_API_KEY is required")

        self.api_key = config.coingecko_api_key
        self.timeout = config.market_timeout
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=config.max_retries,
            base_delay_ms=config.retry_delay_ms,
        )

    def fetch(self, coin_ids: list[str]) -> list[MarketSnapshot]:
        """
        Fetch 24h market data for the given CoinGecko coin IDs.

        Args:
            coin_ids: CoinGecko IDs such as ["bitcoin", "ethereum"].

        Returns:
            One MarketSnapshot per coin returned by the API.

        Raises:
            ClientError: On an empty ID list or a 4xx response.
            TransientError: When retries are exhausted.
        """
        if not isinstance(coin_ids, (list, tuple)) or not coin_ids:
            raise ClientError("coin_ids must be a non-empty list")
        if not all(isinstance(c, str) and c.strip() for c in coin_ids):
            raise ClientError(f"Invalid coin IDs: {coin_ids!r}")

        return self.retry_policy.call(
            lambda: self._perform_fetch(list(coin_ids)),
            description="CoinGecko API request",
        )

    def _perform_fetch(self, coin_ids: list[str]) -> list[MarketSnapshot]:
        url = f"{self.base_url}/coins/markets"

        params = {
            "vs_currency": "usd",
            "ids": ",".join(coin_ids),
            "order": "market_cap_desc",
            "per_page": len(coin_ids),
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h",
            "x_cg_demo_api_key": self.api_key,
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
            raise classify_http_error(e, "CoinGecko")

        try:
            data = response.json()
        except ValueError:
            raise DataShapeError("CoinGecko returned a non-JSON response")

        if not isinstance(data, list):
            raise DataShapeError("Invalid response format from CoinGecko API")

        try:
            snapshots = [_normalize_coin(raw) for raw in data]
        except (AttributeError, TypeError, ValueError) as e:
            raise DataShapeError(f"Malformed CoinGecko market entry: {e}")

        returned = {s.id for s in snapshots}
        missing = [c for c in coin_ids if c not in returned]
        if missing:
            logger.warning(f"CoinGecko returned no data for: {', '.join(missing)}")

        logger.info(f"CoinGecko: fetched market data for {len(snapshots)} coins")
        return snapshots
