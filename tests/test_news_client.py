"""Tests for news client module."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from crypto_newsletter.cache import TTLCache
from crypto_newsletter.config import Config, ConfigError
from crypto_newsletter.errors import ClientError, DataShapeError, TransientError
from crypto_newsletter.models import NewsItem
from crypto_newsletter.news_client import (
    CryptoPanicSource,
    _normalize_cryptopanic_item,
    _parse_datetime,
    extract_currencies_from_text,
    make_cache_key,
)
from crypto_newsletter.retry import RetryPolicy


NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_config():
    """Create a mock config for testing."""
    return Config(
        coingecko_api_key="cg_test_key",
        cryptopanic_api_key="cp_test_key",
        smtp_host="smtp.test.com",
        smtp_port=587,
        smtp_user="user@test.com",
        smtp_password="secret",
        from_email="news@test.com",
        to_emails=["recipient@test.com"],
    )


@pytest.fixture
def cache(tmp_path):
    return TTLCache(tmp_path / "cache", default_ttl_minutes=60)


@pytest.fixture
def source(mock_config, cache):
    return CryptoPanicSource(
        mock_config,
        cache=cache,
        retry_policy=RetryPolicy(max_retries=2, base_delay_ms=10, sleep=lambda s: None),
        clock=lambda: NOW,
    )


def make_post(post_id: int, hours_ago: float, codes=("BTC",), **overrides) -> dict:
    """Helper to create a raw CryptoPanic post."""
    post = {
        "id": post_id,
        "kind": "news",
        "title": f"Post {post_id}",
        "description": f"Description {post_id}",
        "created_at": (NOW - timedelta(hours=hours_ago)).isoformat().replace("+00:00", "Z"),
        "url": f"https://cryptopanic.com/news/{post_id}",
        "source": {"title": "CoinDesk", "domain": "coindesk.com"},
        "instruments": [{"code": code} for code in codes],
        "votes": {"positive": 12, "negative": 1, "important": 5},
    }
    post.update(overrides)
    return post


def make_response(json_data=None, status_code: int = 200) -> MagicMock:
    """Helper to create a mock requests response."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


class TestParseDatetime:
    """Tests for datetime parsing."""

    def test_parse_iso_format_with_z(self):
        result = _parse_datetime("2024-01-15T10:30:00Z")

        assert result == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_parse_with_offset_converts_to_utc(self):
        result = _parse_datetime("2024-01-15T12:30:00+02:00")

        assert result == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_parse_invalid_returns_now(self):
        """Test that invalid format returns current time."""
        result = _parse_datetime("not-a-date")

        assert abs((datetime.now(timezone.utc) - result).total_seconds()) < 5


class TestMakeCacheKey:
    """Tests for cache key construction."""

    def test_key_is_order_independent(self):
        assert make_cache_key(["ETH", "BTC"], 48) == make_cache_key(["BTC", "ETH"], 48)

    def test_key_format(self):
        assert make_cache_key(["SOL", "BTC"], 24) == "cryptopanic-BTC,SOL-24h"


class TestExtractCurrencies:
    """Tests for text-based currency extraction."""

    def test_matches_tickers_and_names(self):
        text = "Bitcoin climbs while $ETH lags; SOL/USD flat"

        result = extract_currencies_from_text(text, ["BTC", "ETH", "SOL"])

        assert set(result) == {"BTC", "ETH", "SOL"}

    def test_ignores_untracked_symbols(self):
        assert extract_currencies_from_text("Dogecoin rallies", ["BTC"]) == []

    def test_ticker_not_matched_inside_word(self):
        assert extract_currencies_from_text("The solution is simple", ["SOL"]) == []

    def test_empty_text(self):
        assert extract_currencies_from_text("", ["BTC"]) == []


class TestNormalizeCryptoPanicItem:
    """Tests for CryptoPanic post normalization."""

    def test_normalize_complete_post(self):
        item = _normalize_cryptopanic_item(make_post(42, 2, codes=("BTC", "ETH")), ["BTC", "ETH"])

        assert item.id == "42"
        assert item.title == "Post 42"
        assert item.description == "Description 42"
        assert item.source == "CoinDesk"
        assert item.domain == "coindesk.com"
        assert item.currencies == ("BTC", "ETH")
        assert item.published_at == NOW - timedelta(hours=2)
        assert item.votes.positive == 12
        assert item.votes.important == 5

    def test_untagged_post_uses_text_matching(self):
        raw = make_post(7, 1, codes=(), title="Ethereum gas fees drop", description=None)

        item = _normalize_cryptopanic_item(raw, ["BTC", "ETH"])

        assert item.currencies == ("ETH",)
        assert item.description is None

    def test_missing_source_defaults(self):
        item = _normalize_cryptopanic_item(make_post(1, 1, source=None, votes=None), ["BTC"])

        assert item.source == "Unknown"
        assert item.votes.positive == 0


class TestCryptoPanicSource:
    """Tests for CryptoPanicSource.fetch."""

    def test_requires_api_key(self, mock_config):
        mock_config.cryptopanic_api_key = ""

        with pytest.raises(ConfigError):
            CryptoPanicSource(mock_config)

    def test_empty_symbols_rejected(self, source):
        with pytest.raises(ClientError):
            source.fetch([])

    @patch("crypto_newsletter.news_client.requests.get")
    def test_fetch_filters_to_window(self, mock_get, source):
        """Test that posts older than the window are dropped."""
        mock_get.return_value = make_response({"results": [
            make_post(1, 2),
            make_post(2, 47.5),
            make_post(3, 49),
        ]})

        items = source.fetch(["BTC", "ETH"], hours_back=48)

        assert [item.id for item in items] == ["1", "2"]

        _, kwargs = mock_get.call_args
        assert kwargs["params"]["auth_token"] == "cp_test_key"
        assert kwargs["params"]["currencies"] == "BTC,ETH"
        assert kwargs["params"]["kind"] == "news"
        assert kwargs["timeout"] == 10.0

    @patch("crypto_newsletter.news_client.requests.get")
    def test_second_fetch_served_from_cache(self, mock_get, source):
        """Test that a cache hit makes no HTTP request."""
        mock_get.return_value = make_response({"results": [make_post(1, 2)]})

        first = source.fetch(["BTC", "ETH"])
        second = source.fetch(["ETH", "BTC"])

        assert mock_get.call_count == 1
        assert second == first
        assert isinstance(second[0], NewsItem)

    @patch("crypto_newsletter.news_client.requests.get")
    def test_empty_result_is_cached(self, mock_get, source):
        mock_get.return_value = make_response({"results": []})

        assert source.fetch(["BTC"]) == []
        assert source.fetch(["BTC"]) == []
        assert mock_get.call_count == 1

    @patch("crypto_newsletter.news_client.requests.get")
    def test_different_window_misses_cache(self, mock_get, source):
        mock_get.return_value = make_response({"results": [make_post(1, 2)]})

        source.fetch(["BTC"], hours_back=48)
        source.fetch(["BTC"], hours_back=24)

        assert mock_get.call_count == 2

    @patch("crypto_newsletter.news_client.requests.get")
    def test_works_without_cache(self, mock_get, mock_config):
        source = CryptoPanicSource(
            mock_config,
            retry_policy=RetryPolicy(max_retries=0, sleep=lambda s: None),
            clock=lambda: NOW,
        )
        mock_get.return_value = make_response({"results": [make_post(1, 2)]})

        source.fetch(["BTC"])
        source.fetch(["BTC"])

        assert mock_get.call_count == 2

    @patch("crypto_newsletter.news_client.requests.get")
    def test_forbidden_not_retried(self, mock_get, source):
        mock_get.return_value = make_response(status_code=403)

        with pytest.raises(ClientError) as exc_info:
            source.fetch(["BTC"])

        assert exc_info.value.status == 403
        assert mock_get.call_count == 1

    @patch("crypto_newsletter.news_client.requests.get")
    def test_server_errors_exhaust_retries(self, mock_get, source):
        mock_get.return_value = make_response(status_code=502)

        with pytest.raises(TransientError):
            source.fetch(["BTC"])

        assert mock_get.call_count == 3

    @patch("crypto_newsletter.news_client.requests.get")
    def test_failed_fetch_not_cached(self, mock_get, source, cache):
        mock_get.return_value = make_response(status_code=500)

        with pytest.raises(TransientError):
            source.fetch(["BTC"])

        assert cache.get(make_cache_key(["BTC"], 48)) is None

    @patch("crypto_newsletter.news_client.requests.get")
    def test_malformed_body_is_retried(self, mock_get, source):
        mock_get.side_effect = [
            make_response({"detail": "oops"}),
            make_response({"results": [make_post(1, 2)]}),
        ]

        items = source.fetch(["BTC"])

        assert len(items) == 1
        assert mock_get.call_count == 2

    @pytest.mark.parametrize("overrides", [
        {"source": "CoinDesk"},
        {"votes": [3, 1]},
        {"votes": {"positive": "many"}},
    ])
    @patch("crypto_newsletter.news_client.requests.get")
    def test_malformed_post_field_is_retried(self, mock_get, source, overrides):
        """Test that a wrongly typed field is a retryable shape error."""
        mock_get.side_effect = [
            make_response({"results": [make_post(1, 2, **overrides)]}),
            make_response({"results": [make_post(1, 2)]}),
        ]

        items = source.fetch(["BTC"])

        assert items[0].source == "CoinDesk"
        assert mock_get.call_count == 2

    @patch("crypto_newsletter.news_client.requests.get")
    def test_malformed_post_exhausts_retries(self, mock_get, source):
        mock_get.return_value = make_response({"results": [make_post(1, 2, source="CoinDesk")]})

        with pytest.raises(DataShapeError):
            source.fetch(["BTC"])

        assert mock_get.call_count == 3
