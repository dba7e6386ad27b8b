"""Tests for error classification."""

from unittest.mock import MagicMock

import pytest
import requests

from crypto_newsletter.errors import (
    ClientError,
    DataShapeError,
    InvalidInputError,
    NewsletterError,
    TransientError,
    classify_http_error,
    sanitize_error,
)


def http_error(status_code: int) -> requests.HTTPError:
    """Helper to create an HTTPError carrying a response."""
    response = MagicMock()
    response.status_code = status_code
    return requests.HTTPError(f"{status_code} Error", response=response)


class TestClassifyHttpError:
    """Tests for classify_http_error."""

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 429, 499])
    def test_4xx_is_client_error(self, status):
        result = classify_http_error(http_error(status), "CoinGecko")

        assert isinstance(result, ClientError)
        assert result.status == status
        assert "CoinGecko" in str(result)

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_5xx_is_transient(self, status):
        result = classify_http_error(http_error(status), "CryptoPanic")

        assert isinstance(result, TransientError)
        assert result.status == status

    @pytest.mark.parametrize("error", [
        requests.Timeout("read timed out"),
        requests.ConnectionError("connection refused"),
    ])
    def test_network_failure_is_transient(self, error):
        result = classify_http_error(error, "Ollama")

        assert isinstance(result, TransientError)
        assert result.status is None

    @pytest.mark.parametrize("error", [
        requests.exceptions.MissingSchema("Invalid URL 'api/generate': No scheme supplied"),
        requests.exceptions.InvalidSchema("No connection adapters were found for 'localhost:11434/api/generate'"),
        requests.exceptions.InvalidURL("Failed to parse: http://[bad"),
        requests.exceptions.InvalidHeader("Invalid leading whitespace in header value"),
    ])
    def test_bad_url_or_header_is_client_error(self, error):
        """Test that request construction failures are not retried."""
        result = classify_http_error(error, "Ollama")

        assert isinstance(result, ClientError)
        assert result.status is None


class TestSanitizeError:
    """Tests for sanitize_error."""

    @pytest.mark.parametrize("message, secret", [
        ("GET /posts/?auth_token=abc123&public=true failed", "abc123"),
        ("GET /coins/markets?x_cg_demo_api_key=CG-xyz failed", "CG-xyz"),
        ("apikey=s3cret timeout", "s3cret"),
    ])
    def test_secrets_removed(self, message, secret):
        result = sanitize_error(Exception(message))

        assert secret not in result
        assert "=***" in result

    def test_plain_message_unchanged(self):
        assert sanitize_error(Exception("connection refused")) == "connection refused"


class TestHierarchy:
    """Tests for the error class hierarchy."""

    def test_data_shape_error_is_transient(self):
        assert issubclass(DataShapeError, TransientError)

    def test_all_derive_from_newsletter_error(self):
        for cls in (InvalidInputError, ClientError, TransientError, DataShapeError):
            assert issubclass(cls, NewsletterError)

    def test_client_error_is_not_transient(self):
        assert not issubclass(ClientError, TransientError)
