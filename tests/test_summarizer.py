"""Tests for the summarization orchestrator."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from crypto_newsletter.correlate import correlate
from crypto_newsletter.errors import InvalidInputError, TransientError
from crypto_newsletter.mocks import MockNewsSource, MockPriceSource, MockSummaryGenerator
from crypto_newsletter.models import CoinSummary
from crypto_newsletter.summarizer import summarize_correlations


NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def records():
    """Correlation records built from the offline fixtures."""
    snapshots = MockPriceSource(now=NOW).fetch(["bitcoin", "ethereum", "solana", "cardano"])
    news = MockNewsSource(now=NOW).fetch([s.symbol for s in snapshots])
    return correlate(snapshots, news)


class TestSummarizeCorrelations:
    """Tests for summarize_correlations."""

    def test_single_call_for_all_coins(self, records):
        """Test that every coin goes into one generator call."""
        generator = MockSummaryGenerator()

        summaries = summarize_correlations(records, generator, now=NOW)

        assert len(generator.calls) == 1
        assert generator.calls[0]["expected_symbols"] == ["BTC", "ETH", "SOL", "ADA"]
        assert [s.symbol for s in summaries] == ["BTC", "ETH", "SOL", "ADA"]

    def test_prompt_and_schema_passed(self, records):
        generator = MockSummaryGenerator()

        summarize_correlations(records, generator, now=NOW)

        call = generator.calls[0]
        assert "Coin: Bitcoin (BTC)" in call["prompt"]
        assert "Coin: Cardano (ADA)" in call["prompt"]
        assert call["schema"]["required"] == ["summaries"]

    def test_summaries_are_stamped(self, records):
        summaries = summarize_correlations(records, MockSummaryGenerator(), now=NOW)

        assert all(s.generated_at == NOW for s in summaries)

    def test_default_timestamp_is_utc_now(self, records):
        summaries = summarize_correlations(records, MockSummaryGenerator())

        delta = datetime.now(timezone.utc) - summaries[0].generated_at
        assert abs(delta.total_seconds()) < 5

    def test_partial_summaries_pass_through(self, records):
        generator = MagicMock()
        generator.generate.return_value = [CoinSummary(coin="bitcoin", symbol="BTC", summary="Text.")]

        summaries = summarize_correlations(records, generator, now=NOW)

        assert len(summaries) == 1
        assert summaries[0].symbol == "BTC"

    def test_generator_errors_propagate(self, records):
        generator = MagicMock()
        generator.generate.side_effect = TransientError("Ollama unavailable")

        with pytest.raises(TransientError):
            summarize_correlations(records, generator)

    @pytest.mark.parametrize("bad", [[], None])
    def test_empty_records_rejected(self, bad):
        generator = MockSummaryGenerator()

        with pytest.raises(InvalidInputError):
            summarize_correlations(bad, generator)

        assert generator.calls == []
