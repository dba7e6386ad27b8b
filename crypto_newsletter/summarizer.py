"""
Summarization orchestrator.

Builds the batched prompt and response schema from correlation records,
hands them to a SummaryGenerator and stamps the results.
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional, Sequence

from .errors import InvalidInputError
from .models import CoinSummary, CorrelationRecord
from .prompts import build_batch_prompt, build_response_schema
from .sources import SummaryGenerator


logger = logging.getLogger(__name__)


def summarize_correlations(
    records: Sequence[CorrelationRecord],
    generator: SummaryGenerator,
    now: Optional[datetime] = None,
) -> list[CoinSummary]:
    """
    Generate summaries for all coins in a single LLM call.

    Args:
        records: Correlation records, one per coin.
        generator: LLM adapter.
        now: Timestamp to stamp on every summary (defaults to current UTC time).

    Returns:
        Summaries with ``generated_at`` set.

    Raises:
        InvalidInputError: If ``records`` is empty.
    """
    if not isinstance(records, (list, tuple)) or not records:
        raise InvalidInputError("records must be a non-empty list")

    logger.info(f"Generating summaries for {len(records)} coins...")

    prompt = build_batch_prompt(records)
    schema = build_response_schema()
    expected_symbols = [record.symbol for record in records]

    summaries = generator.generate(prompt, schema, expected_symbols)

    generated_at = now or datetime.now(timezone.utc)
    return [replace(summary, generated_at=generated_at) for summary in summaries]
