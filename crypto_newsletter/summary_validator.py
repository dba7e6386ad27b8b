"""
Validation of the LLM's structured summary response.

Hard failures (bad JSON, missing fields) raise DataShapeError so the
request is retried. Soft problems (a coin missing from the response,
speculative phrasing) are logged as warnings and the partial result is
kept.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from .errors import DataShapeError
from .models import CoinSummary


logger = logging.getLogger(__name__)


# =============================================================================
# SPECULATIVE / ADVISORY PATTERNS
# =============================================================================

FORBIDDEN_PATTERNS = [
    r"\bi predict\b",
    r"\byou should\b",
    r"\bwill (increase|decrease|rise|fall|go up|go down)\b",
    r"\bbuy\b",
    r"\bsell\b",
    r"\bhold\b",
    r"\binvest(ment)?\b",
    r"\brecommend\b",
]


@dataclass
class ValidationResult:
    """Result of validating a summaries response."""

    summaries: list[CoinSummary]
    missing_symbols: list[str] = field(default_factory=list)
    flagged_symbols: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_symbols


def find_forbidden_phrases(text: str) -> list[str]:
    """Return the forbidden patterns that match ``text``."""
    text_lower = text.lower()
    return [pattern for pattern in FORBIDDEN_PATTERNS if re.search(pattern, text_lower)]


def parse_summaries_payload(raw: Optional[str]) -> list[dict[str, Any]]:
    """
    Parse the model's raw JSON output and return the ``summaries`` array.

    Raises:
        DataShapeError: If the text is not JSON or has no summaries array.
    """
    if not raw or not raw.strip():
        raise DataShapeError("LLM returned an empty response")

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DataShapeError(f"Invalid JSON response from LLM: {e}")

    if not isinstance(parsed, dict) or not isinstance(parsed.get("summaries"), list):
        raise DataShapeError("LLM response missing 'summaries' array")

    return parsed["summaries"]


def _check_entry(entry: Any, index: int) -> CoinSummary:
    """Require non-empty string coin, symbol and summary fields."""
    if not isinstance(entry, dict):
        raise DataShapeError(f"Summary at index {index} is not an object")

    values = {}
    for key in ("coin", "symbol", "summary"):
        value = entry.get(key)
        if not isinstance(value, str) or not value.strip():
            raise DataShapeError(f"Summary at index {index} is missing required field '{key}'")
        values[key] = value.strip()

    return CoinSummary(coin=values["coin"], symbol=values["symbol"], summary=values["summary"])


def validate_summaries(
    entries: Sequence[Any],
    expected_symbols: Sequence[str],
) -> ValidationResult:
    """
    Validate parsed summary entries against the coins that were requested.

    Args:
        entries: Items of the response's ``summaries`` array.
        expected_symbols: Symbols the prompt asked about.

    Returns:
        ValidationResult holding the accepted summaries and any warnings.

    Raises:
        DataShapeError: If an entry lacks a required field.
    """
    summaries = [_check_entry(entry, index) for index, entry in enumerate(entries)]

    returned = {s.symbol.upper() for s in summaries}
    missing = [symbol for symbol in expected_symbols if symbol.upper() not in returned]
    if missing:
        logger.warning(f"LLM response missing summaries for: {', '.join(missing)}")

    flagged = []
    for summary in summaries:
        matches = find_forbidden_phrases(summary.summary)
        if matches:
            flagged.append(summary.symbol)
            logger.warning(
                f"Summary for {summary.symbol} contains potentially speculative content "
                f"({', '.join(matches)}): \"{summary.summary}\""
            )

    return ValidationResult(
        summaries=summaries,
        missing_symbols=missing,
        flagged_symbols=flagged,
    )
