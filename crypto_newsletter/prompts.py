"""
Prompt and response-schema builders for the summary LLM call.

Pure string templating: the same correlation records always produce the
same prompt.
"""

import json
from typing import Any, Sequence

from .correlate import format_percentage
from .errors import InvalidInputError
from .models import CorrelationRecord


INSUFFICIENT_DATA_MESSAGE = "Insufficient data to explain this movement"

SYSTEM_INSTRUCTIONS = f"""You are a crypto market analyst explaining price movements to newsletter subscribers.

CRITICAL RULES:
- Analyze ALL coins provided below
- ONLY use the data provided for each coin
- If data is insufficient for a coin, or a coin has no news and only market indicators, state "{INSUFFICIENT_DATA_MESSAGE}"
- NEVER speculate about future price movements
- NEVER give financial advice or tell readers what to do with their holdings
- NEVER forecast what happens next
- Be concise: 3-4 sentences per coin maximum
- Focus on facts: cite news sources when available
- Return properly formatted JSON as specified"""

PROMPT_TEMPLATE = """{instructions}

Explain the price movements for the following cryptocurrencies in the last 24 hours.

{coin_sections}
Return your analysis as a JSON object with a "summaries" array matching this structure:
{example_json}

Remember: Only use the data provided. If data is insufficient for any coin, state "{insufficient}" in the summary."""


def build_batch_prompt(records: Sequence[CorrelationRecord]) -> str:
    """
    Build one prompt covering every coin.

    Args:
        records: Correlation records, one per coin.

    Returns:
        Complete prompt text.

    Raises:
        InvalidInputError: If ``records`` is empty or not a list/tuple.
    """
    if not isinstance(records, (list, tuple)) or len(records) == 0:
        raise InvalidInputError("records must be a non-empty list")

    coin_sections = "\n".join(format_coin_section(record) for record in records)

    return PROMPT_TEMPLATE.format(
        instructions=SYSTEM_INSTRUCTIONS,
        coin_sections=coin_sections,
        example_json=_build_example_json(records),
        insufficient=INSUFFICIENT_DATA_MESSAGE,
    )


def format_price(price: float | None) -> str:
    """Thousands separators, at most three decimals: 45000 -> '45,000', 0.85 -> '0.85'."""
    if price is None:
        return "0"
    text = f"{price:,.3f}".rstrip("0").rstrip(".")
    return text or "0"


def format_coin_section(record: CorrelationRecord) -> str:
    """Format a single coin's data as a prompt section."""
    movement = "increased" if record.direction == "up" else "decreased"

    lines = [
        "---",
        f"Coin: {record.name} ({record.symbol})",
        f"Price Movement: {movement} by {format_percentage(record.price_change_percentage_24h)}",
        f"Current Price: ${format_price(record.current_price)}",
    ]

    if record.relevant_news:
        lines.append("")
        lines.append("Recent News:")
        for index, news in enumerate(record.relevant_news, 1):
            lines.append(f"{index}. [{news.source}] {news.title}")
            if news.description:
                lines.append(f"   {news.description}")

    if record.explanation_basis in ("signals", "both"):
        lines.append("")
        lines.append("Market Indicators:")
        for signal in record.fallback_signals:
            lines.append(f"- {signal}")

    return "\n".join(lines) + "\n"


def _build_example_json(records: Sequence[CorrelationRecord]) -> str:
    """Show the model the expected response shape using the first coin."""
    first = records[0]
    example = {
        "summaries": [
            {
                "coin": first.coin,
                "symbol": first.symbol,
                "summary": "Brief 3-4 sentence explanation based on provided data",
            },
            {"...": "summaries for remaining coins"},
        ]
    }
    return json.dumps(example, indent=2)


def build_response_schema() -> dict[str, Any]:
    """
    JSON schema the model's structured output must satisfy.

    An object with a required ``summaries`` array whose items have exactly
    the string fields coin, symbol and summary, all required.
    """
    return {
        "type": "object",
        "properties": {
            "summaries": {
                "type": "array",
                "description": "One summary per cryptocurrency",
                "items": {
                    "type": "object",
                    "properties": {
                        "coin": {
                            "type": "string",
                            "description": "Coin ID (e.g., 'bitcoin')",
                        },
                        "symbol": {
                            "type": "string",
                            "description": "Coin symbol (e.g., 'BTC')",
                        },
                        "summary": {
                            "type": "string",
                            "description": "3-4 sentence explanation of the price movement based only on provided data",
                        },
                    },
                    "required": ["coin", "symbol", "summary"],
                    "additionalProperties": False,
                },
            },
        },
        "required": ["summaries"],
    }
