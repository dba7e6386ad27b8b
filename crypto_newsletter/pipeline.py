"""
Daily pipeline: market data -> news -> correlate -> summarize -> render -> send.

Any exception aborts the run; no partial newsletter is sent.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .config import Config
from .correlate import correlate, format_percentage
from .email_client import build_newsletter_html
from .errors import NewsletterError
from .models import CoinSummary, CorrelationRecord, SendResult
from .sources import Adapters
from .summarizer import summarize_correlations


logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything a run produced, for logging and tests."""

    records: list[CorrelationRecord]
    summaries: list[CoinSummary]
    html: str
    send_result: SendResult


def run_daily_pipeline(
    config: Config,
    adapters: Adapters,
    newsletter_date: Optional[date] = None,
) -> PipelineResult:
    """
    Execute one newsletter run.

    Steps:
    1. Fetch market data for the configured coins
    2. Fetch news for their symbols over the lookback window
    3. Correlate price movements with news
    4. Generate LLM summaries
    5. Compile and send the newsletter

    Args:
        config: Application configuration.
        adapters: External collaborators.
        newsletter_date: Date for the newsletter header.

    Returns:
        PipelineResult for the run.

    Raises:
        NewsletterError: On any adapter failure, or when nothing can be sent.
    """
    logger.info("Pipeline execution started...")

    # Step 1: market data
    logger.info(f"Fetching market data for: {', '.join(config.coins)}")
    snapshots = adapters.market_data.fetch(config.coins)
    if not snapshots:
        raise NewsletterError("Market data source returned no coins")
    logger.info(f"Fetched data for {len(snapshots)} coins")

    for snapshot in snapshots:
        arrow = "↑" if (snapshot.price_change_percentage_24h or 0) >= 0 else "↓"
        logger.info(
            f"  {snapshot.symbol}: ${snapshot.current_price or 0:,} "
            f"{arrow} {format_percentage(snapshot.price_change_percentage_24h)}"
        )

    # Step 2: news
    symbols = [snapshot.symbol for snapshot in snapshots]
    logger.info(f"Fetching news for: {', '.join(symbols)}")
    news_items = adapters.news.fetch(symbols, config.lookback_hours)
    logger.info(f"Fetched {len(news_items)} news articles from the last {config.lookback_hours} hours")

    if not news_items:
        logger.info("No recent news found for tracked coins")

    # Step 3: correlate
    records = correlate(snapshots, news_items)
    for record in records:
        logger.info(
            f"  {record.symbol} ({record.name}) {record.direction} "
            f"{format_percentage(record.price_change_percentage_24h)}: "
            f"{len(record.relevant_news)} relevant articles, basis={record.explanation_basis}"
        )

    # Step 4: summarize
    summaries = summarize_correlations(records, adapters.llm)
    if not summaries:
        raise NewsletterError("LLM returned no summaries - nothing to send")
    logger.info(f"Generated {len(summaries)} summaries")

    # Step 5: compile and send
    html = build_newsletter_html(
        summaries,
        records,
        newsletter_date=newsletter_date,
        title=config.newsletter_title,
    )
    logger.info(f"Newsletter compiled ({len(html)} characters)")

    send_result = adapters.mailer.send(html)
    if send_result.dry_run:
        logger.info("Newsletter prepared (dry run - not sent)")
    else:
        logger.info(
            f"Newsletter sent to {len(send_result.recipients)} recipient(s), "
            f"message ID {send_result.message_id}"
        )

    logger.info("Pipeline execution completed successfully")
    return PipelineResult(
        records=records,
        summaries=summaries,
        html=html,
        send_result=send_result,
    )
