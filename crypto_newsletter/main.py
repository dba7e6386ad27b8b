#!/usr/bin/env python3
"""
Main entry point for the crypto daily newsletter.

Runs the pipeline once: fetch -> correlate -> summarize -> email.
Scheduling is left to cron/systemd.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .cache import TTLCache
from .config import Config, ConfigError, get_cache_dir, load_config
from .errors import NewsletterError
from .mocks import MockMailer, MockNewsSource, MockPriceSource, MockSummaryGenerator
from .pipeline import run_daily_pipeline
from .sources import Adapters, create_adapters


logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> Path:
    """
    Configure logging to both console and file.

    Creates a timestamped log file in the logs/ directory.

    Returns:
        Path to the log file.
    """
    logs_dir = Path("logs")
    logs_dir.mkdir(exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{timestamp}.log"

    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"
    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(console_handler)

    # File handler
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(file_handler)

    return log_file


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crypto-newsletter",
        description="Send the daily crypto price-movement newsletter.",
    )
    parser.add_argument("--mock", action="store_true",
                        help="use offline mock adapters (no API keys or network needed)")
    parser.add_argument("--dry-run", action="store_true",
                        help="build the newsletter but do not send it")
    parser.add_argument("--clear-cache", action="store_true",
                        help="delete cached API responses and exit")
    parser.add_argument("--verbose", action="store_true",
                        help="log at DEBUG level, including LLM traces")
    return parser


def _mock_config() -> Config:
    """Configuration for --mock runs; no environment needed."""
    return Config(
        coingecko_api_key="mock",
        cryptopanic_api_key="mock",
        smtp_host="localhost",
        smtp_port=587,
        smtp_user="mock",
        smtp_password="mock",
        from_email="newsletter@example.com",
        to_emails=["test@example.com"],
        dry_run=True,
    )


def _mock_adapters(config: Config) -> Adapters:
    return Adapters(
        market_data=MockPriceSource(),
        news=MockNewsSource(),
        llm=MockSummaryGenerator(),
        mailer=MockMailer(config.to_emails),
    )


def clear_cache(cache_dir: str) -> int:
    """Delete all cached responses, returning the number removed."""
    deleted = TTLCache(cache_dir).clear()
    if deleted > 0:
        logger.info(f"Successfully cleared {deleted} cached file(s)")
    else:
        logger.info("No cached files to clear")
    return deleted


def run_daily(argv: Optional[list[str]] = None) -> None:
    """
    Execute the daily newsletter run.

    Exits with status 1 on configuration or pipeline errors.
    """
    args = _build_parser().parse_args(argv)
    log_file = _setup_logging(args.verbose)

    logger.info("Starting daily newsletter run...")
    logger.info(f"Log file: {log_file.absolute()}")

    if args.clear_cache:
        clear_cache(get_cache_dir())
        return

    if args.mock:
        config = _mock_config()
        adapters = _mock_adapters(config)
        logger.info("Using mock adapters")
    else:
        try:
            config = load_config()
            logger.info("Configuration loaded successfully")
        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
            sys.exit(1)

        if args.dry_run:
            config.dry_run = True

        try:
            adapters = create_adapters(config)
        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
            sys.exit(1)

    try:
        run_daily_pipeline(config, adapters)
    except NewsletterError as e:
        logger.error(f"Pipeline execution failed: {e}")
        sys.exit(1)


def main() -> None:
    """CLI entry point."""
    try:
        run_daily()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
