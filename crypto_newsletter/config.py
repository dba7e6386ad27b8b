"""
Configuration for the crypto newsletter.

Settings come from the environment (optionally a .env file) and are
validated once, before any network call.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import NewsletterError


DEFAULT_COINS = ["bitcoin", "ethereum", "solana", "cardano"]


class ConfigError(NewsletterError):
    """Raised when configuration is invalid or missing required values."""
    pass


@dataclass
class Config:
    """Application configuration container."""

    # Data source credentials
    coingecko_api_key: str
    cryptopanic_api_key: str

    # SMTP settings
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    from_email: str
    to_emails: list[str]

    # Tracked coins (CoinGecko IDs)
    coins: list[str] = field(default_factory=lambda: list(DEFAULT_COINS))

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    llm_temperature: float = 0.3  # Low for factual output
    llm_max_tokens: int = 800

    # Retry policy
    max_retries: int = 3
    retry_delay_ms: int = 1000
    smtp_retry_delay_ms: int = 2000

    # Response cache
    cache_enabled: bool = True
    cache_ttl_minutes: int = 360  # 6 hours
    cache_dir: str = ".cache"

    # Per-adapter request timeouts (seconds)
    market_timeout: float = 10.0
    news_timeout: float = 10.0
    llm_timeout: float = 120.0
    smtp_timeout: float = 30.0

    # Run settings
    lookback_hours: int = 48
    newsletter_title: str = "Crypto Daily Newsletter"
    dry_run: bool = False


def _get_required_env(key: str) -> str:
    """Read a variable that must be set and non-empty."""
    value = os.environ.get(key)
    if not value:
        raise ConfigError(f"Missing required environment variable: {key}")
    return value


def _get_optional_env(key: str, default: str) -> str:
    """Read a variable, falling back to ``default``."""
    return os.environ.get(key, default)


def _get_bool_env(key: str, default: bool = True) -> bool:
    """Get a boolean environment variable. Accepts true/false/1/0/yes/no."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, default: int, minimum: int = 0) -> int:
    """Get an integer environment variable, enforcing a lower bound."""
    raw = _get_optional_env(key, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got: {raw}")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got: {value}")
    return value


def _get_float_env(key: str, default: float) -> float:
    """Get a positive float environment variable."""
    raw = _get_optional_env(key, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got: {raw}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got: {value}")
    return value


def _parse_list(raw: str) -> list[str]:
    """Split a comma-separated value, dropping blanks."""
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config(env_path: Optional[Path] = None) -> Config:
    """
    Load configuration from environment variables.

    Args:
        env_path: Optional path to .env file. If not provided,
                  searches for .env in current and parent directories.

    Returns:
        Config object with all settings populated.

    Raises:
        ConfigError: If required settings are missing or invalid.
    """
    # Load .env file if it exists
    if env_path:
        load_dotenv(env_path)
    else:
        load_dotenv()

    # Parse SMTP port with validation
    smtp_port_str = _get_optional_env("SMTP_PORT", "587")
    try:
        smtp_port = int(smtp_port_str)
    except ValueError:
        raise ConfigError(f"SMTP_PORT must be an integer, got: {smtp_port_str}")
    if not 1 <= smtp_port <= 65535:
        raise ConfigError(f"SMTP_PORT out of range: {smtp_port}")

    to_emails = _parse_list(_get_required_env("TO_EMAILS"))
    if not to_emails:
        raise ConfigError("TO_EMAILS must list at least one recipient")

    coins = _parse_list(_get_optional_env("COINS", ",".join(DEFAULT_COINS)))
    if not coins:
        raise ConfigError("COINS must list at least one CoinGecko coin ID")

    temperature_str = _get_optional_env("LLM_TEMPERATURE", "0.3")
    try:
        llm_temperature = float(temperature_str)
    except ValueError:
        raise ConfigError(f"LLM_TEMPERATURE must be a number, got: {temperature_str}")

    return Config(
        coingecko_api_key=_get_required_env("COINGECKO_API_KEY"),
        cryptopanic_api_key=_get_required_env("CRYPTOPANIC_API_KEY"),
        smtp_host=_get_required_env("SMTP_HOST"),
        smtp_port=smtp_port,
        smtp_user=_get_required_env("SMTP_USER"),
        smtp_password=_get_required_env("SMTP_PASSWORD"),
        from_email=_get_required_env("FROM_EMAIL"),
        to_emails=to_emails,
        coins=coins,
        ollama_base_url=_get_optional_env("OLLAMA_BASE_URL", "http://localhost:11434"),
        ollama_model=_get_optional_env("OLLAMA_MODEL", "llama3"),
        llm_temperature=llm_temperature,
        llm_max_tokens=_get_int_env("LLM_MAX_TOKENS", 800, minimum=1),
        # Retry policy
        max_retries=_get_int_env("MAX_RETRIES", 3),
        retry_delay_ms=_get_int_env("RETRY_DELAY_MS", 1000),
        smtp_retry_delay_ms=_get_int_env("SMTP_RETRY_DELAY_MS", 2000),
        # Cache settings
        cache_enabled=_get_bool_env("ENABLE_CACHE", True),
        cache_ttl_minutes=_get_int_env("CACHE_TTL_MINUTES", 360, minimum=1),
        cache_dir=_get_optional_env("CACHE_DIR", ".cache"),
        # Timeouts
        market_timeout=_get_float_env("MARKET_TIMEOUT_SECONDS", 10.0),
        news_timeout=_get_float_env("NEWS_TIMEOUT_SECONDS", 10.0),
        llm_timeout=_get_float_env("LLM_TIMEOUT_SECONDS", 120.0),
        smtp_timeout=_get_float_env("SMTP_TIMEOUT_SECONDS", 30.0),
        # Run settings
        lookback_hours=_get_int_env("LOOKBACK_HOURS", 48, minimum=1),
        newsletter_title=_get_optional_env("NEWSLETTER_TITLE", "Crypto Daily Newsletter"),
        dry_run=_get_bool_env("DRY_RUN", False),
    )


def get_cache_dir(env_path: Optional[Path] = None) -> str:
    """Cache directory setting alone, for maintenance commands that need no credentials."""
    if env_path:
        load_dotenv(env_path)
    else:
        load_dotenv()
    return _get_optional_env("CACHE_DIR", ".cache")
