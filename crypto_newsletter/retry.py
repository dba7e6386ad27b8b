"""
Retry with exponential backoff for network-bound operations.

Every adapter (market data, news, LLM, SMTP) runs its single-shot request
through retry_call. Only TransientError (and its subclass DataShapeError)
is retried; any other exception propagates on the first failure.

Retries assume an attempt either fails before causing its side effect or
that the remote side tolerates a repeat. The wrapper does not verify this.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import TransientError


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000


def backoff_delay_ms(base_delay_ms: int, attempt: int) -> int:
    """Delay before the retry following zero-indexed ``attempt``."""
    return base_delay_ms * (2 ** attempt)


def retry_call(
    operation: Callable[[], T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    description: str = "request",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``operation`` until it succeeds or retries are exhausted.

    Args:
        operation: Zero-argument callable performing one attempt.
        max_retries: Retries after the first attempt (max_retries + 1 calls total).
        base_delay_ms: Base delay D; retry n waits D * 2**n milliseconds.
        description: Name used in log messages.
        sleep: Sleep function taking seconds (injectable for tests).

    Returns:
        The operation's result.

    Raises:
        TransientError: The last transient failure, once retries are exhausted.
        Exception: Any non-transient failure, unchanged, on first occurrence.
    """
    total_attempts = max_retries + 1

    for attempt in range(total_attempts):
        try:
            return operation()
        except TransientError as e:
            if attempt >= max_retries:
                logger.error(f"{description} failed after {total_attempts} attempts: {e}")
                raise

            delay_ms = backoff_delay_ms(base_delay_ms, attempt)
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{total_attempts}). "
                f"Retrying in {delay_ms}ms... {e}"
            )
            sleep(delay_ms / 1000)
        except Exception as e:
            logger.error(f"{description} failed with non-retryable error: {e}")
            raise

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{description}: retry loop exited without result")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings bound to an adapter."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    sleep: Callable[[float], None] = time.sleep

    def delay_for(self, attempt: int) -> int:
        return backoff_delay_ms(self.base_delay_ms, attempt)

    def call(self, operation: Callable[[], T], description: str = "request") -> T:
        return retry_call(
            operation,
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            description=description,
            sleep=self.sleep,
        )
