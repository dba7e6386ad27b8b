"""
Summary generation using Ollama (local LLM) with structured output.

The JSON schema from prompts.build_response_schema() is sent as Ollama's
``format`` so the model returns a parseable ``summaries`` object.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

import requests

from .config import Config
from .errors import ClientError, DataShapeError, classify_http_error
from .models import CoinSummary
from .retry import RetryPolicy
from .summary_validator import parse_summaries_payload, validate_summaries


logger = logging.getLogger(__name__)

# Full prompt/response traces, kept out of the INFO console output
trace_logger = logging.getLogger("llm_trace")


def _log_llm_call(
    prompt: str,
    response: str,
    model: str,
    duration_ms: float,
    tokens_eval: Optional[int] = None,
) -> None:
    """Log a complete LLM call with input and output."""
    separator = "=" * 80
    trace_logger.debug(
        f"\n{separator}\nMODEL: {model}\nDURATION: {duration_ms:.0f}ms\n"
        f"{f'TOKENS: {tokens_eval}' if tokens_eval else ''}\n{separator}\n\n"
        f">>> INPUT PROMPT >>>\n{prompt}\n\n<<< OUTPUT RESPONSE <<<\n{response}\n\n{separator}"
    )


class OllamaSummaryGenerator:
    """SummaryGenerator that calls Ollama's /api/generate endpoint."""

    def __init__(self, config: Config, retry_policy: Optional[RetryPolicy] = None):
        self.base_url = config.ollama_base_url.rstrip("/")
        self.model = config.ollama_model
        self.temperature = config.llm_temperature
        self.max_tokens = config.llm_max_tokens
        self.timeout = config.llm_timeout
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=config.max_retries,
            base_delay_ms=config.retry_delay_ms,
        )

    def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        expected_symbols: Sequence[str],
    ) -> list[CoinSummary]:
        """
        Generate one summary per coin.

        Args:
            prompt: Complete prompt from build_batch_prompt().
            schema: Response schema from build_response_schema().
            expected_symbols: Symbols the prompt covers, for completeness checks.

        Returns:
            Validated summaries (possibly fewer than expected).

        Raises:
            ClientError: On an empty prompt or a 4xx response.
            TransientError: When retries are exhausted.
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise ClientError("prompt must be a non-empty string")

        return self.retry_policy.call(
            lambda: self._perform_generation(prompt, schema, list(expected_symbols)),
            description="Ollama request",
        )

    def _perform_generation(
        self,
        prompt: str,
        schema: dict[str, Any],
        expected_symbols: list[str],
    ) -> list[CoinSummary]:
        url = f"{self.base_url}/api/generate"

        payload = {
            "model": self.model,
            "prompt": prompt,
            "format": schema,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

        logger.info(f"Calling Ollama (model: {self.model})...")
        start_time = datetime.now()

        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise classify_http_error(e, "Ollama")

        duration_ms = (datetime.now() - start_time).total_seconds() * 1000

        try:
            data = response.json()
        except ValueError:
            raise DataShapeError("Ollama returned a non-JSON envelope")

        raw_response = data.get("response", "") if isinstance(data, dict) else ""

        _log_llm_call(
            prompt=prompt,
            response=raw_response,
            model=self.model,
            duration_ms=duration_ms,
            tokens_eval=data.get("eval_count") if isinstance(data, dict) else None,
        )

        entries = parse_summaries_payload(raw_response)
        result = validate_summaries(entries, expected_symbols)

        logger.info(f"Successfully generated {len(result.summaries)} summaries in {duration_ms:.0f}ms")
        return result.summaries
