"""
Error taxonomy shared by all adapters and the retry wrapper.

Adapters translate library exceptions (requests, smtplib, JSON decoding)
into these types so that retry decisions are made on the exception class
rather than on message text.
"""

import re
from typing import Optional

import requests


# Raised by requests before any connection is attempted
CONFIGURATION_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidHeader,
)


class NewsletterError(Exception):
    """Base class for all newsletter errors."""
    pass


class InvalidInputError(NewsletterError, ValueError):
    """Raised when a pure function receives malformed input."""
    pass


class ClientError(NewsletterError):
    """
    Non-retryable rejection: HTTP 4xx, bad credentials, invalid request.

    Attributes:
        status: HTTP (or SMTP) status code, when one is known.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientError(NewsletterError):
    """
    Retryable failure: network error, timeout, HTTP 5xx.

    Attributes:
        status: HTTP (or SMTP) status code, when one is known.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DataShapeError(TransientError):
    """Raised when a response body is malformed or has an unexpected shape."""
    pass


def sanitize_error(error: Exception) -> str:
    """Remove API keys from error messages to prevent logging secrets."""
    error_str = str(error)
    error_str = re.sub(
        r'(apikey|api_key|api_token|auth_token|x_cg_demo_api_key|token|key)=[^&\s]+',
        r'\1=***',
        error_str,
        flags=re.IGNORECASE,
    )
    return error_str


def classify_http_error(error: requests.RequestException, service: str) -> NewsletterError:
    """
    Map a requests exception to ClientError or TransientError.

    4xx responses and malformed URLs or headers are client errors; 5xx
    responses, timeouts and connection failures are transient.

    Args:
        error: Exception raised by requests.
        service: Service name used in the error message.

    Returns:
        The classified error (not raised).
    """
    message = f"{service} request failed: {sanitize_error(error)}"

    if isinstance(error, CONFIGURATION_ERRORS):
        return ClientError(message)

    response = getattr(error, "response", None)
    status = response.status_code if response is not None else None

    if status is not None and 400 <= status < 500:
        return ClientError(message, status=status)

    return TransientError(message, status=status)
