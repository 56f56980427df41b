# SPDX-License-Identifier: Apache-2.0
"""Error taxonomy and failure classification for DeepL API calls."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classified kind of a failed remote call."""

    AUTHENTICATION = "authentication"
    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK = "network"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.RATE_LIMIT,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.NETWORK,
    }
)


class DeepLError(Exception):
    """Base exception for classified DeepL API failures.

    Attributes:
        kind: Classified error kind.
        message: Human readable message (without trace id).
        trace_id: Diagnostic trace id returned by the API, if any.
        status: HTTP status code, if the failure had a response.
        suggestion: Hint shown to the user by the CLI.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    exit_code: int = 1
    default_suggestion: str | None = None

    def __init__(
        self,
        message: str,
        *,
        trace_id: str | None = None,
        status: int | None = None,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.trace_id = trace_id
        self.status = status
        self.suggestion = suggestion or self.default_suggestion

    @property
    def retryable(self) -> bool:
        """Whether the executor may retry after this error."""
        return self.kind in RETRYABLE_KINDS

    def __str__(self) -> str:
        if self.trace_id:
            return f"{self.message} (Trace ID: {self.trace_id})"
        return self.message


class AuthenticationError(DeepLError):
    """Invalid or missing API key (HTTP 403)."""

    kind = ErrorKind.AUTHENTICATION
    exit_code = 2
    default_suggestion = "Set a valid key in DEEPL_API_KEY"


class RateLimitError(DeepLError):
    """Too many requests (HTTP 429). Retryable.

    Attributes:
        retry_after: Delay in seconds requested by the server, if any.
    """

    kind = ErrorKind.RATE_LIMIT
    exit_code = 3
    default_suggestion = (
        "Wait a moment and retry, or reduce concurrency with --concurrency"
    )

    def __init__(
        self,
        message: str,
        *,
        trace_id: str | None = None,
        status: int | None = None,
        suggestion: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(
            message, trace_id=trace_id, status=status, suggestion=suggestion
        )
        self.retry_after = retry_after


class QuotaError(DeepLError):
    """Character quota exhausted (HTTP 456)."""

    kind = ErrorKind.QUOTA
    exit_code = 4
    default_suggestion = (
        "Run: deepl usage  to check your limits, "
        "or upgrade your plan at https://www.deepl.com/pro"
    )


class ServiceUnavailableError(DeepLError):
    """Server side failure (HTTP 503 and other 5xx). Retryable."""

    kind = ErrorKind.SERVICE_UNAVAILABLE
    exit_code = 5
    default_suggestion = "The DeepL service is having trouble, try again later"


class NetworkError(DeepLError):
    """Connection failure or per-attempt timeout. Retryable."""

    kind = ErrorKind.NETWORK
    exit_code = 5
    default_suggestion = "Check your internet connection and proxy settings"


class MalformedResponseError(DeepLError):
    """Successful status but an unusable response body."""

    kind = ErrorKind.MALFORMED
    exit_code = 1


class UnknownAPIError(DeepLError):
    """Any other failure status (e.g. 400, 404, 413)."""

    kind = ErrorKind.UNKNOWN
    exit_code = 6


class ConfigurationError(Exception):
    """Local configuration error (invalid proxy, bad size string, etc.).

    This error type is NOT retryable - fix the configuration first.
    """

    exit_code = 7


def classify_status(
    status: int,
    message: str = "",
    *,
    trace_id: str | None = None,
    retry_after: float | None = None,
) -> DeepLError:
    """Map a failed HTTP status to a classified error.

    Args:
        status: HTTP status code of the response.
        message: Error message extracted from the response body.
        trace_id: Trace id header of the response.
        retry_after: Parsed Retry-After delay for 429 responses.

    Returns:
        Classified error instance (not raised).
    """
    if status == 403:
        return AuthenticationError(
            "Authentication failed: Invalid API key",
            trace_id=trace_id,
            status=status,
        )
    if status == 456:
        return QuotaError(
            "Quota exceeded: Character limit reached",
            trace_id=trace_id,
            status=status,
        )
    if status == 429:
        return RateLimitError(
            "Rate limit exceeded: Too many requests",
            trace_id=trace_id,
            status=status,
            retry_after=retry_after,
        )
    if status == 503:
        return ServiceUnavailableError(
            "Service temporarily unavailable: Please try again later",
            trace_id=trace_id,
            status=status,
        )
    if status >= 500:
        return ServiceUnavailableError(
            f"Server error ({status}): {message or 'no details'}",
            trace_id=trace_id,
            status=status,
        )
    return UnknownAPIError(
        f"API error: {message or 'no details'}",
        trace_id=trace_id,
        status=status,
    )
