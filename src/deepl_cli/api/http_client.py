# SPDX-License-Identifier: Apache-2.0
"""Resilient HTTP request executor for the DeepL API.

Each logical call is retried with exponential backoff while the classified
failure is retryable (rate limit, server error, network failure) and the retry
budget lasts. Every response updates the last observed trace id.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from deepl_cli.api.errors import (
    AuthenticationError,
    ConfigurationError,
    DeepLError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    classify_status,
)

logger = logging.getLogger(__name__)

FREE_API_URL = "https://api-free.deepl.com"
PRO_API_URL = "https://api.deepl.com"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
RETRY_INITIAL_DELAY = 1.0
RETRY_MAX_DELAY = 10.0
RETRY_AFTER_MAX_SECONDS = 60.0
TRACE_ID_HEADER = "X-Trace-ID"


def sanitize_url(url: str) -> str:
    """Mask credentials embedded in a URL so it can be logged."""
    try:
        parts = urlsplit(url)
        if parts.username or parts.password:
            host = parts.hostname or ""
            if parts.port:
                host = f"{host}:{parts.port}"
            parts = parts._replace(netloc=f"***:***@{host}")
        return urlunsplit(parts)
    except ValueError:
        return "[invalid URL]"


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header into a delay in seconds.

    Accepts delta-seconds or an HTTP date. The result is clamped to
    0..RETRY_AFTER_MAX_SECONDS.

    Args:
        value: Raw header value.
        now: Reference time for HTTP dates (default: current UTC time).

    Returns:
        Delay in seconds, or None when the header is missing or unparsable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        reference = now or datetime.now(timezone.utc)
        seconds = (when - reference).total_seconds()

    if not math.isfinite(seconds):
        return None
    return max(0.0, min(seconds, RETRY_AFTER_MAX_SECONDS))


def proxy_from_env() -> str | None:
    """Return the proxy URL configured in the environment, if any."""
    for name in ("HTTPS_PROXY", "https_proxy", "HTTP_PROXY", "http_proxy"):
        value = os.environ.get(name)
        if value:
            return value
    return None


def validate_proxy_url(url: str) -> str:
    """Check that a proxy URL is usable.

    Raises:
        ConfigurationError: If the URL has no http(s) scheme or host.
    """
    try:
        parts = urlsplit(url)
        _ = parts.port
    except ValueError as e:
        raise ConfigurationError(
            f'Invalid proxy URL "{sanitize_url(url)}": {e}'
        ) from e
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigurationError(
            f'Invalid proxy URL "{sanitize_url(url)}": expected http(s)://host[:port]'
        )
    return url


@dataclass
class RequestDescriptor:
    """One logical request against the API.

    Attributes:
        method: HTTP method.
        path: Path below the base URL ("/v2/translate").
        data: Form fields; repeated keys are allowed.
        params: Query string parameters.
        json_body: JSON request body.
        validate: Predicate a successful payload must satisfy; a payload that
            fails it is reported as malformed.
    """

    method: str
    path: str
    data: list[tuple[str, str]] | None = None
    params: dict[str, str] | None = None
    json_body: Any = None
    validate: Callable[[Any], bool] | None = None


class HttpClient:
    """Executes DeepL API requests with classification and retry.

    State (retry budget, last trace id, HTTP session) is held per instance.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        use_pro: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        proxy: str | None = None,
        retry_initial_delay: float = RETRY_INITIAL_DELAY,
    ) -> None:
        """Initialize HttpClient.

        Args:
            api_key: DeepL API key.
            base_url: Explicit API base URL (overrides use_pro).
            use_pro: Use the pro endpoint instead of the free one.
            timeout: Per-attempt time limit in seconds.
            max_retries: Retries after the first attempt (0 disables retry).
            proxy: Proxy URL (default: HTTPS_PROXY / HTTP_PROXY).
            retry_initial_delay: First backoff delay in seconds.

        Raises:
            AuthenticationError: If the API key is empty.
            ConfigurationError: If the proxy URL is invalid.
            ValueError: If timeout or max_retries is out of range.
        """
        if not api_key or not api_key.strip():
            raise AuthenticationError("API key is required")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self._api_key = api_key
        self._base_url = (base_url or (PRO_API_URL if use_pro else FREE_API_URL)).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._retry_initial_delay = retry_initial_delay

        proxy_url = proxy or proxy_from_env()
        self._proxy = validate_proxy_url(proxy_url) if proxy_url else None

        self._session: aiohttp.ClientSession | None = None
        self._last_trace_id: str | None = None

    @property
    def base_url(self) -> str:
        """Return API base URL."""
        return self._base_url

    @property
    def max_retries(self) -> int:
        """Return retry budget per logical call."""
        return self._max_retries

    @property
    def last_trace_id(self) -> str | None:
        """Trace id of the most recent response, successful or not."""
        return self._last_trace_id

    async def __aenter__(self) -> HttpClient:
        await self._ensure_session()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"DeepL-Auth-Key {self._api_key}"}
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def get(
        self,
        path: str,
        params: dict[str, str] | None = None,
        validate: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Issue a GET request with retry."""
        return await self.request(
            RequestDescriptor("GET", path, params=params, validate=validate)
        )

    async def post_form(
        self,
        path: str,
        data: list[tuple[str, str]],
        validate: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Issue a form-encoded POST request with retry."""
        return await self.request(
            RequestDescriptor("POST", path, data=data, validate=validate)
        )

    async def request(self, descriptor: RequestDescriptor) -> Any:
        """Perform one logical call, retrying retryable failures.

        Args:
            descriptor: Request to perform.

        Returns:
            Decoded JSON payload (None for 204 responses).

        Raises:
            DeepLError: The last classified error once retries are exhausted,
                or the first non-retryable error.
        """
        remaining = self._max_retries
        delay = self._retry_initial_delay
        attempt = 0

        while True:
            attempt += 1
            try:
                return await self._send(descriptor)
            except DeepLError as exc:
                if not exc.retryable or remaining <= 0:
                    if attempt > 1:
                        logger.debug(
                            "%s %s giving up after %d attempts",
                            descriptor.method, descriptor.path, attempt,
                        )
                    raise

                remaining -= 1
                wait = delay
                if isinstance(exc, RateLimitError) and exc.retry_after is not None:
                    wait = exc.retry_after
                logger.warning(
                    "%s %s failed (%s), retrying in %.1fs (%d retries left)",
                    descriptor.method, descriptor.path, exc.kind.value, wait, remaining,
                )
                await asyncio.sleep(wait)
                delay = min(delay * 2, RETRY_MAX_DELAY)

    async def _send(self, descriptor: RequestDescriptor) -> Any:
        """Perform a single attempt and classify its outcome."""
        session = await self._ensure_session()
        url = f"{self._base_url}{descriptor.path}"
        started = time.monotonic()

        try:
            async with session.request(
                descriptor.method,
                url,
                params=descriptor.params,
                data=descriptor.data,
                json=descriptor.json_body,
                timeout=self._timeout,
                proxy=self._proxy,
            ) as response:
                trace_id = response.headers.get(TRACE_ID_HEADER)
                if trace_id:
                    self._last_trace_id = trace_id

                elapsed_ms = (time.monotonic() - started) * 1000
                logger.debug(
                    "HTTP %s %s completed in %dms (status %d)",
                    descriptor.method, descriptor.path, elapsed_ms, response.status,
                )

                if 200 <= response.status < 300:
                    return await self._read_payload(response, descriptor, trace_id)

                message = await self._read_error_message(response)
                retry_after = None
                if response.status == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))
                raise classify_status(
                    response.status,
                    message,
                    trace_id=trace_id,
                    retry_after=retry_after,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            detail = str(e) or type(e).__name__
            raise NetworkError(f"Network error: {detail}") from e

    async def _read_payload(
        self,
        response: aiohttp.ClientResponse,
        descriptor: RequestDescriptor,
        trace_id: str | None,
    ) -> Any:
        if response.status == 204:
            return None
        try:
            payload = await response.json(content_type=None)
        except ValueError as e:
            raise MalformedResponseError(
                f"Malformed response from {descriptor.path}: invalid JSON",
                trace_id=trace_id,
                status=response.status,
            ) from e

        if descriptor.validate is not None and not descriptor.validate(payload):
            raise MalformedResponseError(
                f"Malformed response from {descriptor.path}: missing expected fields",
                trace_id=trace_id,
                status=response.status,
            )
        return payload

    async def _read_error_message(self, response: aiohttp.ClientResponse) -> str:
        try:
            body = await response.text()
        except (aiohttp.ClientError, UnicodeDecodeError):
            return ""
        try:
            data = json.loads(body)
        except ValueError:
            return body.strip()[:200]
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return body.strip()[:200]
