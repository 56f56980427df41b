# SPDX-License-Identifier: Apache-2.0
"""DeepL API access.

Usage:
    from deepl_cli.api import TranslationClient, TranslationOptions

    async with TranslationClient(api_key="your-api-key", max_retries=3) as client:
        result = await client.translate("Hello", TranslationOptions(target_lang="de"))
        print(result.text, client.last_trace_id)
"""

from deepl_cli.api.errors import (
    AuthenticationError,
    ConfigurationError,
    DeepLError,
    ErrorKind,
    MalformedResponseError,
    NetworkError,
    QuotaError,
    RateLimitError,
    ServiceUnavailableError,
    UnknownAPIError,
    classify_status,
)
from deepl_cli.api.http_client import HttpClient, RequestDescriptor
from deepl_cli.api.translation_client import (
    LanguageInfo,
    TranslationClient,
    TranslationOptions,
    TranslationResult,
    UsageInfo,
)

__all__ = [
    # Errors
    "AuthenticationError",
    "ConfigurationError",
    "DeepLError",
    "ErrorKind",
    "MalformedResponseError",
    "NetworkError",
    "QuotaError",
    "RateLimitError",
    "ServiceUnavailableError",
    "UnknownAPIError",
    "classify_status",
    # Clients
    "HttpClient",
    "RequestDescriptor",
    "TranslationClient",
    # Models
    "LanguageInfo",
    "TranslationOptions",
    "TranslationResult",
    "UsageInfo",
]
