# SPDX-License-Identifier: Apache-2.0
"""Runtime settings loaded from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from deepl_cli.api.errors import ConfigurationError
from deepl_cli.api.http_client import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT
from deepl_cli.api.translation_client import TranslationClient
from deepl_cli.services.batch_translation import DEFAULT_CONCURRENCY, MAX_CONCURRENCY
from deepl_cli.services.translation import TranslationService
from deepl_cli.storage.cache import DEFAULT_MAX_SIZE, DEFAULT_TTL, CacheService

logger = logging.getLogger(__name__)

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMG]?)(?:I?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class Settings:
    """Resolved runtime settings.

    Attributes:
        api_key: DeepL API key.
        api_url: Explicit API base URL (overrides use_pro).
        use_pro: Use the pro endpoint.
        timeout: Per-attempt request timeout in seconds.
        max_retries: Retries after the first attempt.
        cache_enabled: Serve and store translations in the local cache.
        cache_max_size: Cache size bound in bytes.
        cache_ttl: Cache entry lifetime in seconds (0 disables expiry).
        concurrency: Files translated at once in batch mode.
        config_dir: Directory holding config and cache (None: default location).
    """

    api_key: str = ""
    api_url: str | None = None
    use_pro: bool = False
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    cache_enabled: bool = True
    cache_max_size: int = DEFAULT_MAX_SIZE
    cache_ttl: float = DEFAULT_TTL
    concurrency: int = DEFAULT_CONCURRENCY
    config_dir: Path | None = None

    @property
    def cache_path(self) -> Path | None:
        """Cache file inside config_dir, or None for the default location."""
        if self.config_dir is None:
            return None
        return self.config_dir / "cache.db"


def parse_size(value: str) -> int:
    """Parse a byte size such as ``1048576``, ``500M`` or ``1G``.

    Units are binary (K = 1024).

    Raises:
        ConfigurationError: If the value cannot be parsed.
    """
    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ConfigurationError(f"Invalid size: {value!r} (expected e.g. 500M or 1G)")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper()])


def parse_bool(value: str, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be true or false, got {value!r}")


def _parse_number(value: str, name: str, kind: type) -> float | int:
    try:
        return kind(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


def load_settings(
    env: Mapping[str, str] | None = None,
    dotenv_path: Path | str | None = None,
) -> Settings:
    """Build settings from environment variables.

    Args:
        env: Variables to read (default: os.environ after loading .env).
        dotenv_path: .env file to load (default: search from the working directory).

    Returns:
        Validated settings.

    Raises:
        ConfigurationError: If a variable has an invalid value.
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    settings = Settings(
        api_key=env.get("DEEPL_API_KEY", "").strip(),
        api_url=env.get("DEEPL_API_URL") or None,
    )

    if "DEEPL_USE_PRO" in env:
        settings.use_pro = parse_bool(env["DEEPL_USE_PRO"], "DEEPL_USE_PRO")
    if "DEEPL_TIMEOUT" in env:
        settings.timeout = _parse_number(env["DEEPL_TIMEOUT"], "DEEPL_TIMEOUT", float)
    if "DEEPL_MAX_RETRIES" in env:
        settings.max_retries = _parse_number(env["DEEPL_MAX_RETRIES"], "DEEPL_MAX_RETRIES", int)
    if "DEEPL_CACHE_ENABLED" in env:
        settings.cache_enabled = parse_bool(env["DEEPL_CACHE_ENABLED"], "DEEPL_CACHE_ENABLED")
    if "DEEPL_CACHE_MAX_SIZE" in env:
        settings.cache_max_size = parse_size(env["DEEPL_CACHE_MAX_SIZE"])
    if "DEEPL_CACHE_TTL" in env:
        settings.cache_ttl = _parse_number(env["DEEPL_CACHE_TTL"], "DEEPL_CACHE_TTL", float)
    if "DEEPL_CONCURRENCY" in env:
        settings.concurrency = _parse_number(env["DEEPL_CONCURRENCY"], "DEEPL_CONCURRENCY", int)
    if env.get("DEEPL_CONFIG_DIR"):
        settings.config_dir = Path(env["DEEPL_CONFIG_DIR"]).expanduser()

    if settings.timeout <= 0:
        raise ConfigurationError("DEEPL_TIMEOUT must be positive")
    if settings.max_retries < 0:
        raise ConfigurationError("DEEPL_MAX_RETRIES must be 0 or more")
    if settings.cache_ttl < 0:
        raise ConfigurationError("DEEPL_CACHE_TTL must be positive or 0")
    if not 1 <= settings.concurrency <= MAX_CONCURRENCY:
        raise ConfigurationError(f"DEEPL_CONCURRENCY must be between 1 and {MAX_CONCURRENCY}")

    return settings


def create_cache(settings: Settings) -> CacheService:
    """Open the cache described by settings (disabled when cache_enabled is False)."""
    cache = CacheService(
        db_path=settings.cache_path,
        max_size=settings.cache_max_size,
        ttl=settings.cache_ttl,
    )
    if not settings.cache_enabled:
        cache.disable()
    return cache


def create_translation_service(
    settings: Settings,
    cache: CacheService | None = None,
) -> TranslationService:
    """Wire the API client, cache and translation service.

    Args:
        settings: Runtime settings.
        cache: Cache to use (default: opened from settings).

    Raises:
        ConfigurationError: If no API key is configured.
    """
    if not settings.api_key:
        raise ConfigurationError(
            "API key not set. Set DEEPL_API_KEY in the environment or a .env file"
        )

    client = TranslationClient(
        settings.api_key,
        base_url=settings.api_url,
        use_pro=settings.use_pro,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
    )
    if cache is None:
        cache = create_cache(settings)
    logger.debug("Using DeepL endpoint %s", client.base_url)
    return TranslationService(client, cache)
