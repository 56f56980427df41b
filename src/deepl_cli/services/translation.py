# SPDX-License-Identifier: Apache-2.0
"""Translation service: cache lookup in front of the DeepL API client."""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import itertools
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

from deepl_cli.api.translation_client import (
    MAX_TEXTS_PER_REQUEST,
    LanguageInfo,
    TranslationClient,
    TranslationOptions,
    TranslationResult,
    UsageInfo,
    is_cached_translation,
)
from deepl_cli.storage.cache import CacheService

logger = logging.getLogger(__name__)

MAX_TEXT_BYTES = 128 * 1024  # DeepL request size limit
MULTI_TARGET_CONCURRENCY = 5
LANGUAGE_CACHE_TTL = 24 * 60 * 60  # 24 hours


@dataclass
class MultiTargetResult:
    """Translation of one text into one of several target languages."""

    target_lang: str
    text: str
    detected_source_lang: str | None = None
    billed_characters: int | None = None
    model_type_used: str | None = None
    cached: bool = False


def generate_cache_key(text: str, options: TranslationOptions) -> str:
    """Fingerprint a request from its text and every option field.

    Keys are sorted before hashing, so the fingerprint does not depend on
    the order options were given in.
    """
    data = {"text": text, **dataclasses.asdict(options)}
    encoded = json.dumps(data, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return f"translation:{hashlib.sha256(encoded).hexdigest()}"


def _check_size(text: str, label: str = "Text") -> int:
    size = len(text.encode("utf-8"))
    if size > MAX_TEXT_BYTES:
        raise ValueError(
            f"{label} too large: {size} bytes exceeds the {MAX_TEXT_BYTES} byte limit (128KB). "
            "Split the text into smaller chunks or use file translation for large documents."
        )
    return size


_CODE_PATTERNS = (
    re.compile(r"```.*?```", re.DOTALL),  # fenced blocks
    re.compile(r"`[^`]+`"),  # inline code
)
# ${name} must be masked before {name}
_VARIABLE_PATTERNS = (
    re.compile(r"\$\{[a-zA-Z0-9_]+\}"),
    re.compile(r"\{[a-zA-Z0-9_]+\}"),
    re.compile(r"%[sd]"),
)


def _mask(
    text: str,
    patterns: tuple[re.Pattern[str], ...],
    prefix: str,
    preserved: dict[str, str],
) -> str:
    counter = itertools.count()

    def substitute(match: re.Match[str]) -> str:
        placeholder = f"__{prefix}_{next(counter)}__"
        preserved[placeholder] = match.group(0)
        return placeholder

    for pattern in patterns:
        text = pattern.sub(substitute, text)
    return text


def preserve_code_blocks(text: str, preserved: dict[str, str]) -> str:
    """Replace fenced and inline code with ``__CODE_n__`` placeholders."""
    return _mask(text, _CODE_PATTERNS, "CODE", preserved)


def preserve_variables(text: str, preserved: dict[str, str]) -> str:
    """Replace ``${name}``, ``{name}``, ``%s`` and ``%d`` with ``__VAR_n__`` placeholders."""
    return _mask(text, _VARIABLE_PATTERNS, "VAR", preserved)


def restore_preserved(text: str, preserved: dict[str, str]) -> str:
    """Put masked content back in place of its placeholders."""
    for placeholder, original in preserved.items():
        text = text.replace(placeholder, original, 1)
    return text


class TranslationService:
    """Translates text, serving repeated requests from the local cache.

    Errors from the API client propagate unchanged and are never cached.
    """

    def __init__(
        self,
        client: TranslationClient,
        cache: CacheService | None = None,
        *,
        default_source_lang: str | None = None,
        default_formality: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize TranslationService.

        Args:
            client: DeepL API client.
            cache: Result cache shared by all callers (None disables caching).
            default_source_lang: Source language when options leave it unset.
            default_formality: Formality when options leave it unset.
            clock: Time source for the language-list memo.
        """
        self._client = client
        self._cache = cache
        self._default_source_lang = default_source_lang
        self._default_formality = default_formality
        self._clock = clock
        self._language_memo: dict[str, tuple[float, list[LanguageInfo]]] = {}

    @property
    def client(self) -> TranslationClient:
        return self._client

    @property
    def cache(self) -> CacheService | None:
        return self._cache

    def _with_defaults(self, options: TranslationOptions) -> TranslationOptions:
        return dataclasses.replace(
            options,
            source_lang=options.source_lang or self._default_source_lang,
            formality=options.formality or self._default_formality,
        )

    def _active_cache(self, skip_cache: bool) -> CacheService | None:
        if self._cache is None or not self._cache.enabled:
            return None
        if skip_cache:
            logger.info("Cache bypassed for this request")
            return None
        return self._cache

    async def translate(
        self,
        text: str,
        options: TranslationOptions,
        *,
        skip_cache: bool = False,
        preserve_code: bool = False,
    ) -> TranslationResult:
        """Translate one text.

        Variables (``${name}``, ``{name}``, ``%s``, ``%d``) are always masked
        before the request and restored in the result. The cache key is
        computed from the masked text.

        Args:
            text: Text to translate.
            options: Translation options.
            skip_cache: Neither read nor write the cache.
            preserve_code: Also mask fenced and inline code.

        Returns:
            Translation result; ``cached`` is True when served from the cache.

        Raises:
            ValueError: If the text is empty or too large.
            DeepLError: On API failure.
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        if not options.target_lang:
            raise ValueError("Target language is required")
        _check_size(text)

        preserved: dict[str, str] = {}
        masked = preserve_code_blocks(text, preserved) if preserve_code else text
        masked = preserve_variables(masked, preserved)

        resolved = self._with_defaults(options)
        cache = self._active_cache(skip_cache)
        key = generate_cache_key(masked, resolved)

        if cache is not None:
            cached = cache.get(key, guard=is_cached_translation)
            if cached is not None:
                logger.debug("Cache hit for %s", resolved.target_lang)
                result = TranslationResult.from_dict(cached, cached=True)
                return dataclasses.replace(
                    result, text=restore_preserved(result.text, preserved)
                )
            logger.debug("Cache miss for %s", resolved.target_lang)

        started = time.monotonic()
        result = await self._client.translate(masked, resolved)
        logger.debug("API response time: %dms", (time.monotonic() - started) * 1000)

        # The cache holds the masked translation
        if cache is not None:
            cache.set(key, result.to_dict())
        return dataclasses.replace(result, text=restore_preserved(result.text, preserved))

    async def translate_batch(
        self,
        texts: list[str],
        options: TranslationOptions,
    ) -> list[TranslationResult]:
        """Translate several texts with as few API requests as possible.

        Cached texts are served locally; remaining distinct texts are sent
        in chunks of at most MAX_TEXTS_PER_REQUEST. Results keep the input
        order, and empty strings map to empty results.

        Raises:
            ValueError: If a text or the batch is too large.
            DeepLError: On API failure of any chunk.
        """
        if not texts:
            return []

        total = 0
        for i, text in enumerate(texts):
            if text:
                total += _check_size(text, f"Text at index {i}")
        if total > MAX_TEXT_BYTES:
            raise ValueError(
                f"Batch text too large: {total} bytes total exceeds the "
                f"{MAX_TEXT_BYTES} byte limit (128KB). "
                "Reduce the number of texts or split them into smaller batches."
            )

        resolved = self._with_defaults(options)
        cache = self._active_cache(False)
        results: list[TranslationResult | None] = [None] * len(texts)
        pending: dict[str, list[int]] = {}

        for i, text in enumerate(texts):
            if not text:
                results[i] = TranslationResult(text=text)
                continue
            if cache is not None:
                cached = cache.get(
                    generate_cache_key(text, resolved), guard=is_cached_translation
                )
                if cached is not None:
                    results[i] = TranslationResult.from_dict(cached, cached=True)
                    continue
            pending.setdefault(text, []).append(i)

        unique = list(pending)
        logger.debug(
            "Batch of %d texts: %d distinct to translate", len(texts), len(unique)
        )
        for start in range(0, len(unique), MAX_TEXTS_PER_REQUEST):
            chunk = unique[start : start + MAX_TEXTS_PER_REQUEST]
            translated = await self._client.translate_batch(chunk, resolved)
            for text, result in zip(chunk, translated):
                if cache is not None:
                    cache.set(generate_cache_key(text, resolved), result.to_dict())
                for index in pending[text]:
                    results[index] = result

        return [r for r in results if r is not None]

    async def translate_to_multiple(
        self,
        text: str,
        options: TranslationOptions,
        target_langs: list[str],
        *,
        skip_cache: bool = False,
        preserve_code: bool = False,
    ) -> list[MultiTargetResult]:
        """Translate one text into several target languages.

        ``options.target_lang`` is replaced by each entry of target_langs.
        At most MULTI_TARGET_CONCURRENCY targets are translated at once.

        Raises:
            ValueError: If no target language is given.
            DeepLError: On API failure of any target.
        """
        if not target_langs:
            raise ValueError("At least one target language is required")

        semaphore = asyncio.Semaphore(MULTI_TARGET_CONCURRENCY)

        async def run(target_lang: str) -> MultiTargetResult:
            async with semaphore:
                result = await self.translate(
                    text,
                    dataclasses.replace(options, target_lang=target_lang),
                    skip_cache=skip_cache,
                    preserve_code=preserve_code,
                )
            return MultiTargetResult(
                target_lang=target_lang,
                text=result.text,
                detected_source_lang=result.detected_source_lang,
                billed_characters=result.billed_characters,
                model_type_used=result.model_type_used,
                cached=result.cached,
            )

        return list(await asyncio.gather(*(run(lang) for lang in target_langs)))

    async def get_usage(self) -> UsageInfo:
        """Fetch account usage (never cached)."""
        return await self._client.get_usage()

    async def get_supported_languages(self, kind: str) -> list[LanguageInfo]:
        """List source or target languages, memoized for 24 hours."""
        now = self._clock()
        memo = self._language_memo.get(kind)
        if memo is not None and now - memo[0] < LANGUAGE_CACHE_TTL:
            return memo[1]

        languages = await self._client.get_supported_languages(kind)
        self._language_memo[kind] = (now, languages)
        return languages
