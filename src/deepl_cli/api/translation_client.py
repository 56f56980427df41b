# SPDX-License-Identifier: Apache-2.0
"""DeepL translate, usage and language-listing endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from deepl_cli.api.http_client import HttpClient

MAX_TEXTS_PER_REQUEST = 50


@dataclass(frozen=True)
class TranslationOptions:
    """Parameters of a translation request.

    Every field may change the translated output, so all of them take part in
    the cache fingerprint.
    """

    target_lang: str
    source_lang: str | None = None
    formality: str | None = None
    glossary_id: str | None = None
    context: str | None = None
    preserve_formatting: bool = False
    split_sentences: str | None = None  # "on", "off", "nonewlines"
    tag_handling: str | None = None  # "xml", "html"
    tag_handling_version: str | None = None
    model_type: str | None = None
    show_billed_characters: bool = False
    outline_detection: bool | None = None
    splitting_tags: tuple[str, ...] = ()
    non_splitting_tags: tuple[str, ...] = ()
    ignore_tags: tuple[str, ...] = ()
    custom_instructions: tuple[str, ...] = ()
    style_id: str | None = None
    enable_beta_languages: bool = False


@dataclass
class TranslationResult:
    """Result of translating one text."""

    text: str
    detected_source_lang: str | None = None
    billed_characters: int | None = None
    model_type_used: str | None = None
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serializable form stored in the cache (without the cached flag)."""
        return {
            "text": self.text,
            "detected_source_lang": self.detected_source_lang,
            "billed_characters": self.billed_characters,
            "model_type_used": self.model_type_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], cached: bool = False) -> TranslationResult:
        """Rebuild a result from its cached form."""
        return cls(
            text=data["text"],
            detected_source_lang=data.get("detected_source_lang"),
            billed_characters=data.get("billed_characters"),
            model_type_used=data.get("model_type_used"),
            cached=cached,
        )


def is_cached_translation(data: Any) -> bool:
    """Check that a cached payload has the shape of a TranslationResult."""
    return isinstance(data, dict) and isinstance(data.get("text"), str)


@dataclass
class ProductUsage:
    """Per-product usage counters."""

    product_type: str
    character_count: int
    api_key_character_count: int
    unit_count: int | None = None
    api_key_unit_count: int | None = None
    billing_unit: str | None = None


@dataclass
class UsageInfo:
    """Account usage returned by /v2/usage."""

    character_count: int
    character_limit: int
    api_key_character_count: int | None = None
    api_key_character_limit: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    products: list[ProductUsage] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return self.character_limit - self.character_count

    @property
    def percentage_used(self) -> float:
        if self.character_limit <= 0:
            return 0.0
        return round(self.character_count / self.character_limit * 100, 2)


@dataclass
class LanguageInfo:
    """One entry of /v2/languages."""

    language: str
    name: str
    supports_formality: bool | None = None


def _has_translations(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    translations = payload.get("translations")
    if not isinstance(translations, list) or not translations:
        return False
    return all(isinstance(t, dict) and isinstance(t.get("text"), str) for t in translations)


def _has_usage(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and isinstance(payload.get("character_count"), int)
        and isinstance(payload.get("character_limit"), int)
    )


def _has_languages(payload: Any) -> bool:
    return isinstance(payload, list) and all(
        isinstance(item, dict) and "language" in item and "name" in item
        for item in payload
    )


def build_translation_params(
    texts: list[str],
    options: TranslationOptions,
) -> list[tuple[str, str]]:
    """Build form fields for /v2/translate.

    Args:
        texts: Texts to translate (one "text" field each).
        options: Translation options.

    Returns:
        Form fields in request order.
    """
    params: list[tuple[str, str]] = [("text", t) for t in texts]
    params.append(("target_lang", options.target_lang.upper()))

    # DeepL auto-detects the source when source_lang is omitted
    if options.source_lang and options.source_lang.lower() != "auto":
        params.append(("source_lang", options.source_lang.upper()))
    if options.formality:
        params.append(("formality", options.formality))
    if options.glossary_id:
        params.append(("glossary_id", options.glossary_id))
    if options.preserve_formatting:
        params.append(("preserve_formatting", "1"))
    if options.context:
        params.append(("context", options.context))
    if options.split_sentences:
        split_map = {"on": "1", "off": "0"}
        params.append(
            ("split_sentences", split_map.get(options.split_sentences, options.split_sentences))
        )
    if options.tag_handling:
        params.append(("tag_handling", options.tag_handling))
    if options.tag_handling_version:
        params.append(("tag_handling_version", options.tag_handling_version))
    if options.model_type:
        params.append(("model_type", options.model_type))
    if options.show_billed_characters:
        params.append(("show_billed_characters", "1"))
    if options.outline_detection is not None:
        params.append(("outline_detection", "1" if options.outline_detection else "0"))
    if options.splitting_tags:
        params.append(("splitting_tags", ",".join(options.splitting_tags)))
    if options.non_splitting_tags:
        params.append(("non_splitting_tags", ",".join(options.non_splitting_tags)))
    if options.ignore_tags:
        params.append(("ignore_tags", ",".join(options.ignore_tags)))
    for instruction in options.custom_instructions:
        params.append(("custom_instructions", instruction))
    if options.style_id:
        params.append(("style_id", options.style_id))
    if options.enable_beta_languages:
        params.append(("enable_beta_languages", "1"))
    return params


class TranslationClient(HttpClient):
    """Typed access to the DeepL text translation endpoints."""

    async def translate(self, text: str, options: TranslationOptions) -> TranslationResult:
        """Translate a single text.

        Raises:
            DeepLError: On classified API failure.
        """
        results = await self.translate_batch([text], options)
        return results[0]

    async def translate_batch(
        self,
        texts: list[str],
        options: TranslationOptions,
    ) -> list[TranslationResult]:
        """Translate texts in one request (at most MAX_TEXTS_PER_REQUEST).

        Raises:
            MalformedResponseError: If the number of translations differs
                from the number of texts.
            DeepLError: On classified API failure.
        """
        if not texts:
            return []
        if len(texts) > MAX_TEXTS_PER_REQUEST:
            raise ValueError(
                f"At most {MAX_TEXTS_PER_REQUEST} texts per request, got {len(texts)}"
            )

        expected = len(texts)
        payload = await self.post_form(
            "/v2/translate",
            build_translation_params(texts, options),
            validate=lambda p: _has_translations(p) and len(p["translations"]) == expected,
        )

        fallback_billed = payload.get("billed_characters")
        return [
            TranslationResult(
                text=t["text"],
                detected_source_lang=(
                    t["detected_source_language"].lower()
                    if t.get("detected_source_language")
                    else None
                ),
                billed_characters=t.get("billed_characters", fallback_billed),
                model_type_used=t.get("model_type_used"),
            )
            for t in payload["translations"]
        ]

    async def get_usage(self) -> UsageInfo:
        """Fetch account usage."""
        payload = await self.get("/v2/usage", validate=_has_usage)
        products = [
            ProductUsage(
                product_type=p.get("product_type", ""),
                character_count=p.get("character_count", 0),
                api_key_character_count=p.get("api_key_character_count", 0),
                unit_count=p.get("unit_count"),
                api_key_unit_count=p.get("api_key_unit_count"),
                billing_unit=p.get("billing_unit"),
            )
            for p in payload.get("products") or []
        ]
        return UsageInfo(
            character_count=payload["character_count"],
            character_limit=payload["character_limit"],
            api_key_character_count=payload.get("api_key_character_count"),
            api_key_character_limit=payload.get("api_key_character_limit"),
            start_time=payload.get("start_time"),
            end_time=payload.get("end_time"),
            products=products,
        )

    async def get_supported_languages(self, kind: str) -> list[LanguageInfo]:
        """List source or target languages.

        Args:
            kind: "source" or "target".
        """
        if kind not in ("source", "target"):
            raise ValueError(f"Language type must be 'source' or 'target', got {kind!r}")
        payload = await self.get("/v2/languages", params={"type": kind}, validate=_has_languages)
        return [
            LanguageInfo(
                language=item["language"].lower(),
                name=item["name"],
                supports_formality=item.get("supports_formality"),
            )
            for item in payload
        ]
