# SPDX-License-Identifier: Apache-2.0
"""Tests for the DeepL endpoint client."""

import pytest
from mock_http import attach_session, response_context

from deepl_cli.api.errors import MalformedResponseError
from deepl_cli.api.translation_client import (
    MAX_TEXTS_PER_REQUEST,
    TranslationClient,
    TranslationOptions,
    TranslationResult,
    UsageInfo,
    build_translation_params,
    is_cached_translation,
)


def make_client() -> TranslationClient:
    return TranslationClient("test-key", retry_initial_delay=0)


class TestBuildTranslationParams:
    """Test form field construction."""

    def test_basic_fields(self) -> None:
        """Texts repeat as text fields; languages are upper-cased."""
        params = build_translation_params(
            ["Hello", "World"], TranslationOptions(target_lang="de", source_lang="en")
        )
        assert params == [
            ("text", "Hello"),
            ("text", "World"),
            ("target_lang", "DE"),
            ("source_lang", "EN"),
        ]

    def test_auto_source_omitted(self) -> None:
        """source_lang 'auto' lets the API detect the language."""
        params = build_translation_params(
            ["Hi"], TranslationOptions(target_lang="ja", source_lang="auto")
        )
        assert ("source_lang", "AUTO") not in params
        assert all(key != "source_lang" for key, _ in params)

    def test_optional_fields(self) -> None:
        """Optional options map to their API fields."""
        options = TranslationOptions(
            target_lang="de",
            formality="more",
            glossary_id="g-1",
            preserve_formatting=True,
            split_sentences="off",
            tag_handling="xml",
            model_type="quality_optimized",
            outline_detection=False,
            ignore_tags=("code", "pre"),
            custom_instructions=("Be brief", "Use du"),
        )
        params = dict(build_translation_params(["x"], options))
        assert params["formality"] == "more"
        assert params["glossary_id"] == "g-1"
        assert params["preserve_formatting"] == "1"
        assert params["split_sentences"] == "0"
        assert params["tag_handling"] == "xml"
        assert params["model_type"] == "quality_optimized"
        assert params["outline_detection"] == "0"
        assert params["ignore_tags"] == "code,pre"

        instructions = [
            value
            for key, value in build_translation_params(["x"], options)
            if key == "custom_instructions"
        ]
        assert instructions == ["Be brief", "Use du"]


class TestTranslationResult:
    """Test result serialization for the cache."""

    def test_cached_form(self) -> None:
        """The cached form omits the cached flag and restores it on load."""
        result = TranslationResult(text="Hallo", detected_source_lang="en")
        data = result.to_dict()
        assert "cached" not in data
        restored = TranslationResult.from_dict(data, cached=True)
        assert restored.text == "Hallo"
        assert restored.detected_source_lang == "en"
        assert restored.cached is True

    def test_is_cached_translation(self) -> None:
        """Only dicts with a text string pass the guard."""
        assert is_cached_translation({"text": "Hallo"})
        assert not is_cached_translation({"text": 1})
        assert not is_cached_translation("Hallo")
        assert not is_cached_translation(None)


class TestTranslate:
    """Test the translate endpoint."""

    @pytest.mark.asyncio
    async def test_translate_single(self) -> None:
        """A single translation is parsed from the response."""
        client = make_client()
        session = attach_session(
            client,
            response_context(
                200,
                {
                    "translations": [
                        {
                            "detected_source_language": "EN",
                            "text": "Hallo Welt",
                            "billed_characters": 11,
                        }
                    ]
                },
            ),
        )

        result = await client.translate("Hello world", TranslationOptions(target_lang="de"))

        assert result.text == "Hallo Welt"
        assert result.detected_source_lang == "en"
        assert result.billed_characters == 11
        assert result.cached is False
        args, kwargs = session.request.call_args
        assert args[0] == "POST"
        assert args[1].endswith("/v2/translate")
        assert ("text", "Hello world") in kwargs["data"]

    @pytest.mark.asyncio
    async def test_translate_batch_keeps_order(self) -> None:
        """Results follow the order of the texts."""
        client = make_client()
        attach_session(
            client,
            response_context(200, {"translations": [{"text": "Eins"}, {"text": "Zwei"}]}),
        )

        results = await client.translate_batch(
            ["One", "Two"], TranslationOptions(target_lang="de")
        )
        assert [r.text for r in results] == ["Eins", "Zwei"]

    @pytest.mark.asyncio
    async def test_translation_count_mismatch(self) -> None:
        """A response with the wrong number of translations is malformed."""
        client = make_client()
        attach_session(client, response_context(200, {"translations": [{"text": "Eins"}]}))

        with pytest.raises(MalformedResponseError):
            await client.translate_batch(["One", "Two"], TranslationOptions(target_lang="de"))

    @pytest.mark.asyncio
    async def test_missing_translations_field(self) -> None:
        """A response without translations is malformed."""
        client = make_client()
        attach_session(client, response_context(200, {"result": "ok"}))

        with pytest.raises(MalformedResponseError):
            await client.translate("Hello", TranslationOptions(target_lang="de"))

    @pytest.mark.asyncio
    async def test_too_many_texts(self) -> None:
        """More texts than one request allows are rejected locally."""
        client = make_client()
        with pytest.raises(ValueError):
            await client.translate_batch(
                ["x"] * (MAX_TEXTS_PER_REQUEST + 1), TranslationOptions(target_lang="de")
            )

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        """An empty batch makes no request."""
        client = make_client()
        session = attach_session(client)
        assert await client.translate_batch([], TranslationOptions(target_lang="de")) == []
        session.request.assert_not_called()


class TestUsageAndLanguages:
    """Test usage and language endpoints."""

    @pytest.mark.asyncio
    async def test_get_usage(self) -> None:
        """Usage counters are parsed and derived values computed."""
        client = make_client()
        attach_session(
            client,
            response_context(
                200,
                {
                    "character_count": 250_000,
                    "character_limit": 500_000,
                    "products": [
                        {
                            "product_type": "translate",
                            "character_count": 250_000,
                            "api_key_character_count": 1000,
                        }
                    ],
                },
            ),
        )

        usage = await client.get_usage()

        assert isinstance(usage, UsageInfo)
        assert usage.remaining == 250_000
        assert usage.percentage_used == 50.0
        assert usage.products[0].product_type == "translate"

    def test_percentage_with_zero_limit(self) -> None:
        """A zero limit reports 0% instead of dividing by zero."""
        assert UsageInfo(character_count=10, character_limit=0).percentage_used == 0.0

    @pytest.mark.asyncio
    async def test_get_supported_languages(self) -> None:
        """Languages are listed with lower-case codes."""
        client = make_client()
        session = attach_session(
            client,
            response_context(
                200,
                [
                    {"language": "DE", "name": "German", "supports_formality": True},
                    {"language": "EN-US", "name": "English (American)"},
                ],
            ),
        )

        languages = await client.get_supported_languages("target")

        assert [lang.language for lang in languages] == ["de", "en-us"]
        assert languages[0].supports_formality is True
        _, kwargs = session.request.call_args
        assert kwargs["params"] == {"type": "target"}

    @pytest.mark.asyncio
    async def test_invalid_language_type(self) -> None:
        """Only source and target lists exist."""
        client = make_client()
        with pytest.raises(ValueError):
            await client.get_supported_languages("both")
