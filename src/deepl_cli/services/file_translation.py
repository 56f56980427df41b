# SPDX-License-Identifier: Apache-2.0
"""Plain-text file translation."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from deepl_cli.api.translation_client import TranslationOptions
from deepl_cli.services.translation import TranslationService

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({".txt", ".md"})


@dataclass
class FileMultiTargetResult:
    target_lang: str
    text: str
    output_path: Path | None = None


def read_text_file(path: Path) -> str:
    """Read a UTF-8 file, refusing symlinks.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the path is a symlink.
    """
    if path.is_symlink():
        raise ValueError(f"Refusing to read symlink: {path}")
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    return path.read_text(encoding="utf-8")


def atomic_write_text(path: Path, content: str) -> None:
    """Write a file via a temporary sibling and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileTranslationService:
    """Translates .txt and .md files through the translation service."""

    def __init__(self, translation_service: TranslationService) -> None:
        self._translation_service = translation_service

    def is_supported_file(self, path: Path | str) -> bool:
        """Check whether the file extension can be translated."""
        return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS

    async def _read_input(self, input_path: Path) -> str:
        if not self.is_supported_file(input_path):
            raise ValueError(f"Unsupported file type: {input_path.suffix}")
        content = await asyncio.to_thread(read_text_file, input_path)
        if not content.strip():
            raise ValueError("Cannot translate empty file")
        return content

    async def translate_file(
        self,
        input_path: Path | str,
        output_path: Path | str,
        options: TranslationOptions,
    ) -> None:
        """Translate one file and write the result.

        Reading, translating and writing happen strictly in that order.
        Code blocks and variables are kept out of the translation.

        Raises:
            ValueError: If the file type is unsupported or the file is empty.
            FileNotFoundError: If the input does not exist.
            DeepLError: On API failure.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)

        content = await self._read_input(input_path)
        result = await self._translation_service.translate(
            content, options, preserve_code=True
        )
        await asyncio.to_thread(atomic_write_text, output_path, result.text)
        logger.debug("Translated %s -> %s", input_path, output_path)

    async def translate_file_to_multiple(
        self,
        input_path: Path | str,
        target_langs: list[str],
        options: TranslationOptions,
        output_dir: Path | str | None = None,
    ) -> list[FileMultiTargetResult]:
        """Translate one file into several languages.

        When output_dir is given, each translation is written to
        ``{name}.{lang}{ext}`` inside it.
        """
        input_path = Path(input_path)
        content = await self._read_input(input_path)
        translations = await self._translation_service.translate_to_multiple(
            content, options, target_langs, preserve_code=True
        )

        results = [FileMultiTargetResult(t.target_lang, t.text) for t in translations]
        if output_dir is not None:
            out = Path(output_dir)
            for result in results:
                path = out / f"{input_path.stem}.{result.target_lang}{input_path.suffix}"
                await asyncio.to_thread(atomic_write_text, path, result.text)
                result.output_path = path
        return results
