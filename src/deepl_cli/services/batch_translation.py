# SPDX-License-Identifier: Apache-2.0
"""Batch translation of many files with bounded concurrency.

Unsupported files are skipped up front. Supported files are drained from a
queue by a fixed pool of workers, so no more than ``concurrency`` files are
being translated at any moment. A failure is recorded for its own file and
never aborts the batch.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol, Sequence

from deepl_cli.api.translation_client import TranslationOptions
from deepl_cli.services.progress import Progress, ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
MAX_CONCURRENCY = 100
UNSUPPORTED_REASON = "Unsupported file type"


class BatchStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class BatchUnit:
    """One file translated into one target language.

    Attributes:
        source_path: Input file.
        target_lang: Target language code.
        output_path: Where the translation is written (None when skipped).
        status: Terminal status, set exactly once.
        error: Failure message (FAILED only).
        reason: Skip reason (SKIPPED only).
    """

    source_path: Path
    target_lang: str
    output_path: Path | None = None
    status: BatchStatus | None = None
    error: str | None = None
    reason: str | None = None


@dataclass
class BatchResult:
    successful: list[BatchUnit] = field(default_factory=list)
    failed: list[BatchUnit] = field(default_factory=list)
    skipped: list[BatchUnit] = field(default_factory=list)


@dataclass(frozen=True)
class BatchStatistics:
    total: int
    successful: int
    failed: int
    skipped: int


@dataclass
class BatchOptions:
    """Output and discovery options for a batch.

    Attributes:
        output_dir: Output directory (default: base_dir when set, otherwise
            next to each input).
        output_pattern: File name template with {name}, {lang} and {ext}
            placeholders; {ext} includes the leading dot.
        recursive: Scan sub-directories (translate_directory only).
        pattern: Glob pattern for the scan (translate_directory only).
        base_dir: Mirror each file's sub-directory relative to this path
            beneath output_dir.
        on_progress: Called after each translated or failed file. Errors
            it raises are logged and do not stop the batch.
    """

    output_dir: Path | str | None = None
    output_pattern: str | None = None
    recursive: bool = True
    pattern: str = "*"
    base_dir: Path | str | None = None
    on_progress: ProgressCallback | None = None


class FileTranslator(Protocol):
    """What the batch needs from a file translation service."""

    def is_supported_file(self, path: Path | str) -> bool: ...

    async def translate_file(
        self,
        input_path: Path | str,
        output_path: Path | str,
        options: TranslationOptions,
    ) -> None: ...


def generate_output_path(
    input_path: Path,
    target_lang: str,
    options: BatchOptions,
) -> Path:
    """Compute the output file for an input file.

    Args:
        input_path: Source file.
        target_lang: Target language code.
        options: Batch options (output_dir, output_pattern, base_dir).

    Returns:
        Deterministic output path.
    """
    if options.output_dir:
        output_dir = Path(options.output_dir)
    elif options.base_dir:
        output_dir = Path(options.base_dir)
    else:
        output_dir = input_path.parent
    name = input_path.stem
    ext = input_path.suffix

    if options.output_pattern:
        filename = (
            options.output_pattern.replace("{name}", name)
            .replace("{lang}", target_lang)
            .replace("{ext}", ext)
        )
    else:
        filename = f"{name}.{target_lang}{ext}"

    if options.base_dir:
        relative_dir = os.path.relpath(input_path.parent, options.base_dir)
        return output_dir / relative_dir / filename
    return output_dir / filename


def _scan_directory(directory: Path, pattern: str, recursive: bool) -> list[Path]:
    candidates = directory.rglob(pattern) if recursive else directory.glob(pattern)
    files = []
    for path in candidates:
        # Hidden files and anything inside hidden directories are ignored
        if any(part.startswith(".") for part in path.relative_to(directory).parts):
            continue
        if path.is_file():
            files.append(path)
    return sorted(files)


class BatchTranslationService:
    """Translates many files concurrently, tracking each file's outcome."""

    def __init__(
        self,
        file_service: FileTranslator,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        """Initialize BatchTranslationService.

        Args:
            file_service: Service translating one file.
            concurrency: Maximum files in flight (1-100).

        Raises:
            ValueError: If concurrency is out of range.
        """
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        if concurrency > MAX_CONCURRENCY:
            raise ValueError(f"Concurrency cannot exceed {MAX_CONCURRENCY}")
        self._file_service = file_service
        self._concurrency = concurrency

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def translate_files(
        self,
        files: Sequence[Path | str],
        options: TranslationOptions,
        batch_options: BatchOptions | None = None,
    ) -> BatchResult:
        """Translate a list of files.

        Args:
            files: Input files.
            options: Translation options (target_lang names the output).
            batch_options: Output and progress options.

        Returns:
            Units grouped by terminal status.
        """
        result = BatchResult()
        if not files:
            return result

        batch_options = batch_options or BatchOptions()
        target_lang = options.target_lang
        pending: list[tuple[BatchUnit, Path]] = []

        for file in files:
            path = Path(file)
            if not self._file_service.is_supported_file(path):
                result.skipped.append(
                    BatchUnit(
                        source_path=path,
                        target_lang=target_lang,
                        status=BatchStatus.SKIPPED,
                        reason=UNSUPPORTED_REASON,
                    )
                )
                continue
            output_path = generate_output_path(path, target_lang, batch_options)
            pending.append(
                (
                    BatchUnit(source_path=path, target_lang=target_lang, output_path=output_path),
                    output_path,
                )
            )

        if not pending:
            return result

        queue: asyncio.Queue[tuple[BatchUnit, Path]] = asyncio.Queue()
        for item in pending:
            queue.put_nowait(item)

        total = len(pending)
        completed = 0

        async def worker() -> None:
            nonlocal completed
            while True:
                try:
                    unit, output_path = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await self._process_unit(unit, output_path, options, result)
                completed += 1
                self._report_progress(
                    batch_options.on_progress,
                    Progress(completed=completed, total=total, current=str(unit.source_path)),
                )

        workers = min(self._concurrency, total)
        logger.debug("Translating %d files with %d workers", total, workers)
        await asyncio.gather(*(worker() for _ in range(workers)))
        return result

    @staticmethod
    def _report_progress(callback: ProgressCallback | None, progress: Progress) -> None:
        # A broken callback must not abandon the units still queued
        if callback is None:
            return
        try:
            callback(progress)
        except Exception as e:
            logger.warning("Progress callback failed for %s: %s", progress.current, e)

    async def _process_unit(
        self,
        unit: BatchUnit,
        output_path: Path,
        options: TranslationOptions,
        result: BatchResult,
    ) -> None:
        try:
            await self._file_service.translate_file(unit.source_path, output_path, options)
        except Exception as e:
            unit.status = BatchStatus.FAILED
            unit.error = str(e) or type(e).__name__
            result.failed.append(unit)
            logger.warning("Failed to translate %s: %s", unit.source_path, unit.error)
        else:
            unit.status = BatchStatus.SUCCESS
            result.successful.append(unit)

    async def translate_directory(
        self,
        dir_path: Path | str,
        options: TranslationOptions,
        batch_options: BatchOptions | None = None,
    ) -> BatchResult:
        """Translate every supported file under a directory.

        The sub-directory layout is mirrored beneath the output directory,
        which defaults to the scanned directory itself.

        Raises:
            FileNotFoundError: If the directory does not exist.
            NotADirectoryError: If the path is not a directory.
        """
        directory = Path(dir_path)
        if not directory.exists():
            raise FileNotFoundError(f"Directory not found: {directory}")
        if not directory.is_dir():
            raise NotADirectoryError(f"Not a directory: {directory}")

        batch_options = batch_options or BatchOptions()
        found = await asyncio.to_thread(
            _scan_directory, directory, batch_options.pattern, batch_options.recursive
        )
        supported = [f for f in found if self._file_service.is_supported_file(f)]
        logger.debug(
            "Found %d files in %s, %d supported", len(found), directory, len(supported)
        )

        return await self.translate_files(
            supported,
            options,
            dataclasses.replace(
                batch_options,
                output_dir=batch_options.output_dir or directory,
                base_dir=directory,
            ),
        )

    @staticmethod
    def get_statistics(result: BatchResult) -> BatchStatistics:
        """Count units per status."""
        return BatchStatistics(
            total=len(result.successful) + len(result.failed) + len(result.skipped),
            successful=len(result.successful),
            failed=len(result.failed),
            skipped=len(result.skipped),
        )
