# SPDX-License-Identifier: Apache-2.0
"""
DeepL CLI

Translates text and .txt/.md files with the DeepL API, caching results
locally.

Usage:
    deepl translate <text|file|directory>... -t <lang>[,<lang>...] [options]
    deepl usage
    deepl languages [--type source|target]
    deepl cache stats|clear

Examples:
    deepl translate "Hello world" -t de
    deepl translate "Hello world" -t de,fr,ja
    deepl translate README.md -t ja -o README.ja.md
    deepl translate docs/ -t de -o translated/ --output-pattern "{name}_{lang}{ext}"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import NoReturn

from deepl_cli.api.errors import ConfigurationError, DeepLError
from deepl_cli.api.translation_client import TranslationOptions
from deepl_cli.config import Settings, create_cache, create_translation_service, load_settings
from deepl_cli.services.batch_translation import (
    BatchOptions,
    BatchResult,
    BatchTranslationService,
)
from deepl_cli.services.file_translation import FileTranslationService
from deepl_cli.services.progress import Progress
from deepl_cli.services.translation import TranslationService

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Arguments to parse (default: sys.argv[1:]).

    Returns:
        Parsed argument Namespace.
    """
    parser = argparse.ArgumentParser(
        prog="deepl",
        description="DeepL CLI - Translate text and files with the DeepL API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  DEEPL_API_KEY         DeepL API key (required for translate, usage, languages)
  DEEPL_API_URL         API base URL (optional)
  DEEPL_USE_PRO         Use the pro endpoint (default: false)
  DEEPL_CACHE_ENABLED   Enable the translation cache (default: true)
  DEEPL_CACHE_MAX_SIZE  Cache size bound, e.g. 500M (default: 1G)
  DEEPL_CONFIG_DIR      Config and cache directory
""",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # translate
    translate = subparsers.add_parser(
        "translate",
        help="Translate text, files or a directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  deepl translate "Hello world" -t de
  deepl translate "Hello world" -t de,fr,ja
  deepl translate notes.md -t ja -o notes.ja.md
  deepl translate docs/ -t de -o out/ --pattern "*.md"
""",
    )
    translate.add_argument(
        "inputs",
        nargs="+",
        help="Text to translate, or paths of files/directories",
    )
    translate.add_argument(
        "-t",
        "--to",
        required=True,
        help="Target language code(s), comma-separated (e.g. de or de,fr,ja)",
    )
    translate.add_argument(
        "-s",
        "--from",
        dest="source",
        help="Source language code (default: auto-detect)",
    )
    translate.add_argument(
        "--formality",
        choices=["default", "more", "less", "prefer_more", "prefer_less"],
        help="Formality of the translation",
    )
    translate.add_argument(
        "--glossary-id",
        help="Glossary to apply",
    )
    translate.add_argument(
        "--model-type",
        choices=["quality_optimized", "prefer_quality_optimized", "latency_optimized"],
        help="Translation model type",
    )
    translate.add_argument(
        "--tag-handling",
        choices=["xml", "html"],
        help="Treat input as XML or HTML",
    )
    translate.add_argument(
        "--no-cache",
        action="store_true",
        help="Bypass the translation cache",
    )

    file_group = translate.add_argument_group("File options")
    file_group.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Output file (single file) or directory",
    )
    file_group.add_argument(
        "--output-pattern",
        metavar="PATTERN",
        help="Output file name pattern with {name}, {lang}, {ext} (default: {name}.{lang}{ext})",
    )
    file_group.add_argument(
        "--pattern",
        default="*",
        help="Glob pattern for files in a directory (default: *)",
    )
    file_group.add_argument(
        "--no-recursive",
        action="store_true",
        help="Do not descend into sub-directories",
    )
    file_group.add_argument(
        "--concurrency",
        type=int,
        help="Files translated at once (default: DEEPL_CONCURRENCY or 5)",
    )

    # usage
    subparsers.add_parser("usage", help="Show API character usage")

    # languages
    languages = subparsers.add_parser("languages", help="List supported languages")
    languages.add_argument(
        "--type",
        dest="language_type",
        default="target",
        choices=["source", "target"],
        help="Language list to show (default: target)",
    )

    # cache
    cache = subparsers.add_parser("cache", help="Inspect or clear the translation cache")
    cache.add_argument(
        "action",
        choices=["stats", "clear"],
        help="Cache action",
    )

    return parser.parse_args(argv)


def parse_target_langs(value: str) -> list[str]:
    """Split a comma-separated target language list.

    Raises:
        ValueError: If no language remains after splitting.
    """
    langs = [lang.strip() for lang in value.split(",") if lang.strip()]
    if not langs:
        raise ValueError("At least one target language is required")
    return langs


def build_options(args: argparse.Namespace, target_lang: str) -> TranslationOptions:
    """Build translation options from translate arguments."""
    return TranslationOptions(
        target_lang=target_lang,
        source_lang=args.source,
        formality=args.formality,
        glossary_id=args.glossary_id,
        model_type=args.model_type,
        tag_handling=args.tag_handling,
    )


def print_error(error: Exception) -> None:
    """Print an error and its suggestion to stderr."""
    print(f"Error: {error}", file=sys.stderr)
    suggestion = getattr(error, "suggestion", None)
    if suggestion:
        print(f"  {suggestion}", file=sys.stderr)


def print_progress(progress: Progress) -> None:
    print(f"[{progress.completed}/{progress.total}] {progress.current}", file=sys.stderr)


def format_size(size: int) -> str:
    """Format a byte count for display."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} GB"


async def translate_text(
    service: TranslationService,
    args: argparse.Namespace,
    target_langs: list[str],
) -> int:
    text = " ".join(args.inputs)
    options = build_options(args, target_langs[0])

    if len(target_langs) == 1:
        result = await service.translate(text, options, skip_cache=args.no_cache)
        print(result.text)
        return 0

    results = await service.translate_to_multiple(
        text, options, target_langs, skip_cache=args.no_cache
    )
    for result in results:
        print(f"[{result.target_lang}] {result.text}")
    return 0


async def translate_paths(
    service: TranslationService,
    settings: Settings,
    args: argparse.Namespace,
    paths: list[Path],
    target_langs: list[str],
) -> int:
    if args.no_cache and service.cache is not None:
        service.cache.disable()

    file_service = FileTranslationService(service)

    # Single file into a single explicit output file
    if (
        len(paths) == 1
        and paths[0].is_file()
        and len(target_langs) == 1
        and args.output is not None
        and args.output.suffix
    ):
        await file_service.translate_file(
            paths[0], args.output, build_options(args, target_langs[0])
        )
        print(f"Complete: {args.output}")
        return 0

    batch = BatchTranslationService(
        file_service, concurrency=args.concurrency or settings.concurrency
    )
    batch_options = BatchOptions(
        output_dir=args.output,
        output_pattern=args.output_pattern,
        recursive=not args.no_recursive,
        pattern=args.pattern,
        on_progress=print_progress,
    )
    directories = [p for p in paths if p.is_dir()]
    files = [p for p in paths if not p.is_dir()]

    combined = BatchResult()
    for lang in target_langs:
        options = build_options(args, lang)
        results = [
            await batch.translate_directory(directory, options, batch_options)
            for directory in directories
        ]
        if files:
            results.append(await batch.translate_files(files, options, batch_options))
        for result in results:
            combined.successful.extend(result.successful)
            combined.failed.extend(result.failed)
            combined.skipped.extend(result.skipped)

    stats = BatchTranslationService.get_statistics(combined)
    for unit in combined.successful:
        print(f"Complete: {unit.output_path}")
    for unit in combined.skipped:
        print(f"Skipped: {unit.source_path} ({unit.reason})", file=sys.stderr)
    for unit in combined.failed:
        print(f"Failed: {unit.source_path} [{unit.target_lang}]: {unit.error}", file=sys.stderr)
    print(
        f"\nTranslated: {stats.successful}  Failed: {stats.failed}  Skipped: {stats.skipped}"
    )
    return 1 if stats.failed else 0


async def run_translate(
    service: TranslationService,
    settings: Settings,
    args: argparse.Namespace,
) -> int:
    """Translate text or files depending on what the inputs name."""
    target_langs = parse_target_langs(args.to)
    paths = [Path(value) for value in args.inputs]

    if all(path.exists() for path in paths):
        logger.debug("Translating %d path(s) into %s", len(paths), ", ".join(target_langs))
        return await translate_paths(service, settings, args, paths, target_langs)
    return await translate_text(service, args, target_langs)


async def run_usage(service: TranslationService) -> int:
    usage = await service.get_usage()
    print(f"Characters: {usage.character_count:,} / {usage.character_limit:,}")
    print(f"Used: {usage.percentage_used}%")
    print(f"Remaining: {usage.remaining:,}")
    for product in usage.products:
        print(f"  {product.product_type}: {product.character_count:,}")
    return 0


async def run_languages(service: TranslationService, language_type: str) -> int:
    languages = await service.get_supported_languages(language_type)
    for language in languages:
        print(f"{language.language:<8} {language.name}")
    return 0


def run_cache(settings: Settings, action: str) -> int:
    """Show cache statistics or clear the cache."""
    with create_cache(settings) as cache:
        if action == "clear":
            cache.clear()
            print("Cache cleared")
            return 0

        stats = cache.stats()
        print(f"Status: {'enabled' if stats.enabled else 'disabled'}")
        print(f"Entries: {stats.entries}")
        print(f"Size: {format_size(stats.total_size)} / {format_size(stats.max_size)}")
        print(f"Location: {cache.db_path}")
    return 0


async def run(args: argparse.Namespace) -> int:
    """Execute the selected command.

    Args:
        args: Command line arguments.

    Returns:
        Exit code (0: success, otherwise the error's exit code).
    """
    try:
        settings = load_settings()
        if args.command == "cache":
            return run_cache(settings, args.action)

        service = create_translation_service(settings)
        try:
            if args.command == "translate":
                return await run_translate(service, settings, args)
            if args.command == "usage":
                return await run_usage(service)
            return await run_languages(service, args.language_type)
        finally:
            await service.client.close()
            if service.cache is not None:
                service.cache.close()
    except (DeepLError, ConfigurationError) as e:
        print_error(e)
        return e.exit_code
    except (ValueError, OSError) as e:
        print_error(e)
        return 1


def main() -> NoReturn:
    """Main entry point."""
    args = parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    exit_code = asyncio.run(run(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
