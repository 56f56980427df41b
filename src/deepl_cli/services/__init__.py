# SPDX-License-Identifier: Apache-2.0
"""Translation services built on the API client and cache."""

from .batch_translation import (
    BatchOptions,
    BatchResult,
    BatchStatistics,
    BatchStatus,
    BatchTranslationService,
    BatchUnit,
    generate_output_path,
)
from .file_translation import SUPPORTED_EXTENSIONS, FileMultiTargetResult, FileTranslationService
from .progress import Progress, ProgressCallback
from .translation import (
    MultiTargetResult,
    TranslationService,
    generate_cache_key,
    preserve_code_blocks,
    preserve_variables,
    restore_preserved,
)

__all__ = [
    # Text
    "MultiTargetResult",
    "TranslationService",
    "generate_cache_key",
    "preserve_code_blocks",
    "preserve_variables",
    "restore_preserved",
    # Files
    "FileMultiTargetResult",
    "FileTranslationService",
    "SUPPORTED_EXTENSIONS",
    # Batch
    "BatchOptions",
    "BatchResult",
    "BatchStatistics",
    "BatchStatus",
    "BatchTranslationService",
    "BatchUnit",
    "generate_output_path",
    # Progress
    "Progress",
    "ProgressCallback",
]
