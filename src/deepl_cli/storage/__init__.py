# SPDX-License-Identifier: Apache-2.0
"""Local persistent storage."""

from .cache import DEFAULT_MAX_SIZE, DEFAULT_TTL, CacheService, CacheStats
from .paths import ResolvedPaths, resolve_paths

__all__ = [
    "CacheService",
    "CacheStats",
    "DEFAULT_MAX_SIZE",
    "DEFAULT_TTL",
    "ResolvedPaths",
    "resolve_paths",
]
