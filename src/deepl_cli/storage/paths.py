# SPDX-License-Identifier: Apache-2.0
"""Configuration and cache file locations."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

APP_DIR_NAME = "deepl-cli"


@dataclass(frozen=True)
class ResolvedPaths:
    config_dir: Path
    config_file: Path
    cache_dir: Path
    cache_file: Path


def resolve_paths() -> ResolvedPaths:
    """Resolve where configuration and cache live.

    Priority:
        1. DEEPL_CONFIG_DIR (config and cache share the directory)
        2. legacy ~/.deepl-cli/ if it exists
        3. XDG_CONFIG_HOME / XDG_CACHE_HOME (default ~/.config, ~/.cache)
    """
    override = os.environ.get("DEEPL_CONFIG_DIR")
    if override:
        base = Path(override).expanduser()
        return ResolvedPaths(base, base / "config.json", base, base / "cache.db")

    home = Path.home()
    legacy = home / f".{APP_DIR_NAME}"
    if legacy.is_dir():
        return ResolvedPaths(legacy, legacy / "config.json", legacy, legacy / "cache.db")

    config_home = Path(os.environ.get("XDG_CONFIG_HOME") or home / ".config")
    cache_home = Path(os.environ.get("XDG_CACHE_HOME") or home / ".cache")
    config_dir = config_home / APP_DIR_NAME
    cache_dir = cache_home / APP_DIR_NAME
    return ResolvedPaths(
        config_dir,
        config_dir / "config.json",
        cache_dir,
        cache_dir / "cache.db",
    )
