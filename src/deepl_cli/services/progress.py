# SPDX-License-Identifier: Apache-2.0
"""Progress reporting for batch translation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class Progress:
    """Batch progress after a unit reached a terminal state."""

    completed: int
    total: int
    current: str | None = None


@runtime_checkable
class ProgressCallback(Protocol):
    """Progress callback protocol."""

    def __call__(self, progress: Progress) -> None: ...
