"""Viewer-scoped reading state: progress and spoiler override."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

DEFAULT_MAX_CHAPTER = 539
MIN_CHAPTER = 1


class ProgressSource(str, Enum):
    SERVER = "server"
    LOCAL = "local"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def clamp_chapter(value: int, max_chapter: int = DEFAULT_MAX_CHAPTER) -> int:
    """Clamp a self-reported chapter into ``[1, max_chapter]``."""
    return min(max(int(value), MIN_CHAPTER), max_chapter)


@dataclass(frozen=True)
class ReadingProgress:
    """The authoritative chapter a viewer has read up to."""

    value: int
    source: ProgressSource = ProgressSource.LOCAL
    updated_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class SpoilerOverride:
    """Viewer's explicit spoiler preferences (client cached only)."""

    show_all: bool = False
    tolerance_override: int = 0

    def __post_init__(self) -> None:
        if self.tolerance_override < 0:
            object.__setattr__(self, "tolerance_override", 0)
