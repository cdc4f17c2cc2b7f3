"""Data models for wiki API responses."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    GAMBLE = "gamble"
    DECISION = "decision"
    REVEAL = "reveal"
    SHIFT = "shift"
    RESOLUTION = "resolution"
    OTHER = "other"


class SpoilerSeverity(str, Enum):
    REVEAL = "reveal"
    OUTCOME = "outcome"
    TWIST = "twist"
    FATE = "fate"


class SpoilerCategory(str, Enum):
    PLOT = "plot"
    CHARACTER = "character"
    PLOT_TWIST = "plot_twist"


class TagKind(str, Enum):
    ORDINAL = "ordinal"
    DEPENDENCY = "dependency"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_int(value: Any, default: int | None = None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_enum(enum_cls: type[Enum], value: Any, default: Enum) -> Any:
    try:
        return enum_cls(_as_text(value).lower())
    except ValueError:
        return default


def _chapter_ids(values: Any) -> frozenset[int]:
    """Normalize prerequisite chapters that may arrive as ids or nested objects."""
    ids: set[int] = set()
    for item in values or []:
        raw = item.get("id") if isinstance(item, dict) else item
        chapter_id = _as_int(raw)
        if chapter_id is not None:
            ids.add(chapter_id)
    return frozenset(ids)


@dataclass(frozen=True)
class NarrativeEvent:
    id: str
    chapter_ordinal: int
    kind: EventKind = EventKind.OTHER
    title: str = ""
    description: str = ""

    @classmethod
    def from_api(cls, data: dict) -> NarrativeEvent:
        return cls(
            id=_as_text(data.get("id", "")),
            chapter_ordinal=_as_int(data.get("chapterNumber", data.get("chapter_number")), 0),
            kind=_as_enum(EventKind, data.get("type", data.get("kind")), EventKind.OTHER),
            title=_as_text(data.get("title", "")),
            description=_as_text(data.get("description", "")),
        )


@dataclass(frozen=True)
class OrdinalTag:
    threshold_chapter: int
    kind: TagKind = field(default=TagKind.ORDINAL, init=False)


@dataclass(frozen=True)
class DependencyTag:
    prerequisite_chapter_ids: frozenset[int] = frozenset()
    kind: TagKind = field(default=TagKind.DEPENDENCY, init=False)


SpoilerTag = Union[OrdinalTag, DependencyTag]


def parse_spoiler_tag(data: dict) -> SpoilerTag | None:
    """Build the tag variant for a spoiler record payload.

    An explicit ``kind`` always decides. Without one, a prerequisite list makes
    a dependency tag and a chapter number makes an ordinal tag. A payload that
    carries both an explicit ``thresholdChapter`` and prerequisites is
    ambiguous and yields ``None``, as does a payload with neither shape.
    """
    prereq_raw = data.get("prerequisiteChapterIds", data.get("dependencies"))
    threshold = _as_int(data.get("thresholdChapter"))
    chapter_number = _as_int(data.get("chapterNumber", data.get("chapter_number")))

    kind = _as_text(data.get("kind", data.get("spoilerKind"))).lower()
    if kind == TagKind.DEPENDENCY.value:
        return DependencyTag(_chapter_ids(prereq_raw))
    if kind == TagKind.ORDINAL.value:
        value = threshold if threshold is not None else chapter_number
        return OrdinalTag(value) if value is not None else None

    if prereq_raw is not None:
        if threshold is not None:
            logger.warning("Spoiler %s carries both threshold and prerequisites", data.get("id"))
            return None
        return DependencyTag(_chapter_ids(prereq_raw))
    if threshold is not None:
        return OrdinalTag(threshold)
    if chapter_number is not None:
        return OrdinalTag(chapter_number)
    return None


@dataclass(frozen=True)
class ChapterSpoilerRecord:
    id: str
    chapter_number: int | None
    tag: SpoilerTag | None
    severity: SpoilerSeverity = SpoilerSeverity.REVEAL
    category: SpoilerCategory = SpoilerCategory.PLOT
    verified: bool = False
    content: str = ""

    @classmethod
    def from_api(cls, data: dict) -> ChapterSpoilerRecord:
        return cls(
            id=_as_text(data.get("id", "")),
            chapter_number=_as_int(data.get("chapterNumber", data.get("chapter_number"))),
            tag=parse_spoiler_tag(data),
            severity=_as_enum(SpoilerSeverity, data.get("level", data.get("severity")), SpoilerSeverity.REVEAL),
            category=_as_enum(SpoilerCategory, data.get("category"), SpoilerCategory.PLOT),
            verified=bool(data.get("isVerified", data.get("verified", False))),
            content=_as_text(data.get("content", data.get("description", ""))),
        )
