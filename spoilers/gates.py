"""Spoiler gates: decide whether one content item may be shown unobscured.

Two independent gates exist and are not interchangeable:

- Ordinal gate: the item unlocks once the viewer has read up to a chapter.
- Dependency gate: the item unlocks once every prerequisite chapter was read,
  regardless of what lies between them.

Every gate is pure and cheap enough to call on each render. When anything is
missing or inconsistent the answer is "hidden".
"""

from __future__ import annotations

from typing import Any, Collection

from reader.state import ReadingProgress, SpoilerOverride
from wiki.models import ChapterSpoilerRecord, DependencyTag, OrdinalTag, TagKind

CONSERVATIVE_FLOOR = 5

_NO_OVERRIDE = SpoilerOverride()


class GateMismatchError(TypeError):
    """A gate was applied to a record tagged for the other gate."""


def _progress_value(progress: ReadingProgress | int) -> int:
    return progress.value if isinstance(progress, ReadingProgress) else int(progress)


def effective_progress(progress: ReadingProgress | int, override: SpoilerOverride | None = None) -> int:
    """Tolerance override wins over reading progress when it is set."""
    override = override or _NO_OVERRIDE
    if override.tolerance_override > 0:
        return override.tolerance_override
    return _progress_value(progress)


def visible(
    progress: ReadingProgress | int,
    override: SpoilerOverride | None,
    item_threshold: int | None,
    conservative_floor: int = CONSERVATIVE_FLOOR,
) -> bool:
    """Ordinal gate."""
    override = override or _NO_OVERRIDE
    if override.show_all:
        return True
    effective = effective_progress(progress, override)
    if item_threshold is None:
        return effective > conservative_floor
    return item_threshold <= effective


def item_threshold(item: Any) -> int | None:
    """Chapter an item unlocks at, for anything the ordinal gate accepts."""
    if item is None or isinstance(item, int):
        return item
    if isinstance(item, ChapterSpoilerRecord):
        if item.tag is None:
            return None
        if not isinstance(item.tag, OrdinalTag):
            raise GateMismatchError(f"Spoiler {item.id} is dependency-gated")
        return item.tag.threshold_chapter
    if isinstance(item, OrdinalTag):
        return item.threshold_chapter
    if isinstance(item, DependencyTag):
        raise GateMismatchError("Dependency tags cannot be checked against an ordinal")
    for attr in ("chapter_ordinal", "chapter_number"):
        value = getattr(item, attr, None)
        if value:
            return int(value)
    return None


def is_visible(
    item: Any,
    progress: ReadingProgress | int,
    override: SpoilerOverride | None = None,
    conservative_floor: int = CONSERVATIVE_FLOOR,
) -> bool:
    """Ordinal gate for an item (event, ordinal record, tag or bare chapter).

    Records without a usable tag fall back to the conservative default.
    """
    if isinstance(item, ChapterSpoilerRecord) and item.tag is None:
        return bool((override or _NO_OVERRIDE).show_all)
    return visible(progress, override, item_threshold(item), conservative_floor)


def can_view(read_chapter_ids: Collection[int], record: ChapterSpoilerRecord | DependencyTag) -> bool:
    """Dependency gate: every prerequisite chapter must have been read."""
    if isinstance(record, ChapterSpoilerRecord):
        if record.tag is None:
            return False
        if not isinstance(record.tag, DependencyTag):
            raise GateMismatchError(f"Spoiler {record.id} is ordinal-gated")
        tag = record.tag
    else:
        tag = record
    if not tag.prerequisite_chapter_ids:
        return True
    read = set(read_chapter_ids)
    return all(chapter_id in read for chapter_id in tag.prerequisite_chapter_ids)


def gate_record(
    record: ChapterSpoilerRecord,
    progress: ReadingProgress | int,
    override: SpoilerOverride | None = None,
    read_chapter_ids: Collection[int] | None = None,
    conservative_floor: int = CONSERVATIVE_FLOOR,
) -> bool:
    """Route a record to the gate its tag declares."""
    override = override or _NO_OVERRIDE
    if override.show_all:
        return True
    tag = record.tag
    if tag is None:
        return False
    if tag.kind is TagKind.ORDINAL:
        return visible(progress, override, tag.threshold_chapter, conservative_floor)
    if read_chapter_ids is None:
        return False
    return can_view(read_chapter_ids, tag)
