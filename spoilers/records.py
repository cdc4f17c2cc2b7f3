"""Lookup and filtering of chapter spoiler records."""

from __future__ import annotations

import logging
from typing import Collection, Iterable

from reader.state import ReadingProgress, SpoilerOverride
from wiki.models import ChapterSpoilerRecord, DependencyTag, OrdinalTag, SpoilerCategory, SpoilerSeverity

from .gates import CONSERVATIVE_FLOOR, can_view, gate_record

logger = logging.getLogger(__name__)


class SpoilerNotFound(LookupError):
    """A spoiler record or one of its prerequisite chapters is unknown."""


class SpoilerRecordIndex:
    """Records keyed by id, optionally checked against the known chapters."""

    def __init__(
        self,
        records: Iterable[ChapterSpoilerRecord],
        known_chapter_ids: Collection[int] | None = None,
    ):
        self._records = {str(r.id): r for r in records}
        self._known_chapters = frozenset(known_chapter_ids) if known_chapter_ids is not None else None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, spoiler_id: object) -> bool:
        return str(spoiler_id) in self._records

    def get(self, spoiler_id: int | str) -> ChapterSpoilerRecord:
        record = self._records.get(str(spoiler_id))
        if record is None:
            raise SpoilerNotFound(f"Spoiler with ID {spoiler_id} not found")
        if self._known_chapters is not None and isinstance(record.tag, DependencyTag):
            missing = record.tag.prerequisite_chapter_ids - self._known_chapters
            if missing:
                raise SpoilerNotFound(
                    f"Spoiler {spoiler_id} depends on unknown chapters {sorted(missing)}"
                )
        return record

    def can_view_id(self, spoiler_id: int | str, read_chapter_ids: Collection[int]) -> bool:
        """Dependency gate by id; anything unresolved counts as not visible."""
        try:
            record = self.get(spoiler_id)
        except SpoilerNotFound as exc:
            logger.debug("Hiding unresolved spoiler: %s", exc)
            return False
        if not isinstance(record.tag, DependencyTag):
            return False
        return can_view(read_chapter_ids, record)


def viewable_records(
    records: Iterable[ChapterSpoilerRecord],
    progress: ReadingProgress | int,
    override: SpoilerOverride | None = None,
    read_chapter_ids: Collection[int] | None = None,
    severity: SpoilerSeverity | str | None = None,
    category: SpoilerCategory | str | None = None,
    verified_only: bool = False,
    conservative_floor: int = CONSERVATIVE_FLOOR,
) -> list[ChapterSpoilerRecord]:
    """Records the viewer may see, narrowed by the optional filters."""
    sev = SpoilerSeverity(severity) if severity is not None else None
    cat = SpoilerCategory(category) if category is not None else None
    result = []
    for record in records:
        if sev is not None and record.severity is not sev:
            continue
        if cat is not None and record.category is not cat:
            continue
        if verified_only and not record.verified:
            continue
        if gate_record(record, progress, override, read_chapter_ids, conservative_floor):
            result.append(record)
    return result


def reveal_hint(record: ChapterSpoilerRecord) -> str:
    """Short text telling a viewer what unlocks a hidden record."""
    tag = record.tag
    if isinstance(tag, OrdinalTag):
        return f"Read up to Chapter {tag.threshold_chapter}"
    if isinstance(tag, DependencyTag):
        if not tag.prerequisite_chapter_ids:
            return "No reading required"
        chapters = ", ".join(str(c) for c in sorted(tag.prerequisite_chapter_ids))
        return f"Read chapters {chapters}"
    return "Spoiler details unavailable"
