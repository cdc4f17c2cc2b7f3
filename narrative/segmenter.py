"""Timeline segmentation: cluster narrative events into narrative units.

Each resolution anchors a unit and pulls in the nearest earlier gamble plus
the decisions, reveals and shifts between them. Whatever is left over is
grouped by chapter proximity.

The gamble match is greedy: it takes the latest unused gamble at or before the
resolution, so interleaved storylines sharing a chapter range can pair a
gamble with the wrong resolution. A segmenter driven by explicit causal links
can replace ``BackwardGambleSegmenter`` behind the ``Segmenter`` protocol.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from reader.config import DisplaySettings
from wiki.models import EventKind, NarrativeEvent

logger = logging.getLogger(__name__)

PROXIMITY_WINDOW = 5

_BRIDGE_KINDS = frozenset({EventKind.DECISION, EventKind.REVEAL, EventKind.SHIFT})


@dataclass(frozen=True)
class NarrativeUnit:
    members: tuple[NarrativeEvent, ...]
    setup_event: NarrativeEvent | None = None
    anchor_resolution: NarrativeEvent | None = None

    @property
    def chapter_range(self) -> tuple[int, int]:
        chapters = [e.chapter_ordinal for e in self.members]
        return min(chapters), max(chapters)

    @property
    def is_orphan_cluster(self) -> bool:
        return self.anchor_resolution is None


class Segmenter(Protocol):
    def segment(self, events: Iterable[NarrativeEvent]) -> list[NarrativeUnit]: ...


def _by_chapter(events: list[NarrativeEvent]) -> list[NarrativeEvent]:
    # sorted() is stable, so ties keep input order
    return sorted(events, key=lambda e: e.chapter_ordinal)


class BackwardGambleSegmenter:
    """Resolution-anchored segmentation with proximity clustering."""

    def __init__(self, proximity_window: int = PROXIMITY_WINDOW):
        self.proximity_window = proximity_window

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> BackwardGambleSegmenter:
        return cls(proximity_window=DisplaySettings.from_config(cfg).proximity_window)

    def segment(self, events: Iterable[NarrativeEvent]) -> list[NarrativeUnit]:
        ordered = _by_chapter(list(events))
        if not ordered:
            return []

        # Track by position: event ids are not guaranteed unique upstream
        used: set[int] = set()
        units: list[NarrativeUnit] = []

        resolutions = [i for i, e in enumerate(ordered) if e.kind is EventKind.RESOLUTION]
        if not resolutions:
            logger.debug("No resolutions among %d events; single unit", len(ordered))
            return [NarrativeUnit(members=tuple(ordered))]

        for r_idx in resolutions:
            if r_idx in used:
                continue
            resolution = ordered[r_idx]
            used.add(r_idx)
            member_idx = [r_idx]

            g_idx = self._nearest_gamble(ordered, used, resolution.chapter_ordinal)
            gamble = None
            if g_idx is not None:
                gamble = ordered[g_idx]
                used.add(g_idx)
                member_idx.append(g_idx)
                for i, event in enumerate(ordered):
                    if i in used or event.kind not in _BRIDGE_KINDS:
                        continue
                    if gamble.chapter_ordinal <= event.chapter_ordinal <= resolution.chapter_ordinal:
                        used.add(i)
                        member_idx.append(i)

            members = tuple(ordered[i] for i in sorted(member_idx))
            units.append(NarrativeUnit(members=members, setup_event=gamble, anchor_resolution=resolution))

        orphans = [e for i, e in enumerate(ordered) if i not in used]
        units.extend(NarrativeUnit(members=tuple(c)) for c in self._cluster(orphans))

        units.sort(key=lambda u: u.chapter_range[0])
        logger.debug("Segmented %d events into %d units", len(ordered), len(units))
        return units

    @staticmethod
    def _nearest_gamble(ordered: list[NarrativeEvent], used: set[int], chapter: int) -> int | None:
        for i in range(len(ordered) - 1, -1, -1):
            event = ordered[i]
            if event.kind is EventKind.GAMBLE and event.chapter_ordinal <= chapter and i not in used:
                return i
        return None

    def _cluster(self, orphans: list[NarrativeEvent]) -> list[list[NarrativeEvent]]:
        clusters: list[list[NarrativeEvent]] = []
        current: list[NarrativeEvent] = []
        for event in orphans:
            if current and event.chapter_ordinal - current[-1].chapter_ordinal > self.proximity_window:
                clusters.append(current)
                current = []
            current.append(event)
        if current:
            clusters.append(current)
        return clusters


_default = BackwardGambleSegmenter()


def segment(events: Iterable[NarrativeEvent]) -> list[NarrativeUnit]:
    """Segment with the default greedy segmenter."""
    return _default.segment(events)
