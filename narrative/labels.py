"""Display titles for narrative units and event-kind filtering."""

from __future__ import annotations

from typing import Iterable

from wiki.models import EventKind, NarrativeEvent

from .segmenter import NarrativeUnit


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def filter_events(
    events: Iterable[NarrativeEvent],
    kinds: Iterable[EventKind | str] | None = None,
) -> list[NarrativeEvent]:
    """Keep events of the selected kinds; no selection keeps everything."""
    selected = {EventKind(k) for k in kinds} if kinds else set()
    if not selected:
        return list(events)
    return [e for e in events if e.kind in selected]


def unit_title(unit: NarrativeUnit, index: int, arc_name: str = "") -> str:
    """Human-facing section title.

    ``index`` is 1-based and counts units of the same family (anchored units
    or transition clusters), matching how the timeline numbers its sections.
    """
    if unit.anchor_resolution is not None:
        if unit.setup_event is not None:
            return f"{_truncate(unit.setup_event.title, 30)} → Resolution"
        return f"Narrative Unit {index}"
    if arc_name and index == 0:
        return f"{arc_name} Arc Events"
    if len(unit.members) == 1:
        return f"{_truncate(unit.members[0].title, 25)} (Transition)"
    return f"Transition Events {index}"


def titled_units(units: list[NarrativeUnit], arc_name: str = "") -> list[tuple[str, NarrativeUnit]]:
    """Pair each unit with its title, numbering each family separately.

    Sorted order among anchored units is resolution order: a resolution left
    without a gamble had no unused gamble at or before its chapter, so every
    unit anchored after it starts later.
    """
    has_anchor = any(u.anchor_resolution is not None for u in units)
    anchored = 0
    transitions = 0
    titled = []
    for unit in units:
        if unit.anchor_resolution is not None:
            anchored += 1
            titled.append((unit_title(unit, anchored, arc_name), unit))
        elif not has_anchor and len(units) == 1:
            # Fallback unit when no resolutions exist
            titled.append((unit_title(unit, 0, arc_name or "Timeline"), unit))
        else:
            transitions += 1
            titled.append((unit_title(unit, transitions, arc_name), unit))
    return titled
