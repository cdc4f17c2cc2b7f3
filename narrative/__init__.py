"""Narrative timeline: segmentation of events into narrative units."""

from .labels import filter_events, titled_units, unit_title
from .segmenter import (
    PROXIMITY_WINDOW,
    BackwardGambleSegmenter,
    NarrativeUnit,
    Segmenter,
    segment,
)

__all__ = [
    "PROXIMITY_WINDOW",
    "BackwardGambleSegmenter",
    "NarrativeUnit",
    "Segmenter",
    "filter_events",
    "segment",
    "titled_units",
    "unit_title",
]
