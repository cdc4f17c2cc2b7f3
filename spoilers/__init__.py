"""Spoiler policy - ordinal and dependency gates."""

from .gates import (
    CONSERVATIVE_FLOOR,
    GateMismatchError,
    can_view,
    effective_progress,
    gate_record,
    is_visible,
    visible,
)
from .records import SpoilerNotFound, SpoilerRecordIndex, reveal_hint, viewable_records

__all__ = [
    "CONSERVATIVE_FLOOR",
    "GateMismatchError",
    "SpoilerNotFound",
    "SpoilerRecordIndex",
    "can_view",
    "effective_progress",
    "gate_record",
    "is_visible",
    "reveal_hint",
    "viewable_records",
    "visible",
]
