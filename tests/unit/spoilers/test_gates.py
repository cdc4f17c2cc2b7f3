"""Tests for the ordinal and dependency spoiler gates."""

import pytest

from reader.state import ProgressSource, ReadingProgress, SpoilerOverride
from spoilers import GateMismatchError, can_view, effective_progress, gate_record, is_visible, visible
from wiki.models import ChapterSpoilerRecord, DependencyTag, EventKind, NarrativeEvent, OrdinalTag


def _ordinal(threshold: int) -> ChapterSpoilerRecord:
    return ChapterSpoilerRecord(id=f"o{threshold}", chapter_number=threshold, tag=OrdinalTag(threshold))


def _dependency(*chapters: int) -> ChapterSpoilerRecord:
    return ChapterSpoilerRecord(id="d", chapter_number=max(chapters, default=None), tag=DependencyTag(frozenset(chapters)))


class TestOrdinalGate:
    def test_threshold_boundary(self):
        assert visible(50, None, 51) is False
        assert visible(51, None, 51) is True
        assert visible(52, None, 51) is True

    def test_accepts_reading_progress(self):
        progress = ReadingProgress(value=51, source=ProgressSource.SERVER)
        assert visible(progress, SpoilerOverride(), 51) is True

    def test_show_all_wins_over_everything(self):
        override = SpoilerOverride(show_all=True)
        assert visible(1, override, 999999) is True
        assert visible(1, override, None) is True

    def test_tolerance_override_replaces_progress(self):
        override = SpoilerOverride(tolerance_override=100)
        assert effective_progress(10, override) == 100
        assert visible(10, override, 90) is True
        assert visible(300, override, 200) is False

    def test_zero_tolerance_falls_back_to_progress(self):
        assert effective_progress(42, SpoilerOverride(tolerance_override=0)) == 42

    def test_missing_threshold_uses_conservative_floor(self):
        assert visible(5, None, None) is False
        assert visible(6, None, None) is True
        assert visible(6, None, None, conservative_floor=10) is False

    def test_is_visible_reads_item_chapters(self):
        event = NarrativeEvent(id="e", chapter_ordinal=30, kind=EventKind.REVEAL)
        assert is_visible(event, 29) is False
        assert is_visible(event, 30) is True
        assert is_visible(_ordinal(12), 12) is True
        assert is_visible(OrdinalTag(13), 12) is False
        assert is_visible(7, 12) is True

    def test_event_without_chapter_uses_floor(self):
        event = NarrativeEvent(id="e", chapter_ordinal=0)
        assert is_visible(event, 3) is False
        assert is_visible(event, 8) is True

    def test_untagged_record_is_hidden(self):
        record = ChapterSpoilerRecord(id="x", chapter_number=None, tag=None)
        assert is_visible(record, 500) is False
        assert is_visible(record, 500, SpoilerOverride(show_all=True)) is True

    def test_ordinal_gate_refuses_dependency_record(self):
        with pytest.raises(GateMismatchError):
            is_visible(_dependency(5, 80), 100)


class TestDependencyGate:
    def test_all_prerequisites_required(self):
        record = _dependency(10, 80)
        assert can_view([10], record) is False
        assert can_view([10, 80], record) is True
        assert can_view({10, 80, 99}, record) is True

    def test_no_prerequisites_is_visible(self):
        assert can_view([], _dependency()) is True

    def test_non_contiguous_prerequisites_are_stricter_than_ordinal(self):
        # Reading chapters 1..79 satisfies an ordinal threshold of 5 but not
        # a dependency on chapters 5 and 80.
        record = _dependency(5, 80)
        assert visible(79, None, 5) is True
        assert can_view(range(1, 80), record) is False

    def test_dependency_gate_refuses_ordinal_record(self):
        with pytest.raises(GateMismatchError):
            can_view([1, 2, 3], _ordinal(2))

    def test_untagged_record_cannot_be_viewed(self):
        assert can_view([1], ChapterSpoilerRecord(id="x", chapter_number=1, tag=None)) is False


class TestGateRecord:
    def test_routes_by_tag_kind(self):
        assert gate_record(_ordinal(51), 50) is False
        assert gate_record(_ordinal(51), 51) is True
        assert gate_record(_dependency(5, 80), 539, read_chapter_ids=[5]) is False
        assert gate_record(_dependency(5, 80), 1, read_chapter_ids=[5, 80]) is True

    def test_dependency_without_read_list_is_hidden(self):
        assert gate_record(_dependency(5), 539) is False

    def test_untagged_record_is_hidden(self):
        record = ChapterSpoilerRecord(id="x", chapter_number=None, tag=None)
        assert gate_record(record, 539, read_chapter_ids=[1, 2]) is False

    def test_show_all_opens_every_gate(self):
        override = SpoilerOverride(show_all=True)
        assert gate_record(_ordinal(999999), 1, override) is True
        assert gate_record(_dependency(5, 80), 1, override) is True
        assert gate_record(ChapterSpoilerRecord(id="x", chapter_number=None, tag=None), 1, override) is True
