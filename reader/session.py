"""Reader session - what the presentation layer talks to.

One session per viewer: resolve progress, gate content, arrange timelines.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Collection, Iterable

import httpx

from narrative import BackwardGambleSegmenter, NarrativeUnit, Segmenter
from spoilers.gates import CONSERVATIVE_FLOOR, gate_record, is_visible
from spoilers.gates import can_view as dependency_can_view
from wiki.client import WikiError
from wiki.models import ChapterSpoilerRecord, NarrativeEvent

from .config import DisplaySettings
from .reconciler import ProgressReconciler, ReconcileThresholds
from .state import ProgressSource, ReadingProgress, SpoilerOverride, clamp_chapter
from .store import ProgressStore, RemoteProgress

logger = logging.getLogger(__name__)


class ReaderSession:
    """One viewer's progress, spoiler preferences and gating."""

    def __init__(
        self,
        store: ProgressStore,
        reconciler: ProgressReconciler | None = None,
        segmenter: Segmenter | None = None,
        conservative_floor: int = CONSERVATIVE_FLOOR,
    ):
        self._store = store
        self._reconciler = reconciler or ProgressReconciler(store)
        self._segmenter = segmenter or BackwardGambleSegmenter()
        self._floor = conservative_floor
        self._progress: ReadingProgress | None = None
        self.needs_reconcile = True
        self._unsubscribe = store.subscribe(self._on_cache_change)

    @classmethod
    def from_config(
        cls,
        store: ProgressStore,
        cfg: dict[str, Any],
        audit: Any = None,
    ) -> ReaderSession:
        reconciler = ProgressReconciler(store, ReconcileThresholds.from_config(cfg), audit=audit)
        display = DisplaySettings.from_config(cfg)
        return cls(
            store,
            reconciler=reconciler,
            segmenter=BackwardGambleSegmenter.from_config(cfg),
            conservative_floor=display.conservative_floor,
        )

    def close(self) -> None:
        self._unsubscribe()

    # ── Progress ────────────────────────────────────────────────

    @property
    def progress(self) -> ReadingProgress:
        """Last adopted progress, falling back to the cache before any resolve."""
        if self._progress is None:
            local = self._store.read_local()
            return ReadingProgress(value=local or 1, source=ProgressSource.LOCAL)
        return self._progress

    @property
    def override(self) -> SpoilerOverride:
        return self._store.read_override()

    async def resolve_progress(self) -> ReadingProgress:
        self._progress = await self._reconciler.resolve()
        self.needs_reconcile = False
        return self._progress

    async def mark_chapter_read(self, chapter: int) -> ReadingProgress:
        """Record an explicit "read up to" action.

        The cache is always updated; a failed remote write is only logged.
        """
        value = clamp_chapter(chapter, self._store.max_chapter)
        self._store.write_local(value)
        self._progress = ReadingProgress(value=value, source=ProgressSource.LOCAL)
        self.needs_reconcile = False

        remote = self._store.remote
        if remote is not None:
            try:
                await asyncio.wait_for(
                    remote.push_progress(value),
                    timeout=self._reconciler.thresholds.remote_timeout_seconds,
                )
            except (WikiError, httpx.HTTPError, asyncio.TimeoutError, OSError) as exc:
                logger.warning("Failed to update remote progress to %d: %s", value, exc)
        logger.info("Marked chapter %d as read", value)
        return self._progress

    async def login(self, remote: RemoteProgress) -> ReadingProgress:
        self._store.attach_remote(remote)
        return await self.resolve_progress()

    def logout(self) -> ReadingProgress:
        """Drop the remote record; anonymous gating keeps the last local value."""
        self._store.detach_remote()
        local = self._store.read_local()
        self._progress = ReadingProgress(value=local or 1, source=ProgressSource.LOCAL)
        return self._progress

    def _on_cache_change(self, key: str, value: str | None) -> None:
        if key != self._store.progress_key:
            return
        if self._progress is not None and value == str(self._progress.value):
            return
        self.needs_reconcile = True
        if not self._store.is_identified:
            local = self._store.read_local()
            self._progress = ReadingProgress(value=local or 1, source=ProgressSource.LOCAL)
            logger.debug("Adopted progress %d from another cache writer", self._progress.value)

    # ── Gating ──────────────────────────────────────────────────

    def is_visible(self, item: Any) -> bool:
        return is_visible(item, self.progress, self.override, self._floor)

    def can_view(self, record: ChapterSpoilerRecord, read_chapter_ids: Collection[int]) -> bool:
        if self.override.show_all:
            return True
        return dependency_can_view(read_chapter_ids, record)

    def gate_record(
        self,
        record: ChapterSpoilerRecord,
        read_chapter_ids: Collection[int] | None = None,
    ) -> bool:
        return gate_record(record, self.progress, self.override, read_chapter_ids, self._floor)

    # ── Timeline ────────────────────────────────────────────────

    def segment(self, events: Iterable[NarrativeEvent]) -> list[NarrativeUnit]:
        return self._segmenter.segment(events)
