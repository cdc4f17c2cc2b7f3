"""Progress store: client-side cache plus an optional remote record.

Cache = key/value strings (JSON file on disk, or memory for tests)
Remote = the viewer's server record, present only while identified
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Protocol

from .state import DEFAULT_MAX_CHAPTER, SpoilerOverride, clamp_chapter

logger = logging.getLogger(__name__)

Listener = Callable[[str, "str | None"], None]


class LocalCache(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class RemoteProgress(Protocol):
    async def fetch_progress(self) -> int | None: ...

    async def push_progress(self, chapter: int) -> None: ...


# ── Cache adapters ──────────────────────────────────────────────


class MemoryCache:
    """In-process cache, mainly for tests."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileCache:
    """Load / save cache entries to a JSON file.

    Several processes may share the file; the last write wins. ``changed_keys``
    reports keys another writer touched since this instance last looked.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._data: dict[str, str] = self._read_file()

    def _read_file(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable cache file %s: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        # Merge with whatever another writer left on disk
        self._data = {**self._read_file(), key: value}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        logger.debug("Saved cache key %s to %s", key, self._path)

    def changed_keys(self) -> dict[str, str | None]:
        """Reload from disk and return keys whose values differ."""
        before = self._data
        self._data = self._read_file()
        keys = set(before) | set(self._data)
        return {k: self._data.get(k) for k in keys if before.get(k) != self._data.get(k)}


# ── Store ───────────────────────────────────────────────────────


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


class ProgressStore:
    """One viewer's reading progress and spoiler override."""

    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteProgress | None = None,
        max_chapter: int = DEFAULT_MAX_CHAPTER,
        key_prefix: str = "usogui",
    ):
        self._cache = cache
        self._remote = remote
        self.max_chapter = max_chapter
        self.progress_key = f"{key_prefix}-reading-progress"
        self.show_all_key = f"{key_prefix}-show-all-spoilers"
        self.tolerance_key = f"{key_prefix}-spoiler-tolerance"
        self._listeners: list[Listener] = []

    # ── Identity ────────────────────────────────────────────────

    @property
    def remote(self) -> RemoteProgress | None:
        return self._remote

    @property
    def is_identified(self) -> bool:
        return self._remote is not None

    def attach_remote(self, remote: RemoteProgress) -> None:
        self._remote = remote

    def detach_remote(self) -> None:
        """Forget the remote record; the cached progress stays in place."""
        self._remote = None

    # ── Progress ────────────────────────────────────────────────

    def read_local_raw(self) -> str | None:
        return self._cache.get(self.progress_key)

    def read_local(self) -> int | None:
        """Cached chapter, clamped; None when absent or unparsable."""
        value = _parse_int(self.read_local_raw())
        if value is None:
            return None
        return clamp_chapter(value, self.max_chapter)

    def write_local(self, value: int) -> int:
        clamped = clamp_chapter(value, self.max_chapter)
        self._cache.set(self.progress_key, str(clamped))
        self._notify(self.progress_key, str(clamped))
        return clamped

    # ── Override ────────────────────────────────────────────────

    def read_override(self) -> SpoilerOverride:
        tolerance = _parse_int(self._cache.get(self.tolerance_key)) or 0
        show_all = (self._cache.get(self.show_all_key) or "").strip().lower() == "true"
        return SpoilerOverride(show_all=show_all, tolerance_override=max(0, tolerance))

    def set_tolerance(self, chapter: int) -> SpoilerOverride:
        value = max(0, int(chapter))
        self._cache.set(self.tolerance_key, str(value))
        self._notify(self.tolerance_key, str(value))
        return self.read_override()

    def set_show_all(self, show_all: bool) -> SpoilerOverride:
        raw = "true" if show_all else "false"
        self._cache.set(self.show_all_key, raw)
        self._notify(self.show_all_key, raw)
        return self.read_override()

    def toggle_show_all(self) -> SpoilerOverride:
        return self.set_show_all(not self.read_override().show_all)

    # ── Change notification ─────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def poll(self) -> list[str]:
        """Pick up writes made by other cache users and notify listeners."""
        changed_keys = getattr(self._cache, "changed_keys", None)
        if changed_keys is None:
            return []
        changes = changed_keys()
        for key, value in changes.items():
            self._notify(key, value)
        return sorted(changes)

    def _notify(self, key: str, value: str | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, value)
            except Exception as exc:
                logger.warning("Progress listener failed for %s: %s", key, exc)
